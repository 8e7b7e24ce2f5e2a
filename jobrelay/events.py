"""
Events system: Coordinator lifecycle hooks.

Ordering guarantees:
- Synchronous emission: Events are emitted inline by the coordinator
- Best-effort delivery: If callback raises, exception is logged and the
  coordinator continues
- Per-job ordering: job_submitted < jobs_reported < jobs_drained
- Cross-job ordering: NOT guaranteed (backends report from their own threads)
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)


class EventKind(str, Enum):
    """Types of events emitted by the coordinator."""

    JOB_SUBMITTED = "job_submitted"
    JOBS_REPORTED = "jobs_reported"  # Backend merged completions
    JOBS_DRAINED = "jobs_drained"
    CLIENT_NOTIFIED = "client_notified"


@dataclass(frozen=True)
class Event:
    """
    An event emitted by the coordinator.

    Attributes:
        kind: The type of event.
        handles: Job handles this event relates to.
        timestamp: When the event occurred.
        payload: Event-specific data.
    """

    kind: EventKind
    handles: tuple[str, ...]
    timestamp: datetime
    payload: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def job_submitted(cls, handle: str, target: str, **extra: Any) -> Event:
        """Create a job_submitted event."""
        return cls(
            kind=EventKind.JOB_SUBMITTED,
            handles=(handle,),
            timestamp=datetime.now(),
            payload={"target": target, **extra},
        )

    @classmethod
    def jobs_reported(cls, handles: list[str]) -> Event:
        """Create a jobs_reported event."""
        return cls(
            kind=EventKind.JOBS_REPORTED,
            handles=tuple(handles),
            timestamp=datetime.now(),
        )

    @classmethod
    def jobs_drained(cls, handles: list[str]) -> Event:
        """Create a jobs_drained event."""
        return cls(
            kind=EventKind.JOBS_DRAINED,
            handles=tuple(handles),
            timestamp=datetime.now(),
            payload={"count": len(handles)},
        )

    @classmethod
    def client_notified(cls, pending: int) -> Event:
        """Create a client_notified event."""
        return cls(
            kind=EventKind.CLIENT_NOTIFIED,
            handles=(),
            timestamp=datetime.now(),
            payload={"pending": pending},
        )


# Type alias for event callbacks
EventCallback = Callable[[Event], None]


def emit_event(callback: EventCallback | None, event: Event) -> None:
    """
    Emit an event to a callback, with best-effort delivery.

    If the callback raises an exception, it is logged and swallowed so that
    a broken hook cannot break submission or draining.

    Args:
        callback: The event callback (may be None).
        event: The event to emit.
    """
    if callback is None:
        return

    try:
        callback(event)
    except Exception as e:
        logger.warning(f"Event callback failed for {event.kind}: {e}")
