"""
Error taxonomy for jobrelay.

- JobRelayError: base class for everything raised by the coordinator
- ConfigurationError: global setup failed while building a coordinator
- SubmissionError: executor lookup, pre-processing or submission failed
- DelegationError: a delegated proxy could not be obtained
- ResolutionError: a finished job could not be turned into an output

The coordinator never retries. Retry policy, if any, belongs to executors.
"""

from __future__ import annotations


class JobRelayError(Exception):
    """Base class for jobrelay errors."""


class ConfigurationError(JobRelayError):
    """Raised when configuration loading or global setup fails."""


class SubmissionError(JobRelayError):
    """Raised when a job cannot be handed to its execution backend."""


class DelegationError(SubmissionError):
    """Raised when a delegated user proxy cannot be obtained."""


class ResolutionError(JobRelayError):
    """
    Raised when a finished job cannot be resolved into an output.

    Attributes:
        handle: The job handle whose resolution failed.
    """

    def __init__(self, handle: str, message: str | None = None) -> None:
        self.handle = handle
        super().__init__(message or f"Failed to resolve output for job {handle!r}")
