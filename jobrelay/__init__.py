"""
jobrelay: A job-submission coordinator.

A Coordinator dispatches JobDescriptors to pluggable execution backends
selected by (version, target), collects the completions backends report, and
wakes a single registered Client when finished jobs are ready to collect.

Everything else is plug-ins: executors, monitors, output resolvers, stores.

Example:
    import jobrelay

    descriptor = jobrelay.JobDescriptor(
        executable="/bin/echo",
        parameters=("hello",),
    )

    client = jobrelay.Client()
    coordinator = jobrelay.get_instance("LOCAL", "local")
    handle = coordinator.submit(client, descriptor)

    client.wait()
    for output in coordinator.get_finished_jobs():
        print(output.job_id, output.exit_code)
    coordinator.wait_for_notification()

    coordinator.terminate()
"""

__version__ = "0.1.0"

# Configuration
from jobrelay.config import Settings, load_settings, setup_configuration

# Coordinator
from jobrelay.coordinator import Client, CompletionNotifier, Coordinator, get_instance

# Errors
from jobrelay.errors import (
    ConfigurationError,
    DelegationError,
    JobRelayError,
    ResolutionError,
    SubmissionError,
)

# Events
from jobrelay.events import Event, EventCallback, EventKind

# Executors
from jobrelay.executor import (
    Executor,
    ExecutorContext,
    ExecutorRegistry,
    LocalExecutor,
    SlurmConfig,
    SlurmExecutor,
)

# Monitors
from jobrelay.monitor import Monitor, MonitorRegistry

# Output resolvers
from jobrelay.output import OutputResolver, OutputResolverRegistry

# Credentials
from jobrelay.proxy import (
    GridUserCredentials,
    MyproxyServer,
    VomsServer,
    delegate,
)

# Store
from jobrelay.store import FileStore, JobStore, create_store

# Types (public)
from jobrelay.types import (
    CompletionToken,
    EnvVariable,
    ExecutionTarget,
    ExitCode,
    Family,
    JobDescriptor,
    JobOutput,
    JobRecord,
    JobStatus,
    Release,
    VariableCategory,
)

__all__ = [
    "__version__",
    # Configuration
    "Settings",
    "load_settings",
    "setup_configuration",
    # Coordinator
    "Client",
    "CompletionNotifier",
    "Coordinator",
    "get_instance",
    # Errors
    "ConfigurationError",
    "DelegationError",
    "JobRelayError",
    "ResolutionError",
    "SubmissionError",
    # Events
    "Event",
    "EventCallback",
    "EventKind",
    # Executors
    "Executor",
    "ExecutorContext",
    "ExecutorRegistry",
    "LocalExecutor",
    "SlurmConfig",
    "SlurmExecutor",
    # Monitors
    "Monitor",
    "MonitorRegistry",
    # Output resolvers
    "OutputResolver",
    "OutputResolverRegistry",
    # Credentials
    "GridUserCredentials",
    "MyproxyServer",
    "VomsServer",
    "delegate",
    # Store
    "FileStore",
    "JobStore",
    "create_store",
    # Types
    "CompletionToken",
    "EnvVariable",
    "ExecutionTarget",
    "ExitCode",
    "Family",
    "JobDescriptor",
    "JobOutput",
    "JobRecord",
    "JobStatus",
    "Release",
    "VariableCategory",
]
