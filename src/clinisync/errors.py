"""Run-level exceptions.

Item-level delivery failures are never raised out of the orchestrator; they
are recorded on the SyncResult instead. Everything here aborts a run.
"""


class SyncError(RuntimeError):
    """Base class for run-level sync failures."""


class SourceFetchError(SyncError):
    """Raised when the source system is unreachable or returns malformed data."""


class DestinationSessionError(SyncError):
    """Raised when the destination session cannot be acquired or is lost mid-run."""


class SyncInProgressError(SyncError):
    """Raised when a run is triggered while another run is still active."""


class ConfigurationError(SyncError):
    """Raised when a configured component (e.g. the destination factory) cannot be loaded."""
