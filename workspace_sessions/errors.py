"""Exceptions raised by workspace-sessions.

Lookups never raise for a missing session; they return None or False.
Only registry persistence and worker transport problems surface as errors.
"""


class WorkspaceSessionsError(Exception):
    """Base class for all workspace-sessions errors."""


class RegistryError(WorkspaceSessionsError):
    """Problem with the on-disk session registry."""


class RegistryWriteError(RegistryError):
    """The registry document could not be written (disk full, permissions...)."""


class UnsupportedRegistryVersion(RegistryError):
    """The registry document was written by an incompatible version."""

    def __init__(self, version, path):
        self.version = version
        self.path = path
        super().__init__(f"Unsupported session registry version {version!r} in {path}")


class WorkerError(WorkspaceSessionsError):
    """A request to the in-target worker failed."""


class WorkerUnavailableError(WorkerError):
    """The worker could not be reached or started."""
