"""Custom exceptions for the relaunch package."""

from typing import Optional


class RelaunchError(Exception):
    """Base exception for all relaunch errors."""
    pass


class ArgumentError(RelaunchError):
    """Missing or invalid command-line input."""
    pass


class NotRegularFileError(RelaunchError):
    """A watch path exists but is not a regular file."""

    def __init__(self, path):
        super().__init__(f"can only watch regular files: {path}")
        self.path = path


class OSFailureError(RelaunchError):
    """Error that wraps a failed operating system call."""

    def __init__(self, message: str, errno: Optional[int] = None):
        super().__init__(message)
        self.errno = errno

    @classmethod
    def from_os_error(cls, exc: OSError, message: str) -> "OSFailureError":
        """Build the error from an OSError, keeping its errno."""
        detail = exc.strerror or str(exc)
        return cls(f"{message}: {detail}", errno=exc.errno)


class WatchSetupError(OSFailureError):
    """The native watch for a path could not be created."""
    pass


class WaitError(OSFailureError):
    """Waiting for the next file event failed."""
    pass


class EventSourceClosedError(WaitError):
    """The event source was closed."""
    pass


class SpawnError(OSFailureError):
    """A child process could not be started."""
    pass
