"""Exception taxonomy for backup runs."""


class BackupError(Exception):
    """Base class for every fatal backup failure."""
    pass


class UsageError(BackupError):
    """Raised when the command line is malformed."""
    pass


class PreflightError(BackupError):
    """Raised when the source or destination fails validation."""
    pass


class LockContentionError(BackupError):
    """Raised when another live process holds the prefix lock."""

    def __init__(self, prefix: str, pid: int):
        self.prefix = prefix
        self.pid = pid
        super().__init__(f"Backup for {prefix} is already running (PID: {pid})")


class SourceError(BackupError):
    """Raised when the source tree cannot be read."""
    pass


class BuildError(BackupError):
    """Raised when archive creation fails."""
    pass


class RotationError(BackupError):
    """Raised when an old archive cannot be removed. Never escalated."""
    pass
