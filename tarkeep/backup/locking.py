"""
PID-stamped lock files.

One lock per (destination, prefix) at `<dest>/<prefix>.lock`, holding the
owner's process id as its only content. The owner also holds an exclusive
flock on the file for the whole run, so only one process can take over a
stale lock. A lock whose recorded process is not alive (or whose content is
not a pid) is stale. Acquisition never blocks: contention fails immediately.
"""

import os
import fcntl
import logging
from pathlib import Path
from typing import Optional

import psutil

from .errors import LockContentionError

logger = logging.getLogger(__name__)


def read_lock_pid(lock_path) -> Optional[int]:
    """Return the pid stored in a lock file, or None if absent or unparseable."""
    try:
        raw = Path(lock_path).read_text(encoding='utf-8').strip()
        return int(raw)
    except (FileNotFoundError, ValueError, UnicodeDecodeError):
        return None


def is_process_alive(pid: Optional[int]) -> bool:
    """Check if a process with the given pid exists on this host."""
    if pid is None or pid <= 0:
        return False
    try:
        return psutil.pid_exists(pid)
    except (OSError, psutil.Error):
        return False


class BackupLock:
    """
    Exclusive lock for one backup target.

    Usable as a context manager; release() is idempotent and only removes
    a lock file this instance actually wrote.
    """

    def __init__(self, destination_dir, prefix: str, suffix: str = '.lock'):
        self.prefix = prefix
        self.path = Path(destination_dir) / f"{prefix}{suffix}"
        self.pid = os.getpid()
        self.held = False
        self._fd = None

    def acquire(self) -> 'BackupLock':
        """
        Take the lock or fail.

        Raises:
            LockContentionError: If another run or a live process holds the lock
            OSError: If the lock file cannot be written
        """
        if self.held:
            return self

        fd = self._open_locked()
        try:
            owner, stamped = self._read_owner(fd)
            if owner != self.pid and is_process_alive(owner):
                raise LockContentionError(self.prefix, owner)

            if stamped:
                logger.warning(f"Removing stale lock {self.path} (PID: {owner if owner is not None else 'unknown'})")

            os.ftruncate(fd, 0)
            os.pwrite(fd, f"{self.pid}\n".encode('ascii'), 0)
            os.fsync(fd)
        except BaseException:
            self._close(fd)
            raise

        self._fd = fd
        self.held = True
        logger.debug(f"Lock acquired: {self.path} (PID: {self.pid})")
        return self

    def _open_locked(self) -> int:
        """Open the lock file and take its flock, retrying if the file is swapped underneath."""
        while True:
            fd = os.open(self.path, os.O_RDWR | os.O_CREAT, 0o644)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(fd)
                raise LockContentionError(self.prefix, read_lock_pid(self.path))
            except BaseException:
                os.close(fd)
                raise

            if self._is_current(fd):
                return fd

            # The previous owner removed the file between our open and flock
            self._close(fd)

    def _is_current(self, fd: int) -> bool:
        try:
            on_disk = os.stat(self.path)
        except FileNotFoundError:
            return False
        opened = os.fstat(fd)
        return (opened.st_dev, opened.st_ino) == (on_disk.st_dev, on_disk.st_ino)

    @staticmethod
    def _read_owner(fd: int):
        raw = os.pread(fd, 64, 0)
        try:
            return int(raw.decode('utf-8').strip()), True
        except (ValueError, UnicodeDecodeError):
            return None, bool(raw.strip())

    @staticmethod
    def _close(fd: int):
        try:
            fcntl.flock(fd, fcntl.LOCK_UN)
        finally:
            os.close(fd)

    def release(self):
        """Remove the lock file if this instance holds it. Safe to call repeatedly."""
        if not self.held:
            return

        self.held = False
        fd, self._fd = self._fd, None
        try:
            # Unlink while still holding the flock so no one locks a dead inode
            if read_lock_pid(self.path) != self.pid:
                logger.warning(f"Lock {self.path} no longer owned by PID {self.pid}, leaving it in place")
            else:
                try:
                    self.path.unlink()
                    logger.debug(f"Lock released: {self.path}")
                except FileNotFoundError:
                    pass
        finally:
            self._close(fd)

    def __enter__(self):
        return self.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()
        return False

    def __repr__(self):
        return f'<BackupLock {self.path} held={self.held}>'
