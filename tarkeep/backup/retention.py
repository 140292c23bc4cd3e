"""
Retention policy enforcement for backups.

Deletes a prefix's archives from the destination once they are old
enough. Age is counted in whole days the way `find -mtime` counts it,
and a file is removed when that count exceeds `retention_days - 1`:
with retention_days=7 an archive aged 6 days survives and one aged
7 days is deleted. Rotation is best-effort; failures are logged only.
"""

import os
import stat
import time
import logging
from fnmatch import fnmatchcase
from pathlib import Path
from typing import List, Optional

from .errors import RotationError

logger = logging.getLogger(__name__)

SECONDS_PER_DAY = 86400


class RetentionManager:
    """
    Manages retention policy enforcement for one destination and prefix.

    A retention of 0 (or any non-positive value) disables rotation.
    """

    def __init__(self, destination_dir, prefix: str, retention_days: int):
        """
        Initialize retention manager.

        Args:
            destination_dir: Directory holding the archives
            prefix: Backup prefix; matches '<prefix>_*.tar.*'
            retention_days: Days to keep archives (0 = keep forever)
        """
        self.destination_dir = Path(destination_dir)
        self.prefix = prefix
        self.retention_days = retention_days
        self.errors = []

    @property
    def enabled(self) -> bool:
        return isinstance(self.retention_days, int) and self.retention_days > 0

    @property
    def pattern(self) -> str:
        return f"{self.prefix}_*.tar.*"

    def find_expired(self, now: Optional[float] = None) -> List[Path]:
        """
        List archives eligible for deletion.

        Args:
            now: Reference time as a POSIX timestamp (defaults to time.time())

        Returns:
            Sorted paths of regular files matching the prefix pattern whose
            whole-day age is greater than retention_days - 1
        """
        if not self.enabled:
            return []

        now = time.time() if now is None else now
        threshold = self.retention_days - 1
        expired = []

        try:
            with os.scandir(self.destination_dir) as it:
                entries = list(it)
        except OSError as e:
            logger.warning(f"Failed to list {self.destination_dir} for rotation: {e}")
            return []

        for entry in entries:
            if not fnmatchcase(entry.name, self.pattern):
                continue
            try:
                st = entry.stat(follow_symlinks=False)
            except OSError:
                continue
            if not stat.S_ISREG(st.st_mode):
                continue

            age_days = int((now - st.st_mtime) // SECONDS_PER_DAY)
            if age_days > threshold:
                expired.append(Path(entry.path))

        return sorted(expired)

    def enforce(self, now: Optional[float] = None) -> int:
        """
        Delete expired archives.

        Returns:
            Number of archives deleted. Individual failures are collected
            in self.errors and logged, never raised.
        """
        if not self.enabled:
            logger.debug(f"Retention disabled for {self.prefix}, skipping rotation")
            return 0

        deleted_count = 0
        for path in self.find_expired(now):
            try:
                self._delete(path)
                deleted_count += 1
                logger.info(f"Deleted old backup: {path.name}")
            except RotationError as e:
                self.errors.append(str(e))
                logger.warning(str(e))

        return deleted_count

    def _delete(self, path: Path):
        try:
            path.unlink()
        except FileNotFoundError:
            # Already gone; nothing left to rotate
            pass
        except OSError as e:
            raise RotationError(f"Failed to delete old backup {path}: {e}")


def enforce_retention(destination_dir, prefix: str, retention_days: int) -> int:
    """
    Enforce the retention policy for one prefix.

    Returns:
        Number of archives deleted
    """
    manager = RetentionManager(destination_dir, prefix, retention_days)
    return manager.enforce()
