import os
import enum
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import List, Optional


class RunStatus(str, enum.Enum):
    """Terminal outcome of a backup run"""
    RUNNING = 'running'
    SKIPPED = 'skipped'
    SUCCESS = 'success'
    FAILED = 'failed'


class RunState(str, enum.Enum):
    """Orchestrator state machine"""
    VALIDATING = 'validating'
    LOCK_ACQUIRED = 'lock_acquired'
    HASHING = 'hashing'
    SKIPPING = 'skipping'
    BUILDING = 'building'
    RECORDING = 'recording'
    ROTATING_OUT = 'rotating_out'
    DONE = 'done'
    FAILED = 'failed'


@dataclass(frozen=True)
class BackupJob:
    """Backup job configuration for one invocation"""

    source_dir: Path
    destination_dir: Path
    prefix: str
    retention_days: int = 0

    @classmethod
    def from_args(cls, source_dir, destination_dir, prefix, retention_days=0) -> 'BackupJob':
        """
        Build a job from raw command line values.

        Paths are made absolute and resolved; the destination is not created.
        """
        return cls(
            source_dir=Path(os.path.abspath(source_dir)).resolve(),
            destination_dir=Path(os.path.abspath(destination_dir)).resolve(),
            prefix=str(prefix),
            retention_days=parse_retention_days(retention_days),
        )

    def lock_path(self, suffix: str = '.lock') -> Path:
        return self.destination_dir / f"{self.prefix}{suffix}"

    def ledger_path(self, filename: str = 'hash.log') -> Path:
        return self.destination_dir / filename

    def __repr__(self):
        return f'<BackupJob {self.prefix} {self.source_dir} -> {self.destination_dir}>'


@dataclass(frozen=True)
class LedgerEntry:
    """One `<digest> <archive-filename>` line of the hash ledger"""

    digest: str
    archive_name: str

    def to_line(self) -> str:
        return f"{self.digest} {self.archive_name}\n"


@dataclass
class BackupResult:
    """Backup execution history and logs"""

    job: BackupJob
    status: RunStatus = RunStatus.RUNNING
    started_at: datetime = field(default_factory=datetime.now)
    completed_at: Optional[datetime] = None
    digest: Optional[str] = None
    archive_name: Optional[str] = None
    file_size_bytes: Optional[int] = None
    rotated: int = 0
    error_message: Optional[str] = None
    logs: List[str] = field(default_factory=list)

    @property
    def archive_path(self) -> Optional[Path]:
        if self.archive_name is None:
            return None
        return self.job.destination_dir / self.archive_name

    def __repr__(self):
        return f'<BackupResult prefix={self.job.prefix} status={self.status.value}>'


def parse_retention_days(value) -> int:
    """
    Interpret a retention value.

    Only positive decimal integers enable rotation; anything else
    (empty, zero, negative, non-numeric) disables it and yields 0.
    """
    if isinstance(value, bool):
        return 0
    if isinstance(value, int):
        return value if value > 0 else 0
    text = str(value or '').strip()
    if text.isdigit() and text.isascii() and not text.startswith('0'):
        return int(text)
    return 0


@dataclass(frozen=True)
class ScheduledBackup:
    """A named backup job with a crontab schedule"""

    name: str
    job: BackupJob
    schedule: Optional[str] = None
    enabled: bool = True

    def __repr__(self):
        return f'<ScheduledBackup {self.name} schedule={self.schedule!r} enabled={self.enabled}>'
