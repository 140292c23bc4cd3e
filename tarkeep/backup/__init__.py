"""
Backup module for Tarkeep.

This module handles the core backup functionality including:
- Exclusion resolution from the source's ignore file
- Content hashing for change detection
- The append-only hash ledger
- Compression and archive building
- Per-prefix locking
- Retention policy enforcement
- Execution orchestration
"""

from .executor import BackupExecutor, execute_backup
from .exclusions import resolve_exclusions, ExclusionMatcher
from .sources import LocalSource
from .hashing import compute_content_hash
from .ledger import HashLedger
from .compression import ArchiveBuilder, select_compressor
from .locking import BackupLock
from .retention import RetentionManager
from .errors import (
    BackupError,
    UsageError,
    PreflightError,
    LockContentionError,
    SourceError,
    BuildError,
    RotationError
)

__all__ = [
    'BackupExecutor',
    'execute_backup',
    'resolve_exclusions',
    'ExclusionMatcher',
    'LocalSource',
    'compute_content_hash',
    'HashLedger',
    'ArchiveBuilder',
    'select_compressor',
    'BackupLock',
    'RetentionManager',
    'BackupError',
    'UsageError',
    'PreflightError',
    'LockContentionError',
    'SourceError',
    'BuildError',
    'RotationError'
]
