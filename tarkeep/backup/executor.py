"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Validate source, destination and prefix
2. Acquire the prefix lock (released on every exit path)
3. Hash the filtered source tree and compare with the ledger
4. Skip, or build the archive and append a ledger entry
5. Enforce the retention policy
6. Record the outcome in a BackupResult
"""

import os
import logging
from datetime import datetime

from tarkeep.config import Config
from tarkeep.models import BackupJob, BackupResult, RunState, RunStatus
from .errors import BackupError, BuildError, PreflightError
from .exclusions import resolve_exclusions
from .hashing import compute_content_hash
from .ledger import HashLedger
from .locking import BackupLock
from .compression import ArchiveBuilder, get_archive_size
from .retention import RetentionManager

logger = logging.getLogger(__name__)


class BackupExecutor:
    """
    Orchestrates one backup run for a job.
    """

    def __init__(self, job: BackupJob, cfg=Config, builder: ArchiveBuilder = None):
        """
        Initialize backup executor.

        Args:
            job: BackupJob to execute
            cfg: Configuration class
            builder: Archive builder to use; created on demand when omitted
        """
        self.job = job
        self.cfg = cfg
        self.builder = builder
        self.state = RunState.VALIDATING
        self.result = None
        self.logs = []

    def execute(self) -> BackupResult:
        """
        Execute the backup job.

        Returns:
            BackupResult with status SKIPPED, SUCCESS or FAILED. Failures are
            recorded on the result rather than raised; the lock is always
            released before returning.
        """
        self.result = BackupResult(job=self.job)
        self._log("Backup start.")

        try:
            self._transition(RunState.VALIDATING)
            self.validate()

            with BackupLock(self.job.destination_dir, self.job.prefix, self.cfg.LOCK_SUFFIX):
                self._transition(RunState.LOCK_ACQUIRED)
                self._execute_workflow()

            self._transition(RunState.DONE)
            self._log("Backup end.")

        except BackupError as e:
            self._fail(e)

        except Exception as e:
            logger.exception(f"Unexpected error during backup for {self.job.prefix}")
            self._fail(e)

        finally:
            self.result.completed_at = datetime.now()
            self.result.logs = list(self.logs)

        return self.result

    def validate(self):
        """
        Pre-flight checks. No lock is taken before these pass.

        Raises:
            PreflightError: If the prefix, source or destination is unusable
        """
        prefix = self.job.prefix
        if not prefix or prefix in ('.', '..') or '/' in prefix or os.sep in prefix:
            raise PreflightError(f"Invalid backup prefix '{prefix}'.")

        if not self.job.source_dir.is_dir():
            raise PreflightError(f"Source directory '{self.job.source_dir}' not found.")

        destination = self.job.destination_dir
        if not destination.is_dir() or not os.access(destination, os.W_OK | os.X_OK):
            raise PreflightError(f"Destination directory '{destination}' is not writable.")

    def _execute_workflow(self):
        """Execute the main backup workflow steps while holding the lock."""
        prefix = self.job.prefix

        # Step 1: Hash current content and look up the last recorded digest
        self._transition(RunState.HASHING)
        exclusions = resolve_exclusions(self.job.source_dir, self.cfg.IGNORE_FILENAME)
        if exclusions:
            self._log(f"Using {len(exclusions)} exclusion patterns", logging.DEBUG)

        current_hash = compute_content_hash(self.job.source_dir, exclusions)
        self.result.digest = current_hash

        ledger = HashLedger(self.job.ledger_path(self.cfg.LEDGER_FILENAME))
        latest_hash = ledger.latest(prefix)

        # Step 2: Skip or build
        if latest_hash is not None and latest_hash == current_hash:
            self._transition(RunState.SKIPPING)
            self.result.status = RunStatus.SKIPPED
            self._log(f"Backup for {prefix}: SKIPPED (no changes)")
        else:
            self._transition(RunState.BUILDING)
            self._log(f"Backup for {prefix}: IN PROGRESS...")

            if self.builder is None:
                self.builder = ArchiveBuilder(cfg=self.cfg)

            archive_name = self.builder.build(
                self.job.source_dir,
                exclusions,
                self.job.destination_dir,
                prefix
            )

            # Step 3: Record the new digest
            self._transition(RunState.RECORDING)
            ledger.append(current_hash, archive_name)

            self.result.archive_name = archive_name
            self.result.file_size_bytes = get_archive_size(self.result.archive_path)
            self.result.status = RunStatus.SUCCESS
            self._log(f"Backup for {prefix}: SUCCESS -> {self.result.archive_path}")

        # Step 4: Rotate old archives
        self._transition(RunState.ROTATING_OUT)
        manager = RetentionManager(self.job.destination_dir, prefix, self.job.retention_days)
        self.result.rotated = manager.enforce()
        if self.result.rotated:
            self._log(f"Removed {self.result.rotated} old backups", logging.DEBUG)

    def _fail(self, error: Exception):
        self._transition(RunState.FAILED)
        self.result.status = RunStatus.FAILED
        self.result.error_message = str(error)
        self._log(f"Error: {error}", logging.ERROR)
        if isinstance(error, BuildError):
            self._log(f"Backup for {self.job.prefix}: FAILED", logging.ERROR)

    def _transition(self, state: RunState):
        logger.debug(f"{self.job.prefix}: {self.state.value} -> {state.value}")
        self.state = state

    def _log(self, message: str, level: int = logging.INFO):
        """
        Add a log message with timestamp.

        Args:
            message: Log message
            level: Logging level for the module logger
        """
        timestamp = datetime.now().strftime('%Y-%m-%d %H:%M:%S')
        self.logs.append(f"[{timestamp}] {message}")
        logger.log(level, message)


def execute_backup(source_dir, destination_dir, prefix, retention_days=0, cfg=Config) -> BackupResult:
    """
    Execute a backup from raw arguments.

    Args:
        source_dir: Directory to back up
        destination_dir: Existing, writable directory receiving archives
        prefix: Backup prefix namespacing locks, ledger lines and archives
        retention_days: Days to keep archives; non-positive or invalid disables rotation
        cfg: Configuration class

    Returns:
        BackupResult with execution results
    """
    job = BackupJob.from_args(source_dir, destination_dir, prefix, retention_days)
    executor = BackupExecutor(job, cfg=cfg)
    return executor.execute()
