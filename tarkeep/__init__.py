"""
Tarkeep - content-addressed directory backups.

Snapshots a directory tree into a compressed archive, skips runs whose
content is unchanged since the last successful backup, serializes
concurrent runs per destination/prefix, and rotates old archives.
"""

import os
import sys
import logging
from logging.handlers import RotatingFileHandler

__version__ = '1.0.0'


class _BelowWarningFilter(logging.Filter):
    """Pass only records that belong on stdout."""

    def filter(self, record):
        return record.levelno < logging.WARNING


def configure_logging(cfg):
    """
    Configure application logging.

    Progress and status lines go to stdout, warnings and errors to stderr.
    A rotating log file is added when the configuration names one.

    Args:
        cfg: Configuration class (see tarkeep.config)
    """
    log_level = logging.getLevelName(str(cfg.LOG_LEVEL).upper())
    if not isinstance(log_level, int):
        log_level = logging.INFO

    console_formatter = logging.Formatter('[%(asctime)s] %(message)s', '%Y-%m-%d %H:%M:%S')
    error_formatter = logging.Formatter('[%(asctime)s] %(levelname)s: %(message)s', '%Y-%m-%d %H:%M:%S')

    # Console handlers
    stdout_handler = logging.StreamHandler(sys.stdout)
    stdout_handler.setLevel(log_level)
    stdout_handler.addFilter(_BelowWarningFilter())
    stdout_handler.setFormatter(console_formatter)

    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setLevel(logging.WARNING)
    stderr_handler.setFormatter(error_formatter)

    handlers = [stdout_handler, stderr_handler]

    # File handler
    if cfg.LOG_FILE:
        log_dir = os.path.dirname(os.path.abspath(cfg.LOG_FILE))
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(
            cfg.LOG_FILE,
            maxBytes=10485760,  # 10MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(logging.Formatter(
            '[%(asctime)s] %(levelname)s [%(name)s.%(funcName)s:%(lineno)d] %(message)s'
        ))
        handlers.append(file_handler)

    # Configure root logger
    logging.basicConfig(level=log_level, handlers=handlers, force=True)

    # Scheduler internals are noisy at INFO
    logging.getLogger('apscheduler').setLevel(logging.WARNING)

    logging.getLogger(__name__).debug(f"Logging configured (level: {logging.getLevelName(log_level)})")
