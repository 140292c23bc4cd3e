"""
Shared pytest fixtures for Tarkeep tests.

This module provides fixtures for:
- Testing configuration
- Source trees and destination directories
- Backup jobs and archive builders
- Compressor availability control
- Logging and scheduler state isolation
"""

import os
import sys
import logging
import subprocess
from logging.handlers import RotatingFileHandler

import pytest

from tarkeep.config import TestingConfig
from tarkeep.models import BackupJob
from tarkeep.backup.compression import ArchiveBuilder, XzCompressor
from tarkeep import scheduler as scheduler_module


@pytest.fixture(autouse=True)
def isolate_logging():
    """Drop handlers installed by configure_logging during a test."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level

    yield

    for handler in root.handlers[:]:
        if handler not in handlers and type(handler) in (logging.StreamHandler, RotatingFileHandler):
            root.removeHandler(handler)
            handler.close()
    root.setLevel(level)


@pytest.fixture
def cfg():
    """Testing configuration class."""
    return TestingConfig


@pytest.fixture
def source_tree(tmp_path):
    """
    Create a small source tree:

        source/
            top.txt
            docs/readme.txt
            docs/notes.md
            data/app.log
            data/cache/blob.bin
    """
    source = tmp_path / "source"
    (source / "docs").mkdir(parents=True)
    (source / "data" / "cache").mkdir(parents=True)

    (source / "top.txt").write_text("top level\n")
    (source / "docs" / "readme.txt").write_text("read me\n")
    (source / "docs" / "notes.md").write_text("# notes\n")
    (source / "data" / "app.log").write_text("log line\n")
    (source / "data" / "cache" / "blob.bin").write_bytes(os.urandom(2048))

    return source


@pytest.fixture
def dest_dir(tmp_path):
    """Empty, writable destination directory."""
    dest = tmp_path / "backups"
    dest.mkdir()
    return dest


@pytest.fixture
def backup_job(source_tree, dest_dir):
    """BackupJob over source_tree with rotation disabled."""
    return BackupJob.from_args(source_tree, dest_dir, "test_job")


@pytest.fixture
def xz_builder():
    """Archive builder pinned to fast in-process xz compression."""
    return ArchiveBuilder(compressor=XzCompressor(preset=0))


@pytest.fixture
def no_zstd(monkeypatch):
    """Make the zstd probe fail so the xz fallback is selected."""
    monkeypatch.setattr('tarkeep.backup.compression.shutil.which', lambda name: None)


@pytest.fixture
def dead_pid():
    """PID of a process that has already exited."""
    process = subprocess.Popen([sys.executable, '-c', 'pass'])
    process.wait()
    return process.pid


@pytest.fixture
def reset_scheduler():
    """Reset scheduler module globals around a test."""
    scheduler_module.scheduler = None
    scheduler_module.backup_jobs.clear()
    yield scheduler_module
    scheduler_module.scheduler = None
    scheduler_module.app_config = TestingConfig
    scheduler_module.backup_jobs.clear()


@pytest.fixture
def live_pid():
    """PID of another process that stays alive for the duration of the test."""
    process = subprocess.Popen([sys.executable, '-c', 'import time; time.sleep(60)'])
    yield process.pid
    process.kill()
    process.wait()
