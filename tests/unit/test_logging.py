"""
Unit tests for logging configuration (tarkeep/__init__.py).
"""

import logging

from tarkeep import configure_logging
from tarkeep.config import TestingConfig


class TestConfigureLogging:
    """Test stdout/stderr routing and the optional log file."""

    def test_info_to_stdout_warning_to_stderr(self, capsys):
        """Test that status lines and warnings go to separate streams."""
        configure_logging(TestingConfig)
        log = logging.getLogger('tarkeep.test')

        log.info("status line")
        log.warning("careful")

        captured = capsys.readouterr()
        assert "status line" in captured.out
        assert "status line" not in captured.err
        assert "WARNING: careful" in captured.err
        assert "careful" not in captured.out

    def test_log_file(self, tmp_path, capsys):
        """Test that a rotating log file is written when configured."""
        log_file = tmp_path / "logs" / "tarkeep.log"

        class FileConfig(TestingConfig):
            LOG_FILE = str(log_file)

        configure_logging(FileConfig)
        logging.getLogger('tarkeep.test').info("to the file")
        for handler in logging.getLogger().handlers:
            handler.flush()

        assert "to the file" in log_file.read_text()

    def test_invalid_level_falls_back_to_info(self, capsys):
        """Test that an unknown level name does not break configuration."""
        class BadLevelConfig(TestingConfig):
            LOG_LEVEL = 'LOUD'

        configure_logging(BadLevelConfig)
        logging.getLogger('tarkeep.test').debug("hidden")
        logging.getLogger('tarkeep.test').info("shown")

        captured = capsys.readouterr()
        assert "shown" in captured.out
        assert "hidden" not in captured.out
