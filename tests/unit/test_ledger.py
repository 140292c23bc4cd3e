"""
Unit tests for the hash ledger (tarkeep/backup/ledger.py).
"""

import pytest

from tarkeep.backup.ledger import HashLedger
from tarkeep.models import LedgerEntry

DIGEST_A = "a" * 64
DIGEST_B = "b" * 64
DIGEST_C = "0123456789abcdef" * 4


class TestHashLedgerLatest:
    """Test HashLedger.latest."""

    def test_missing_ledger_returns_none(self, dest_dir):
        """Test that a missing ledger is not an error."""
        ledger = HashLedger(dest_dir / "hash.log")

        assert ledger.latest("test_job") is None

    def test_latest_returns_last_matching_line(self, dest_dir):
        """Test that the most recent entry for the prefix wins."""
        path = dest_dir / "hash.log"
        path.write_text(
            f"{DIGEST_A} test_job_20240101000000.tar.zst\n"
            f"{DIGEST_B} other_20240102000000.tar.zst\n"
            f"{DIGEST_C} test_job_20240103000000.tar.xz\n"
            f"{DIGEST_A} other_20240104000000.tar.zst\n"
        )

        ledger = HashLedger(path)

        assert ledger.latest("test_job") == DIGEST_C
        assert ledger.latest("other") == DIGEST_A

    def test_latest_requires_prefix_separator(self, dest_dir):
        """Test that 'test' does not match archives of prefix 'testing'."""
        path = dest_dir / "hash.log"
        path.write_text(f"{DIGEST_A} testing_20240101000000.tar.zst\n")

        assert HashLedger(path).latest("test") is None

    def test_latest_matches_longer_prefix_sharing_separator(self, dest_dir):
        """Test that names are matched by '<prefix>_' alone, so 'db' also sees 'db_extra' archives."""
        path = dest_dir / "hash.log"
        path.write_text(
            f"{DIGEST_A} db_20240101000000.tar.zst\n"
            f"{DIGEST_B} db_extra_20240102000000.tar.zst\n"
        )

        ledger = HashLedger(path)

        assert ledger.latest("db") == DIGEST_B
        assert ledger.latest("db_extra") == DIGEST_B

    def test_malformed_lines_are_ignored(self, dest_dir):
        """Test that lines without a 64-hex digest are skipped."""
        path = dest_dir / "hash.log"
        path.write_text(
            f"{DIGEST_A} test_job_20240101000000.tar.zst\n"
            "garbage test_job_20240102000000.tar.zst\n"
            f"{DIGEST_B.upper()} test_job_20240103000000.tar.zst\n"
            "\n"
        )

        assert HashLedger(path).latest("test_job") == DIGEST_A

    def test_no_matching_prefix_returns_none(self, dest_dir):
        """Test that a ledger without the prefix yields None."""
        path = dest_dir / "hash.log"
        path.write_text(f"{DIGEST_A} other_20240101000000.tar.zst\n")

        assert HashLedger(path).latest("test_job") is None


class TestHashLedgerAppend:
    """Test HashLedger.append."""

    def test_append_creates_ledger(self, dest_dir):
        """Test that the first append creates the file."""
        ledger = HashLedger(dest_dir / "hash.log")

        entry = ledger.append(DIGEST_A, "test_job_20240101000000.tar.zst")

        assert entry == LedgerEntry(DIGEST_A, "test_job_20240101000000.tar.zst")
        assert (dest_dir / "hash.log").read_text() == f"{DIGEST_A} test_job_20240101000000.tar.zst\n"

    def test_append_preserves_existing_lines(self, dest_dir):
        """Test that appending never rewrites history."""
        path = dest_dir / "hash.log"
        history = f"{DIGEST_A} test_job_20240101000000.tar.zst\nnot a ledger line\n"
        path.write_text(history)

        HashLedger(path).append(DIGEST_B, "test_job_20240102000000.tar.zst")

        content = path.read_text()
        assert content.startswith(history)
        assert content.endswith(f"{DIGEST_B} test_job_20240102000000.tar.zst\n")
        assert HashLedger(path).latest("test_job") == DIGEST_B

    def test_append_allows_spaces_in_archive_name(self, dest_dir):
        """Test that prefixes containing spaces round-trip through the ledger."""
        ledger = HashLedger(dest_dir / "hash.log")

        ledger.append(DIGEST_A, "my docs_20240101000000.tar.zst")

        assert ledger.latest("my docs") == DIGEST_A

    @pytest.mark.parametrize("digest,archive_name", [
        ("not-a-digest", "test_job_1.tar.zst"),
        (DIGEST_A, ""),
        (DIGEST_A, "bad\nname.tar.zst"),
    ])
    def test_append_rejects_invalid_input(self, dest_dir, digest, archive_name):
        """Test that values that would corrupt the ledger are refused."""
        ledger = HashLedger(dest_dir / "hash.log")

        with pytest.raises(ValueError):
            ledger.append(digest, archive_name)

        assert not (dest_dir / "hash.log").exists()
