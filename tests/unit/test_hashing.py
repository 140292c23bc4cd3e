"""
Unit tests for content hashing (tarkeep/backup/hashing.py).

Tests that digests track content and structure, not metadata.
"""

import os
import re

import pytest

from tarkeep.backup.hashing import compute_content_hash, DigestWriter
from tarkeep.backup.errors import SourceError


class TestDigestWriter:
    """Test the hashing sink."""

    def test_digest_of_written_bytes(self):
        """Test that the sink hashes exactly what is written."""
        sink = DigestWriter()
        sink.write(b"hello ")
        sink.write(b"world")

        assert sink.hexdigest() == "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"
        assert sink.bytes_written == 11


class TestComputeContentHash:
    """Test compute_content_hash."""

    def test_hash_is_64_hex_chars(self, source_tree):
        """Test digest format."""
        digest = compute_content_hash(source_tree)

        assert re.fullmatch(r'[a-f0-9]{64}', digest)

    def test_hash_is_stable(self, source_tree):
        """Test that hashing an unchanged tree twice gives the same digest."""
        assert compute_content_hash(source_tree) == compute_content_hash(source_tree)

    def test_hash_ignores_mtime(self, source_tree):
        """Test that touching files does not change the digest."""
        before = compute_content_hash(source_tree)

        os.utime(source_tree / "top.txt", (1000000000, 1000000000))
        os.utime(source_tree / "docs", (1000000000, 1000000000))

        assert compute_content_hash(source_tree) == before

    def test_hash_ignores_creation_order(self, tmp_path):
        """Test that identical trees built in different orders hash the same."""
        first = tmp_path / "first"
        second = tmp_path / "second"
        first.mkdir()
        second.mkdir()

        for name in ("a.txt", "b.txt", "c.txt"):
            (first / name).write_text(name)
        for name in ("c.txt", "a.txt", "b.txt"):
            (second / name).write_text(name)

        assert compute_content_hash(first) == compute_content_hash(second)

    def test_hash_changes_with_content(self, source_tree):
        """Test that modifying one byte changes the digest."""
        before = compute_content_hash(source_tree)

        (source_tree / "docs" / "readme.txt").write_text("read me!\n")

        assert compute_content_hash(source_tree) != before

    def test_hash_changes_with_rename(self, source_tree):
        """Test that renaming a file changes the digest."""
        before = compute_content_hash(source_tree)

        (source_tree / "top.txt").rename(source_tree / "top2.txt")

        assert compute_content_hash(source_tree) != before

    def test_hash_ignores_excluded_files(self, source_tree):
        """Test that changes to excluded files do not affect the digest."""
        before = compute_content_hash(source_tree, ["*.log"])

        (source_tree / "data" / "app.log").write_text("a different log line\n")
        (source_tree / "data" / "new.log").write_text("new\n")

        assert compute_content_hash(source_tree, ["*.log"]) == before
        assert compute_content_hash(source_tree) != before

    def test_unreadable_file_raises_source_error(self, source_tree, monkeypatch):
        """Test that read failures surface as SourceError."""
        real_open = open

        def failing_open(path, *args, **kwargs):
            if str(path).endswith("readme.txt"):
                raise PermissionError("denied")
            return real_open(path, *args, **kwargs)

        monkeypatch.setattr('builtins.open', failing_open)

        with pytest.raises(SourceError, match="denied"):
            compute_content_hash(source_tree)
