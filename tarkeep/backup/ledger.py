"""
Append-only hash ledger.

Each successful archive adds one `<digest> <archive-filename>` line to
`<dest>/hash.log`. Lines are never rewritten; the current digest for a
prefix is the digest of the last well-formed line whose archive name
starts with `<prefix>_`.
"""

import os
import re
import logging
from pathlib import Path
from typing import Iterator, Optional

from tarkeep.models import LedgerEntry

logger = logging.getLogger(__name__)

_LINE_RE = re.compile(r'^(?P<digest>[a-f0-9]{64}) (?P<archive>\S.*)$')


class HashLedger:
    """Reader/appender for one destination's ledger file."""

    def __init__(self, path):
        self.path = Path(path)

    def entries(self) -> Iterator[LedgerEntry]:
        """
        Iterate well-formed entries in file order.

        Malformed lines are skipped. A missing ledger yields nothing.
        """
        try:
            f = open(self.path, 'r', encoding='utf-8', errors='replace')
        except FileNotFoundError:
            return

        with f:
            for line in f:
                match = _LINE_RE.match(line.rstrip('\r\n'))
                if match:
                    yield LedgerEntry(match.group('digest'), match.group('archive'))

    def latest(self, prefix: str) -> Optional[str]:
        """
        Return the most recent digest recorded for a prefix.

        Args:
            prefix: Backup prefix; matches archive names starting with '<prefix>_'

        Returns:
            Digest string, or None if the ledger is absent or has no match
        """
        latest = None
        for entry in self.entries():
            if entry.archive_name.startswith(f"{prefix}_"):
                latest = entry.digest
        return latest

    def append(self, digest: str, archive_name: str) -> LedgerEntry:
        """
        Append exactly one entry.

        The line is written with a single write on an O_APPEND descriptor
        and fsynced before returning.

        Raises:
            ValueError: If the digest or archive name would corrupt the format
            OSError: If the ledger cannot be written
        """
        if not re.fullmatch(r'[a-f0-9]{64}', digest or ''):
            raise ValueError(f"Invalid digest: {digest!r}")
        if not archive_name or any(c in archive_name for c in ('\n', '\r')):
            raise ValueError(f"Invalid archive name: {archive_name!r}")

        entry = LedgerEntry(digest, archive_name)
        data = entry.to_line().encode('utf-8')

        fd = os.open(self.path, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o644)
        try:
            os.write(fd, data)
            os.fsync(fd)
        finally:
            os.close(fd)

        logger.debug(f"Ledger entry appended to {self.path}: {entry.to_line().strip()}")
        return entry
