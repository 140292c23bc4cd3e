"""
Content digests for source trees.

The digest is SHA-256 over the normalized, name-sorted tar stream of the
filtered tree, so it changes with file bytes, names and structure but
not with timestamps, ownership or enumeration order.
"""

import hashlib
import logging
from typing import List

from .errors import SourceError
from .sources import LocalSource

logger = logging.getLogger(__name__)

DIGEST_ALGORITHM = 'sha256'
DIGEST_HEX_LENGTH = 64


class DigestWriter:
    """Write-only binary sink that hashes everything written to it."""

    def __init__(self, algorithm: str = DIGEST_ALGORITHM):
        self._hash = hashlib.new(algorithm)
        self.bytes_written = 0

    def write(self, data) -> int:
        self._hash.update(data)
        self.bytes_written += len(data)
        return len(data)

    def hexdigest(self) -> str:
        return self._hash.hexdigest()


def compute_content_hash(source_dir, exclusions: List[str] = None) -> str:
    """
    Compute the content digest of a source tree.

    Args:
        source_dir: Root of the tree
        exclusions: Patterns to omit (same ones the archive uses)

    Returns:
        64-character lowercase hexadecimal SHA-256 digest

    Raises:
        SourceError: If any part of the tree cannot be read
    """
    source = LocalSource(source_dir, exclusions)
    sink = DigestWriter()

    try:
        members = source.write_tar(sink, normalize=True)
    except SourceError:
        raise
    except OSError as e:
        raise SourceError(f"Failed to read source tree {source_dir}: {e}")

    digest = sink.hexdigest()
    logger.debug(f"Hashed {members} members ({sink.bytes_written} bytes): {digest}")
    return digest
