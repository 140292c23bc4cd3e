"""
Source tree serialization for backup operations.

LocalSource walks a directory tree in a deterministic, name-sorted
order (the order `tar --sort=name` produces), skipping excluded members,
and streams it as a tar archive into any writable binary file object.
The same walk feeds both the content digest and the archive so that the
two always agree on which members exist.
"""

import os
import tarfile
import logging
from pathlib import Path
from typing import Iterator, List, Tuple

from .errors import SourceError
from .exclusions import ExclusionMatcher

logger = logging.getLogger(__name__)

ROOT_ARCNAME = '.'


class LocalSource:
    """
    Handler for a local directory tree.

    Streams the filtered tree as tar, either with its real metadata
    (for archives) or with metadata normalized away (for digests).
    """

    def __init__(self, source_dir, exclude_patterns: List[str] = None):
        """
        Initialize local source handler.

        Args:
            source_dir: Root directory to serialize
            exclude_patterns: Patterns from the ignore file (see exclusions.py)
        """
        self.source_dir = Path(source_dir)
        self.exclude_patterns = list(exclude_patterns or [])
        self._matcher = ExclusionMatcher(self.exclude_patterns)

    def _should_exclude(self, relative_path: str) -> bool:
        return self._matcher.is_excluded(relative_path)

    def iter_members(self) -> Iterator[Tuple[str, str]]:
        """
        Yield (arcname, absolute path) pairs in sorted traversal order.

        The root directory comes first as '.', children follow as './name'.
        Each directory's entries are sorted by their encoded name, so the
        order never depends on filesystem enumeration order. Symlinks are
        yielded as members but never followed.

        Raises:
            SourceError: If a directory cannot be listed
        """
        if not self.source_dir.is_dir():
            raise SourceError(f"Source directory not found: {self.source_dir}")

        yield ROOT_ARCNAME, str(self.source_dir)
        yield from self._walk(str(self.source_dir), '')

    def _walk(self, directory: str, relative_dir: str) -> Iterator[Tuple[str, str]]:
        try:
            with os.scandir(directory) as it:
                entries = sorted(it, key=lambda e: os.fsencode(e.name))
        except OSError as e:
            raise SourceError(f"Failed to list {directory}: {e}")

        for entry in entries:
            relative_path = f"{relative_dir}{entry.name}"
            if self._should_exclude(relative_path):
                logger.debug(f"Excluded: {relative_path}")
                continue

            yield f"./{relative_path}", entry.path

            if entry.is_dir(follow_symlinks=False):
                yield from self._walk(entry.path, f"{relative_path}/")

    def write_tar(self, fileobj, normalize: bool = False) -> int:
        """
        Stream the filtered tree as an uncompressed tar into fileobj.

        Args:
            fileobj: Writable binary stream (only write() is used)
            normalize: If True, drop timestamps, ownership and permission
                bits so that only names, types and bytes remain

        Returns:
            Number of members written

        Raises:
            SourceError: If the tree cannot be listed
            OSError: If a member cannot be read or the stream rejects a write
        """
        count = 0

        with tarfile.open(fileobj=fileobj, mode='w|', format=tarfile.PAX_FORMAT) as tar:
            for arcname, path in self.iter_members():
                tarinfo = tar.gettarinfo(path, arcname=arcname)
                if tarinfo is None:
                    # Sockets and other unsupported file types
                    logger.debug(f"Skipping unsupported file type: {arcname}")
                    continue

                if normalize:
                    _normalize_tarinfo(tarinfo)

                if tarinfo.isreg():
                    with open(path, 'rb') as f:
                        tar.addfile(tarinfo, f)
                else:
                    tar.addfile(tarinfo)
                count += 1

        return count


def _normalize_tarinfo(tarinfo: tarfile.TarInfo):
    """Strip every attribute except name, type, size and link target."""
    tarinfo.mtime = 0
    tarinfo.uid = 0
    tarinfo.gid = 0
    tarinfo.uname = ''
    tarinfo.gname = ''
    tarinfo.pax_headers = {}

    if tarinfo.isdir():
        tarinfo.mode = 0o755
    elif tarinfo.issym():
        tarinfo.mode = 0o777
    else:
        tarinfo.mode = 0o644
