"""
Exclusion resolution for backup sources.

Patterns come from an optional ignore file at the root of the source
tree, one pattern per line. They follow tar's unanchored exclude
semantics: a pattern matches a member when it matches the member's
relative path or any trailing part of it that starts after a '/', and
wildcards also match '/'. An excluded directory excludes its subtree.
"""

import logging
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Iterable, List

logger = logging.getLogger(__name__)

DEFAULT_IGNORE_FILENAME = '.backupignore'


def resolve_exclusions(source_dir, ignore_filename: str = DEFAULT_IGNORE_FILENAME) -> List[str]:
    """
    Read exclusion patterns for a source directory.

    Args:
        source_dir: Root of the tree being backed up
        ignore_filename: Name of the ignore file relative to source_dir

    Returns:
        Ordered list of patterns; empty when the ignore file is absent

    Raises:
        OSError: If the ignore file exists but cannot be read
    """
    ignore_file = Path(source_dir) / ignore_filename

    if not ignore_file.is_file():
        return []

    patterns = []
    with open(ignore_file, 'r', encoding='utf-8', errors='surrogateescape') as f:
        for line in f:
            pattern = line.strip()
            # Blank lines and comments carry no pattern
            if not pattern or pattern.startswith('#'):
                continue
            patterns.append(pattern)

    logger.debug(f"Loaded {len(patterns)} exclusion patterns from {ignore_file}")
    return patterns


def _normalize(pattern: str) -> str:
    while pattern.startswith('./'):
        pattern = pattern[2:]
    if len(pattern) > 1:
        pattern = pattern.rstrip('/')
    return pattern


class ExclusionMatcher:
    """Decides whether a relative member path is excluded."""

    def __init__(self, patterns: Iterable[str] = ()):
        self.patterns = [p for p in (_normalize(p) for p in patterns) if p]

    def __bool__(self):
        return bool(self.patterns)

    def is_excluded(self, relative_path: str) -> bool:
        """
        Check a path relative to the source root (no leading './').

        Args:
            relative_path: POSIX-style relative path, e.g. 'logs/app.log'

        Returns:
            True if any pattern matches the path or one of its trailing parts
        """
        if not self.patterns:
            return False

        parts = relative_path.split('/')
        candidates = ['/'.join(parts[i:]) for i in range(len(parts))]

        for pattern in self.patterns:
            for candidate in candidates:
                if fnmatchcase(candidate, pattern):
                    return True

        return False
