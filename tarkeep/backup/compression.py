"""
Compression strategies and archive building.

Supported compressors, in order of preference:
- zstd: external `zstd` tool, multi-threaded (tar.zst)
- xz: in-process LZMA, always available (tar.xz)

The compressor is chosen once per builder by probing for the `zstd`
executable. Archives are written to a hidden partial file in the
destination and renamed into place only when complete, so a failed
build never leaves an archive at its final path.
"""

import os
import lzma
import shutil
import logging
import subprocess
from contextlib import contextmanager
from datetime import datetime, timedelta
from pathlib import Path
from typing import List, Optional

from tarkeep.config import Config
from .errors import BuildError
from .sources import LocalSource

logger = logging.getLogger(__name__)

TIMESTAMP_FORMAT = '%Y%m%d%H%M%S'

# Later seconds tried when an archive with the current timestamp already exists
MAX_NAME_ATTEMPTS = 60


class Compressor:
    """Base compressor strategy: a name, a file extension and a stream opener."""

    name = None
    extension = None

    @contextmanager
    def open(self, fileobj):
        """Yield a writable stream whose bytes end up compressed in fileobj."""
        raise NotImplementedError

    def __repr__(self):
        return f'<{self.__class__.__name__} .{self.extension}>'


class ZstdCompressor(Compressor):
    """Pipe through the external zstd tool."""

    name = 'zstd'
    extension = 'tar.zst'

    def __init__(self, executable: str = 'zstd', threads: int = 0):
        self.executable = executable
        self.threads = threads

    @property
    def command(self) -> List[str]:
        return [self.executable, f'-T{self.threads}', '-q', '-c']

    @contextmanager
    def open(self, fileobj):
        process = subprocess.Popen(
            self.command,
            stdin=subprocess.PIPE,
            stdout=fileobj,
            stderr=subprocess.PIPE
        )

        try:
            yield process.stdin
        except BaseException:
            process.kill()
            process.communicate()
            raise

        # Flushes and closes stdin, then waits for the tool to finish
        _, stderr = process.communicate()
        if process.returncode != 0:
            message = stderr.decode('utf-8', errors='replace').strip()
            raise BuildError(f"zstd exited with status {process.returncode}: {message}")


class XzCompressor(Compressor):
    """LZMA/xz compression through the standard library."""

    name = 'xz'
    extension = 'tar.xz'

    def __init__(self, preset: int = 6):
        self.preset = preset

    @contextmanager
    def open(self, fileobj):
        with lzma.LZMAFile(fileobj, 'wb', format=lzma.FORMAT_XZ, preset=self.preset) as stream:
            yield stream


def select_compressor(cfg=Config) -> Compressor:
    """
    Pick the preferred available compressor.

    Returns:
        ZstdCompressor if `zstd` is on PATH, otherwise XzCompressor
    """
    executable = shutil.which('zstd')
    if executable:
        return ZstdCompressor(executable, threads=cfg.ZSTD_THREADS)

    logger.warning("'zstd' not found, falling back to slower xz compression.")
    return XzCompressor(preset=cfg.XZ_PRESET)


def generate_archive_filename(prefix: str, extension: str, now: Optional[datetime] = None) -> str:
    """
    Generate an archive filename.

    Format: {prefix}_{YYYYMMDDHHMMSS}.{ext}
    """
    timestamp = (now or datetime.now()).strftime(TIMESTAMP_FORMAT)
    return f"{prefix}_{timestamp}.{extension}"


def get_archive_size(archive_path) -> int:
    """
    Get the size of an archive file in bytes.

    Raises:
        BuildError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise BuildError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise BuildError(f"Failed to get archive size: {e}")


class ArchiveBuilder:
    """Builds one compressed archive of a filtered source tree."""

    def __init__(self, compressor: Compressor = None, cfg=Config):
        self.compressor = compressor or select_compressor(cfg)

    def build(
        self,
        source_dir,
        exclusions: List[str],
        destination_dir,
        prefix: str,
        now: Optional[datetime] = None
    ) -> str:
        """
        Create `<destination>/<prefix>_<timestamp>.<ext>`.

        Args:
            source_dir: Tree to archive
            exclusions: Patterns to omit (same ones the digest uses)
            destination_dir: Directory receiving the archive
            prefix: Backup prefix
            now: Timestamp for the name (defaults to the current time); bumped by a
                second while that name is taken

        Returns:
            Archive filename (without directory)

        Raises:
            BuildError: If any stage of the pipeline fails; nothing is left behind
        """
        archive_name = self._free_archive_name(destination_dir, prefix, now or datetime.now())
        final_path = Path(destination_dir) / archive_name
        partial_path = Path(destination_dir) / f".{archive_name}.partial"

        source = LocalSource(source_dir, exclusions)

        try:
            with open(partial_path, 'wb') as f:
                with self.compressor.open(f) as stream:
                    source.write_tar(stream)
                f.flush()
                os.fsync(f.fileno())
            os.replace(partial_path, final_path)
        except BuildError:
            _remove_partial(partial_path)
            raise
        except Exception as e:
            _remove_partial(partial_path)
            raise BuildError(f"Failed to create archive: {e}") from e
        except BaseException:
            _remove_partial(partial_path)
            raise

        logger.debug(f"Archive written: {final_path} ({self.compressor.name})")
        return archive_name

    def _free_archive_name(self, destination_dir, prefix: str, now: datetime) -> str:
        for offset in range(MAX_NAME_ATTEMPTS):
            archive_name = generate_archive_filename(prefix, self.compressor.extension, now + timedelta(seconds=offset))
            if not (Path(destination_dir) / archive_name).exists():
                if offset:
                    logger.debug(f"Archive name taken, using {archive_name}")
                return archive_name

        raise BuildError(f"Archive names for {prefix} already exist for {MAX_NAME_ATTEMPTS} seconds from {now:%Y-%m-%d %H:%M:%S}")


def _remove_partial(path: Path):
    try:
        path.unlink()
    except FileNotFoundError:
        pass
    except OSError as e:
        logger.error(f"Failed to remove partial archive {path}: {e}")
