"""
Archive handlers for backup archives.

Supports the tar family of formats:
- tar.gz: Gzip compressed tar (default)
- tar.bz2: Bzip2 compressed tar
- tar.xz: LZMA compressed tar
- none: No compression (tar only)

Besides creation this module exposes the two read operations the
verification pipeline needs: listing members and extracting one member.
"""

import lzma
import os
import tarfile
import zlib
from datetime import datetime
from pathlib import Path
from typing import Callable, List, Optional

from snapkeep.errors import SnapkeepError
from .sources import LocalSource


ARCHIVE_PREFIX = 'backup-'
TIMESTAMP_FORMAT = '%Y-%m-%d-%H%M'

# format -> (extension, tarfile write mode)
FORMAT_MAP = {
    'tar.gz': ('tar.gz', 'w:gz'),
    'tar.bz2': ('tar.bz2', 'w:bz2'),
    'tar.xz': ('tar.xz', 'w:xz'),
    'none': ('tar', 'w'),
}

# Longest first so '.tar.gz' wins over '.tar'
ARCHIVE_EXTENSIONS = ('tar.gz', 'tar.bz2', 'tar.xz', 'tar')

# Errors raised by tarfile and the decompressors on truncated or corrupt data
_READ_ERRORS = (tarfile.TarError, EOFError, OSError, zlib.error, lzma.LZMAError)


class CompressionError(SnapkeepError):
    """Raised when archive creation or reading fails."""
    pass


def create_archive(
    source_dir: str,
    output_path: str,
    exclude_patterns: Optional[List[str]] = None,
    compression_format: str = 'tar.gz'
) -> str:
    """
    Create a compressed archive of the contents of a directory.

    Members are stored relative to source_dir, so the archive can be
    extracted anywhere without recreating the source's absolute path.

    Args:
        source_dir: Directory whose contents are archived
        output_path: Path where archive should be created (without extension)
        exclude_patterns: Glob patterns of names/paths to leave out
        compression_format: Format to use ('tar.gz', 'tar.bz2', 'tar.xz', 'none')

    Returns:
        Full path to the created archive file

    Raises:
        CompressionError: If archive creation fails or the archive already exists
        ValueError: If compression_format is invalid
    """
    if compression_format not in FORMAT_MAP:
        raise ValueError(
            f"Invalid compression format: {compression_format}. "
            f"Valid options: {list(FORMAT_MAP.keys())}"
        )

    source = LocalSource(source_dir, exclude_patterns)
    source_path = source.validate()

    extension, mode = FORMAT_MAP[compression_format]
    archive_path = f"{output_path}.{extension}"

    if os.path.exists(archive_path):
        raise CompressionError(f"Archive already exists: {archive_path}")

    try:
        _create_tar(source_path, archive_path, mode, source.tar_filter(archive_path))
        return archive_path
    except Exception as e:
        # Clean up partial archive on failure
        if os.path.exists(archive_path):
            try:
                os.remove(archive_path)
            except OSError:
                pass
        raise CompressionError(f"Failed to create archive: {e}")


def _create_tar(source_path: Path, archive_path: str, mode: str, tar_filter: Callable):
    """
    Create a TAR archive with optional compression.

    Args:
        source_path: Directory whose children are added
        archive_path: Output archive path
        mode: tarfile write mode
        tar_filter: tarfile filter callable returning None for excluded members
    """
    with tarfile.open(archive_path, mode) as tar:
        for child in sorted(source_path.iterdir()):
            tar.add(child, arcname=child.name, recursive=True, filter=tar_filter)


def generate_archive_filename(timestamp: datetime, compression_format: str = 'tar.gz') -> str:
    """
    Generate the standardized archive filename.

    Format: backup-{YYYY-MM-DD-HHMM}.{ext}

    The embedded timestamp is the only index the catalog has, so this format
    must stay stable across releases.

    Args:
        timestamp: Creation time (seconds are dropped)
        compression_format: Compression format

    Returns:
        Filename (without path)
    """
    extension = FORMAT_MAP.get(compression_format, FORMAT_MAP['tar.gz'])[0]
    return f"{ARCHIVE_PREFIX}{timestamp.strftime(TIMESTAMP_FORMAT)}.{extension}"


def strip_archive_extension(filename: str) -> str:
    """
    Strip archive extension from filename.

    Handles multi-part extensions like .tar.gz, .tar.bz2, .tar.xz

    Args:
        filename: Archive filename with extension

    Returns:
        Filename without extension
    """
    for extension in ARCHIVE_EXTENSIONS:
        suffix = f".{extension}"
        if filename.endswith(suffix):
            return filename[:-len(suffix)]
    # Fallback to standard splitext
    return os.path.splitext(filename)[0]


def list_members(archive_path: str) -> List[str]:
    """
    List member names of an archive, reading it end to end.

    Args:
        archive_path: Path to the archive

    Returns:
        Member names in archive order

    Raises:
        CompressionError: If the archive is missing, unreadable or corrupt
    """
    try:
        with tarfile.open(archive_path, 'r:*') as tar:
            return tar.getnames()
    except _READ_ERRORS as e:
        raise CompressionError(f"Archive listing failed for {archive_path}: {e}")


def extract_member(archive_path: str, member: str, destination: str) -> str:
    """
    Extract a single member of an archive.

    Args:
        archive_path: Path to the archive
        member: Name of the member to extract
        destination: Directory to extract into

    Returns:
        Path of the extracted member

    Raises:
        CompressionError: If the member cannot be extracted
    """
    # The scratch directory is discarded, so links and special files are
    # recreated as tar(1) would; only paths escaping the destination are refused
    kwargs = {'filter': 'tar'} if hasattr(tarfile, 'tar_filter') else {}

    try:
        with tarfile.open(archive_path, 'r:*') as tar:
            tar.extract(member, path=destination, **kwargs)
    except KeyError:
        raise CompressionError(f"Member not found in archive: {member}")
    except _READ_ERRORS as e:
        raise CompressionError(f"Test extraction failed for {member}: {e}")

    return os.path.join(destination, member)


def get_archive_size(archive_path: str) -> int:
    """
    Get the size of an archive file in bytes.

    Args:
        archive_path: Path to the archive file

    Returns:
        File size in bytes

    Raises:
        CompressionError: If file doesn't exist or cannot be accessed
    """
    try:
        return os.path.getsize(archive_path)
    except FileNotFoundError:
        raise CompressionError(f"Archive not found: {archive_path}")
    except OSError as e:
        raise CompressionError(f"Failed to get archive size: {e}")
