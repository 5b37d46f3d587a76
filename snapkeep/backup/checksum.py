"""
SHA-256 digests for backup archives.

Sidecars use the sha256sum(1) format ("<hex>  <filename>\\n") so they can
be checked by hand with `sha256sum -c` from inside the destination.
"""

import hashlib
import os
from typing import Tuple

from snapkeep.errors import SnapkeepError


CHECKSUM_SUFFIX = '.sha256'
CHUNK_SIZE = 1024 * 1024


class ChecksumError(SnapkeepError):
    """Raised when a digest cannot be computed, written or read."""
    pass


def checksum_path_for(archive_path: str) -> str:
    """Return the sidecar path belonging to an archive."""
    return f"{archive_path}{CHECKSUM_SUFFIX}"


def compute_checksum(path: str) -> str:
    """
    Compute the SHA-256 hex digest of a file.

    Args:
        path: File to hash

    Returns:
        Lowercase hex digest

    Raises:
        ChecksumError: If the file cannot be read
    """
    digest = hashlib.sha256()
    try:
        with open(path, 'rb') as f:
            for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
                digest.update(chunk)
    except OSError as e:
        raise ChecksumError(f"Failed to hash {path}: {e}")
    return digest.hexdigest()


def write_checksum_file(archive_path: str) -> Tuple[str, str]:
    """
    Hash an archive and write its sidecar next to it.

    Args:
        archive_path: Archive to hash

    Returns:
        (sidecar path, hex digest)

    Raises:
        ChecksumError: If hashing or writing fails
    """
    checksum = compute_checksum(archive_path)
    checksum_path = checksum_path_for(archive_path)

    try:
        with open(checksum_path, 'w', encoding='utf-8') as f:
            f.write(f"{checksum}  {os.path.basename(archive_path)}\n")
    except OSError as e:
        raise ChecksumError(f"Failed to write checksum file {checksum_path}: {e}")

    return checksum_path, checksum


def read_checksum_file(checksum_path: str) -> Tuple[str, str]:
    """
    Read the first entry of a sha256sum-style sidecar.

    Args:
        checksum_path: Sidecar to read

    Returns:
        (hex digest, file name recorded in the sidecar)

    Raises:
        ChecksumError: If the sidecar is missing, unreadable or malformed
    """
    try:
        with open(checksum_path, 'r', encoding='utf-8') as f:
            line = f.readline().strip()
    except FileNotFoundError:
        raise ChecksumError(f"Checksum file not found: {checksum_path}")
    except (OSError, UnicodeDecodeError) as e:
        raise ChecksumError(f"Failed to read checksum file {checksum_path}: {e}")

    parts = line.split(None, 1)
    if len(parts) != 2 or len(parts[0]) != 64:
        raise ChecksumError(f"Malformed checksum file: {checksum_path}")

    checksum, filename = parts
    try:
        int(checksum, 16)
    except ValueError:
        raise ChecksumError(f"Malformed checksum file: {checksum_path}")

    # sha256sum marks binary-mode entries with a leading '*'
    return checksum.lower(), filename.lstrip('*')
