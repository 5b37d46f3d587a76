"""
Verification pipeline for a freshly created archive.

Older archives may only be pruned once the new one is known to be sound.
Three checks run in order and any failure aborts the run:

1. The recomputed SHA-256 matches the sidecar written at creation time.
2. The archive can be listed end to end and is not empty.
3. The first listed member extracts cleanly into a scratch directory.

The extraction is a cheap corruption probe, not a restore test.
"""

import logging
import os
import shutil
import tempfile
from dataclasses import dataclass
from typing import Optional

from snapkeep.errors import SnapkeepError
from .checksum import ChecksumError, compute_checksum, read_checksum_file
from .compression import CompressionError, extract_member, list_members


logger = logging.getLogger(__name__)


class VerificationError(SnapkeepError):
    """Raised when a new archive fails an integrity check."""
    pass


@dataclass
class VerificationResult:
    """Outcome of a successful verification."""

    archive_path: str
    checksum: str
    member_count: int
    first_member: str


def verify_checksum(archive_path: str, checksum_path: str) -> str:
    """
    Compare an archive's digest against its sidecar.

    Returns:
        The verified hex digest

    Raises:
        VerificationError: On mismatch or an unusable sidecar
    """
    try:
        expected, recorded_name = read_checksum_file(checksum_path)
        actual = compute_checksum(archive_path)
    except ChecksumError as e:
        raise VerificationError(f"Checksum verification FAILED: {e}")

    archive_name = os.path.basename(archive_path)
    if recorded_name != archive_name:
        raise VerificationError(
            f"Checksum verification FAILED: sidecar lists {recorded_name}, expected {archive_name}"
        )

    if actual != expected:
        raise VerificationError(
            f"Checksum verification FAILED for {archive_name}: expected {expected}, got {actual}"
        )

    logger.info("Checksum verified successfully")
    return actual


def verify_archive(archive_path: str, checksum_path: str, scratch_dir: Optional[str] = None) -> VerificationResult:
    """
    Run all integrity checks against an archive.

    Args:
        archive_path: Archive to verify
        checksum_path: Sidecar written when the archive was created
        scratch_dir: Parent for the temporary extraction directory (system default if None)

    Returns:
        VerificationResult describing the verified archive

    Raises:
        VerificationError: If any check fails
    """
    checksum = verify_checksum(archive_path, checksum_path)

    try:
        members = list_members(archive_path)
    except CompressionError as e:
        raise VerificationError(f"Archive listing FAILED: {e}")

    if not members:
        raise VerificationError(f"Archive seems empty: {os.path.basename(archive_path)}")

    first = members[0]
    tmpdir = tempfile.mkdtemp(prefix='snapkeep_verify_', dir=scratch_dir)
    try:
        extract_member(archive_path, first, tmpdir)
        logger.debug(f"Test extraction of {first} succeeded")
    except CompressionError as e:
        raise VerificationError(f"Test extraction FAILED: {e}")
    finally:
        shutil.rmtree(tmpdir, ignore_errors=True)

    return VerificationResult(
        archive_path=archive_path,
        checksum=checksum,
        member_count=len(members),
        first_member=first,
    )
