"""
Pruner - removes archives outside the keep-set.

Each stale archive is deleted together with its checksum sidecar. The
sidecar is best-effort: a missing one is normal. A primary artifact that
cannot be removed is reported but does not stop the rest of the cleanup.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List

from snapkeep import DRYRUN
from .catalog import Catalog
from .checksum import CHECKSUM_SUFFIX
from .storage import StorageError


logger = logging.getLogger(__name__)


@dataclass
class PruneResult:
    """Outcome of a prune pass."""

    deleted: List[str] = field(default_factory=list)
    failed: Dict[str, str] = field(default_factory=dict)
    kept: List[str] = field(default_factory=list)
    dry_run: bool = False


def prune(catalog: Catalog, keep_set: Iterable[str], storage, dry_run: bool = False) -> PruneResult:
    """
    Delete every archive in the catalog that is not in keep_set.

    Dry-run walks exactly the same selection and reports each intended
    deletion without touching storage.

    Args:
        catalog: Archives present in the destination
        keep_set: Names to retain
        storage: Backend exposing exists() and delete()
        dry_run: Only report what would be deleted

    Returns:
        PruneResult with deleted (or would-be deleted) names and per-archive failures
    """
    keep = frozenset(keep_set)
    result = PruneResult(dry_run=dry_run)

    # Oldest first, like a sorted directory listing
    for archive in catalog.oldest_first():
        if archive.name in keep:
            result.kept.append(archive.name)
            continue

        sidecar = f"{archive.name}{CHECKSUM_SUFFIX}"

        if dry_run:
            logger.log(DRYRUN, f"Would delete old backup: {archive.name}")
            if storage.exists(sidecar):
                logger.log(DRYRUN, f"Would delete checksum: {sidecar}")
            result.deleted.append(archive.name)
            continue

        try:
            removed = storage.delete(archive.name)
        except StorageError as e:
            logger.error(f"Failed to delete old backup {archive.name}: {e}")
            result.failed[archive.name] = str(e)
            continue

        if removed:
            logger.info(f"Deleted old backup: {archive.name}")
        else:
            logger.info(f"Old backup already removed: {archive.name}")
        result.deleted.append(archive.name)

        try:
            if storage.delete(sidecar):
                logger.info(f"Deleted checksum: {sidecar}")
        except StorageError as e:
            logger.warning(f"Could not delete checksum {sidecar}: {e}")

    return result
