"""
Backup executor - orchestrates the complete backup workflow.

Workflow:
1. Create the dated archive in the destination
2. Write its checksum sidecar
3. Verify the archive (checksum, listing, test extraction)
4. Re-scan the catalog and compute the keep-set
5. Prune archives outside the keep-set

Any failure before step 5 raises and nothing is deleted. In dry-run mode
steps 1-3 are only logged, and the prospective archive is added to the
scanned catalog so the prune preview matches what a real run would do.
"""

import logging
import os
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, FrozenSet, Optional

from snapkeep import DRYRUN, SUCCESS
from .catalog import Archive, Catalog, scan_catalog
from .checksum import checksum_path_for, write_checksum_file
from .compression import (
    create_archive,
    generate_archive_filename,
    strip_archive_extension,
    get_archive_size,
    CompressionError
)
from .pruner import PruneResult, prune
from .retention import compute_keep_set, explain_keep_set
from .sources import LocalSource
from .storage import LocalStorage
from .verification import VerificationResult, verify_archive


logger = logging.getLogger(__name__)


@dataclass
class RunResult:
    """Outcome of one backup run."""

    archive_name: str
    archive_path: str
    keep_set: FrozenSet[str]
    prune: PruneResult
    remaining: Catalog
    verification: Optional[VerificationResult] = None
    dry_run: bool = False

    @property
    def deleted(self):
        return self.prune.deleted


class BackupExecutor:
    """
    Orchestrates the complete backup workflow for one source directory.
    """

    def __init__(
        self,
        config,
        source: LocalSource,
        storage=None,
        archiver: Callable = create_archive,
        dry_run: bool = False,
        clock: Optional[Callable[[], datetime]] = None
    ):
        """
        Initialize backup executor.

        Args:
            config: Validated Config (destination, retention counts, format, excludes)
            source: Source directory to back up
            storage: Destination backend (LocalStorage on the configured destination if None)
            archiver: Callable creating the archive, same signature as create_archive
            dry_run: Log intended actions without changing anything
            clock: Returns the current time (datetime.now if None)
        """
        self.config = config
        self.source = source
        if storage is None:
            storage = LocalStorage(config.backup_destination, create=not dry_run)
        self.storage = storage
        self.archiver = archiver
        self.dry_run = dry_run
        self.clock = clock

    def execute(self) -> RunResult:
        """
        Execute the backup run.

        Returns:
            RunResult with the new archive, keep-set and prune outcome

        Raises:
            CompressionError: If the archive cannot be created
            ChecksumError: If the sidecar cannot be written
            VerificationError: If the new archive fails verification
            RetentionError: If the retention policy is malformed
        """
        now = (self.clock or datetime.now)().replace(second=0, microsecond=0)
        policy = self.config.retention_policy

        logger.info(f"==== Run start (dry-run={str(self.dry_run).lower()}) ====")

        archive_name = generate_archive_filename(now, self.config.compression_format)
        archive_path = self.storage.get_full_path(archive_name)

        self._check_minute_free(now)
        self._create_archive(archive_path)
        checksum_path = self._write_checksum(archive_path)
        verification = self._verify(archive_path, checksum_path)

        catalog = self._scan_catalog(archive_name, archive_path, now)
        keep_set = compute_keep_set(catalog, policy, now)
        self._log_keep_set(catalog, keep_set, now)

        if archive_name not in keep_set:
            logger.warning(f"Retention policy does not keep the new backup {archive_name}")

        prune_result = prune(catalog, keep_set, self.storage, dry_run=self.dry_run)
        if prune_result.failed:
            logger.warning(
                f"{len(prune_result.failed)} old backup(s) could not be deleted: "
                f"{', '.join(sorted(prune_result.failed))}"
            )

        logger.info(
            f"Retention complete. Kept: {len(prune_result.kept)}, "
            f"{'Would delete' if self.dry_run else 'Deleted'}: {len(prune_result.deleted)}"
        )
        logger.info("==== Run end ====")

        return RunResult(
            archive_name=archive_name,
            archive_path=archive_path,
            keep_set=keep_set,
            prune=prune_result,
            remaining=catalog.without(prune_result.deleted),
            verification=verification,
            dry_run=self.dry_run,
        )

    def _check_minute_free(self, now: datetime):
        """
        Refuse to start when an archive for this minute already exists.

        Archive names are unique per minute regardless of format; a second
        archive with the same timestamp would make the keep-set ambiguous.

        Raises:
            CompressionError: If any archive in the destination carries this timestamp
        """
        for archive in scan_catalog(self.storage):
            if archive.timestamp == now:
                raise CompressionError(
                    f"Archive already exists for {now.strftime('%Y-%m-%d %H:%M')}: {archive.name}"
                )

    def _create_archive(self, archive_path: str):
        """
        Create the archive at archive_path.

        Raises:
            CompressionError: If archive creation fails
        """
        logger.info(f"Starting backup of {self.source.path} -> {archive_path}")

        if self.dry_run:
            logger.log(DRYRUN, f"Would create archive: {archive_path}")
            return

        created = self.archiver(
            self.source.path,
            strip_archive_extension(archive_path),
            self.config.exclude_patterns,
            self.config.compression_format
        )
        if os.path.abspath(created) != os.path.abspath(archive_path):
            raise CompressionError(f"Archiver wrote {created}, expected {archive_path}")

        file_size = get_archive_size(archive_path)
        logger.log(SUCCESS, f"Backup created: {os.path.basename(archive_path)} ({file_size / 1024 / 1024:.2f} MB)")

    def _write_checksum(self, archive_path: str) -> str:
        """Write the sidecar and return its path."""
        if self.dry_run:
            checksum_path = checksum_path_for(archive_path)
            logger.log(DRYRUN, f"Would write checksum: {checksum_path}")
            return checksum_path

        checksum_path, _ = write_checksum_file(archive_path)
        logger.info(f"Checksum saved: {os.path.basename(checksum_path)}")
        return checksum_path

    def _verify(self, archive_path: str, checksum_path: str) -> Optional[VerificationResult]:
        """
        Verify the new archive.

        Raises:
            VerificationError: If any check fails
        """
        if self.dry_run:
            logger.log(DRYRUN, f"Would verify checksum and test extraction for: {archive_path}")
            return None

        result = verify_archive(archive_path, checksum_path)
        logger.log(SUCCESS, "Backup verification SUCCESS")
        return result

    def _scan_catalog(self, archive_name: str, archive_path: str, now: datetime) -> Catalog:
        """Fresh catalog of the destination, including the new archive."""
        catalog = scan_catalog(self.storage)

        if self.dry_run:
            catalog = catalog.with_archive(Archive(
                name=archive_name,
                timestamp=now,
                path=archive_path,
            ))

        logger.debug(f"Catalog: {len(catalog)} archive(s) in {self.config.backup_destination}")
        return catalog

    def _log_keep_set(self, catalog: Catalog, keep_set: FrozenSet[str], now: datetime):
        if not logger.isEnabledFor(logging.DEBUG):
            return
        reasons = explain_keep_set(catalog, self.config.retention_policy, now)
        for name in catalog.names:
            if name in keep_set:
                logger.debug(f"Keeping {name} ({', '.join(reasons[name])})")
