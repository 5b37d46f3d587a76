"""
Archive catalog.

Backups carry no metadata store: the timestamp embedded in each file name
is the only index. The catalog parses names once per scan into typed
Archive records, newest first, and is never cached across scans because
pruning changes the destination underneath it.
"""

import re
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Iterator, Optional

from .checksum import CHECKSUM_SUFFIX
from .compression import ARCHIVE_EXTENSIONS, ARCHIVE_PREFIX
from .storage import LocalStorage


ARCHIVE_NAME_RE = re.compile(
    r'^' + re.escape(ARCHIVE_PREFIX)
    + r'(?P<year>\d{4})-(?P<month>\d{2})-(?P<day>\d{2})-(?P<hour>\d{2})(?P<minute>\d{2})'
    + r'\.(?:' + '|'.join(re.escape(ext) for ext in ARCHIVE_EXTENSIONS) + r')$'
)


@dataclass(frozen=True)
class Archive:
    """A single backup archive found in the destination."""

    name: str
    timestamp: datetime
    path: str
    checksum_path: Optional[str] = None

    @property
    def date(self) -> date:
        return self.timestamp.date()


def parse_archive_name(name: str) -> Optional[datetime]:
    """
    Recover the timestamp embedded in an archive file name.

    Args:
        name: File name, e.g. backup-2024-11-03-1430.tar.gz

    Returns:
        The timestamp, or None if the name is not a valid archive name
    """
    match = ARCHIVE_NAME_RE.match(name)
    if not match:
        return None

    try:
        return datetime(
            int(match.group('year')),
            int(match.group('month')),
            int(match.group('day')),
            int(match.group('hour')),
            int(match.group('minute')),
        )
    except ValueError:
        # Well-formed but impossible, e.g. month 13 or 25:00
        return None


class Catalog:
    """
    Immutable, newest-first sequence of archives.

    Archives sharing a timestamp (different formats written in the same
    minute) are ordered by name so selection stays deterministic.
    """

    def __init__(self, archives: Iterable[Archive] = ()):
        self._archives = tuple(
            sorted(archives, key=lambda a: (a.timestamp, a.name), reverse=True)
        )

    def __iter__(self) -> Iterator[Archive]:
        return iter(self._archives)

    def __len__(self) -> int:
        return len(self._archives)

    def __contains__(self, name) -> bool:
        return any(a.name == name for a in self._archives)

    def __repr__(self) -> str:
        return f'<Catalog archives={len(self._archives)}>'

    @property
    def names(self):
        return [a.name for a in self._archives]

    def get(self, name: str) -> Optional[Archive]:
        for archive in self._archives:
            if archive.name == name:
                return archive
        return None

    def oldest_first(self):
        return list(reversed(self._archives))

    def newest_on_or_before(self, day: date) -> Optional[Archive]:
        """Newest archive whose date is on or before day; never one after it."""
        for archive in self._archives:
            if archive.date <= day:
                return archive
        return None

    def newest_in_month(self, year: int, month: int) -> Optional[Archive]:
        """Newest archive taken during the given calendar month."""
        for archive in self._archives:
            if archive.timestamp.year == year and archive.timestamp.month == month:
                return archive
        return None

    def with_archive(self, archive: Archive) -> 'Catalog':
        """Return a new catalog that also contains archive."""
        if archive.name in self:
            return self
        return Catalog(self._archives + (archive,))

    def without(self, names: Iterable[str]) -> 'Catalog':
        """Return a new catalog lacking the named archives."""
        removed = set(names)
        return Catalog(a for a in self._archives if a.name not in removed)


def scan_catalog(storage) -> Catalog:
    """
    Enumerate archives in a storage backend.

    Files whose names do not parse as archive names (sidecars, unrelated
    files, impossible dates) are skipped silently.

    Args:
        storage: Backend exposing list_names() and get_full_path()

    Returns:
        Catalog of the archives present at call time
    """
    names = storage.list_names()
    present = set(names)
    archives = []

    for name in names:
        timestamp = parse_archive_name(name)
        if timestamp is None:
            continue

        sidecar = f"{name}{CHECKSUM_SUFFIX}"
        archives.append(Archive(
            name=name,
            timestamp=timestamp,
            path=storage.get_full_path(name),
            checksum_path=storage.get_full_path(sidecar) if sidecar in present else None,
        ))

    return Catalog(archives)


def list_archives(destination: str) -> Catalog:
    """Scan a destination directory without creating it."""
    return scan_catalog(LocalStorage(destination, create=False))
