"""
Shared pytest fixtures for snapkeep tests.

This module provides fixtures for:
- Source directory trees
- Backup destinations populated with dated archives
- An in-memory storage backend for catalog/pruner tests
- Config files
- Logger reset between tests
"""

import logging
import tarfile
from datetime import datetime
from pathlib import Path

import pytest

from snapkeep import LOGGER_NAME
from snapkeep.backup.catalog import Archive
from snapkeep.backup.checksum import write_checksum_file
from snapkeep.backup.compression import generate_archive_filename
from snapkeep.backup.storage import StorageError


class MemoryStorage:
    """
    In-memory stand-in for LocalStorage.

    Holds file names only. Names listed in fail_on raise StorageError on
    delete, to exercise partial-failure handling.
    """

    def __init__(self, names=(), fail_on=()):
        self.files = set(names)
        self.fail_on = set(fail_on)
        self.deleted = []

    def list_names(self):
        return sorted(self.files)

    def exists(self, name):
        return name in self.files

    def delete(self, name):
        if name in self.fail_on:
            raise StorageError(f"Permission denied deleting {name}")
        if name not in self.files:
            return False
        self.files.remove(name)
        self.deleted.append(name)
        return True

    def get_full_path(self, name):
        return f"/memory/{name}"


def make_archive_record(timestamp: datetime, compression_format: str = 'tar.gz') -> Archive:
    """Build an Archive for retention tests without touching disk."""
    name = generate_archive_filename(timestamp, compression_format)
    return Archive(name=name, timestamp=timestamp, path=f"/memory/{name}")


@pytest.fixture(autouse=True)
def reset_snapkeep_logger():
    """Drop handlers installed by configure_logging so tests stay isolated."""
    yield
    logger = logging.getLogger(LOGGER_NAME)
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.setLevel(logging.NOTSET)


@pytest.fixture
def memory_storage():
    """Empty in-memory storage backend."""
    return MemoryStorage()


@pytest.fixture
def storage_factory():
    """The MemoryStorage class, for tests that need pre-populated or failing storage."""
    return MemoryStorage


@pytest.fixture
def archive_record():
    """Factory building Archive records from timestamps."""
    return make_archive_record


@pytest.fixture
def source_dir(tmp_path):
    """
    Create a source directory to back up.

    Creates:
    - file1.txt
    - notes.log
    - nested/file2.txt
    - module.pyc (excluded in tests)
    - __pycache__/cached.pyc (excluded in tests)
    """
    source = tmp_path / 'source'
    source.mkdir()
    (source / 'file1.txt').write_text('Content 1')
    (source / 'notes.log').write_text('Log content')

    nested = source / 'nested'
    nested.mkdir()
    (nested / 'file2.txt').write_text('Content 2')

    (source / 'module.pyc').write_bytes(b'compiled python')
    cache = source / '__pycache__'
    cache.mkdir()
    (cache / 'cached.pyc').write_bytes(b'cached')

    return source


@pytest.fixture
def destination(tmp_path):
    """Empty backup destination directory."""
    dest = tmp_path / 'backups'
    dest.mkdir()
    return dest


@pytest.fixture
def make_backup(destination, tmp_path):
    """
    Factory writing a real, verifiable archive (and sidecar) into the destination.

    Usage: make_backup(datetime(2024, 1, 15, 2, 0), checksum=True)
    """
    payload = tmp_path / 'payload.txt'
    payload.write_text('archived data')

    def _make(timestamp: datetime, checksum: bool = True) -> Path:
        archive_path = destination / generate_archive_filename(timestamp)
        with tarfile.open(archive_path, 'w:gz') as tar:
            tar.add(payload, arcname='payload.txt')
        if checksum:
            write_checksum_file(str(archive_path))
        return archive_path

    return _make


@pytest.fixture
def config_file(tmp_path, destination):
    """
    Factory writing a backup.config file.

    Keyword arguments override or add KEY=VALUE lines.
    """
    def _write(**overrides) -> Path:
        values = {
            'BACKUP_DESTINATION': str(destination),
            'DAILY_KEEP': '7',
            'WEEKLY_KEEP': '4',
            'MONTHLY_KEEP': '6',
            'EXCLUDE_PATTERNS': '*.pyc,__pycache__',
            'LOG_FILE': str(tmp_path / 'backup.log'),
            'LOCK_FILE': str(tmp_path / 'snapkeep.lock'),
        }
        values.update(overrides)
        path = tmp_path / 'backup.config'
        lines = ['# snapkeep test config']
        lines += [f'{key}="{value}"' for key, value in values.items() if value is not None]
        path.write_text('\n'.join(lines) + '\n')
        return path

    return _write
