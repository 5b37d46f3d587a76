"""
Source handler for backup operations.

LocalSource describes the directory being backed up: it checks that the
directory exists before anything is written and decides which entries the
exclude patterns leave out of the archive.
"""

import os
from fnmatch import fnmatch
from pathlib import Path, PurePosixPath
from typing import Callable, List, Optional

from snapkeep.errors import SnapkeepError


class SourceError(SnapkeepError):
    """Raised when the backup source is missing or unusable."""
    pass


class LocalSource:
    """
    Handler for a local source directory.

    Exclude patterns follow tar's --exclude behaviour closely enough for
    everyday use: a pattern matches an entry's base name, its path relative
    to the source root, or any trailing run of its path components.
    """

    def __init__(self, path: str, exclude_patterns: Optional[List[str]] = None):
        """
        Initialize local source handler.

        Args:
            path: Directory to back up
            exclude_patterns: List of glob patterns to exclude (e.g., *.pyc, __pycache__, .venv)
        """
        self.path = path
        self.exclude_patterns = [p for p in (exclude_patterns or []) if p]

    def validate(self) -> Path:
        """
        Check that the source directory exists.

        Returns:
            Resolved source path

        Raises:
            SourceError: If the path is missing or not a directory
        """
        if not self.path:
            raise SourceError("Source folder not found: <empty>")

        source_path = Path(self.path).expanduser()
        if not source_path.is_dir():
            raise SourceError(f"Source folder not found: {self.path}")

        return source_path.resolve()

    def should_exclude(self, relative_path: str) -> bool:
        """
        Check if an entry should be excluded based on exclude patterns.

        Args:
            relative_path: Entry path relative to the source root

        Returns:
            True if path matches any exclude pattern, False otherwise
        """
        if not self.exclude_patterns:
            return False

        parts = PurePosixPath(relative_path).parts
        if not parts:
            return False

        for pattern in self.exclude_patterns:
            if pattern.startswith('**/'):
                pattern = pattern[3:]
            pattern = pattern.rstrip('/')

            # Match against the name, the full relative path, or any suffix of it
            for start in range(len(parts)):
                if fnmatch('/'.join(parts[start:]), pattern):
                    return True

        return False

    def tar_filter(self, archive_path: Optional[str] = None) -> Callable:
        """
        Build a tarfile filter applying the exclude patterns.

        Args:
            archive_path: Archive being written; excluded if it lies inside the source

        Returns:
            Callable suitable for TarFile.add(filter=...)
        """
        own_archive = None
        if archive_path:
            root = str(self.validate())
            target = os.path.realpath(archive_path)
            if target.startswith(root + os.sep):
                own_archive = os.path.relpath(target, root).replace(os.sep, '/')

        def _filter(tarinfo):
            if own_archive and tarinfo.name == own_archive:
                return None
            if self.should_exclude(tarinfo.name):
                return None
            return tarinfo

        return _filter
