"""
Storage handler for backup archives.

LocalStorage keeps archives and their checksum sidecars flat in a single
destination directory:
{base_path}/backup-YYYY-MM-DD-HHMM.tar.gz
{base_path}/backup-YYYY-MM-DD-HHMM.tar.gz.sha256

The catalog and the pruner only talk to storage through list_names, exists,
delete and get_full_path, so tests can substitute an in-memory backend.
"""

from pathlib import Path
from typing import List

from snapkeep.errors import SnapkeepError


class StorageError(SnapkeepError):
    """Raised when storage operation fails."""
    pass


class LocalStorage:
    """
    Handler for storing backups in a local directory.
    """

    def __init__(self, base_path: str, create: bool = True):
        """
        Initialize local storage handler.

        Args:
            base_path: Destination directory for backups
            create: Create the directory if it doesn't exist
        """
        self.base_path = Path(base_path).expanduser()

        if create:
            try:
                self.base_path.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                raise StorageError(f"Failed to create backup destination {self.base_path}: {e}")

    def list_names(self) -> List[str]:
        """
        List file names directly inside the destination.

        Returns:
            Sorted file names; empty if the destination doesn't exist

        Raises:
            StorageError: If the directory cannot be read
        """
        if not self.base_path.is_dir():
            return []

        try:
            return sorted(p.name for p in self.base_path.iterdir() if p.is_file())
        except OSError as e:
            raise StorageError(f"Failed to list {self.base_path}: {e}")

    def exists(self, name: str) -> bool:
        """Return True if a file with this name is in the destination."""
        return (self.base_path / name).is_file()

    def delete(self, name: str) -> bool:
        """
        Delete a file from the destination.

        Args:
            name: File name to delete

        Returns:
            True if the file was removed, False if it was already absent

        Raises:
            StorageError: If deletion fails
        """
        full_path = self.base_path / name

        try:
            full_path.unlink()
            return True
        except FileNotFoundError:
            return False
        except PermissionError as e:
            raise StorageError(f"Permission denied deleting {full_path}: {e}")
        except OSError as e:
            raise StorageError(f"Failed to delete {full_path}: {e}")

    def get_full_path(self, name: str) -> str:
        """
        Get full filesystem path for a file name.

        Args:
            name: File name inside the destination

        Returns:
            Full filesystem path
        """
        return str(self.base_path / name)
