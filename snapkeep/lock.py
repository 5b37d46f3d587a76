"""
Run-exclusivity lock.

At most one backup run may touch a destination at a time. The lock is an
exclusive, non-blocking flock(2) on a lock file: a second run fails at once
instead of queueing. The kernel drops the lock when the process exits, so a
crash can never leave a stale lock behind; the file itself is kept and
records the holder's PID for debugging.
"""

import fcntl
import logging
import os
from datetime import datetime

from snapkeep.errors import SnapkeepError


logger = logging.getLogger(__name__)


class LockError(SnapkeepError):
    """Raised when another run already holds the lock."""
    pass


class RunLock:
    """
    Exclusive advisory lock usable as a context manager.

        with RunLock('/tmp/snapkeep.lock'):
            ...
    """

    def __init__(self, path: str):
        self.path = path
        self._fp = None

    @property
    def is_locked(self) -> bool:
        return self._fp is not None

    def acquire(self):
        """
        Take the lock without waiting.

        Raises:
            LockError: If the lock file cannot be opened or is held elsewhere
        """
        try:
            fp = open(self.path, 'a+', encoding='utf-8')
        except OSError as e:
            raise LockError(f"Cannot open lock file {self.path}: {e}")

        try:
            fcntl.flock(fp.fileno(), fcntl.LOCK_EX | fcntl.LOCK_NB)
        except OSError:
            fp.close()
            raise LockError(f"Another backup is running (lock present: {self.path})")

        fp.seek(0)
        fp.truncate(0)
        fp.write(f"{os.getpid()} {datetime.now().isoformat(timespec='seconds')}\n")
        fp.flush()

        self._fp = fp
        logger.debug(f"Acquired run lock: {self.path}")

    def release(self):
        """Release the lock. Safe to call when not held."""
        if self._fp is None:
            return
        try:
            fcntl.flock(self._fp.fileno(), fcntl.LOCK_UN)
        finally:
            self._fp.close()
            self._fp = None
            logger.debug(f"Released run lock: {self.path}")

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.release()
        return False
