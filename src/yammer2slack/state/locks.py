"""
Locks for coordinating relay work.

FileLock keeps a second relay process off the same state directory.
KeyedLock serializes work per key (a Yammer thread id) inside one process
while letting different keys proceed in parallel.
"""

import fcntl
import os
import threading
import time
from contextlib import contextmanager
from pathlib import Path
from typing import Hashable, Iterator


class LockError(Exception):
    """Raised when lock acquisition fails."""

    pass


class FileLock:
    """
    File-based lock for coordinating concurrent processes.

    Uses fcntl advisory locking for Unix systems to prevent
    race conditions when multiple processes access shared files.
    """

    def __init__(self, lock_path: str | Path, timeout: float | None = None):
        """
        Initialize file lock.

        Args:
            lock_path: Path to lock file
            timeout: Maximum seconds to wait for lock (None = wait forever)
        """
        self.lock_path = Path(lock_path)
        self.timeout = timeout
        self._lock_file: int | None = None

    def acquire(self) -> bool:
        """
        Acquire the lock.

        Returns:
            True if lock acquired successfully

        Raises:
            LockError: If lock cannot be acquired within timeout
        """
        self.lock_path.parent.mkdir(parents=True, exist_ok=True)

        start_time = time.time()

        while True:
            fd = os.open(str(self.lock_path), os.O_CREAT | os.O_WRONLY)
            try:
                fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except OSError:
                os.close(fd)
                if self.timeout is not None and time.time() - start_time >= self.timeout:
                    raise LockError(
                        f"Could not acquire lock on {self.lock_path} after {self.timeout}s"
                    ) from None
                time.sleep(0.1)
                continue

            self._lock_file = fd
            return True

    def release(self) -> None:
        """Release the lock."""
        if self._lock_file is not None:
            try:
                fcntl.flock(self._lock_file, fcntl.LOCK_UN)
                os.close(self._lock_file)
            finally:
                self._lock_file = None

    @property
    def locked(self) -> bool:
        return self._lock_file is not None

    def __enter__(self):
        self.acquire()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.release()

    def __del__(self):
        self.release()


class KeyedLock:
    """
    One mutex per key, created on demand and dropped when unused.

    Usage:
        locks = KeyedLock()
        with locks.hold(thread_id):
            # Only one caller per thread_id gets here at a time
            pass
    """

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[Hashable, threading.Lock] = {}
        self._users: dict[Hashable, int] = {}

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
            self._users[key] = self._users.get(key, 0) + 1
        try:
            with lock:
                yield
        finally:
            with self._guard:
                self._users[key] -= 1
                if self._users[key] == 0:
                    del self._users[key]
                    del self._locks[key]

    def __len__(self) -> int:
        """Number of keys currently held or waited on."""
        with self._guard:
            return len(self._locks)
