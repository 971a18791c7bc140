"""Advisory file locks (flock) for serializing vault mutations and ledger appends.

Two lock domains exist per vault root:

- ``vault.lock``: held for the whole of a create/rotate/rollback/delete
- ``audit.lock``: held only for the short critical section of a ledger append

The lock file's content is never interpreted; only the OS-level exclusive
advisory lock matters. Closing the descriptor releases the lock, so a handle
used as a context manager is released on every exit path.
"""

from __future__ import annotations

import fcntl
import os
from contextlib import suppress
from pathlib import Path
from typing import Any

from .errors import LockError

__all__ = [
    "FileLock",
    "acquire_exclusive",
    "try_acquire_exclusive",
]

LOCK_FILE_MODE = 0o600


class FileLock:
    """Exclusive advisory lock on a lock file.

    Example:
        >>> with acquire_exclusive(Path("/var/lib/credvault/vault.lock")):
        ...     mutate_vault()
    """

    def __init__(self, path: Path, fd: int) -> None:
        self.path = path
        self._fd: int | None = fd

    @staticmethod
    def _open(path: Path) -> int:
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            return os.open(path, os.O_CREAT | os.O_RDWR, LOCK_FILE_MODE)
        except OSError as exc:
            raise LockError(f"open lock file {path}: {exc}", path=path) from exc

    @classmethod
    def exclusive(cls, path: Path | str) -> FileLock:
        """Acquire the lock, blocking until it becomes available.

        Parameters
        ----------
        path
            Lock file path (created if absent)

        Returns
        -------
        FileLock
            Held lock

        Raises
        ------
        LockError
            If the lock file cannot be opened or locked
        """
        path = Path(path)
        fd = cls._open(path)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX)
        except OSError as exc:
            os.close(fd)
            raise LockError(f"acquire lock {path}: {exc}", path=path) from exc
        return cls(path, fd)

    @classmethod
    def try_exclusive(cls, path: Path | str) -> FileLock | None:
        """Acquire the lock without blocking.

        Returns
        -------
        FileLock | None
            Held lock, or ``None`` if another holder has it
        """
        path = Path(path)
        fd = cls._open(path)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError:
            os.close(fd)
            return None
        except OSError as exc:
            os.close(fd)
            raise LockError(f"try lock {path}: {exc}", path=path) from exc
        return cls(path, fd)

    @property
    def locked(self) -> bool:
        return self._fd is not None

    def release(self) -> None:
        """Release the lock. Safe to call more than once."""
        if self._fd is None:
            return
        fd, self._fd = self._fd, None
        with suppress(OSError):
            fcntl.flock(fd, fcntl.LOCK_UN)
        os.close(fd)

    def __enter__(self) -> FileLock:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.release()

    def __del__(self) -> None:
        # Handle dropped without release (e.g. interpreter unwinding)
        if getattr(self, "_fd", None) is not None:
            self.release()

    def __repr__(self) -> str:
        state = "held" if self.locked else "released"
        return f"FileLock({str(self.path)!r}, {state})"


def acquire_exclusive(lock_path: Path | str) -> FileLock:
    """Block until an exclusive lock on ``lock_path`` is held."""
    return FileLock.exclusive(lock_path)


def try_acquire_exclusive(lock_path: Path | str) -> FileLock | None:
    """Return a held lock on ``lock_path``, or ``None`` if it is already held."""
    return FileLock.try_exclusive(lock_path)
