"""Tests for advisory vault/audit locks."""

import multiprocessing
import threading
import time
from pathlib import Path

import pytest

from credvault.core.errors import LockError
from credvault.core.file_lock import FileLock, acquire_exclusive, try_acquire_exclusive


def _try_lock_in_child(path: str, queue) -> None:
    lock = try_acquire_exclusive(path)
    queue.put(lock is not None)
    if lock is not None:
        lock.release()


def _try_lock_in_other_process(path: Path) -> bool:
    ctx = multiprocessing.get_context("fork")
    queue = ctx.Queue()
    process = ctx.Process(target=_try_lock_in_child, args=(str(path), queue))
    process.start()
    try:
        return queue.get(timeout=10)
    finally:
        process.join(timeout=10)


def test_acquire_creates_lock_file_and_parent(tmp_path: Path):
    """Lock file and missing parent directories are created on acquire."""
    lock_path = tmp_path / "nested" / "vault.lock"

    with acquire_exclusive(lock_path) as lock:
        assert lock.locked
        assert lock_path.exists()

    assert not lock.locked


def test_try_lock_fails_while_held(tmp_path: Path):
    """A second holder in the same process is refused while the lock is held."""
    lock_path = tmp_path / "vault.lock"

    with acquire_exclusive(lock_path):
        assert try_acquire_exclusive(lock_path) is None

    second = try_acquire_exclusive(lock_path)
    assert second is not None
    second.release()


def test_release_is_idempotent(tmp_path: Path):
    lock = FileLock.exclusive(tmp_path / "vault.lock")
    lock.release()
    lock.release()

    assert not lock.locked
    assert "released" in repr(lock)


def test_lock_released_on_exception(tmp_path: Path):
    """Leaving the context through an exception releases the lock."""
    lock_path = tmp_path / "vault.lock"

    with pytest.raises(RuntimeError):
        with acquire_exclusive(lock_path):
            raise RuntimeError("boom")

    again = try_acquire_exclusive(lock_path)
    assert again is not None
    again.release()


def test_lock_excludes_other_process(tmp_path: Path):
    """Another process cannot take the lock until it is released."""
    lock_path = tmp_path / "vault.lock"

    with acquire_exclusive(lock_path):
        assert _try_lock_in_other_process(lock_path) is False

    assert _try_lock_in_other_process(lock_path) is True


def test_blocking_acquire_waits_for_release(tmp_path: Path):
    """A blocked acquirer proceeds only after the holder releases."""
    lock_path = tmp_path / "vault.lock"
    events: list[str] = []
    started = threading.Event()

    holder = acquire_exclusive(lock_path)

    def waiter() -> None:
        started.set()
        with acquire_exclusive(lock_path):
            events.append("acquired")

    thread = threading.Thread(target=waiter)
    thread.start()
    started.wait(timeout=5)
    time.sleep(0.2)

    events.append("releasing")
    holder.release()
    thread.join(timeout=10)

    assert events == ["releasing", "acquired"]


def test_independent_lock_domains(tmp_path: Path):
    """Holding the vault lock does not block the audit lock."""
    with acquire_exclusive(tmp_path / "vault.lock"):
        audit = try_acquire_exclusive(tmp_path / "audit.lock")
        assert audit is not None
        audit.release()


def test_unopenable_lock_file_raises_lock_error(tmp_path: Path):
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("file")

    with pytest.raises(LockError):
        acquire_exclusive(blocker / "vault.lock")
