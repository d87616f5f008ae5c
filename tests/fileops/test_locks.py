import threading

import pytest

from src.fileops.locks import FileLockManager, LockTimeoutError


def test_acquire_and_release():
    locks = FileLockManager(timeout=0.05)

    locks.acquire("/tmp/a.txt")
    with pytest.raises(LockTimeoutError):
        locks.acquire("/tmp/a.txt")

    locks.release("/tmp/a.txt")
    locks.acquire("/tmp/a.txt")
    locks.release("/tmp/a.txt")


def test_second_acquire_times_out():
    locks = FileLockManager(timeout=0.05)

    with locks.locked("/tmp/a.txt"):
        with pytest.raises(LockTimeoutError):
            locks.acquire("/tmp/a.txt")
        # Other paths are independent.
        with locks.locked("/tmp/b.txt"):
            pass


def test_waiter_gets_lock_after_release():
    locks = FileLockManager(timeout=2.0)
    locks.acquire("/tmp/a.txt")
    acquired = threading.Event()

    def waiter():
        with locks.locked("/tmp/a.txt"):
            acquired.set()

    thread = threading.Thread(target=waiter)
    thread.start()
    assert not acquired.wait(0.05)

    locks.release("/tmp/a.txt")
    thread.join(timeout=2.0)
    assert acquired.is_set()


def test_locked_releases_on_error():
    locks = FileLockManager()

    with pytest.raises(RuntimeError):
        with locks.locked("/tmp/a.txt"):
            raise RuntimeError("boom")
    locks.acquire("/tmp/a.txt", timeout=0.05)


def test_empty_path_is_rejected():
    with pytest.raises(ValueError):
        FileLockManager().acquire("")


def test_release_of_unlocked_path_is_ignored():
    FileLockManager().release("/tmp/never.txt")
