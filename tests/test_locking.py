"""Tests for the run lock."""
from __future__ import annotations

import atexit
import os
import signal
from pathlib import Path

import pytest

from applyctl.locking import LockConflictError, LockError, LockManager


def test_acquire_writes_pid_and_release_removes(tmp_path: Path) -> None:
    """Acquiring creates the lock file with our PID; releasing deletes it."""
    lock_path = tmp_path / "run" / "applyctl.lock"
    manager = LockManager(lock_path)

    handle = manager.acquire()

    assert handle.pid == os.getpid()
    assert lock_path.read_text(encoding="utf-8") == f"{os.getpid()}\n"
    assert manager.holder_pid() == os.getpid()

    manager.release()
    assert not lock_path.exists()
    assert manager.held is None


def test_second_acquire_conflicts(tmp_path: Path) -> None:
    """Exactly one of two acquirers on the same path succeeds."""
    lock_path = tmp_path / "applyctl.lock"
    first = LockManager(lock_path)
    second = LockManager(lock_path)

    first.acquire()
    try:
        with pytest.raises(LockConflictError) as excinfo:
            second.acquire()
        assert excinfo.value.holder_pid == os.getpid()
        assert "--force" in str(excinfo.value)
        # The losing side must not remove the winner's lock.
        assert lock_path.exists()
    finally:
        first.release()
    assert not lock_path.exists()


def test_force_clears_stale_lock(tmp_path: Path) -> None:
    """A stale lock left by a crashed run is removed with force."""
    lock_path = tmp_path / "applyctl.lock"
    lock_path.write_text("999999\n", encoding="utf-8")
    manager = LockManager(lock_path)

    with pytest.raises(LockConflictError) as excinfo:
        manager.acquire()
    assert excinfo.value.holder_pid == 999999

    handle = manager.acquire(force=True)
    assert handle.forced is True
    assert manager.holder_pid() == os.getpid()
    manager.release()


def test_release_is_idempotent(tmp_path: Path) -> None:
    """Releasing without a lock file does not raise."""
    manager = LockManager(tmp_path / "applyctl.lock")

    manager.release()
    manager.release()


def test_hold_releases_on_error(tmp_path: Path) -> None:
    """The context manager releases the lock even when the body fails."""
    lock_path = tmp_path / "applyctl.lock"
    manager = LockManager(lock_path)

    with pytest.raises(RuntimeError):
        with manager.hold():
            assert lock_path.exists()
            raise RuntimeError("boom")

    assert not lock_path.exists()


def test_unreadable_holder_reports_unknown(tmp_path: Path) -> None:
    """Garbage content in the lock file yields no holder PID."""
    lock_path = tmp_path / "applyctl.lock"
    lock_path.write_text("not-a-pid", encoding="utf-8")

    with pytest.raises(LockConflictError, match="unknown process"):
        LockManager(lock_path).acquire()


def test_io_failure_raises_lock_error(tmp_path: Path) -> None:
    """Failures other than a conflict surface as LockError."""
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    manager = LockManager(blocker / "applyctl.lock")

    with pytest.raises(LockError) as excinfo:
        manager.acquire()
    assert not isinstance(excinfo.value, LockConflictError)


def test_termination_signal_releases_lock(tmp_path: Path) -> None:
    """SIGTERM while the lock is held removes the lock file and exits."""
    lock_path = tmp_path / "applyctl.lock"
    manager = LockManager(lock_path)
    previous = signal.getsignal(signal.SIGTERM)

    manager.acquire()
    with pytest.raises(SystemExit) as excinfo:
        signal.raise_signal(signal.SIGTERM)

    assert excinfo.value.code == 128 + signal.SIGTERM
    assert not lock_path.exists()
    assert signal.getsignal(signal.SIGTERM) == previous


def test_release_restores_signal_handlers(tmp_path: Path) -> None:
    """Handlers installed on acquire are removed again on release."""
    manager = LockManager(tmp_path / "applyctl.lock")
    previous = signal.getsignal(signal.SIGHUP)

    manager.acquire()
    assert signal.getsignal(signal.SIGHUP) != previous
    manager.release()

    assert signal.getsignal(signal.SIGHUP) == previous


def test_signal_handlers_can_be_disabled(tmp_path: Path) -> None:
    """Embedding callers may opt out of signal handler installation."""
    manager = LockManager(tmp_path / "applyctl.lock", install_signal_handlers=False)
    previous = signal.getsignal(signal.SIGTERM)

    with manager.hold():
        assert signal.getsignal(signal.SIGTERM) == previous


def test_release_unregisters_exit_hook(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Each acquire registers one exit hook and release removes it again."""
    registered: list[object] = []
    monkeypatch.setattr(atexit, "register", registered.append)
    monkeypatch.setattr(atexit, "unregister", registered.remove)
    manager = LockManager(tmp_path / "applyctl.lock", install_signal_handlers=False)

    manager.acquire()
    assert len(registered) == 1
    manager.release()
    assert registered == []

    with manager.hold():
        assert len(registered) == 1
    assert registered == []
