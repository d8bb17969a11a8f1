"""Single-run lock for applyctl.

Only one apply run may touch a host at a time. The lock is a file created with
``O_CREAT | O_EXCL``; its existence means another run holds the lock and its
content is the owner's PID. There is no waiting and no retry: a conflict ends
the run immediately. ``force`` removes a stale file left by a crashed run
before trying.

While the lock is held, ``SIGTERM``, ``SIGHUP`` and ``SIGINT`` handlers and an
``atexit`` hook release it so an interrupted run does not block the next one.
"""
from __future__ import annotations

import atexit
import contextlib
import logging
import os
import signal
import threading
from collections.abc import Iterator
from dataclasses import dataclass, field
from pathlib import Path
from types import FrameType
from typing import Any

LOGGER = logging.getLogger(__name__)

TERMINATION_SIGNALS: tuple[signal.Signals, ...] = (
    signal.SIGTERM,
    signal.SIGHUP,
    signal.SIGINT,
)


class LockError(RuntimeError):
    """Raised when the lock file cannot be created or inspected."""


class LockConflictError(LockError):
    """Raised when another run already holds the lock."""

    def __init__(self, path: Path, holder_pid: int | None) -> None:
        """Record the lock path and the PID found inside it."""
        owner = f"pid {holder_pid}" if holder_pid is not None else "an unknown process"
        super().__init__(
            f"Another applyctl run ({owner}) holds {path}. "
            "Use --force to clear a stale lock left by a crashed run."
        )
        self.path = path
        self.holder_pid = holder_pid


@dataclass(slots=True)
class RunLock:
    """Handle describing an acquired lock."""

    path: Path
    pid: int
    forced: bool = False


@dataclass(slots=True)
class LockManager:
    """Create, hold and release the run lock file."""

    path: Path
    install_signal_handlers: bool = True
    _held: RunLock | None = field(default=None, init=False, repr=False)
    _previous_handlers: dict[int, Any] = field(default_factory=dict, init=False, repr=False)
    _atexit_registered: bool = field(default=False, init=False, repr=False)

    @property
    def held(self) -> RunLock | None:
        """Return the current lock handle, if this manager holds one."""
        return self._held

    def holder_pid(self) -> int | None:
        """Return the PID recorded in the lock file, if readable."""
        try:
            content = self.path.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise LockError(f"Unable to read lock file {self.path}: {exc}") from exc
        try:
            return int(content)
        except ValueError:
            return None

    def acquire(self, *, force: bool = False) -> RunLock:
        """Create the lock file or raise :class:`LockConflictError`."""
        if force:
            self.clear()
        pid = os.getpid()
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise LockError(f"Unable to create lock directory {self.path.parent}: {exc}") from exc
        try:
            fd = os.open(str(self.path), os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError:
            raise LockConflictError(self.path, self._safe_holder_pid()) from None
        except OSError as exc:
            raise LockError(f"Unable to create lock file {self.path}: {exc}") from exc
        try:
            os.write(fd, f"{pid}\n".encode("ascii"))
        finally:
            os.close(fd)
        self._held = RunLock(path=self.path, pid=pid, forced=force)
        self._install_hooks()
        LOGGER.debug("Acquired lock %s (pid %s, forced=%s)", self.path, pid, force)
        return self._held

    def release(self) -> None:
        """Remove the lock file. Missing files are ignored."""
        with contextlib.suppress(FileNotFoundError):
            self.path.unlink()
        self._held = None
        self._restore_handlers()
        self._unregister_atexit()

    def clear(self) -> bool:
        """Delete the lock file unconditionally; return ``True`` if one existed."""
        try:
            self.path.unlink()
        except FileNotFoundError:
            return False
        except OSError as exc:
            raise LockError(f"Unable to remove stale lock {self.path}: {exc}") from exc
        LOGGER.debug("Removed existing lock %s", self.path)
        return True

    @contextlib.contextmanager
    def hold(self, *, force: bool = False) -> Iterator[RunLock]:
        """Hold the lock for the duration of the ``with`` block."""
        handle = self.acquire(force=force)
        try:
            yield handle
        finally:
            self.release()

    # ------------------------------------------------------------------
    def _safe_holder_pid(self) -> int | None:
        try:
            return self.holder_pid()
        except LockError:
            return None

    def _install_hooks(self) -> None:
        if not self._atexit_registered:
            atexit.register(self._release_at_exit)
            self._atexit_registered = True
        if not self.install_signal_handlers:
            return
        if threading.current_thread() is not threading.main_thread():
            LOGGER.debug("Not installing lock cleanup signal handlers outside the main thread.")
            return
        for signum in TERMINATION_SIGNALS:
            if signum in self._previous_handlers:
                continue
            self._previous_handlers[signum] = signal.getsignal(signum)
            signal.signal(signum, self._handle_signal)

    def _restore_handlers(self) -> None:
        if not self._previous_handlers:
            return
        if threading.current_thread() is not threading.main_thread():
            return
        for signum, previous in self._previous_handlers.items():
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers.clear()

    def _unregister_atexit(self) -> None:
        if self._atexit_registered:
            atexit.unregister(self._release_at_exit)
            self._atexit_registered = False

    def _handle_signal(self, signum: int, frame: FrameType | None) -> None:
        LOGGER.debug("Received signal %s; releasing %s", signum, self.path)
        self.release()
        raise SystemExit(128 + signum)

    def _release_at_exit(self) -> None:
        self._atexit_registered = False
        if self._held is not None:
            self.release()


__all__ = ["LockConflictError", "LockError", "LockManager", "RunLock"]
