"""Dual-sink text logging for applyctl runs.

Every message goes to the detailed log (``apply.log``). Messages tagged with
:data:`SUMMARY_TAG` are also appended to the summary log (``summary.log``),
which holds one start and one finish record per apply run and doubles as the
history consulted by the version guard. Each line is mirrored to the console.

Lines use a syslog-like layout::

    Oct 17 09:12:01 web01: STARTING APPLY {platform: 0.6.2}

File sinks disable themselves when the log directory cannot be created or a
write fails; console output continues so a broken disk never aborts a deploy.
"""
from __future__ import annotations

import logging
import socket
from collections.abc import Callable, Iterable
from datetime import datetime
from pathlib import Path
from types import TracebackType
from typing import TextIO

from rich.console import Console

LOGGER = logging.getLogger(__name__)

SUMMARY_TAG = "summary"
TIMESTAMP_FORMAT = "%b %d %H:%M:%S"


class RunLogger:
    """Write timestamped, hostname-prefixed lines to the run logs."""

    def __init__(
        self,
        detail_path: Path,
        summary_path: Path,
        *,
        console: Console | None = None,
        error_console: Console | None = None,
        hostname: Callable[[], str] = socket.gethostname,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        """Initialise the logger; sinks stay closed until :meth:`open`."""
        self._detail_log_path = Path(detail_path)
        self._summary_log_path = Path(summary_path)
        self._console = console or Console(highlight=False)
        self._error_console = error_console or Console(stderr=True, highlight=False)
        self._hostname = hostname
        self._clock = clock
        self._detail: TextIO | None = None
        self._summary: TextIO | None = None
        self._enabled = True

    @property
    def detail_path(self) -> Path:
        """Path of the detailed log."""
        return self._detail_log_path

    @property
    def summary_path(self) -> Path:
        """Path of the summary log."""
        return self._summary_log_path

    @property
    def is_open(self) -> bool:
        """Return ``True`` while the file sinks are open."""
        return self._detail is not None

    def __enter__(self) -> RunLogger:
        self.open()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def open(self) -> None:
        """Open both sinks in append mode."""
        if self.is_open:
            return
        try:
            for path in (self._detail_log_path, self._summary_log_path):
                path.parent.mkdir(parents=True, exist_ok=True)
            self._detail = self._detail_log_path.open("a", encoding="utf-8")
            self._summary = self._summary_log_path.open("a", encoding="utf-8")
        except OSError as exc:
            LOGGER.warning("Run logs unavailable, continuing without them: %s", exc)
            self._close_sinks()
            self._enabled = False

    def close(self) -> None:
        """Flush and release both sinks. Safe to call repeatedly."""
        self._close_sinks()

    def log(self, message: str, tags: Iterable[str] = ()) -> str:
        """Record *message* and return the formatted line."""
        line = self.format_line(message)
        self._write(line, summary=SUMMARY_TAG in tuple(tags))
        self._console.print(line, markup=False, soft_wrap=True)
        return line

    def error(self, message: str, tags: Iterable[str] = ()) -> str:
        """Record *message* as an error and mirror it to stderr."""
        line = self.format_line(f"ERROR: {message.strip()}")
        self._write(line, summary=SUMMARY_TAG in tuple(tags))
        self._error_console.print(line, markup=False, style="red", soft_wrap=True)
        return line

    def summary(self, message: str) -> str:
        """Record *message* in both the detailed and summary logs."""
        return self.log(message, tags=(SUMMARY_TAG,))

    def format_line(self, message: str) -> str:
        """Return *message* with the timestamp and hostname prefix applied."""
        timestamp = self._clock().strftime(TIMESTAMP_FORMAT)
        return f"{timestamp} {self._hostname()}: {message.strip()}"

    # ------------------------------------------------------------------
    def _write(self, line: str, *, summary: bool) -> None:
        if not self._enabled or self._detail is None:
            return
        targets = [self._detail]
        if summary and self._summary is not None:
            targets.append(self._summary)
        try:
            for handle in targets:
                handle.write(line + "\n")
                handle.flush()
        except OSError as exc:
            LOGGER.warning("Disabling run logs after write failure: %s", exc)
            self._enabled = False
            self._close_sinks()

    def _close_sinks(self) -> None:
        for handle in (self._detail, self._summary):
            if handle is None:
                continue
            try:
                handle.close()
            except OSError as exc:  # pragma: no cover - close failures are rare
                LOGGER.warning("Failed to close run log: %s", exc)
        self._detail = None
        self._summary = None


__all__ = ["RunLogger", "SUMMARY_TAG", "TIMESTAMP_FORMAT"]
