"""Stream a child process's output line-by-line through a pseudo-terminal.

A plain pipe makes most programs switch to block buffering, so their output
would only arrive when the buffer fills or the child exits. Attaching the
child's stdout and stderr to a PTY keeps it line buffered, which lets every
line reach the run log as it is produced.
"""
from __future__ import annotations

import errno
import logging
import os
import pty
import subprocess
from collections.abc import Callable, Mapping, Sequence
from dataclasses import dataclass
from pathlib import Path

LOGGER = logging.getLogger(__name__)

READ_CHUNK_SIZE = 4096


class SubprocessSpawnError(RuntimeError):
    """Raised when the child process cannot be started at all."""


@dataclass(slots=True)
class SubprocessRunner:
    """Run commands and hand each output line to a callback."""

    shell: str = "/bin/sh"

    def run(
        self,
        command: str | Sequence[str],
        on_line: Callable[[str], object],
        *,
        cwd: Path | None = None,
        env: Mapping[str, str] | None = None,
    ) -> int:
        """Run *command*, invoking *on_line* for each line, and return its exit status.

        String commands are run through :attr:`shell`; sequences are executed
        directly. Exit statuses from signals are reported as ``128 + signum``.
        """
        args = [self.shell, "-c", command] if isinstance(command, str) else list(command)
        master_fd, slave_fd = pty.openpty()
        try:
            try:
                process = subprocess.Popen(  # noqa: S603
                    args,
                    stdin=subprocess.DEVNULL,
                    stdout=slave_fd,
                    stderr=slave_fd,
                    cwd=str(cwd) if cwd is not None else None,
                    env=dict(env) if env is not None else None,
                    close_fds=True,
                )
            except OSError as exc:
                raise SubprocessSpawnError(f"Unable to start {args[0]}: {exc}") from exc
            finally:
                # The child holds its own copy; EOF only arrives once ours is closed.
                os.close(slave_fd)
            LOGGER.debug("Started pid %s: %s", process.pid, args)
            self._pump(master_fd, on_line)
            returncode = process.wait()
        finally:
            os.close(master_fd)
        if returncode < 0:
            return 128 - returncode
        return returncode

    def _pump(self, master_fd: int, on_line: Callable[[str], object]) -> None:
        pending = b""
        while True:
            try:
                chunk = os.read(master_fd, READ_CHUNK_SIZE)
            except OSError as exc:
                # Linux reports EIO once every slave descriptor has closed.
                if exc.errno == errno.EIO:
                    break
                raise
            if not chunk:
                break
            pending += chunk
            while b"\n" in pending:
                raw, pending = pending.split(b"\n", 1)
                on_line(_decode(raw))
        if pending:
            on_line(_decode(pending))


def _decode(raw: bytes) -> str:
    return raw.rstrip(b"\r").decode("utf-8", errors="replace")


__all__ = ["SubprocessRunner", "SubprocessSpawnError"]
