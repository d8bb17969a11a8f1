"""Read and update the persisted and live host name."""
from __future__ import annotations

import contextlib
import socket
import subprocess
from dataclasses import dataclass
from pathlib import Path


class HostnameError(RuntimeError):
    """Raised when the host name cannot be read or updated."""


@dataclass(slots=True)
class HostnameProvider:
    """Manage ``/etc/hostname`` and the running kernel host name."""

    hostname_file: Path = Path("/etc/hostname")
    hostname_bin: str = "hostname"

    def read_persisted(self) -> str | None:
        """Return the host name stored on disk, or ``None`` when the file is missing."""
        try:
            return self.hostname_file.read_text(encoding="utf-8").strip()
        except FileNotFoundError:
            return None
        except OSError as exc:
            raise HostnameError(f"Unable to read {self.hostname_file}: {exc}") from exc

    def write_persisted(self, name: str) -> None:
        """Replace the stored host name with *name*."""
        temp = self.hostname_file.with_name(f"{self.hostname_file.name}.tmp")
        try:
            temp.write_text(f"{name}\n", encoding="utf-8")
            temp.chmod(0o644)
            temp.replace(self.hostname_file)
        except OSError as exc:
            with contextlib.suppress(OSError):
                temp.unlink(missing_ok=True)
            raise HostnameError(f"Unable to write {self.hostname_file}: {exc}") from exc

    def read_live(self) -> str:
        """Return the host name the kernel currently reports."""
        return socket.gethostname()

    def set_live(self, name: str) -> subprocess.CompletedProcess[str]:
        """Set the running host name via :attr:`hostname_bin`."""
        try:
            result = subprocess.run(  # noqa: S603
                [self.hostname_bin, name],
                capture_output=True,
                text=True,
                check=False,
            )
        except FileNotFoundError as exc:
            raise HostnameError(f"{self.hostname_bin} not found: {exc}") from exc
        except OSError as exc:
            raise HostnameError(f"Unable to run {self.hostname_bin}: {exc}") from exc
        if result.returncode != 0:
            message = (result.stderr or result.stdout or "").strip() or "no output"
            raise HostnameError(
                f"{self.hostname_bin} {name} failed (exit {result.returncode}): {message}"
            )
        return result


__all__ = ["HostnameError", "HostnameProvider"]
