"""Read-once access to the host's declarative configuration file."""
from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path

import yaml

FACT_KEYS = ("hostname", "domain_name", "domain_suffix")


class ConfigUnavailableError(RuntimeError):
    """Raised when the host configuration is missing, unreadable, or incomplete."""


@dataclass(slots=True)
class HostConfigStore:
    """Lazily load ``host.yml`` and serve key lookups for the rest of the run."""

    path: Path
    _data: dict[str, object] | None = field(default=None, init=False, repr=False)

    def load(self) -> dict[str, object]:
        """Return the parsed mapping, reading the file on first use only."""
        if self._data is not None:
            return self._data
        try:
            text = self.path.read_text(encoding="utf-8")
        except FileNotFoundError as exc:
            raise ConfigUnavailableError(
                f"Host configuration {self.path} does not exist."
            ) from exc
        except OSError as exc:
            raise ConfigUnavailableError(
                f"Host configuration {self.path} could not be read: {exc}"
            ) from exc
        try:
            data = yaml.safe_load(text) or {}
        except yaml.YAMLError as exc:
            raise ConfigUnavailableError(
                f"Host configuration {self.path} is not valid YAML: {exc}"
            ) from exc
        if not isinstance(data, Mapping):
            raise ConfigUnavailableError(
                f"Host configuration {self.path} must contain a mapping at the top level."
            )
        self._data = {str(key): value for key, value in data.items()}
        return self._data

    def get(self, key: str, default: object | None = None) -> object | None:
        """Return the value stored under *key*."""
        return self.load().get(key, default)

    def require(self, key: str) -> str:
        """Return *key* as a non-empty string or raise :class:`ConfigUnavailableError`."""
        value = self.get(key)
        text = "" if value is None else str(value).strip()
        if not text:
            raise ConfigUnavailableError(
                f"Host configuration {self.path} does not define '{key}'."
            )
        return text

    def facts(self) -> dict[str, str]:
        """Return the derived facts exported to the apply engine."""
        facts: dict[str, str] = {}
        for key in FACT_KEYS:
            value = self.get(key)
            if value is None:
                continue
            text = str(value).strip()
            if text:
                facts[key] = text
        if all(key in facts for key in FACT_KEYS):
            facts["fqdn"] = ".".join(facts[key] for key in FACT_KEYS)
        return facts


__all__ = ["ConfigUnavailableError", "FACT_KEYS", "HostConfigStore"]
