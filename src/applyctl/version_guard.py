"""Refuse to apply a platform version older than the last one recorded."""
from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path

from packaging.version import InvalidVersion, Version

from .summary import read_records

LOGGER = logging.getLogger(__name__)

PLATFORM_KEY = "platform"


@dataclass(frozen=True, slots=True)
class GuardDecision:
    """Outcome of a downgrade check."""

    proceed: bool
    declared: str
    previous: Version | None = None

    @property
    def message(self) -> str:
        """Explain the decision for the run log."""
        if self.proceed:
            if self.previous is None:
                return "No previous platform version recorded; proceeding."
            return f"Platform {self.declared or '(unset)'} follows {self.previous}; proceeding."
        return (
            f"Refusing to downgrade platform from {self.previous} to {self.declared}. "
            "Re-run with --downgrade to apply an older platform version."
        )


@dataclass(slots=True)
class VersionGuard:
    """Compare a declared platform version against the summary log history."""

    summary_path: Path

    def last_recorded_version(self) -> Version | None:
        """Return the newest parseable ``platform`` version in the summary log."""
        try:
            records = list(read_records(self.summary_path))
        except FileNotFoundError:
            return None
        except OSError as exc:
            LOGGER.warning("Unable to read %s: %s", self.summary_path, exc)
            return None
        for record in reversed(records):
            raw = record.metadata.get(PLATFORM_KEY)
            if not raw:
                continue
            parsed = _parse_version(raw)
            if parsed is not None:
                return parsed
        return None

    def check(self, declared: str) -> GuardDecision:
        """Return whether applying *declared* may proceed.

        The guard fails open: a missing log, no recorded version, or a blank or
        unparseable declared version all allow the run.
        """
        declared = (declared or "").strip()
        if not declared:
            return GuardDecision(proceed=True, declared=declared)
        declared_version = _parse_version(declared)
        if declared_version is None:
            LOGGER.debug("Declared platform %r is not a version; skipping check.", declared)
            return GuardDecision(proceed=True, declared=declared)
        previous = self.last_recorded_version()
        if previous is None:
            return GuardDecision(proceed=True, declared=declared)
        return GuardDecision(
            proceed=not previous > declared_version,
            declared=declared,
            previous=previous,
        )


def _parse_version(value: str) -> Version | None:
    try:
        return Version(value.strip())
    except InvalidVersion:
        return None


__all__ = ["GuardDecision", "PLATFORM_KEY", "VersionGuard"]
