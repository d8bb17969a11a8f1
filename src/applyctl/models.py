"""Run request model shared by the CLI and the orchestrator."""
from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType

from .summary import parse_info

MIN_VERBOSITY = 0
MAX_VERBOSITY = 5


class RunRequestError(ValueError):
    """Raised when a run request is rejected before any side effect."""


class Command(str, Enum):
    """Sub-commands accepted on the command line."""

    APPLY = "apply"
    SET_HOSTNAME = "set_hostname"


def parse_tags(raw: str | None) -> tuple[str, ...]:
    """Split a comma-separated tag list, dropping blanks."""
    if not raw:
        return ()
    return tuple(tag.strip() for tag in raw.split(",") if tag.strip())


@dataclass(frozen=True, slots=True)
class RunRequest:
    """Immutable description of one ``applyctl`` invocation."""

    commands: tuple[Command, ...]
    verbosity: int = 0
    tags: tuple[str, ...] = ()
    info: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    downgrade: bool = False
    force_lock: bool = False

    def __post_init__(self) -> None:
        """Validate the request and freeze the info mapping."""
        if not self.commands:
            raise RunRequestError("At least one command (apply, set_hostname) is required.")
        if not MIN_VERBOSITY <= self.verbosity <= MAX_VERBOSITY:
            raise RunRequestError(
                f"Verbosity must be between {MIN_VERBOSITY} and {MAX_VERBOSITY}; "
                f"got {self.verbosity}."
            )
        if not isinstance(self.info, MappingProxyType):
            object.__setattr__(self, "info", MappingProxyType(dict(self.info)))

    @classmethod
    def from_arguments(
        cls,
        commands: Iterable[Command | str],
        *,
        verbosity: int = 0,
        tags: str | None = None,
        info: str | None = None,
        downgrade: bool = False,
        force_lock: bool = False,
    ) -> RunRequest:
        """Build a request from raw CLI values."""
        return cls(
            commands=tuple(Command(command) for command in commands),
            verbosity=verbosity,
            tags=parse_tags(tags),
            info=parse_info(info),
            downgrade=downgrade,
            force_lock=force_lock,
        )

    @property
    def platform(self) -> str:
        """Return the declared platform version (empty when not supplied)."""
        return self.info.get("platform", "")


__all__ = ["Command", "RunRequest", "RunRequestError", "parse_tags"]
