"""Compose apply-engine invocations."""
from __future__ import annotations

import os
import shlex
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from pathlib import Path

from ..config import EngineConfig
from ..models import RunRequest

VERBOSITY_FLAGS: tuple[tuple[int, str], ...] = (
    (3, "--verbose"),
    (4, "--debug"),
    (5, "--evaltrace"),
)


@dataclass(frozen=True, slots=True)
class EngineCommand:
    """A fully composed apply-engine invocation."""

    argv: tuple[str, ...]
    cwd: Path
    facts: Mapping[str, str] = field(default_factory=dict)
    base_env: Mapping[str, str] = field(default_factory=dict)

    @property
    def env(self) -> dict[str, str]:
        """Environment for the child: the base environment plus exported facts."""
        return {**self.base_env, **self.facts}

    def display(self) -> str:
        """Render the invocation as a shell line for the run log."""
        assignments = [f"{key}={shlex.quote(value)}" for key, value in self.facts.items()]
        return " ".join(
            [f"cd {shlex.quote(str(self.cwd))} &&", *assignments, shlex.join(self.argv)]
        )


@dataclass(slots=True)
class ApplyEngine:
    """Translate a :class:`RunRequest` into an apply-engine command line."""

    binary: str = "puppet"
    args: Sequence[str] = ("apply", "--detailed-exitcodes")
    working_dir: Path = Path("/etc/puppet")
    module_path: Path = Path("/etc/puppet/modules")
    manifest: Path = Path("/etc/puppet/manifests/site.pp")
    fact_prefix: str = "FACTER_"

    @classmethod
    def from_config(cls, config: EngineConfig) -> ApplyEngine:
        """Build an engine from the ``engine`` configuration block."""
        return cls(
            binary=config.binary,
            args=config.args,
            working_dir=config.working_dir,
            module_path=config.module_path,
            manifest=config.manifest,
            fact_prefix=config.fact_prefix,
        )

    def build(
        self,
        request: RunRequest,
        facts: Mapping[str, str],
        *,
        base_env: Mapping[str, str] | None = None,
    ) -> EngineCommand:
        """Return the command that applies the manifest for *request*."""
        argv: list[str] = [self.binary, *self.args, "--modulepath", str(self.module_path)]
        if request.tags:
            argv.extend(["--tags", ",".join(request.tags)])
        argv.extend(self.verbosity_flags(request.verbosity))
        argv.append(str(self.manifest))
        exported = {f"{self.fact_prefix}{name}": value for name, value in facts.items()}
        return EngineCommand(
            argv=tuple(argv),
            cwd=self.working_dir,
            facts=exported,
            base_env=dict(os.environ if base_env is None else base_env),
        )

    @staticmethod
    def verbosity_flags(verbosity: int) -> list[str]:
        """Return the extra engine switches enabled at *verbosity*."""
        return [flag for level, flag in VERBOSITY_FLAGS if verbosity >= level]


__all__ = ["ApplyEngine", "EngineCommand", "VERBOSITY_FLAGS"]
