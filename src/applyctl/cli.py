"""Typer-powered command line for ``applyctl``.

``applyctl`` accepts one or more commands and runs them in order::

    applyctl apply --info "platform: 0.6.2, user: alice" --tags web
    applyctl set_hostname apply --verbosity 4

Usage errors (unknown flags, missing commands, out-of-range verbosity) are
reported by Typer with exit status 2 before anything touches the host.
"""
from __future__ import annotations

import textwrap
from pathlib import Path

import typer
from rich.console import Console

from . import __version__
from .config import AppConfig, ConfigError, load_config
from .exit_codes import ExitCode
from .host_config import HostConfigStore
from .locking import LockManager
from .logging import RunLogger
from .models import MAX_VERBOSITY, MIN_VERBOSITY, Command, RunRequest, RunRequestError
from .orchestrator import Orchestrator
from .providers import ApplyEngine, HostnameProvider
from .runner import SubprocessRunner
from .version_guard import VersionGuard

console = Console(highlight=False)
error_console = Console(stderr=True, highlight=False)

app = typer.Typer(
    add_completion=False,
    help=textwrap.dedent(
        """
        Run the configuration apply engine on this host, one run at a time.

        Each run is serialised through a lock file and recorded in a detailed
        log plus a one-line-per-event summary log used for auditing deploys.
        """
    ).strip(),
)

COMMANDS_ARGUMENT = typer.Argument(
    ...,
    metavar="COMMAND...",
    help="Commands to run in order: apply, set_hostname.",
    show_default=False,
)
VERBOSITY_OPTION = typer.Option(
    0,
    "--verbosity",
    min=MIN_VERBOSITY,
    max=MAX_VERBOSITY,
    help="Apply engine verbosity (3 adds --verbose, 4 --debug, 5 --evaltrace).",
)
FORCE_OPTION = typer.Option(
    False,
    "--force",
    help="Remove a stale lock file left by a crashed run before acquiring.",
)
TAGS_OPTION = typer.Option(
    "",
    "--tags",
    metavar="LIST",
    help="Comma-separated tags to restrict the apply run (empty applies everything).",
)
INFO_OPTION = typer.Option(
    None,
    "--info",
    metavar="'KEY: VALUE, ...'",
    help="Metadata recorded in the summary log, e.g. 'platform: 0.6.2, user: alice'.",
)
DOWNGRADE_OPTION = typer.Option(
    False,
    "--downgrade",
    help="Allow applying a platform version older than the last recorded one.",
)
CONFIG_FILE_OPTION = typer.Option(
    None,
    "--config-file",
    dir_okay=False,
    help="Override the path to applyctl's YAML config file.",
)


def _version_callback(value: bool) -> None:
    if value:
        console.print(f"applyctl {__version__}")
        raise typer.Exit(code=ExitCode.OK)


def build_orchestrator(config: AppConfig) -> Orchestrator:
    """Wire the runtime objects described by *config*."""
    return Orchestrator(
        locks=LockManager(config.lock_file),
        logger=RunLogger(
            config.log_file,
            config.summary_log_file,
            console=console,
            error_console=error_console,
        ),
        guard=VersionGuard(config.summary_log_file),
        runner=SubprocessRunner(),
        engine=ApplyEngine.from_config(config.engine),
        host_config=HostConfigStore(config.host_config_file),
        hostname=HostnameProvider(
            hostname_file=config.hostname.file,
            hostname_bin=config.hostname.binary,
        ),
    )


@app.command()
def run(
    commands: list[Command] = COMMANDS_ARGUMENT,
    verbosity: int = VERBOSITY_OPTION,
    force: bool = FORCE_OPTION,
    tags: str = TAGS_OPTION,
    info: str | None = INFO_OPTION,
    downgrade: bool = DOWNGRADE_OPTION,
    config_file: Path | None = CONFIG_FILE_OPTION,
    version: bool = typer.Option(
        False,
        "--version",
        "-V",
        callback=_version_callback,
        is_eager=True,
        help="Show the applyctl version and exit.",
    ),
) -> None:
    """Run COMMAND... (apply, set_hostname) under the host lock."""
    try:
        request = RunRequest.from_arguments(
            commands,
            verbosity=verbosity,
            tags=tags,
            info=info,
            downgrade=downgrade,
            force_lock=force,
        )
    except RunRequestError as exc:
        error_console.print(str(exc), style="red", markup=False)
        raise typer.Exit(code=ExitCode.USAGE) from exc

    try:
        config = load_config(config_file=config_file)
    except ConfigError as exc:
        error_console.print(f"Configuration error: {exc}", style="red", markup=False)
        raise typer.Exit(code=ExitCode.FAILURE) from exc

    exit_code = build_orchestrator(config).run(request)
    raise typer.Exit(code=int(exit_code))


def main() -> None:
    """Console script entry point."""
    app()


__all__ = ["app", "build_orchestrator", "main"]
