"""Run the requested commands under the lock with logging in place.

The run moves through these states::

    AcquiringLock -> OpeningLogs -> [apply | set_hostname]... -> ReleasingLock -> ClosingLogs

Commands execute strictly in the order given. A fatal condition stops the run
at once (remaining commands are skipped) but the lock is still released and the
logs closed.
"""
from __future__ import annotations

import contextlib
import logging
from dataclasses import dataclass

from .exit_codes import ExitCode
from .host_config import ConfigUnavailableError, HostConfigStore
from .locking import LockError, LockManager
from .logging import RunLogger
from .models import Command, RunRequest
from .providers.engine import ApplyEngine
from .providers.hostname import HostnameError, HostnameProvider
from .runner import SubprocessRunner, SubprocessSpawnError
from .summary import describe_exit_code, finish_marker, start_marker
from .version_guard import VersionGuard

LOGGER = logging.getLogger(__name__)

SPAWN_FAILED = "spawn failed"


class RunHalted(Exception):
    """Stop processing further commands and exit with :attr:`exit_code`."""

    def __init__(self, exit_code: ExitCode) -> None:
        """Record the exit status the run should end with."""
        super().__init__(exit_code)
        self.exit_code = exit_code


@dataclass(slots=True)
class Orchestrator:
    """Compose the lock, logs, guard, runner and providers into one run."""

    locks: LockManager
    logger: RunLogger
    guard: VersionGuard
    runner: SubprocessRunner
    engine: ApplyEngine
    host_config: HostConfigStore
    hostname: HostnameProvider

    def run(self, request: RunRequest) -> ExitCode:
        """Execute *request* and return the process exit status."""
        try:
            self.locks.acquire(force=request.force_lock)
        except LockError as exc:
            # Covers LockConflictError; the other run's lock is left untouched.
            self.logger.error(str(exc))
            return ExitCode.FAILURE

        # Callbacks unwind LIFO: the lock is released before the logs close.
        with contextlib.ExitStack() as stack:
            stack.enter_context(self.logger)
            stack.callback(self.locks.release)
            try:
                for command in request.commands:
                    LOGGER.debug("Running command %s", command.value)
                    if command is Command.APPLY:
                        self.apply(request)
                    elif command is Command.SET_HOSTNAME:
                        self.set_hostname()
            except RunHalted as halt:
                return halt.exit_code
        return ExitCode.OK

    def apply(self, request: RunRequest) -> int:
        """Run the apply engine once and return its exit status."""
        if not request.downgrade:
            decision = self.guard.check(request.platform)
            if not decision.proceed:
                self.logger.error(decision.message)
                raise RunHalted(ExitCode.OK)
            LOGGER.debug(decision.message)

        try:
            facts = self.host_config.facts()
        except ConfigUnavailableError as exc:
            self.logger.error(str(exc))
            raise RunHalted(ExitCode.FAILURE) from exc

        command = self.engine.build(request, facts)
        self.logger.summary(start_marker(request.info))
        self.logger.log(f"Running: {command.display()}")
        try:
            returncode = self.runner.run(
                command.argv,
                self.logger.log,
                cwd=command.cwd,
                env=command.env,
            )
        except SubprocessSpawnError as exc:
            self.logger.error(str(exc))
            self.logger.summary(finish_marker(SPAWN_FAILED, request.info))
            raise RunHalted(ExitCode.FAILURE) from exc
        self.logger.summary(finish_marker(describe_exit_code(returncode), request.info))
        return returncode

    def set_hostname(self) -> None:
        """Bring the stored and live host names in line with the host configuration.

        Both updates are attempted independently and there is no rollback, so a
        failure in one may leave the other already applied.
        """
        try:
            declared = self.host_config.require("hostname")
        except ConfigUnavailableError as exc:
            self.logger.error(str(exc))
            raise RunHalted(ExitCode.FAILURE) from exc

        failures = 0
        try:
            persisted = self.hostname.read_persisted()
            if persisted == declared:
                self.logger.log(
                    f"{self.hostname.hostname_file} already contains '{declared}'."
                )
            else:
                self.hostname.write_persisted(declared)
                self.logger.log(
                    f"Updated {self.hostname.hostname_file} from "
                    f"'{persisted or ''}' to '{declared}'."
                )
        except HostnameError as exc:
            failures += 1
            self.logger.error(f"Failed to update {self.hostname.hostname_file}: {exc}")

        try:
            live = self.hostname.read_live()
            if live == declared:
                self.logger.log(f"Live hostname is already '{declared}'.")
            else:
                self.hostname.set_live(declared)
                self.logger.log(f"Changed live hostname from '{live}' to '{declared}'.")
        except HostnameError as exc:
            failures += 1
            self.logger.error(f"Failed to set live hostname: {exc}")

        if failures:
            raise RunHalted(ExitCode.FAILURE)


__all__ = ["Orchestrator", "RunHalted", "SPAWN_FAILED"]
