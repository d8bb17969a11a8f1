"""Pytest configuration helpers for the test suite."""

from __future__ import annotations

import io
import os
from collections.abc import Callable
from datetime import datetime
from pathlib import Path

import pytest
from rich.console import Console

from applyctl.logging import RunLogger

FIXED_NOW = datetime(2026, 10, 17, 9, 12, 1)


def pytest_collection_modifyitems(config: pytest.Config, items: list[pytest.Item]) -> None:
    """Skip expensive tests during mutation runs."""
    if not os.environ.get("MUTANT_UNDER_TEST"):
        return
    skip_marker = pytest.mark.skip(reason="Skipped during mutation run to avoid timeouts.")
    for item in items:
        if "mutation_timeout" in item.keywords:
            item.add_marker(skip_marker)


@pytest.fixture
def console_buffer() -> io.StringIO:
    """Return the buffer backing the test console."""
    return io.StringIO()


@pytest.fixture
def make_logger(
    tmp_path: Path,
    console_buffer: io.StringIO,
) -> Callable[..., RunLogger]:
    """Return a factory for loggers writing under ``tmp_path/logs``."""

    def factory(hostname: str = "web01") -> RunLogger:
        console = Console(file=console_buffer, width=400, color_system=None)
        return RunLogger(
            tmp_path / "logs" / "apply.log",
            tmp_path / "logs" / "summary.log",
            console=console,
            error_console=console,
            hostname=lambda: hostname,
            clock=lambda: FIXED_NOW,
        )

    return factory
