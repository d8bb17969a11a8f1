"""Tests for the platform downgrade guard."""
from __future__ import annotations

from pathlib import Path

import pytest
from packaging.version import Version

from applyctl.version_guard import VersionGuard


def _summary(tmp_path: Path, *lines: str) -> Path:
    path = tmp_path / "summary.log"
    path.write_text("".join(f"{line}\n" for line in lines), encoding="utf-8")
    return path


HISTORY = (
    "Oct 16 08:00:00 web01: STARTING APPLY {platform: 0.5.9, user: bob}",
    "Oct 16 08:01:00 web01: APPLY COMPLETE (no changes) {platform: 0.5.9, user: bob}",
    "Oct 17 09:12:01 web01: STARTING APPLY {platform: 0.6.1, user: alice}",
    "Oct 17 09:13:44 web01: APPLY COMPLETE (changes made) {platform: 0.6.1, user: alice}",
)


def test_older_declared_version_aborts(tmp_path: Path) -> None:
    """Declaring a version below the last recorded one aborts."""
    guard = VersionGuard(_summary(tmp_path, *HISTORY))

    decision = guard.check("0.6.0")

    assert decision.proceed is False
    assert decision.previous == Version("0.6.1")
    assert "--downgrade" in decision.message


@pytest.mark.parametrize("declared", ["0.6.1", "0.6.2", "0.6.10", "1.0"])
def test_same_or_newer_version_proceeds(tmp_path: Path, declared: str) -> None:
    """Equal and newer versions proceed."""
    guard = VersionGuard(_summary(tmp_path, *HISTORY))

    assert guard.check(declared).proceed is True


def test_comparison_is_numeric_not_lexicographic(tmp_path: Path) -> None:
    """0.6.12 is newer than 0.6.9."""
    guard = VersionGuard(
        _summary(tmp_path, "Oct 17 09:12:01 web01: STARTING APPLY {platform: 0.6.12}")
    )

    assert guard.check("0.6.9").proceed is False
    assert guard.check("0.6.13").proceed is True


def test_missing_or_empty_summary_proceeds(tmp_path: Path) -> None:
    """No history never blocks a first deploy."""
    assert VersionGuard(tmp_path / "absent.log").check("0.1.0").proceed is True
    assert VersionGuard(_summary(tmp_path)).check("0.1.0").proceed is True


def test_empty_declared_version_proceeds(tmp_path: Path) -> None:
    """An undeclared platform skips the comparison."""
    guard = VersionGuard(_summary(tmp_path, *HISTORY))

    decision = guard.check("")

    assert decision.proceed is True
    assert decision.previous is None


def test_unparseable_declared_version_proceeds(tmp_path: Path) -> None:
    """A sentinel or free-text platform does not block the run."""
    guard = VersionGuard(_summary(tmp_path, *HISTORY))

    assert guard.check("INVALID_FORMAT").proceed is True


def test_most_recent_parseable_record_wins(tmp_path: Path) -> None:
    """Records without a usable platform are skipped when scanning backwards."""
    guard = VersionGuard(
        _summary(
            tmp_path,
            *HISTORY,
            "Oct 17 10:00:00 web01: STARTING APPLY {platform: INVALID_FORMAT}",
            "Oct 17 10:00:05 web01: STARTING APPLY {user: carol}",
            "Oct 17 10:00:09 web01: ERROR: something unrelated",
            "garbage line",
        )
    )

    assert guard.last_recorded_version() == Version("0.6.1")


def test_downgrade_record_becomes_new_baseline(tmp_path: Path) -> None:
    """After a forced downgrade the older version is what later runs compare against."""
    guard = VersionGuard(
        _summary(
            tmp_path,
            *HISTORY,
            "Oct 17 11:00:00 web01: STARTING APPLY {platform: 0.5.0, user: alice}",
        )
    )

    assert guard.check("0.5.5").proceed is True


def test_braces_in_other_fields_do_not_hide_platform(tmp_path: Path) -> None:
    """A ticket value with braces still records its platform for later checks."""
    guard = VersionGuard(
        _summary(
            tmp_path,
            *HISTORY,
            "Oct 17 12:00:00 web01: STARTING APPLY {platform: 0.6.5, ticket: {OPS-1}}",
            "Oct 17 12:01:00 web01: APPLY COMPLETE (no changes) "
            "{platform: 0.6.5, ticket: {OPS-1}}",
        )
    )

    assert guard.last_recorded_version() == Version("0.6.5")
    assert guard.check("0.6.2").proceed is False
