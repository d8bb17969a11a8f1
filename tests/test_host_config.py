"""Tests for the host configuration store."""
from __future__ import annotations

from pathlib import Path

import pytest

from applyctl.host_config import ConfigUnavailableError, HostConfigStore


def _write(path: Path, text: str) -> Path:
    path.write_text(text, encoding="utf-8")
    return path


def test_missing_file_is_unavailable(tmp_path: Path) -> None:
    """A missing host configuration raises ConfigUnavailableError."""
    store = HostConfigStore(tmp_path / "host.yml")

    with pytest.raises(ConfigUnavailableError, match="does not exist"):
        store.load()


def test_non_mapping_is_unavailable(tmp_path: Path) -> None:
    """Top-level lists are rejected."""
    store = HostConfigStore(_write(tmp_path / "host.yml", "- web01\n"))

    with pytest.raises(ConfigUnavailableError, match="mapping"):
        store.load()


def test_invalid_yaml_is_unavailable(tmp_path: Path) -> None:
    """Unparseable YAML is reported as unavailable."""
    store = HostConfigStore(_write(tmp_path / "host.yml", "hostname: [unclosed\n"))

    with pytest.raises(ConfigUnavailableError, match="not valid YAML"):
        store.load()


def test_file_is_read_once(tmp_path: Path) -> None:
    """Later edits to the file do not affect the running store."""
    path = _write(tmp_path / "host.yml", "hostname: web01\n")
    store = HostConfigStore(path)

    assert store.get("hostname") == "web01"
    path.write_text("hostname: web02\n", encoding="utf-8")
    assert store.get("hostname") == "web01"


def test_require_rejects_blank_values(tmp_path: Path) -> None:
    """Required keys must be present and non-empty."""
    store = HostConfigStore(_write(tmp_path / "host.yml", "hostname: ''\nrole: web\n"))

    assert store.require("role") == "web"
    with pytest.raises(ConfigUnavailableError, match="'hostname'"):
        store.require("hostname")
    with pytest.raises(ConfigUnavailableError, match="'domain_name'"):
        store.require("domain_name")


def test_facts_include_fqdn_when_complete(tmp_path: Path) -> None:
    """All three naming facts produce a derived fqdn."""
    store = HostConfigStore(
        _write(
            tmp_path / "host.yml",
            "hostname: web01\ndomain_name: example\ndomain_suffix: com\nrole: web\n",
        )
    )

    assert store.facts() == {
        "hostname": "web01",
        "domain_name": "example",
        "domain_suffix": "com",
        "fqdn": "web01.example.com",
    }


def test_facts_skip_missing_values(tmp_path: Path) -> None:
    """Partial configuration exports only what is defined."""
    store = HostConfigStore(_write(tmp_path / "host.yml", "hostname: web01\n"))

    assert store.facts() == {"hostname": "web01"}
