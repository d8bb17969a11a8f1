"""Configuration loader for applyctl.

Configuration values are merged from the following sources, lowest priority
first:

1. Built-in defaults.
2. ``/etc/applyctl/config.yml`` (or an override path).
3. Environment variables prefixed with ``APPLYCTL_``.
4. Explicit overrides supplied programmatically (reserved for CLI flags).

Environment keys use double underscores to express nesting, e.g.::

    export APPLYCTL_ENGINE__BINARY=/opt/puppetlabs/bin/puppet
    export APPLYCTL_LOCK_FILE=/tmp/applyctl.lock

Values are coerced via PyYAML's ``safe_load`` so that booleans, numbers and
lists are parsed naturally. The resulting configuration is exposed as
immutable ``dataclasses``.
"""
from __future__ import annotations

import os
from collections.abc import Mapping, MutableMapping, Sequence
from dataclasses import dataclass
from pathlib import Path
from typing import cast

import yaml

ENV_PREFIX = "APPLYCTL_"
CONFIG_ENV_VAR = f"{ENV_PREFIX}CONFIG_FILE"


class ConfigError(RuntimeError):
    """Raised when configuration parsing fails."""


@dataclass(frozen=True)
class EngineConfig:
    """How the apply engine is invoked."""

    binary: str = "puppet"
    args: tuple[str, ...] = ("apply", "--detailed-exitcodes")
    working_dir: Path = Path("/etc/puppet")
    module_path: Path = Path("/etc/puppet/modules")
    manifest: Path = Path("/etc/puppet/manifests/site.pp")
    fact_prefix: str = "FACTER_"


@dataclass(frozen=True)
class HostnameConfig:
    """Locations used when synchronising the host name."""

    file: Path = Path("/etc/hostname")
    binary: str = "hostname"


@dataclass(frozen=True)
class AppConfig:
    """Resolved configuration values for applyctl."""

    config_file: Path
    lock_file: Path
    log_file: Path
    summary_log_file: Path
    host_config_file: Path
    engine: EngineConfig
    hostname: HostnameConfig


DEFAULTS: dict[str, object] = {
    "config_file": "/etc/applyctl/config.yml",
    "lock_file": "/var/lock/applyctl.lock",
    "log_file": "/var/log/applyctl/apply.log",
    "summary_log_file": "/var/log/applyctl/summary.log",
    "host_config_file": "/etc/applyctl/host.yml",
    "engine": {
        "binary": "puppet",
        "args": ("apply", "--detailed-exitcodes"),
        "working_dir": "/etc/puppet",
        "module_path": "/etc/puppet/modules",
        "manifest": "/etc/puppet/manifests/site.pp",
        "fact_prefix": "FACTER_",
    },
    "hostname": {
        "file": "/etc/hostname",
        "binary": "hostname",
    },
}

ALLOWED_TOP_LEVEL_KEYS = set(DEFAULTS.keys())
ALLOWED_ENGINE_KEYS = {"binary", "args", "working_dir", "module_path", "manifest", "fact_prefix"}
ALLOWED_HOSTNAME_KEYS = {"file", "binary"}


def load_config(
    config_file: str | os.PathLike[str] | None = None,
    *,
    env: Mapping[str, str] | None = None,
    overrides: Mapping[str, object] | None = None,
) -> AppConfig:
    """Load and merge configuration sources into an :class:`AppConfig`."""
    merged: dict[str, object] = _deep_copy(DEFAULTS)
    resolved_env = dict(os.environ if env is None else env)

    config_default = _expect_str(merged["config_file"], "config_file")
    config_path = _determine_config_path(config_default, config_file, resolved_env)

    file_values = _load_yaml_file(config_path)
    if file_values:
        _deep_merge(merged, file_values)

    env_values = _build_env_overrides(resolved_env)
    if env_values:
        _deep_merge(merged, env_values)

    if overrides:
        _deep_merge(merged, dict(overrides))

    merged["config_file"] = str(config_path)

    _validate_structure(merged)

    return _build_app_config(merged)


def _determine_config_path(
    default_path: str,
    cli_override: str | os.PathLike[str] | None,
    env: Mapping[str, str],
) -> Path:
    if cli_override:
        return Path(cli_override)
    if CONFIG_ENV_VAR in env:
        return Path(env[CONFIG_ENV_VAR])
    return Path(default_path)


def _load_yaml_file(path: Path) -> dict[str, object]:
    if not path.exists():
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except yaml.YAMLError as exc:  # pragma: no cover - PyYAML owns detailed error
        raise ConfigError(f"Failed to parse config file {path}: {exc}") from exc
    if not isinstance(data, Mapping):
        raise ConfigError(f"Config file {path} must contain a mapping at the top level.")
    return _as_dict(data, f"file:{path}")


def _validate_structure(raw: Mapping[str, object]) -> None:
    unknown_keys = set(raw.keys()) - ALLOWED_TOP_LEVEL_KEYS
    if unknown_keys:
        joined = ", ".join(sorted(unknown_keys))
        raise ConfigError(f"Unknown configuration keys: {joined}.")

    engine_map = _as_dict(raw.get("engine"), "engine")
    unknown = set(engine_map.keys()) - ALLOWED_ENGINE_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown engine configuration keys: {joined}.")

    hostname_map = _as_dict(raw.get("hostname"), "hostname")
    unknown = set(hostname_map.keys()) - ALLOWED_HOSTNAME_KEYS
    if unknown:
        joined = ", ".join(sorted(unknown))
        raise ConfigError(f"Unknown hostname configuration keys: {joined}.")


def _build_app_config(raw: Mapping[str, object]) -> AppConfig:
    engine_mapping = _as_dict(raw.get("engine"), "engine")
    default_engine = EngineConfig()
    engine = EngineConfig(
        binary=_expect_non_empty_str(
            engine_mapping.get("binary", default_engine.binary), "engine.binary"
        ),
        args=_as_str_tuple(engine_mapping.get("args", list(default_engine.args)), "engine.args"),
        working_dir=_to_path(engine_mapping.get("working_dir", default_engine.working_dir)),
        module_path=_to_path(engine_mapping.get("module_path", default_engine.module_path)),
        manifest=_to_path(engine_mapping.get("manifest", default_engine.manifest)),
        fact_prefix=str(engine_mapping.get("fact_prefix", default_engine.fact_prefix) or ""),
    )

    hostname_mapping = _as_dict(raw.get("hostname"), "hostname")
    default_hostname = HostnameConfig()
    hostname = HostnameConfig(
        file=_to_path(hostname_mapping.get("file", default_hostname.file)),
        binary=_expect_non_empty_str(
            hostname_mapping.get("binary", default_hostname.binary), "hostname.binary"
        ),
    )

    return AppConfig(
        config_file=_to_path(raw.get("config_file")),
        lock_file=_to_path(raw.get("lock_file")),
        log_file=_to_path(raw.get("log_file")),
        summary_log_file=_to_path(raw.get("summary_log_file")),
        host_config_file=_to_path(raw.get("host_config_file")),
        engine=engine,
        hostname=hostname,
    )


def _build_env_overrides(env: Mapping[str, str]) -> dict[str, object]:
    overrides: dict[str, object] = {}
    for key, value in env.items():
        if key == CONFIG_ENV_VAR or not key.startswith(ENV_PREFIX):
            continue
        suffix = key[len(ENV_PREFIX) :]
        path_segments = [segment.lower() for segment in suffix.split("__") if segment]
        if not path_segments:
            continue
        _assign_nested(overrides, path_segments, _coerce_value(value))
    return overrides


def _assign_nested(tree: MutableMapping[str, object], path: list[str], value: object) -> None:
    current: MutableMapping[str, object] = tree
    for segment in path[:-1]:
        existing = current.get(segment)
        if existing is None:
            new_child: MutableMapping[str, object] = {}
            current[segment] = new_child
            current = new_child
            continue
        if isinstance(existing, MutableMapping):
            current = cast(MutableMapping[str, object], existing)
            continue
        raise ConfigError(
            "Environment overrides conflict with existing scalar value at "
            f"{'.'.join(path)}"
        )
    current[path[-1]] = value


def _deep_merge(target: MutableMapping[str, object], overrides: Mapping[str, object]) -> None:
    for key, value in overrides.items():
        existing = target.get(key)
        if isinstance(existing, MutableMapping) and isinstance(value, Mapping):
            _deep_merge(existing, _as_dict(value, f"merge.{key}"))
            continue
        target[key] = value


def _deep_copy(source: Mapping[str, object]) -> dict[str, object]:
    result: dict[str, object] = {}
    for key, value in source.items():
        if isinstance(value, Mapping):
            result[key] = _deep_copy(_as_dict(value, f"copy.{key}"))
        else:
            result[key] = value
    return result


def _as_str_tuple(value: object, label: str) -> tuple[str, ...]:
    if isinstance(value, str):
        # A single string from the environment is split like a shell word list.
        return tuple(value.split())
    if not isinstance(value, Sequence):
        raise ConfigError(f"Expected {label} to be a sequence. Got {type(value).__name__}.")
    items: list[str] = []
    for index, item in enumerate(value):
        if not isinstance(item, (str, int, float)) or isinstance(item, bool):
            raise ConfigError(f"{label}[{index}] must be a string. Got {item!r}.")
        items.append(str(item))
    return tuple(items)


def _coerce_value(raw: str) -> object:
    raw = raw.strip()
    try:
        parsed = yaml.safe_load(raw)
    except yaml.YAMLError:  # pragma: no cover - treat as string if parsing fails
        return raw
    return parsed


def _to_path(value: object) -> Path:
    if value is None:
        raise ConfigError("Expected a filesystem path, received None.")
    if isinstance(value, Path):
        return value.expanduser()
    if isinstance(value, str):
        return Path(value).expanduser()
    raise ConfigError(f"Cannot convert value {value!r} to Path.")


def _expect_str(value: object, key: str) -> str:
    if isinstance(value, str):
        return value
    raise ConfigError(f"Expected {key} to resolve to a string. Got {value!r}.")


def _expect_non_empty_str(value: object, key: str) -> str:
    text = _expect_str(value, key).strip()
    if not text:
        raise ConfigError(f"{key} must be a non-empty string.")
    return text


def _as_dict(value: object | None, label: str) -> dict[str, object]:
    if value is None:
        return {}
    if not isinstance(value, Mapping):
        raise ConfigError(f"Expected {label} to be a mapping. Got {type(value).__name__}.")
    result: dict[str, object] = {}
    for key, item in value.items():
        if not isinstance(key, str):
            raise ConfigError(f"Mapping {label} must use string keys. Got {key!r}.")
        result[key] = item
    return result


__all__ = [
    "AppConfig",
    "ConfigError",
    "EngineConfig",
    "HostnameConfig",
    "load_config",
]
