"""Load NudgeConfig from nudge.yaml if present.

Merges file config with CLI kwargs. CLI overrides file.
"""

from __future__ import annotations

import tomllib
from pathlib import Path

import yaml

from nudge._errors import ConfigError
from nudge.config import NudgeConfig

_CONFIG_KEYS = frozenset({
    "manifests_dir", "source_kinds", "consumer_kind", "annotation_key",
    "timeout", "retry_steps", "retry_delay", "retry_factor", "retry_jitter",
    "max_events", "verbose",
})


def load_config(root: Path, **overrides: object) -> NudgeConfig:
    """Load NudgeConfig from root, optionally merging nudge.yaml.

    Looks for nudge.yaml, nudge.yml, or nudge.toml in root. If found, loads
    and merges with overrides. Overrides take precedence; None-valued
    overrides are ignored so unset CLI flags fall through to the file.

    Raises:
        ConfigError: If the config file is malformed or names unknown keys.

    """
    file_config = _read_nudge_config(root)
    merged = {**file_config, **{k: v for k, v in overrides.items() if v is not None}}
    if isinstance(merged.get("source_kinds"), list):
        merged["source_kinds"] = tuple(merged["source_kinds"])
    return NudgeConfig(root=root, **merged)


def _read_nudge_config(root: Path) -> dict[str, object]:
    """Read nudge config from yaml/toml if present. Returns empty dict otherwise."""
    for name in ("nudge.yaml", "nudge.yml"):
        path = root / name
        if path.is_file():
            return _parse_yaml(path)
    toml_path = root / "nudge.toml"
    if toml_path.is_file():
        return _parse_toml(toml_path)
    return {}


def _parse_yaml(path: Path) -> dict[str, object]:
    """Parse YAML config."""
    try:
        data = yaml.safe_load(path.read_text()) or {}
    except yaml.YAMLError as exc:
        msg = f"{path.name}: invalid YAML: {exc}"
        raise ConfigError(msg) from exc
    if not isinstance(data, dict):
        msg = f"{path.name}: expected a mapping at the top level"
        raise ConfigError(msg)
    return _flatten_nudge_section(data, path)


def _parse_toml(path: Path) -> dict[str, object]:
    """Parse TOML config."""
    try:
        data = tomllib.loads(path.read_text())
    except tomllib.TOMLDecodeError as exc:
        msg = f"{path.name}: invalid TOML: {exc}"
        raise ConfigError(msg) from exc
    return _flatten_nudge_section(data, path)


def _flatten_nudge_section(data: dict[str, object], path: Path) -> dict[str, object]:
    """Extract nudge.* keys into top-level config."""
    result: dict[str, object] = {}
    section = data.get("nudge")
    if isinstance(section, dict):
        result.update(section)
    for k, v in data.items():
        if k != "nudge" and k in _CONFIG_KEYS:
            result[k] = v

    unknown = set(result) - _CONFIG_KEYS
    if unknown:
        msg = f"{path.name}: unknown config key(s): {', '.join(sorted(unknown))}"
        raise ConfigError(msg)
    return result
