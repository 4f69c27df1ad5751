# === NAVMAP v1 ===
# {
#   "module": "RideLink.MapServices.config.loader",
#   "purpose": "Configuration loading with file, environment and override precedence.",
#   "sections": [
#     {
#       "id": "read-file",
#       "name": "_read_file",
#       "anchor": "function-read-file",
#       "kind": "function"
#     },
#     {
#       "id": "assign-nested",
#       "name": "_assign_nested",
#       "anchor": "function-assign-nested",
#       "kind": "function"
#     },
#     {
#       "id": "coerce-env-value",
#       "name": "_coerce_env_value",
#       "anchor": "function-coerce-env-value",
#       "kind": "function"
#     },
#     {
#       "id": "merge-env-overrides",
#       "name": "_merge_env_overrides",
#       "anchor": "function-merge-env-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "merge-overrides",
#       "name": "_merge_overrides",
#       "anchor": "function-merge-overrides",
#       "kind": "function"
#     },
#     {
#       "id": "load-config",
#       "name": "load_config",
#       "anchor": "function-load-config",
#       "kind": "function"
#     },
#     {
#       "id": "export-config-schema",
#       "name": "export_config_schema",
#       "anchor": "function-export-config-schema",
#       "kind": "function"
#     }
#   ]
# }
# === /NAVMAP ===

"""
Configuration Loading with File/Env/Override Precedence

Implements three-level config composition:
1. **File level** (YAML/JSON): base configuration
2. **Environment level**: RIDELINK_* prefixed variables override file
3. **Override level**: programmatic (CLI) overrides win

Environment variables use double-underscore notation:
  RIDELINK_GOOGLE__API_KEY="abc"  →  google.api_key="abc"
  RIDELINK_OFFLINE__PROBE_URLS='["https://1.1.1.1"]'  →  offline.probe_urls=[...]

JSON values are automatically parsed; strings are type-coerced when possible.
"""

from __future__ import annotations

import json
import logging
import os
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import yaml

from .models import MapServicesConfig

_LOGGER = logging.getLogger(__name__)

DEFAULT_ENV_PREFIX = "RIDELINK_"


def _read_file(path: str | Path) -> dict[str, Any]:
    """
    Read YAML or JSON config file.

    Args:
        path: File path (suffix determines format: .yaml/.yml or .json)

    Returns:
        Parsed config dictionary

    Raises:
        ValueError: If file cannot be read or parsed
    """
    p = Path(path)
    if not p.exists():
        raise ValueError(f"Config file not found: {path}")

    try:
        text = p.read_text(encoding="utf-8")
    except OSError as e:
        raise ValueError(f"Cannot read config file {path}: {e}") from e

    suffix = p.suffix.lower()

    if suffix in (".yaml", ".yml"):
        try:
            return yaml.safe_load(text) or {}
        except yaml.YAMLError as e:
            raise ValueError(f"Invalid YAML in {path}: {e}") from e

    if suffix == ".json":
        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in {path}: {e}") from e

    raise ValueError(f"Unsupported file format: {suffix}. Use .yaml or .json")


def _assign_nested(data: dict[str, Any], dotted_key: str, value: Any) -> None:
    """
    Assign value to nested dict using dot notation.

    Example:
        _assign_nested(data, "google.api_key", "abc")
        → data["google"]["api_key"] = "abc"
    """
    keys = dotted_key.split(".")
    current = data

    for key in keys[:-1]:
        if not isinstance(current.get(key), dict):
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value


def _coerce_env_value(value: str) -> Any:
    """
    Attempt to coerce environment variable string to appropriate type.

    Tries JSON parsing first (handles lists, dicts, bools, numbers).
    Falls back to string if JSON fails.
    """
    try:
        return json.loads(value)
    except (json.JSONDecodeError, ValueError):
        pass

    if value.lower() in ("true", "false"):
        return value.lower() == "true"

    return value


def _merge_env_overrides(
    data: dict[str, Any],
    env_prefix: str = DEFAULT_ENV_PREFIX,
    environ: Mapping[str, str] | None = None,
) -> dict[str, Any]:
    """
    Overlay environment variables onto config dict.

    Looks for RIDELINK_* prefixed variables and maps double-underscore
    notation to nested dicts. Variables whose first segment is not a config
    section (e.g. RIDELINK_LOG_DIR) are left alone.

    Args:
        data: Base config dict (will be modified)
        env_prefix: Environment variable prefix (default: RIDELINK_)
        environ: Environment mapping, defaults to ``os.environ``

    Returns:
        Modified data dict
    """
    source = os.environ if environ is None else environ
    for env_key, env_value in source.items():
        if not env_key.startswith(env_prefix):
            continue

        relative_key = env_key[len(env_prefix) :].lower()
        dotted_key = relative_key.replace("__", ".")
        if dotted_key.split(".")[0] not in MapServicesConfig.model_fields:
            continue

        coerced_value = env_value if dotted_key.endswith("api_key") else _coerce_env_value(env_value)
        _assign_nested(data, dotted_key, coerced_value)
        # Values may be API keys; log the key only.
        _LOGGER.debug("Environment override: %s → %s", env_key, dotted_key)

    return data


def _merge_overrides(
    data: dict[str, Any], overrides: Mapping[str, Any] | None
) -> dict[str, Any]:
    """
    Recursively merge programmatic overrides into base config dict.

    Later values win (standard dict.update() semantics).
    """
    if not overrides:
        return data

    for key, value in overrides.items():
        if isinstance(value, Mapping) and isinstance(data.get(key), dict):
            data[key] = _merge_overrides(data[key], value)
        else:
            data[key] = dict(value) if isinstance(value, Mapping) else value

    return data


def load_config(
    path: str | Path | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    overrides: Mapping[str, Any] | None = None,
    *,
    environ: Mapping[str, str] | None = None,
) -> MapServicesConfig:
    """
    Load MapServicesConfig from file, environment, and overrides with proper precedence.

    **Precedence:** file < environment < overrides

    Args:
        path: Path to YAML/JSON config file (optional)
        env_prefix: Environment variable prefix (default: RIDELINK_)
        overrides: Programmatic override dict (optional)
        environ: Environment mapping used instead of ``os.environ`` (tests)

    Returns:
        Validated, frozen MapServicesConfig instance

    Raises:
        ValueError: If config is invalid or file cannot be read
    """
    data: dict[str, Any] = {}

    if path:
        try:
            data = _read_file(path)
            _LOGGER.info("Loaded config from %s", path)
        except ValueError as e:
            _LOGGER.error("Failed to load config: %s", e)
            raise

    data = _merge_env_overrides(data, env_prefix, environ)
    data = _merge_overrides(data, overrides)

    try:
        config = MapServicesConfig.model_validate(data)
    except ValueError as e:
        _LOGGER.error("Configuration validation failed: %s", e)
        raise
    _LOGGER.info("Configuration validated. Config hash: %s...", config.config_hash()[:8])
    return config


def export_config_schema() -> dict[str, Any]:
    """Export JSON Schema for MapServicesConfig."""
    return MapServicesConfig.model_json_schema()
