"""Process-wide configuration for the XHE kernel.

Values come from a YAML file (config/config.yaml unless told otherwise)
and are validated by the pydantic models in config_schema. The kernel
takes an AppConfig explicitly; this module is the fallback used by the
entry point and by `Kernel(store)` when no config is passed.

Config file lookup order:
    1. path passed to load_config()
    2. XHE_CONFIG environment variable
    3. config/config.yaml at the repository root

Usage:
    from xhe.config import load_config, get, get_validated_config

    load_config("config/config.yaml")
    prefix = get("storage.key_prefix")
    genesis = get_validated_config().kernel.genesis_balance
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

import yaml

from .config_schema import AppConfig, validate_config_dict


DEFAULT_CONFIG_PATH: Path = Path(__file__).parent.parent / "config" / "config.yaml"
CONFIG_ENV_VAR = "XHE_CONFIG"

# Raw YAML mapping (for dot-path access and overrides) and its validated form
_raw: dict[str, Any] | None = None
_validated: AppConfig | None = None


def resolve_config_path(config_path: str | Path | None = None) -> Path:
    if config_path:
        return Path(config_path)
    from_env = os.environ.get(CONFIG_ENV_VAR)
    if from_env:
        return Path(from_env)
    return DEFAULT_CONFIG_PATH


def load_config(config_path: str | Path | None = None) -> dict[str, Any]:
    """Read, validate and install the configuration.

    Returns:
        The raw configuration mapping.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        pydantic.ValidationError: If any value is invalid or unknown.
    """
    global _raw, _validated

    path = resolve_config_path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(path) as f:
        loaded: Any = yaml.safe_load(f)
    raw = loaded if isinstance(loaded, dict) else {}

    # Validate before installing, so a bad file leaves the previous config in place
    validated = validate_config_dict(raw)
    _raw, _validated = raw, validated
    return _raw


def get_config() -> dict[str, Any]:
    """Raw configuration mapping, loading the default file on first use."""
    if _raw is None:
        load_config()
    if _raw is None:
        raise RuntimeError("Config failed to load. Call load_config() first.")
    return _raw


def get_validated_config() -> AppConfig:
    """Typed configuration, loading the default file on first use."""
    if _validated is None:
        load_config()
    if _validated is None:
        raise RuntimeError("Validated config failed to load. Call load_config() first.")
    return _validated


def get(key: str, default: Any = None) -> Any:
    """Look up a value by dot path in the raw mapping.

    Keys absent from the file return `default`, not the schema default;
    use get_validated_config() when the effective value matters.

    Examples:
        get("storage.path")
        get("kernel.genesis_balance", 100)
    """
    node: Any = get_config()
    for part in key.split("."):
        if not isinstance(node, dict) or part not in node:
            return default
        node = node[part]
    return node


def set_config_value(key: str, value: Any) -> None:
    """Override one value by dot path (e.g. from a CLI flag) and re-validate.

    Raises:
        pydantic.ValidationError: If the override makes the config invalid.
            The previous config stays installed.
    """
    global _raw, _validated

    updated = _nested_copy(get_config())
    *parents, leaf = key.split(".")
    node = updated
    for part in parents:
        child = node.get(part)
        if not isinstance(child, dict):
            child = {}
            node[part] = child
        node = child
    node[leaf] = value

    validated = validate_config_dict(updated)
    _raw, _validated = updated, validated


def reset_config() -> None:
    """Forget loaded config so the next access reloads it. Mainly for tests."""
    global _raw, _validated
    _raw = None
    _validated = None


def _nested_copy(mapping: dict[str, Any]) -> dict[str, Any]:
    return {k: _nested_copy(v) if isinstance(v, dict) else v for k, v in mapping.items()}
