"""Config Loader - Loads client configuration.

Handles loading YAML config files with environment variable substitution and
resolving file references relative to the config file.

Example config:
    api_url: https://203.0.113.7:8081/${OUTLINE_SECRET}
    ca_cert: outline-server.pem
    timeout: 10
"""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any

import yaml

from outline_api.errors import ConfigError
from outline_api.models import ClientConfig

_ENV_VAR_PATTERN = re.compile(r"\$\{([^}]+)\}")


def load_client_config(config_path: Path) -> ClientConfig:
    """Load client configuration from YAML with ${ENV_VAR} substitution.

    A relative ca_cert path is resolved against the config file's directory.
    """
    if not config_path.exists():
        raise ConfigError(f"Config file not found: {config_path}")

    try:
        with open(config_path, "r", encoding="utf-8") as f:
            raw_config = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in config file: {e}") from e

    if not isinstance(raw_config, dict):
        raise ConfigError("Config file must be a YAML mapping")

    raw_config = _substitute_env_vars(raw_config)

    ca_cert = raw_config.get("ca_cert")
    if isinstance(ca_cert, str):
        raw_config["ca_cert"] = str(resolve_relative_path(config_path, ca_cert))

    try:
        return ClientConfig.model_validate(raw_config)
    except Exception as e:
        raise ConfigError(f"Invalid config structure: {e}") from e


def resolve_relative_path(config_path: Path, ref: str) -> Path:
    """Resolve ref relative to config_path's directory. Absolute paths pass through."""
    path = Path(ref).expanduser()
    if path.is_absolute():
        return path
    return (config_path.parent / path).resolve()


def apply_overrides(config: ClientConfig, **overrides: Any) -> ClientConfig:
    """Return a copy of config with the non-None overrides applied and re-validated."""
    updates = {key: value for key, value in overrides.items() if value is not None}
    if not updates:
        return config
    try:
        return ClientConfig.model_validate({**config.model_dump(), **updates})
    except Exception as e:
        raise ConfigError(f"Invalid configuration: {e}") from e


def _substitute_env_vars(data: Any) -> Any:
    """Recursively substitute ${ENV_VAR} patterns in strings within data."""
    if isinstance(data, str):
        return _substitute_string(data)
    elif isinstance(data, dict):
        return {k: _substitute_env_vars(v) for k, v in data.items()}
    elif isinstance(data, list):
        return [_substitute_env_vars(item) for item in data]
    return data


def _substitute_string(s: str) -> str:
    """Substitute ${ENV_VAR} patterns. Raises ConfigError if env var is not set."""

    def replacer(match: re.Match) -> str:
        var_name = match.group(1)
        value = os.environ.get(var_name)
        if value is None:
            raise ConfigError(f"Environment variable '{var_name}' is not set")
        return value

    return _ENV_VAR_PATTERN.sub(replacer, s)
