"""Configuration loading and rebuilding utilities.

This module handles YAML config file loading, environment variable expansion,
validation into an immutable BridgeConfig, and rebuild-and-replace updates.
"""

import os
import re
from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError as PydanticValidationError

from chatbridge.core.config.models import BridgeConfig
from chatbridge.core.errors import ValidationError

_ENV_VAR_PATTERN = r'\$\{([^}]+)\}'


def expand_env_vars(value: str) -> str:
    """Expand ${VAR} patterns in a string with environment variable values.

    Args:
        value: String potentially containing ${VAR_NAME} patterns.

    Returns:
        String with all ${VAR_NAME} patterns replaced by their values from os.environ.
        If a variable is not found, the pattern is left unchanged.

    Examples:
        >>> os.environ['CHAT_APP_ID'] = 'app-123'
        >>> expand_env_vars('id: ${CHAT_APP_ID}')
        'id: app-123'
    """

    def replacer(match: re.Match[str]) -> str:
        var_name = match.group(1)
        return os.environ.get(var_name, match.group(0))

    return re.sub(_ENV_VAR_PATTERN, replacer, value)


def expand_env_vars_recursive(obj: Any) -> Any:
    """Recursively expand environment variables in nested dicts and lists."""
    if isinstance(obj, dict):
        return {key: expand_env_vars_recursive(value) for key, value in obj.items()}
    elif isinstance(obj, list):
        return [expand_env_vars_recursive(item) for item in obj]
    elif isinstance(obj, str):
        return expand_env_vars(obj)
    else:
        return obj


def check_unexpanded_vars(data: Any, source: str) -> None:
    """Recursively check for unresolved ${VAR} patterns after expansion.

    Args:
        data: Expanded configuration data (dict, list, str, or other).
        source: Human-readable label for error messages (e.g., file path).

    Raises:
        ValidationError: If any ${VAR} patterns remain unresolved.
    """
    unresolved: list[str] = []
    _collect_unexpanded_vars(data, unresolved)
    if unresolved:
        unique = sorted(set(unresolved))
        raise ValidationError(
            f"Unresolved environment variable(s) in {source}: {', '.join(unique)}. "
            f"Set these variables or remove the ${{VAR}} references."
        )


def _collect_unexpanded_vars(obj: Any, found: list[str]) -> None:
    """Walk data structure collecting unresolved ${VAR} patterns."""
    if isinstance(obj, dict):
        for value in obj.values():
            _collect_unexpanded_vars(value, found)
    elif isinstance(obj, list):
        for item in obj:
            _collect_unexpanded_vars(item, found)
    elif isinstance(obj, str):
        for match in re.finditer(_ENV_VAR_PATTERN, obj):
            found.append(f"${{{match.group(1)}}}")


def build_config(data: dict[str, Any]) -> BridgeConfig:
    """Validate raw settings into a BridgeConfig.

    Raises:
        ValidationError: If a required value is missing or malformed.
    """
    try:
        return BridgeConfig(**data)
    except PydanticValidationError as e:
        raise ValidationError(f"Invalid or missing configuration value: {e}") from e


def load_config(path: Path | str) -> BridgeConfig:
    """Load configuration from a YAML file with environment variable expansion.

    Args:
        path: Path to the YAML configuration file.

    Returns:
        Parsed BridgeConfig with all ${VAR} patterns expanded.

    Raises:
        FileNotFoundError: If the config file doesn't exist.
        yaml.YAMLError: If the YAML is malformed.
        ValidationError: If the settings don't describe a usable bridge.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with config_path.open() as f:
        data = yaml.safe_load(f) or {}

    if not isinstance(data, dict):
        raise ValidationError(f"Invalid config format (expected mapping): {config_path}")

    data = expand_env_vars_recursive(data)
    check_unexpanded_vars(data, source=str(config_path))

    return build_config(data)


def replace_config(config: BridgeConfig, **changes: Any) -> BridgeConfig:
    """Build a new validated configuration with some values replaced.

    The original instance is left untouched.

    Examples:
        >>> new_config = replace_config(config, room=lambda: 7)
        >>> new_config.room()
        7
    """
    values = {name: getattr(config, name) for name in BridgeConfig.model_fields}
    values.update(changes)
    return build_config(values)


def build_sdk_init_data(config: BridgeConfig) -> dict[str, Any]:
    """Build the payload used to initialize the live-chat SDK.

    A region takes precedence over an explicit server.
    """
    init_data: dict[str, Any] = {
        "appId": config.app_id,
        "setCookieOnDomain": config.set_cookie_on_domain,
        "port": config.port,
    }
    if config.region:
        init_data["region"] = config.region
    elif config.server:
        init_data["server"] = config.server
    return init_data
