"""Configuration package for chatbridge.

This package provides Pydantic configuration models and loading utilities.
"""

from chatbridge.core.config.loader import (
    build_config,
    build_sdk_init_data,
    check_unexpanded_vars,
    expand_env_vars,
    expand_env_vars_recursive,
    load_config,
    replace_config,
)
from chatbridge.core.config.models import (
    BridgeConfig,
    LoggingConfig,
    SurveyConfig,
    TranscriptConfig,
    WorkingHoursConfig,
)

__all__ = [
    # Models
    "BridgeConfig",
    "LoggingConfig",
    "SurveyConfig",
    "TranscriptConfig",
    "WorkingHoursConfig",
    # Loaders
    "build_config",
    "build_sdk_init_data",
    "check_unexpanded_vars",
    "expand_env_vars",
    "expand_env_vars_recursive",
    "load_config",
    "replace_config",
]
