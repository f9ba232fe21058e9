"""Configuration management for stylegen."""

from stylegen.core.config.errors import ConfigError
from stylegen.core.config.loader import (
    build_settings,
    find_config_file,
    get_config_template,
    load_config,
    load_config_file,
    load_image_requests,
    load_style_guide,
    merge_options,
)
from stylegen.core.config.models import GeneratorSettings, LoggingConfig, RetryPolicy

__all__ = [
    # Loaders
    "load_config",
    "load_config_file",
    "find_config_file",
    "merge_options",
    "get_config_template",
    "build_settings",
    "load_style_guide",
    "load_image_requests",
    # Models
    "GeneratorSettings",
    "LoggingConfig",
    "RetryPolicy",
    # Errors
    "ConfigError",
]
