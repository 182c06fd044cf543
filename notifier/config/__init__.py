"""Configuration management for the notification pipeline."""

from .duration import DurationParseError, parse_duration, parse_timedelta
from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .loader import load_config, parse_config_dict
from .models import (
    AppConfig,
    DeliveryConfig,
    LogFormat,
    LoggingConfig,
    LogLevel,
    RenderEngine,
    TemplatesConfig,
)

__all__ = [
    # Loader functions
    "load_config",
    "parse_config_dict",
    "load_environment_config",
    # Configuration models
    "AppConfig",
    "TemplatesConfig",
    "DeliveryConfig",
    "LoggingConfig",
    "EnvironmentConfig",
    # Enums
    "LogLevel",
    "LogFormat",
    "RenderEngine",
    # Durations
    "parse_duration",
    "parse_timedelta",
    "DurationParseError",
    # Exceptions
    "ConfigurationError",
]
