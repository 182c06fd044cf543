"""Builds AppConfig from an optional YAML file and EnvironmentConfig from env vars."""

from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from pydantic import ValidationError

from notifier.logging import get_logger

from .environment import EnvironmentConfig, load_environment_config
from .exceptions import ConfigurationError
from .models import AppConfig

logger = get_logger(__name__, component="config")

# Searched in order when no path is given
DEFAULT_CONFIG_CANDIDATES = (
    Path("config.yaml"),
    Path("config") / "config.yaml",
)

_SCALAR_TYPE_ERRORS = {
    "string_type": "string",
    "int_type": "integer",
    "int_parsing": "integer",
    "bool_type": "boolean",
    "bool_parsing": "boolean",
}


def load_config(config_path: Optional[Path] = None) -> Tuple[AppConfig, EnvironmentConfig]:
    """Return the validated (AppConfig, EnvironmentConfig) pair.

    An explicit ``config_path`` must exist. Without one the first existing
    entry of DEFAULT_CONFIG_CANDIDATES is used, and with none of them present
    the built-in defaults apply.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid,
            or the environment is misconfigured
    """
    source = resolve_config_path(config_path)

    if source is None:
        logger.debug("No config file found, using defaults", extra={"event": "config.defaults"})
        app_config = AppConfig()
    else:
        logger.debug("Reading config file", extra={"event": "config.file", "path": str(source)})
        app_config = parse_config_dict(read_config_file(source))

    return app_config, load_environment_config()


def resolve_config_path(config_path: Optional[Path] = None) -> Optional[Path]:
    if config_path is not None:
        explicit = Path(config_path)
        if not explicit.is_file():
            raise ConfigurationError(
                f"Configuration file not found: {explicit}",
                suggestions=["Pass --config with an existing YAML file, or omit it to use defaults"],
            )
        return explicit

    return next((candidate for candidate in DEFAULT_CONFIG_CANDIDATES if candidate.is_file()), None)


def read_config_file(path: Path) -> Dict[str, Any]:
    """Parse a YAML file into a mapping; an empty file gives an empty mapping."""
    try:
        content = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigurationError(
            f"Failed to parse YAML in {path}: {e}",
            suggestions=["Indent with spaces and check brackets and quotes are balanced"],
        ) from e
    except OSError as e:
        raise ConfigurationError(f"Cannot read {path}: {e}") from e

    if content is None:
        return {}
    if not isinstance(content, Mapping):
        raise ConfigurationError(
            f"{path} must hold a mapping of sections, got {type(content).__name__}"
        )
    return dict(content)


def parse_config_dict(config_dict: Optional[Mapping[str, Any]]) -> AppConfig:
    """Validate a configuration mapping.

    Raises:
        ConfigurationError: Listing every invalid field, not just the first
    """
    try:
        return AppConfig.model_validate(config_dict or {})
    except ValidationError as e:
        raise ConfigurationError(
            "Configuration validation failed",
            errors=[_describe_error(error) for error in e.errors()],
            suggestions=[
                "See config.example.yaml for every section and its defaults",
                "Durations use forms like '5m', '1s' or 'PT5M'",
            ],
        ) from e


def _describe_error(error: Mapping[str, Any]) -> str:
    where = " -> ".join(str(part) for part in error["loc"])
    expected = _SCALAR_TYPE_ERRORS.get(error["type"])
    if expected:
        return f"'{where}' must be a {expected}, got {error.get('input')!r}"
    return f"{where}: {error['msg']}"
