"""Sections of config.yaml, validated with pydantic."""

from datetime import timedelta
from enum import Enum

from pydantic import BaseModel, Field, field_validator

from .duration import DurationParseError, parse_duration, validate_duration_range


def _check_duration(value: str, label: str, max_seconds: float) -> str:
    try:
        validate_duration_range(parse_duration(value, allow_zero=True), 0, max_seconds, label=label)
    except DurationParseError as e:
        raise ValueError(str(e)) from e
    return value


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class LogFormat(str, Enum):
    """Log output formats."""

    JSON = "json"
    KEY_VALUE = "key-value"


class RenderEngine(str, Enum):
    """Template rendering strategies."""

    JINJA = "jinja"
    PLACEHOLDER = "placeholder"


class TemplatesConfig(BaseModel):
    """Template cache and rendering settings."""

    freshness_window: str = Field("5m", description="How long a fetched bundle is reused")
    render_engine: RenderEngine = Field(RenderEngine.JINJA, description="jinja or placeholder")

    model_config = {"use_enum_values": True}

    @field_validator("freshness_window")
    @classmethod
    def validate_freshness_window(cls, v: str) -> str:
        return _check_duration(v, "Freshness window", max_seconds=86400)

    @property
    def freshness_timedelta(self) -> timedelta:
        return timedelta(seconds=parse_duration(self.freshness_window, allow_zero=True))


class DeliveryConfig(BaseModel):
    """Delivery concurrency and transport settings."""

    max_workers: int = Field(10, ge=1, le=100, description="Concurrent records per queue batch")
    bulk_wave_size: int = Field(10, ge=1, le=100, description="Envelopes sent concurrently per bulk wave")
    bulk_wave_pause: str = Field("1s", description="Pause between bulk waves")
    use_tls: bool = Field(True, description="Use STARTTLS when the SMTP port is not 465")

    @field_validator("bulk_wave_pause")
    @classmethod
    def validate_bulk_wave_pause(cls, v: str) -> str:
        return _check_duration(v, "Bulk wave pause", max_seconds=300)

    @property
    def bulk_wave_pause_seconds(self) -> float:
        return parse_duration(self.bulk_wave_pause, allow_zero=True)


class LoggingConfig(BaseModel):
    level: LogLevel = Field(LogLevel.INFO, description="Log level")
    format: LogFormat = Field(LogFormat.KEY_VALUE, description="Log output format (json or key-value)")

    model_config = {"use_enum_values": True}


class AppConfig(BaseModel):
    """Root configuration object for the notification pipeline.

    Every section is optional; an absent config file yields the defaults.
    """

    templates: TemplatesConfig = Field(default_factory=TemplatesConfig)
    delivery: DeliveryConfig = Field(default_factory=DeliveryConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
