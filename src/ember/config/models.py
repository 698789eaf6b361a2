"""Configuration models using Pydantic."""

from pathlib import Path
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

from pydantic import BaseModel, Field, field_validator

from ember.config.paths import get_cron_store_path, get_system_timezone


class ConfigError(Exception):
    """Configuration error."""

    pass


class CronConfig(BaseModel):
    """Configuration for the scheduled-job engine."""

    enabled: bool = True
    store_path: Path = Field(default_factory=get_cron_store_path)


class LoggingConfig(BaseModel):
    """Configuration for log output."""

    level: str | None = None  # None = EMBER_LOG_LEVEL or INFO
    log_to_file: bool = False


class EmberConfig(BaseModel):
    """Root configuration model."""

    # Fallback IANA timezone for cron schedules without their own tz
    timezone: str = Field(default_factory=get_system_timezone)
    cron: CronConfig = Field(default_factory=CronConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @field_validator("timezone")
    @classmethod
    def _validate_timezone(cls, value: str) -> str:
        try:
            ZoneInfo(value)
        except (ZoneInfoNotFoundError, ValueError, OSError) as e:
            raise ValueError(f"Unknown timezone: {value}") from e
        return value
