"""Configuration module."""

from ember.config.loader import get_default_config, load_config
from ember.config.models import ConfigError, CronConfig, EmberConfig, LoggingConfig
from ember.config.paths import (
    get_config_path,
    get_cron_store_path,
    get_ember_home,
    get_logs_path,
)

__all__ = [
    "ConfigError",
    "CronConfig",
    "EmberConfig",
    "LoggingConfig",
    "get_config_path",
    "get_cron_store_path",
    "get_default_config",
    "get_ember_home",
    "get_logs_path",
    "load_config",
]
