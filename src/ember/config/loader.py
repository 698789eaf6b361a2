"""Configuration loading from TOML files."""

import tomllib
from pathlib import Path

from pydantic import ValidationError

from ember.config.models import ConfigError, EmberConfig
from ember.config.paths import get_config_path


def _get_default_config_paths() -> list[Path]:
    """Get ordered list of default config file locations."""
    return [
        Path("config.toml"),  # Current directory
        get_config_path(),  # ~/.ember/config.toml (or EMBER_HOME)
        Path("/etc/ember/config.toml"),  # System-wide
    ]


def load_config(path: Path | None = None) -> EmberConfig:
    """Load configuration from TOML file.

    Args:
        path: Explicit path to config file. If None, searches default locations
            and falls back to the default configuration.

    Returns:
        Validated EmberConfig instance.

    Raises:
        FileNotFoundError: If an explicit path does not exist.
        ConfigError: If the config file is invalid.
    """
    config_path: Path | None = None

    if path is not None:
        config_path = Path(path).expanduser()
        if not config_path.exists():
            raise FileNotFoundError(f"Config file not found: {config_path}")
    else:
        for default_path in _get_default_config_paths():
            expanded = default_path.expanduser()
            if expanded.exists():
                config_path = expanded
                break

    if config_path is None:
        return get_default_config()

    try:
        with config_path.open("rb") as f:
            raw_config = tomllib.load(f)
        return EmberConfig.model_validate(raw_config)
    except tomllib.TOMLDecodeError as e:
        raise ConfigError(f"Invalid TOML in {config_path}: {e}") from e
    except ValidationError as e:
        raise ConfigError(f"Invalid configuration in {config_path}: {e}") from e


def get_default_config() -> EmberConfig:
    """Get a default configuration for development/testing."""
    return EmberConfig()
