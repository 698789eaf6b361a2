"""Centralized path management for Ember.

All state (config, cron jobs, logs) is stored under a single base directory.
The base directory can be overridden with the EMBER_HOME environment variable.

Default locations:
- Linux/macOS: ~/.ember
- Windows: %USERPROFILE%\\.ember
"""

import os
from functools import lru_cache
from pathlib import Path

ENV_VAR = "EMBER_HOME"


def get_system_timezone() -> str:
    """Detect system timezone, falling back to UTC.

    Resolution order:
    1. TZ environment variable (if set)
    2. /etc/timezone file (Debian/Ubuntu)
    3. /etc/localtime symlink target (most Linux distros)
    4. Fallback to UTC

    Returns:
        IANA timezone name (e.g., "America/Los_Angeles", "Europe/London", "UTC").
    """
    if tz := os.environ.get("TZ"):
        return tz

    try:
        tz = Path("/etc/timezone").read_text().strip()
        if tz:
            return tz
    except (FileNotFoundError, PermissionError):
        pass

    try:
        link = Path("/etc/localtime").resolve()
        parts = str(link).split("zoneinfo/")
        if len(parts) > 1:
            return parts[1]
    except (FileNotFoundError, PermissionError):
        pass

    return "UTC"


@lru_cache(maxsize=1)
def get_ember_home() -> Path:
    """Get the base directory for all Ember data.

    Resolution order:
    1. EMBER_HOME environment variable (if set)
    2. Platform default (~/.ember)
    """
    if env_home := os.environ.get(ENV_VAR):
        return Path(env_home).expanduser().resolve()

    return Path.home() / ".ember"


def get_config_path() -> Path:
    """Get the default config file path."""
    return get_ember_home() / "config.toml"


def get_cron_path() -> Path:
    """Get the cron state directory path."""
    return get_ember_home() / "cron"


def get_cron_store_path() -> Path:
    """Get the cron job store file path."""
    return get_cron_path() / "jobs.json"


def get_logs_path() -> Path:
    """Get the default logs directory path."""
    return get_ember_home() / "logs"

