"""CLI command modules."""

from ember.cli.commands import cron

__all__ = ["cron"]
