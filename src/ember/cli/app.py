"""Main CLI application."""

from pathlib import Path
from typing import Annotated

import typer

from ember.cli.commands import cron

app = typer.Typer(
    name="ember",
    help="Ember - personal assistant scheduled jobs",
    no_args_is_help=True,
)


@app.callback()
def main(
    ctx: typer.Context,
    config: Annotated[
        Path | None,
        typer.Option(
            "--config",
            "-c",
            help="Path to configuration file",
        ),
    ] = None,
    verbose: Annotated[
        bool,
        typer.Option("--verbose", "-v", help="Enable debug logging"),
    ] = False,
) -> None:
    """Load configuration and set up logging for every command."""
    from ember.cli.console import error
    from ember.config import ConfigError, load_config
    from ember.logging import configure_logging

    try:
        loaded = load_config(config)
    except (FileNotFoundError, ConfigError) as e:
        error(str(e))
        raise typer.Exit(1) from None

    configure_logging(
        level="DEBUG" if verbose else loaded.logging.level or "WARNING",
        log_to_file=loaded.logging.log_to_file,
    )
    ctx.obj = loaded


cron.register(app)


if __name__ == "__main__":
    app()
