# src/gauntlet/cli/config_cmds.py

from pathlib import Path

import click
import structlog
from rich.pretty import pretty_repr

from gauntlet.cli.run_cmds import resolve_options, run_options
from gauntlet.cli.utils import logging_options, setup_logging_from_context
from gauntlet.exceptions import ConfigurationError
from gauntlet.telemetry import StructLogger

log: StructLogger = structlog.get_logger("cli.config")


@click.group(name="config")
def config_cli():
    """Commands for inspecting and validating configuration."""
    pass


@config_cli.command(name="show")
@run_options
@logging_options
@click.pass_context
def show_config(ctx: click.Context, config_path: Path | None, **kwargs):
    """Resolve and display the effective run options."""
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
    )
    log.info("Executing 'config show' command", config_path=str(config_path) if config_path else None)

    try:
        options = resolve_options(config_path, **kwargs)
    except ConfigurationError as e:
        log.error("Failed to load or validate configuration", error=str(e))
        click.echo(f"Error: Configuration problem: {e}", err=True)
        ctx.exit(1)

    click.echo(pretty_repr(options, expand_all=True))

# 🔼⚙️
