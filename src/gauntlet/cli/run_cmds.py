# src/gauntlet/cli/run_cmds.py

import asyncio
import logging
from pathlib import Path

import click
import structlog

from gauntlet.cli.utils import load_declaration, logging_options, setup_logging_from_context
from gauntlet.config import RunOptions, load_config
from gauntlet.exceptions import ConfigurationError, DeclarationError, UncaughtSignalError
from gauntlet.reporters import get_reporter
from gauntlet.runtime.scheduler import Runner
from gauntlet.telemetry import StructLogger
from gauntlet.tree import TreeBuilder

log: StructLogger = structlog.get_logger("cli.run")


def run_options(f):
    """Decorator adding the flat set of run options shared by commands."""
    options = [
        click.option(
            "-c",
            "--config-path",
            type=click.Path(exists=True, file_okay=True, dir_okay=False, readable=True, path_type=Path),
            default=None,
            envvar="GAUNTLET_CONF",
            help="Path to a TOML file with a [run] table (env var GAUNTLET_CONF).",
            show_envvar=True,
        ),
        click.option("-g", "--grep", default=None, help="Only run tests whose full title matches this regex."),
        click.option("-f", "--fgrep", default=None, help="Only run tests whose full title contains this string."),
        click.option("-i", "--invert/--no-invert", default=None, help="Invert the --grep/--fgrep match."),
        click.option("--retries", type=click.IntRange(min=0), default=None, help="Retry failed tests this many times."),
        click.option("-t", "--timeout", "timeout_ms", type=click.FloatRange(min=0), default=None, help="Timeout in ms (0 disables)."),
        click.option("-s", "--slow", "slow_ms", type=click.FloatRange(min=0), default=None, help="Slow threshold in ms."),
        click.option("-b", "--bail/--no-bail", default=None, help="Stop after the first test failure."),
        click.option(
            "--allow-uncaught/--no-allow-uncaught",
            default=None,
            help="Let out-of-band errors abort the run instead of attributing them.",
        ),
        click.option("--report-retries/--no-report-retries", default=None, help="Emit an event for every failed attempt."),
        click.option("-R", "--reporter", default=None, help="Reporter name: log, json or collect."),
    ]
    for option in reversed(options):
        f = option(f)
    return f


def resolve_options(config_path: Path | None, **kwargs) -> RunOptions:
    overrides = {
        name: kwargs.get(name)
        for name in (
            "grep",
            "fgrep",
            "invert",
            "retries",
            "timeout_ms",
            "slow_ms",
            "bail",
            "allow_uncaught",
            "report_retries",
            "reporter",
            "log_level",
        )
    }
    return load_config(config_path, **overrides)


def _run_tree(runner: Runner) -> int:
    """Runs the engine on a fresh event loop and maps the outcome to an exit code."""
    try:
        summary = asyncio.run(runner.run())
        return summary.exit_code
    except UncaughtSignalError as e:
        log.critical("Run aborted by an uncaught error", error=str(e))
        click.echo(f"Error: {e}", err=True)
        return 1
    except KeyboardInterrupt:
        log.warning("Run interrupted by KeyboardInterrupt (CTRL-C).")
        return 130
    finally:
        logging.shutdown()


@click.command(name="run")
@click.argument("target")
@run_options
@logging_options
@click.pass_context
def run_cli(ctx: click.Context, target: str, config_path: Path | None, **kwargs):
    """Declare the tree from TARGET ('module:function' or 'file.py:function') and run it."""
    try:
        options = resolve_options(config_path, **kwargs)
        reporter = get_reporter(options.reporter)
    except ConfigurationError as e:
        log.error("Invalid run configuration", error=str(e))
        click.echo(f"Error: {e}", err=True)
        ctx.exit(2)

    # --log-level wins; otherwise the resolved [run] log_level applies.
    setup_logging_from_context(
        ctx,
        local_log_level=kwargs.get("log_level"),
        local_log_file=kwargs.get("log_file"),
        local_json_logs=kwargs.get("json_logs"),
        default_log_level=options.log_level,
        headless_mode=True,
    )

    declare = load_declaration(target)
    builder = TreeBuilder()
    try:
        declare(builder)
        root = builder.freeze()
    except DeclarationError as e:
        log.error("Failed to declare suite tree", error=str(e), exc_info=True)
        click.echo(f"Error: {e}", err=True)
        ctx.exit(2)

    log.info("Starting run", target=target, reporter=options.reporter)
    exit_code = _run_tree(Runner(root, options=options, reporters=[reporter]))
    log.info("'run' command finished.", exit_code=exit_code)
    ctx.exit(exit_code)

# 🔼⚙️
