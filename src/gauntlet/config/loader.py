#
# config/loader.py
#
"""
Loads RunOptions from a TOML file, environment variables and explicit overrides.

Precedence: explicit overrides > environment variables > config file > defaults.
"""

import os
import tomllib
from collections.abc import Mapping
from pathlib import Path
from typing import Any

import attrs
import structlog

from gauntlet.config.models import RunOptions
from gauntlet.exceptions import ConfigurationError

log = structlog.get_logger("config.loader")

ENV_PREFIX = "GAUNTLET_"
CONFIG_TABLE = "run"
_TRUE_STRINGS = {"1", "true", "yes", "on"}
_FALSE_STRINGS = {"0", "false", "no", "off", ""}


def _option_fields() -> dict[str, attrs.Attribute]:
    return {a.name: a for a in attrs.fields(RunOptions)}


def _coerce(name: str, raw: Any, default: Any) -> Any:
    """Coerces a raw (usually string) value to the type of the option's default."""
    if not isinstance(raw, str):
        return raw
    if isinstance(default, bool):
        lowered = raw.strip().lower()
        if lowered in _TRUE_STRINGS:
            return True
        if lowered in _FALSE_STRINGS:
            return False
        raise ConfigurationError(f"Option '{name}' expects a boolean, got '{raw}'")
    if isinstance(default, int | float):
        try:
            number = float(raw)
        except ValueError as e:
            raise ConfigurationError(f"Option '{name}' expects a number, got '{raw}'", details=e) from e
        return int(number) if number.is_integer() else number
    return raw


def _read_file(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path, "rb") as f:
            data = tomllib.load(f)
    except FileNotFoundError as e:
        raise ConfigurationError(f"Config file not found: '{config_path}'", details=e) from e
    except tomllib.TOMLDecodeError as e:
        raise ConfigurationError(f"Invalid TOML in '{config_path}': {e}", details=e) from e

    table = data.get(CONFIG_TABLE, {})
    if not isinstance(table, dict):
        raise ConfigurationError(f"'[{CONFIG_TABLE}]' in '{config_path}' must be a table")
    return table


def _read_env(env: Mapping[str, str]) -> dict[str, Any]:
    values: dict[str, Any] = {}
    for name in _option_fields():
        env_key = f"{ENV_PREFIX}{name.upper()}"
        if env_key in env:
            values[name] = env[env_key]
            log.debug("Option overridden by environment", option=name, env_var=env_key)
    return values


def load_config(
    config_path: Path | None = None,
    env: Mapping[str, str] | None = None,
    **overrides: Any,
) -> RunOptions:
    """
    Builds validated RunOptions.

    Args:
        config_path: Optional TOML file with a ``[run]`` table.
        env: Environment mapping, defaults to ``os.environ``.
        **overrides: Explicit values (e.g. from the CLI). ``None`` values are ignored.

    Raises:
        ConfigurationError: On unknown keys, unreadable files or invalid values.
    """
    fields = _option_fields()
    merged: dict[str, Any] = {}

    if config_path is not None:
        merged.update(_read_file(config_path))
        log.info("Loaded config file", path=str(config_path))
    merged.update(_read_env(os.environ if env is None else env))
    merged.update({k: v for k, v in overrides.items() if v is not None})

    unknown = sorted(set(merged) - set(fields))
    if unknown:
        raise ConfigurationError(f"Unknown run option(s): {unknown}. Known options: {sorted(fields)}")

    defaults = RunOptions()
    coerced = {name: _coerce(name, raw, getattr(defaults, name)) for name, raw in merged.items()}
    try:
        options = RunOptions(**coerced)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"Invalid run options: {e}", details=e) from e

    log.debug("Run options resolved", **attrs.asdict(options))
    return options

# 🔼⚙️
