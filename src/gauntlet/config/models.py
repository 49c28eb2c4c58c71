#
# config/models.py
#
"""
Attrs-based data models for gauntlet run configuration.
"""

import logging
import re
from typing import Any

from attrs import define, field

DEFAULT_TIMEOUT_MS = 2000
DEFAULT_SLOW_MS = 75
DEFAULT_RETRIES = 0


# --- Validators ---
def _validate_log_level(inst: Any, attr: Any, value: str) -> None:
    """Validator for standard logging level names."""
    valid = logging._nameToLevel.keys()
    if value.upper() not in valid:
        raise ValueError(f"Invalid log_level '{value}'. Must be one of {list(valid)}.")


def _validate_non_negative_number(inst: Any, attr: Any, value: float | None) -> None:
    """Validator ensures a duration or count is zero or greater."""
    if value is None:
        return
    if isinstance(value, bool) or not isinstance(value, int | float) or value < 0:
        raise ValueError(f"Field '{attr.name}' must be a non-negative number, got {value!r}")


def _validate_pattern(inst: Any, attr: Any, value: str | None) -> None:
    """Validator ensures a grep pattern compiles."""
    if value is None:
        return
    try:
        re.compile(value)
    except re.error as e:
        raise ValueError(f"Field '{attr.name}' is not a valid regular expression: {e}") from e


@define(frozen=True, slots=True)
class NodeConfig:
    """
    Per-node configuration overrides. A None field inherits from the parent.
    """

    timeout_ms: float | None = field(default=None, validator=_validate_non_negative_number)
    slow_ms: float | None = field(default=None, validator=_validate_non_negative_number)
    retries: int | None = field(default=None, validator=_validate_non_negative_number)

    def merged_over(self, parent: "NodeConfig") -> "NodeConfig":
        """Returns this node's own values merged over the parent's effective values."""
        return NodeConfig(
            timeout_ms=self.timeout_ms if self.timeout_ms is not None else parent.timeout_ms,
            slow_ms=self.slow_ms if self.slow_ms is not None else parent.slow_ms,
            retries=self.retries if self.retries is not None else parent.retries,
        )


@define(frozen=True, slots=True)
class RunOptions:
    """Flat set of options that drive a single run."""

    grep: str | None = field(default=None, validator=_validate_pattern)
    fgrep: str | None = field(default=None)
    invert: bool = field(default=False)
    retries: int = field(default=DEFAULT_RETRIES, validator=_validate_non_negative_number)
    timeout_ms: float = field(default=DEFAULT_TIMEOUT_MS, validator=_validate_non_negative_number)
    slow_ms: float = field(default=DEFAULT_SLOW_MS, validator=_validate_non_negative_number)
    bail: bool = field(default=False)
    allow_uncaught: bool = field(default=False)
    report_retries: bool = field(default=False)
    reporter: str = field(default="log")
    log_level: str = field(default="INFO", validator=_validate_log_level)

    def __attrs_post_init__(self) -> None:
        if self.grep is not None and self.fgrep is not None:
            raise ValueError("Options 'grep' and 'fgrep' are mutually exclusive.")

    @property
    def defaults(self) -> NodeConfig:
        """The root suite's effective configuration."""
        return NodeConfig(timeout_ms=self.timeout_ms, slow_ms=self.slow_ms, retries=self.retries)

# 🔼⚙️
