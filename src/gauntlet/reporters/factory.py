#
# src/gauntlet/reporters/factory.py
#
"""
Factory for creating Reporter instances by name.
"""
from typing import Any

import structlog

from gauntlet.exceptions import ConfigurationError
from gauntlet.reporters.collect import CollectingReporter
from gauntlet.reporters.json_lines import JsonLinesReporter
from gauntlet.reporters.log import LogReporter
from gauntlet.reporters.protocols import Reporter

log = structlog.get_logger("reporters.factory")

REPORTER_MAP: dict[str, type] = {
    "log": LogReporter,
    "json": JsonLinesReporter,
    "collect": CollectingReporter,
}


def get_reporter(reporter_name: str, **kwargs: Any) -> Reporter:
    """
    Factory function to get an instance of a Reporter.
    """
    reporter_key = reporter_name.lower()
    reporter_class = REPORTER_MAP.get(reporter_key)

    if not reporter_class:
        log.error("Unsupported reporter specified", reporter=reporter_name)
        raise ConfigurationError(
            f"Unsupported reporter: '{reporter_name}'. "
            f"Available reporters: {list(REPORTER_MAP.keys())}"
        )

    log.debug("Instantiating reporter", reporter=reporter_name)
    try:
        return reporter_class(**kwargs)
    except TypeError as e:
        log.error("Failed to instantiate reporter", reporter=reporter_name, error=str(e))
        raise ConfigurationError(f"Failed to initialize reporter '{reporter_name}': {e}") from e

# 🔼⚙️
