#
# config/__init__.py
#
"""
Configuration handling sub-package for gauntlet.

Exports the loading function and the run configuration models.
"""

from .loader import load_config
from .models import (
    DEFAULT_RETRIES,
    DEFAULT_SLOW_MS,
    DEFAULT_TIMEOUT_MS,
    NodeConfig,
    RunOptions,
)

__all__ = [
    "DEFAULT_RETRIES",
    "DEFAULT_SLOW_MS",
    "DEFAULT_TIMEOUT_MS",
    "NodeConfig",
    "RunOptions",
    "load_config",
]
