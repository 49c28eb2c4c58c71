#
# src/gauntlet/telemetry/__init__.py
#
"""
Logging and telemetry sub-package for gauntlet.
"""

from .logger import StructLogger, setup_logging

__all__ = ["StructLogger", "setup_logging"]
