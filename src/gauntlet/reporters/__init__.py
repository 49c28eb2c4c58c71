#
# src/gauntlet/reporters/__init__.py
#
"""
Pluggable event sinks for gauntlet runs.
"""
from .collect import CollectingReporter
from .factory import REPORTER_MAP, get_reporter
from .json_lines import JsonLinesReporter
from .log import LogReporter
from .protocols import Reporter

__all__ = [
    "REPORTER_MAP",
    "CollectingReporter",
    "JsonLinesReporter",
    "LogReporter",
    "Reporter",
    "get_reporter",
]
