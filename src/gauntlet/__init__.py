#
# src/gauntlet/__init__.py
#
"""
gauntlet: an asyncio test-execution engine.

Declare a tree with a TreeBuilder, run it with a Runner, and consume the
event stream with any Reporter.
"""
from .config import NodeConfig, RunOptions, load_config
from .deferred import Deferred
from .exceptions import (
    ConfigurationError,
    DeclarationError,
    GauntletError,
    MultipleSettlementError,
    SkipSignal,
    UncaughtSignalError,
)
from .results import ErrorKind, ErrorRecord, RunSummary, Status, TestResult
from .runtime import ErrorInterceptor, EventType, RunContext, Runner, run_declarations, run_tree
from .tree import HookKind, Mode, ParamKind, Suite, Test, TreeBuilder

__all__ = [
    "ConfigurationError",
    "DeclarationError",
    "Deferred",
    "ErrorInterceptor",
    "ErrorKind",
    "ErrorRecord",
    "EventType",
    "GauntletError",
    "HookKind",
    "Mode",
    "MultipleSettlementError",
    "NodeConfig",
    "ParamKind",
    "RunContext",
    "RunOptions",
    "RunSummary",
    "Runner",
    "SkipSignal",
    "Status",
    "Suite",
    "Test",
    "TestResult",
    "TreeBuilder",
    "load_config",
    "run_declarations",
    "run_tree",
]
