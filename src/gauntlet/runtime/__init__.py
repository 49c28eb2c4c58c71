#
# src/gauntlet/runtime/__init__.py
#
"""
Execution runtime: scheduling, timeouts, interception and the event stream.
"""
from .context import RunContext
from .events import Event, EventEmitter, EventType
from .execution import CompletionHandle, NodeExecution, NodeState
from .interceptor import ErrorInterceptor, classify
from .scheduler import Attributor, Runner, exit_on_fatal, run_declarations, run_tree

__all__ = [
    "Attributor",
    "CompletionHandle",
    "ErrorInterceptor",
    "Event",
    "EventEmitter",
    "EventType",
    "NodeExecution",
    "NodeState",
    "RunContext",
    "Runner",
    "classify",
    "exit_on_fatal",
    "run_declarations",
    "run_tree",
]
