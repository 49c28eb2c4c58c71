# src/gauntlet/runtime/context.py

"""
The run context handed to CONTEXT-shaped bodies.

A RunContext is only live while its node executes. Holding on to it and
mutating it later is a hazard: the calls are ignored and logged, and they
never affect another node.
"""

from typing import TYPE_CHECKING, NoReturn

import structlog

from gauntlet.deferred import Deferred, Executor
from gauntlet.exceptions import SkipSignal
from gauntlet.telemetry import StructLogger
from gauntlet.tree import Test

if TYPE_CHECKING:
    from gauntlet.runtime.execution import NodeExecution

log: StructLogger = structlog.get_logger("runtime.context")


class RunContext:
    """Mutators for the executing node: timeout, slow threshold, retries and skip."""

    def __init__(self, execution: "NodeExecution", test: Test | None):
        self._execution = execution
        self._test = test
        self._active = True

    @property
    def active(self) -> bool:
        return self._active

    @property
    def test(self) -> Test | None:
        """The current test, or None inside before-all/after-all hooks."""
        return self._test

    def _check_active(self, what: str) -> bool:
        if not self._active:
            log.warning(
                "Run context used after its node finished; call ignored",
                call=what,
                node=self._execution.label,
            )
        return self._active

    def timeout(self, timeout_ms: float | None = None) -> float:
        """Reads or sets the node's timeout. Setting it re-arms the timer from now."""
        if timeout_ms is not None and self._check_active("timeout"):
            if timeout_ms < 0:
                raise ValueError(f"timeout must be >= 0, got {timeout_ms}")
            self._execution.reset_timeout(timeout_ms)
        return self._execution.timeout_ms

    def slow(self, slow_ms: float | None = None) -> float | None:
        if slow_ms is not None and self._check_active("slow"):
            self._execution.slow_ms = slow_ms
        return self._execution.slow_ms

    def retries(self, count: int | None = None) -> int | None:
        """Overrides the retry budget of the current test."""
        if count is not None and self._check_active("retries"):
            if count < 0:
                raise ValueError(f"retries must be >= 0, got {count}")
            self._execution.retries_override = count
        return self._execution.retries_override

    def skip(self, reason: str | None = None) -> NoReturn:
        """Abandons the node; the test is reported as skipped."""
        raise SkipSignal(reason)

    def deferred(self, executor: Executor | None = None) -> Deferred:
        return Deferred(executor)

    def close(self) -> None:
        self._active = False

    def __repr__(self) -> str:
        return f"<RunContext node={self._execution.label!r} active={self._active}>"
