# src/gauntlet/runtime/execution.py

"""
Per-node execution state machine with its time budget.

Every attempt of a test or hook gets one NodeExecution. It moves from
PENDING to RUNNING when its body is invoked, and the first of
(settlement, failure, timeout) moves it out of RUNNING. Anything the body
produces afterwards is discarded. Out-of-band signals are different: they
are attributed through attribute() for as long as the node is not finalized.
"""

import asyncio
import inspect
from collections.abc import Callable
from enum import Enum, auto
from typing import TYPE_CHECKING, Any

import structlog

from gauntlet.deferred import SIGNAL_KEY, SIGNAL_MULTIPLE, Deferred
from gauntlet.exceptions import MultipleSettlementError, SkipSignal, TimeoutExceeded
from gauntlet.results import ErrorKind, ErrorRecord
from gauntlet.telemetry import StructLogger
from gauntlet.tree import ParamKind

if TYPE_CHECKING:
    from gauntlet.runtime.context import RunContext

log: StructLogger = structlog.get_logger("runtime.execution")


class NodeState(Enum):
    PENDING = auto()
    RUNNING = auto()
    SETTLED = auto()
    TIMED_OUT = auto()
    ERRORED = auto()


class NodeExecution:
    """Holds the state, timer and collected errors of one attempt."""

    def __init__(
        self,
        label: str,
        timeout_ms: float | None,
        slow_ms: float | None = None,
        loop: asyncio.AbstractEventLoop | None = None,
    ):
        self.label = label
        self.timeout_ms = timeout_ms or 0
        self.slow_ms = slow_ms
        self.retries_override: int | None = None
        self.state = NodeState.PENDING
        self.errors: list[ErrorRecord] = []
        self.skip_reason: str | None = None
        self.finalized = False
        self._loop = loop or asyncio.get_running_loop()
        self._outcome: asyncio.Future = self._loop.create_future()
        self._timer: asyncio.TimerHandle | None = None
        self._timer_started_at: float | None = None
        self._started_at: float | None = None
        self._ended_at: float | None = None
        self._log = log.bind(node=label)

    # --- Lifecycle ---

    def start(self) -> None:
        if self.state is not NodeState.PENDING:
            raise RuntimeError(f"Execution '{self.label}' already started")
        self.state = NodeState.RUNNING
        self._started_at = self._loop.time()
        self._arm_timer()
        self._log.debug("Node running", timeout_ms=self.timeout_ms)

    async def wait(self) -> NodeState:
        """Suspends until the node leaves RUNNING."""
        await asyncio.shield(self._outcome)
        return self.state

    def finalize(self) -> None:
        """Closes the attribution window. Nothing attaches after this."""
        self._cancel_timer()
        self.finalized = True
        if self._ended_at is None:
            self._ended_at = self._loop.time()
        self._log.debug("Node finalized", state=self.state.name, errors=len(self.errors))

    # --- Timer ---

    def _arm_timer(self) -> None:
        self._cancel_timer()
        if self.timeout_ms > 0:
            self._timer_started_at = self._loop.time()
            self._timer = self._loop.call_later(self.timeout_ms / 1000, self._on_timeout)

    def _cancel_timer(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    def reset_timeout(self, timeout_ms: float) -> None:
        """Changes the budget and re-arms the timer from now (0 disables it)."""
        self.timeout_ms = timeout_ms
        if self.state is NodeState.RUNNING:
            self._arm_timer()
            self._log.debug("Timeout reset", timeout_ms=timeout_ms)

    def _on_timeout(self) -> None:
        self._timer = None
        if self.state is NodeState.RUNNING:
            self._time_out()

    def _budget_spent(self) -> bool:
        if self.timeout_ms <= 0 or self._timer_started_at is None:
            return False
        return (self._loop.time() - self._timer_started_at) * 1000 >= self.timeout_ms

    def _time_out(self) -> None:
        elapsed = self.elapsed_ms
        exc = TimeoutExceeded(
            f"Timeout of {self.timeout_ms:g}ms exceeded (elapsed {elapsed:.0f}ms) in {self.label}",
            elapsed_ms=elapsed,
            timeout_ms=self.timeout_ms,
        )
        self.errors.append(ErrorRecord.from_exception(exc, ErrorKind.TIMEOUT))
        self._leave_running(NodeState.TIMED_OUT)
        self._log.info("Node timed out", elapsed_ms=round(elapsed), timeout_ms=self.timeout_ms)

    # --- Transitions ---

    def _leave_running(self, state: NodeState) -> None:
        self.state = state
        self._ended_at = self._loop.time()
        self._cancel_timer()
        if not self._outcome.done():
            self._outcome.set_result(state)

    def settle(self) -> bool:
        """The body reported success. Returns False when the outcome is discarded."""
        if self.state is not NodeState.RUNNING:
            self._log.debug("Discarding late completion", state=self.state.name)
            return False
        if self._budget_spent():
            # Timeout wins a same-tick race with completion.
            self._time_out()
            return False
        self._leave_running(NodeState.SETTLED)
        return True

    def fail(self, record: ErrorRecord) -> bool:
        """The body itself reported failure. Discarded once the node left RUNNING."""
        if self.state is not NodeState.RUNNING:
            self._log.debug("Discarding late failure", state=self.state.name, error=record.message)
            return False
        if self._budget_spent():
            self._time_out()
            return False
        self.errors.append(record)
        self._leave_running(NodeState.ERRORED)
        return True

    def skip(self, reason: str | None) -> bool:
        if self.state is not NodeState.RUNNING:
            return False
        self.skip_reason = reason or "skipped at runtime"
        self._leave_running(NodeState.SETTLED)
        return True

    def attribute(self, record: ErrorRecord) -> bool:
        """Attaches an out-of-band error. Fails the node even if it already settled."""
        if self.finalized:
            return False
        self.errors.append(record)
        if self.state in (NodeState.RUNNING, NodeState.SETTLED):
            if self.state is NodeState.SETTLED:
                self.state = NodeState.ERRORED
            else:
                self._leave_running(NodeState.ERRORED)
        self._log.info("Error attributed to node", kind=record.kind.value, error=record.message)
        return True

    # --- Derived ---

    @property
    def passed(self) -> bool:
        return self.state is NodeState.SETTLED and not self.errors

    @property
    def skipped(self) -> bool:
        return self.passed and self.skip_reason is not None

    @property
    def elapsed_ms(self) -> float:
        if self._started_at is None:
            return 0.0
        end = self._ended_at if self._ended_at is not None else self._loop.time()
        return (end - self._started_at) * 1000

    @property
    def is_slow(self) -> bool:
        return bool(self.slow_ms) and self.elapsed_ms > self.slow_ms

    # --- Body invocation ---

    def invoke(self, body: Callable[..., Any], param: ParamKind, ctx: "RunContext") -> None:
        """Calls the body according to its declared shape and wires up its outcome."""
        done: CompletionHandle | None = None
        if param is ParamKind.CALLBACK:
            done = CompletionHandle(self, self._loop)
            args: tuple[Any, ...] = (done,)
        elif param is ParamKind.CONTEXT:
            args = (ctx,)
        else:
            args = ()

        try:
            returned = body(*args)
        except SkipSignal as s:
            self.skip(s.reason)
            return
        except Exception as e:
            if done is not None and done.calls:
                # done() already reported an outcome; the raise is a second one.
                record = ErrorRecord.from_exception(e, ErrorKind.SWALLOWED_THEN_THROWN, display=True)
                self._log.warning("Body threw after signalling completion", error=str(e))
                self.attribute(record)
            else:
                self.fail(ErrorRecord.from_failure(e))
            return

        if inspect.isawaitable(returned):
            if done is not None:
                # Both a completion handle and an awaitable: ambiguous, refuse it.
                _discard(returned)
                self.fail(
                    ErrorRecord(
                        kind=ErrorKind.ASSERTION,
                        message="Resolution method is overspecified: declare a callback or return an awaitable, not both",
                    )
                )
                return
            if isinstance(returned, Deferred):
                future = returned.as_future()
            else:
                future = asyncio.ensure_future(returned, loop=self._loop)
            future.add_done_callback(self._on_awaited)
        elif done is None:
            self.settle()

    def _on_awaited(self, future: asyncio.Future) -> None:
        if future.cancelled():
            self.fail(ErrorRecord(kind=ErrorKind.ASSERTION, message=f"{self.label} was cancelled"))
            return
        exc = future.exception()
        if exc is None:
            self.settle()
        elif isinstance(exc, SkipSignal):
            self.skip(exc.reason)
        else:
            self.fail(ErrorRecord.from_failure(exc))


class CompletionHandle:
    """The single-use `done` callable handed to CALLBACK bodies."""

    def __init__(self, execution: NodeExecution, loop: asyncio.AbstractEventLoop):
        self._execution = execution
        self._loop = loop
        self.calls = 0
        self.succeeded = False

    def __call__(self, error: Any = None) -> None:
        self.calls += 1
        if self.calls > 1:
            self._report_multiple(error)
            return
        if error is None:
            self.succeeded = True
            self._execution.settle()
        elif isinstance(error, SkipSignal):
            self._execution.skip(error.reason)
        else:
            self._execution.fail(ErrorRecord.from_value(error))

    def _report_multiple(self, error: Any) -> None:
        exc = MultipleSettlementError(f"done() called multiple times in {self._execution.label}")
        if isinstance(error, BaseException):
            exc.__cause__ = error
        record = ErrorRecord.from_exception(exc, ErrorKind.MULTIPLE_SETTLEMENT, multiple=True)
        if self._execution.attribute(record):
            return
        # The owning node is gone; let the interceptor attribute it.
        self._loop.call_exception_handler(
            {"message": "Completion handle called more than once", "exception": exc, SIGNAL_KEY: SIGNAL_MULTIPLE}
        )


def _discard(awaitable: Any) -> None:
    close = getattr(awaitable, "close", None)
    if inspect.iscoroutine(awaitable) and close is not None:
        close()
