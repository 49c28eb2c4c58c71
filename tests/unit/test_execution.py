#
# tests/unit/test_execution.py
#
"""
Tests for the per-node state machine, its timer and body invocation.
"""

import asyncio
import time

import pytest

from gauntlet.deferred import Deferred
from gauntlet.results import ErrorKind, ErrorRecord
from gauntlet.runtime.context import RunContext
from gauntlet.runtime.execution import NodeExecution, NodeState
from gauntlet.tree import ParamKind


def _started(timeout_ms: float = 2000, slow_ms: float | None = None) -> NodeExecution:
    execution = NodeExecution("node", timeout_ms=timeout_ms, slow_ms=slow_ms)
    execution.start()
    return execution


def _invoke(execution: NodeExecution, body, param: ParamKind = ParamKind.NONE) -> RunContext:
    ctx = RunContext(execution, None)
    execution.invoke(body, param, ctx)
    return ctx


@pytest.mark.asyncio
class TestStateMachine:
    async def test_settle(self) -> None:
        execution = _started()
        assert execution.settle() is True
        assert await execution.wait() is NodeState.SETTLED
        assert execution.passed

    async def test_cannot_start_twice(self) -> None:
        execution = _started()
        with pytest.raises(RuntimeError):
            execution.start()

    async def test_timer_fires(self) -> None:
        execution = _started(timeout_ms=10)
        assert await execution.wait() is NodeState.TIMED_OUT
        assert execution.errors[0].kind is ErrorKind.TIMEOUT
        assert "Timeout of 10ms exceeded" in execution.errors[0].message
        # A completion arriving after the timeout is discarded.
        assert execution.settle() is False
        assert execution.state is NodeState.TIMED_OUT

    async def test_timeout_wins_same_tick_race(self) -> None:
        execution = _started(timeout_ms=10)
        time.sleep(0.03)  # block the loop so the timer cannot run first
        assert execution.settle() is False
        assert execution.state is NodeState.TIMED_OUT
        assert [e.kind for e in execution.errors] == [ErrorKind.TIMEOUT]

    async def test_zero_timeout_disables_timer(self) -> None:
        execution = _started(timeout_ms=0)
        await asyncio.sleep(0.02)
        assert execution.state is NodeState.RUNNING
        assert execution.settle() is True

    async def test_reset_timeout_rearms_from_now(self) -> None:
        execution = _started(timeout_ms=10)
        execution.reset_timeout(500)
        await asyncio.sleep(0.03)
        assert execution.state is NodeState.RUNNING
        execution.settle()
        execution.finalize()

    async def test_attribute_until_finalized(self) -> None:
        execution = _started()
        execution.settle()
        record = ErrorRecord(kind=ErrorKind.UNCAUGHT_EXCEPTION, message="late", uncaught=True)

        assert execution.attribute(record) is True
        assert execution.state is NodeState.ERRORED
        assert not execution.passed

        execution.finalize()
        assert execution.attribute(record) is False
        assert execution.errors == [record]

    async def test_slow_threshold(self) -> None:
        execution = _started(slow_ms=1)
        time.sleep(0.005)
        execution.settle()
        assert execution.is_slow
        assert execution.elapsed_ms >= 1


@pytest.mark.asyncio
class TestInvoke:
    async def test_sync_body_passes(self) -> None:
        execution = _started()
        _invoke(execution, lambda: None)
        assert execution.passed

    async def test_sync_body_raises(self) -> None:
        def body():
            raise AssertionError("expected 1 to equal 2")

        execution = _started()
        _invoke(execution, body)
        assert execution.state is NodeState.ERRORED
        error = execution.errors[0]
        assert error.kind is ErrorKind.ASSERTION
        assert error.message == "expected 1 to equal 2"
        assert error.location is not None and error.location.function == "body"

    async def test_coroutine_body(self) -> None:
        async def body():
            await asyncio.sleep(0)
            raise ValueError("async failure")

        execution = _started()
        _invoke(execution, body)
        await execution.wait()
        assert execution.errors[0].message == "async failure"

    async def test_returned_deferred(self) -> None:
        execution = _started()
        _invoke(execution, lambda ctx: ctx.deferred(lambda resolve, reject: resolve()), ParamKind.CONTEXT)
        assert await execution.wait() is NodeState.SETTLED

    async def test_callback_with_error_value(self) -> None:
        execution = _started()
        _invoke(execution, lambda done: done("bad"), ParamKind.CALLBACK)
        error = execution.errors[0]
        assert error.raw_value == "bad"
        assert "non-exception value" in error.message

    async def test_callback_called_twice(self) -> None:
        def body(done):
            done()
            done()

        execution = _started()
        _invoke(execution, body, ParamKind.CALLBACK)
        assert execution.state is NodeState.ERRORED
        assert execution.errors[0].kind is ErrorKind.MULTIPLE_SETTLEMENT
        assert execution.errors[0].multiple

    async def test_done_then_throw(self) -> None:
        def body(done):
            done()
            raise RuntimeError("thrown after done")

        execution = _started()
        _invoke(execution, body, ParamKind.CALLBACK)
        error = execution.errors[0]
        assert error.kind is ErrorKind.SWALLOWED_THEN_THROWN
        assert error.display
        assert not execution.passed

    async def test_failed_done_then_throw_keeps_both(self) -> None:
        def body(done):
            done(ValueError("first"))
            raise RuntimeError("second")

        execution = _started()
        _invoke(execution, body, ParamKind.CALLBACK)
        assert execution.state is NodeState.ERRORED
        assert [e.kind for e in execution.errors] == [ErrorKind.ASSERTION, ErrorKind.SWALLOWED_THEN_THROWN]
        assert [e.message for e in execution.errors] == ["first", "second"]

    async def test_invalid_state_raised_by_body(self) -> None:
        def body():
            future = asyncio.get_running_loop().create_future()
            future.set_result(1)
            future.set_result(2)

        execution = _started()
        _invoke(execution, body)
        error = execution.errors[0]
        assert error.kind is ErrorKind.MULTIPLE_SETTLEMENT
        assert error.multiple

    async def test_callback_and_awaitable_is_overspecified(self) -> None:
        async def body(done):
            done()

        execution = _started()
        _invoke(execution, body, ParamKind.CALLBACK)
        assert "overspecified" in execution.errors[0].message

    async def test_runtime_skip(self) -> None:
        execution = _started()
        _invoke(execution, lambda ctx: ctx.skip("not today"), ParamKind.CONTEXT)
        assert execution.skipped
        assert execution.skip_reason == "not today"

    async def test_context_is_inert_after_close(self) -> None:
        execution = _started(timeout_ms=100)
        ctx = _invoke(execution, lambda: None)
        ctx.close()
        assert ctx.timeout(5) == 100
        assert ctx.retries(3) is None
        assert not ctx.active

    async def test_deferred_from_context_is_plain_deferred(self) -> None:
        execution = _started()
        ctx = RunContext(execution, None)
        assert isinstance(ctx.deferred(), Deferred)
