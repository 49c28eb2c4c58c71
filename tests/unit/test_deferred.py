#
# tests/unit/test_deferred.py
#
"""
Tests for Deferred settlement and its misuse reports.
"""

import asyncio
from contextlib import contextmanager

import pytest

from gauntlet.deferred import SIGNAL_KEY, SIGNAL_MULTIPLE, SIGNAL_UNOBSERVED, Deferred
from gauntlet.exceptions import MultipleSettlementError, RejectedValue


@contextmanager
def loop_reports():
    """Collects every context passed to the running loop's exception handler."""
    reports: list[dict] = []
    loop = asyncio.get_running_loop()
    previous = loop.get_exception_handler()
    loop.set_exception_handler(lambda _loop, context: reports.append(context))
    try:
        yield reports
    finally:
        loop.set_exception_handler(previous)


@pytest.mark.asyncio
class TestDeferred:
    async def test_resolve_and_await(self) -> None:
        deferred = Deferred()
        deferred.resolve(42)
        assert deferred.settled
        assert await deferred == 42

    async def test_reject_with_non_exception(self) -> None:
        deferred = Deferred()
        deferred.reject("nope")
        with pytest.raises(RejectedValue) as exc_info:
            await deferred
        assert exc_info.value.value == "nope"

    async def test_executor_resolves(self) -> None:
        deferred = Deferred(lambda resolve, reject: resolve("ready"))
        assert deferred.result() == "ready"

    async def test_executor_raising_before_settling_rejects(self) -> None:
        def executor(resolve, reject):
            raise KeyError("missing")

        deferred = Deferred(executor)
        with pytest.raises(KeyError):
            await deferred

    async def test_resolve_twice_is_reported(self) -> None:
        with loop_reports() as reports:
            deferred = Deferred()
            deferred.resolve(1)
            deferred.resolve(2)

        assert deferred.settle_count == 2
        assert await deferred == 1
        assert len(reports) == 1
        assert reports[0][SIGNAL_KEY] == SIGNAL_MULTIPLE
        assert isinstance(reports[0]["exception"], MultipleSettlementError)
        assert "already resolved" in str(reports[0]["exception"])

    async def test_executor_raising_after_resolve_is_reported(self) -> None:
        def executor(resolve, reject):
            resolve("done")
            raise ValueError("too late")

        with loop_reports() as reports:
            deferred = Deferred(executor)

        assert deferred.result() == "done"
        assert [r[SIGNAL_KEY] for r in reports] == [SIGNAL_MULTIPLE]
        assert isinstance(reports[0]["exception"].__cause__, ValueError)

    async def test_unobserved_rejection_is_reported(self) -> None:
        with loop_reports() as reports:
            Deferred().reject(ValueError("lost"))
            await asyncio.sleep(0)

        assert len(reports) == 1
        assert reports[0][SIGNAL_KEY] == SIGNAL_UNOBSERVED
        assert str(reports[0]["exception"]) == "lost"

    async def test_observed_rejection_is_not_reported(self) -> None:
        with loop_reports() as reports:
            deferred = Deferred()
            deferred.reject(ValueError("seen"))
            with pytest.raises(ValueError):
                await deferred
            await asyncio.sleep(0)

        assert reports == []
        assert deferred.observed
