# src/gauntlet/deferred.py

"""
A single-settlement deferred result that reports its own misuse.

Unlike a bare asyncio.Future, a Deferred never raises when settled twice.
The extra settlement, and any rejection nobody observes, is reported to the
event loop's exception handler, where the run's ErrorInterceptor picks it up.
"""

import asyncio
from collections.abc import Callable, Generator
from typing import Any

import structlog

from gauntlet.exceptions import MultipleSettlementError, RejectedValue
from gauntlet.telemetry import StructLogger

log: StructLogger = structlog.get_logger("deferred")

# Keys placed in the loop exception-handler context so the interceptor can classify it.
SIGNAL_KEY = "gauntlet_signal"
SIGNAL_MULTIPLE = "multiple_settlement"
SIGNAL_UNOBSERVED = "unobserved_rejection"

Executor = Callable[[Callable[[Any], None], Callable[[Any], None]], Any]


class Deferred:
    """
    Awaitable handle settled exactly once with resolve() or reject().

    Args:
        executor: Optional callable run immediately with (resolve, reject).
            If it raises before settling, the deferred is rejected with the
            exception; if it raises after settling, that is reported as a
            multiple settlement.
        loop: Loop to bind to; defaults to the running loop.
    """

    def __init__(self, executor: Executor | None = None, loop: asyncio.AbstractEventLoop | None = None):
        self._loop = loop or asyncio.get_running_loop()
        self._future: asyncio.Future = self._loop.create_future()
        self._observed = False
        self.settle_count = 0
        if executor is not None:
            try:
                executor(self.resolve, self.reject)
            except Exception as e:
                if self.settled:
                    self._report_multiple("raise", e)
                else:
                    self.reject(e)

    @property
    def settled(self) -> bool:
        return self._future.done()

    @property
    def observed(self) -> bool:
        return self._observed

    def resolve(self, value: Any = None) -> None:
        self.settle_count += 1
        if self.settled:
            self._report_multiple("resolve", value)
            return
        self._future.set_result(value)

    def reject(self, error: Any) -> None:
        self.settle_count += 1
        if self.settled:
            self._report_multiple("reject", error)
            return
        exc = error if isinstance(error, BaseException) else RejectedValue(error)
        self._future.set_exception(exc)
        self._loop.call_soon(self._check_observed)

    def add_done_callback(self, fn: Callable[["Deferred"], Any]) -> None:
        self._observed = True
        self._future.add_done_callback(lambda _fut: fn(self))

    def as_future(self) -> asyncio.Future:
        """Returns the underlying future and marks the deferred observed."""
        self._observed = True
        return self._future

    def result(self) -> Any:
        self._observed = True
        return self._future.result()

    def __await__(self) -> Generator[Any, None, Any]:
        self._observed = True
        return self._future.__await__()

    def _check_observed(self) -> None:
        if self._observed:
            return
        # Retrieve it so asyncio does not also log "exception was never retrieved".
        exc = self._future.exception()
        log.debug("Deferred rejection was not observed", error=str(exc))
        self._loop.call_exception_handler(
            {
                "message": "Deferred rejection was never observed",
                "exception": exc,
                "deferred": self,
                SIGNAL_KEY: SIGNAL_UNOBSERVED,
            }
        )

    def _report_multiple(self, how: str, value: Any) -> None:
        previous = "rejected" if self._future.exception() is not None else "resolved"
        err = MultipleSettlementError(f"Deferred {how} called after it was already {previous}")
        if isinstance(value, BaseException):
            err.__cause__ = value
        log.debug("Deferred settled more than once", how=how, previous=previous, count=self.settle_count)
        self._loop.call_exception_handler(
            {
                "message": "Deferred settled more than once",
                "exception": err,
                "deferred": self,
                "value": value,
                SIGNAL_KEY: SIGNAL_MULTIPLE,
            }
        )

    def __repr__(self) -> str:
        state = "pending"
        if self.settled:
            state = "rejected" if self._future.exception() is not None else "resolved"
        return f"<Deferred {state} settle_count={self.settle_count}>"
