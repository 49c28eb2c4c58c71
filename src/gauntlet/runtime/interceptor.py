# src/gauntlet/runtime/interceptor.py

"""
Process-wide subscription to out-of-band failures.

One ErrorInterceptor instance is owned by each run. install() takes over the
event loop's exception handler and threading.excepthook; teardown() puts the
previous handlers back, so consecutive runs in one process never see each
other's signals.
"""

import asyncio
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Any

import structlog

from gauntlet.deferred import SIGNAL_KEY, SIGNAL_MULTIPLE, SIGNAL_UNOBSERVED
from gauntlet.results import ErrorKind, ErrorRecord, is_multiple_settlement
from gauntlet.telemetry import StructLogger

log: StructLogger = structlog.get_logger("runtime.interceptor")

SignalSink = Callable[[ErrorRecord], None]

_NEVER_RETRIEVED = "never retrieved"


def classify(context: dict[str, Any]) -> ErrorRecord | None:
    """
    Normalizes an asyncio exception-handler context into an ErrorRecord.

    Returns None for contexts that carry no exception (plain warnings from asyncio).
    """
    exc = context.get("exception")
    if exc is None:
        return None

    signal = context.get(SIGNAL_KEY)
    message = context.get("message", "")

    if signal == SIGNAL_MULTIPLE or is_multiple_settlement(exc):
        return ErrorRecord.from_exception(exc, ErrorKind.MULTIPLE_SETTLEMENT, multiple=True)
    if signal == SIGNAL_UNOBSERVED or (
        ("future" in context or "task" in context) and _NEVER_RETRIEVED in message
    ):
        return ErrorRecord.from_exception(exc, ErrorKind.UNHANDLED_REJECTION, rejection=True)
    return ErrorRecord.from_exception(exc, ErrorKind.UNCAUGHT_EXCEPTION)


class ErrorInterceptor:
    """Routes loop and thread level exceptions to a single sink."""

    def __init__(self) -> None:
        self._sink: SignalSink | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._previous_loop_handler: Any = None
        self._previous_thread_hook: Any = None
        self.signals_seen = 0

    @property
    def installed(self) -> bool:
        return self._loop is not None

    def install(self, loop: asyncio.AbstractEventLoop, sink: SignalSink) -> None:
        if self.installed:
            raise RuntimeError("ErrorInterceptor is already installed")
        self._loop = loop
        self._sink = sink
        self._previous_loop_handler = loop.get_exception_handler()
        loop.set_exception_handler(self._handle_loop_exception)
        self._previous_thread_hook = threading.excepthook
        threading.excepthook = self._handle_thread_exception
        log.debug("Error interceptor installed")

    def teardown(self) -> None:
        if not self.installed:
            return
        assert self._loop is not None
        self._loop.set_exception_handler(self._previous_loop_handler)
        # Only restore the thread hook if nobody replaced ours in the meantime.
        if threading.excepthook == self._handle_thread_exception:
            threading.excepthook = self._previous_thread_hook
        self._loop = None
        self._sink = None
        self._previous_loop_handler = None
        self._previous_thread_hook = None
        log.debug("Error interceptor torn down", signals_seen=self.signals_seen)

    @contextmanager
    def installed_on(self, loop: asyncio.AbstractEventLoop, sink: SignalSink) -> Iterator["ErrorInterceptor"]:
        self.install(loop, sink)
        try:
            yield self
        finally:
            self.teardown()

    def _deliver(self, record: ErrorRecord) -> None:
        self.signals_seen += 1
        log.debug("Out-of-band signal intercepted", kind=record.kind.value, error=record.message)
        if self._sink is None:
            # Queued from a thread before teardown; nobody is left to attribute it.
            log.error(
                "Out-of-band error arrived after the interceptor was torn down",
                kind=record.kind.value,
                error=record.message,
                location=str(record.location) if record.location else None,
            )
            return
        self._sink(record)

    def _handle_loop_exception(self, loop: asyncio.AbstractEventLoop, context: dict[str, Any]) -> None:
        record = classify(context)
        if record is None:
            log.warning("Event loop reported a problem", message=context.get("message"))
            return
        self._deliver(record)

    def _handle_thread_exception(self, args: threading.ExceptHookArgs) -> None:
        if args.exc_type is SystemExit or args.exc_value is None:
            return
        record = ErrorRecord.from_exception(args.exc_value, ErrorKind.UNCAUGHT_EXCEPTION)
        loop = self._loop
        if loop is None or loop.is_closed():
            log.error("Thread exception arrived with no run loop", thread=getattr(args.thread, "name", None))
            return
        # Hop onto the loop thread so attribution stays single-threaded.
        loop.call_soon_threadsafe(self._deliver, record)
