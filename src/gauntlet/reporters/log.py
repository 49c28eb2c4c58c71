#
# src/gauntlet/reporters/log.py
#
"""
Reporter that turns events into structured log lines.
"""
import structlog

from gauntlet.results import Status
from gauntlet.runtime.events import Event, EventType
from gauntlet.telemetry import StructLogger

log: StructLogger = structlog.get_logger("reporters.log")


class LogReporter:
    """Emits one structlog entry per interesting event."""

    def __init__(self, logger: StructLogger | None = None):
        self._log = logger or log

    def on_event(self, event: Event) -> None:
        if event.type is EventType.RUN_START:
            self._log.info("Run started", total=event.total)
        elif event.type is EventType.SUITE_START and event.suite:
            self._log.info("Suite", suite=event.suite)
        elif event.type is EventType.TEST_PASS:
            result = event.result
            self._log.info(
                "Passed",
                emoji="✅",
                test=event.test,
                duration_ms=round(result.duration_ms, 1) if result else None,
                slow=result.slow if result else None,
            )
        elif event.type is EventType.TEST_FAIL:
            error = event.error
            self._log.error(
                "Failed",
                test=event.test,
                kind=error.kind.value if error else None,
                error=error.message if error else None,
                location=str(error.location) if error and error.location else None,
            )
        elif event.type is EventType.TEST_PENDING:
            status = event.result.status if event.result else Status.PENDING
            self._log.info("Pending", emoji="⏸️", test=event.test, status=status.value)
        elif event.type is EventType.TEST_RETRY:
            self._log.warning("Retrying", test=event.test, attempt=event.attempt)
        elif event.type is EventType.HOOK_FAIL:
            self._log.error("Hook failed", hook=event.hook, error=event.error.message if event.error else None)
        elif event.type is EventType.RUN_END and event.summary is not None:
            summary = event.summary
            self._log.info(
                "Run finished",
                emoji="🏁",
                passes=summary.passes,
                failures=summary.failures,
                pending=summary.pending,
                uncaught=len(summary.uncaught_errors),
                duration_ms=round(summary.duration_ms, 1),
            )
