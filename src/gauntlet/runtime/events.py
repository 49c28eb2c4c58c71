# src/gauntlet/runtime/events.py

"""
The linear lifecycle event stream emitted by the scheduler.
"""

import itertools
from collections.abc import Iterable
from enum import Enum
from typing import TYPE_CHECKING, Any

import structlog
from attrs import define, field

from gauntlet.results import ErrorRecord, RunSummary, TestResult
from gauntlet.telemetry import StructLogger

if TYPE_CHECKING:
    from gauntlet.reporters.protocols import Reporter

log: StructLogger = structlog.get_logger("runtime.events")


class EventType(Enum):
    RUN_START = "run start"
    SUITE_START = "suite start"
    SUITE_END = "suite end"
    TEST_START = "test start"
    TEST_PASS = "test pass"
    TEST_FAIL = "test fail"
    TEST_PENDING = "test pending"
    TEST_RETRY = "test retry"
    TEST_END = "test end"
    HOOK_FAIL = "hook fail"
    RUN_END = "run end"


@define(frozen=True, slots=True)
class Event:
    """One lifecycle event. `seq` increases monotonically within a run."""

    type: EventType
    seq: int
    suite: str | None = field(default=None)
    test: str | None = field(default=None)
    hook: str | None = field(default=None)
    attempt: int | None = field(default=None)
    total: int | None = field(default=None)
    result: TestResult | None = field(default=None)
    error: ErrorRecord | None = field(default=None)
    summary: RunSummary | None = field(default=None)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"event": self.type.value, "seq": self.seq}
        for name in ("suite", "test", "hook", "attempt", "total"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        if self.result is not None:
            data["result"] = self.result.to_dict()
        if self.error is not None:
            data["error"] = self.error.to_dict()
        if self.summary is not None:
            data["summary"] = self.summary.to_dict()
        return data


class EventEmitter:
    """Fans events out to reporters in emission order."""

    def __init__(self, reporters: Iterable["Reporter"] = ()):
        self.reporters = list(reporters)
        self._seq = itertools.count()
        log.debug("EventEmitter initialized", reporters=[type(r).__name__ for r in self.reporters])

    def emit(self, event_type: EventType, **payload: Any) -> Event:
        event = Event(type=event_type, seq=next(self._seq), **payload)
        for reporter in self.reporters:
            try:
                reporter.on_event(event)
            except Exception as e:
                # A broken reporter must never change the outcome of the run.
                log.warning(
                    "Reporter failed to handle event",
                    reporter=type(reporter).__name__,
                    event=event_type.value,
                    error=str(e),
                    exc_info=True,
                )
        return event
