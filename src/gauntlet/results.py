# src/gauntlet/results.py

"""
Result and error-record models produced by a run.

These are the data that cross the reporter boundary. The engine never renders
them; it only guarantees the originating detail (message, location, stack)
survives until a reporter sees it.
"""

import asyncio
import traceback
from enum import Enum
from typing import Any

from attrs import define, evolve, field

from gauntlet.exceptions import MultipleSettlementError, RejectedValue


class Status(Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    PENDING = "pending"


class ErrorKind(Enum):
    """Classification of every failure the engine can attribute."""

    ASSERTION = "assertion"
    TIMEOUT = "timeout"
    HOOK_FAILURE = "hook_failure"
    UNCAUGHT_EXCEPTION = "uncaught_exception"
    UNHANDLED_REJECTION = "unhandled_rejection"
    MULTIPLE_SETTLEMENT = "multiple_settlement"
    SWALLOWED_THEN_THROWN = "swallowed_then_thrown"

    @property
    def is_out_of_band(self) -> bool:
        return self in _OUT_OF_BAND_KINDS


_OUT_OF_BAND_KINDS = frozenset(
    {ErrorKind.UNCAUGHT_EXCEPTION, ErrorKind.UNHANDLED_REJECTION, ErrorKind.MULTIPLE_SETTLEMENT}
)


def is_multiple_settlement(exc: BaseException) -> bool:
    """A future or deferred was settled twice, wherever the misuse surfaced."""
    return isinstance(exc, asyncio.InvalidStateError | MultipleSettlementError)


@define(frozen=True, slots=True)
class SourceLocation:
    filename: str
    lineno: int | None
    function: str | None = None

    def __str__(self) -> str:
        where = f"{self.filename}:{self.lineno}" if self.lineno is not None else self.filename
        return f"{where} in {self.function}" if self.function else where


@define(frozen=True, slots=True)
class ErrorRecord:
    """A classified failure with enough detail to point at its origin."""

    kind: ErrorKind
    message: str
    error_type: str | None = field(default=None)
    location: SourceLocation | None = field(default=None)
    stack: str | None = field(default=None)
    raw_value: Any = field(default=None, repr=False)
    uncaught: bool = field(default=False)
    rejection: bool = field(default=False)
    multiple: bool = field(default=False)
    display: bool = field(default=False)
    exception: BaseException | None = field(default=None, repr=False, eq=False)

    @classmethod
    def from_exception(cls, exc: BaseException, kind: ErrorKind = ErrorKind.ASSERTION, **flags: Any) -> "ErrorRecord":
        """Builds a record from an exception, keeping its traceback location."""
        location = None
        frames = traceback.extract_tb(exc.__traceback__) if exc.__traceback__ else []
        if frames:
            last = frames[-1]
            location = SourceLocation(filename=last.filename, lineno=last.lineno, function=last.name)
        stack = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__))
        if isinstance(exc, RejectedValue):
            flags.setdefault("raw_value", exc.value)
        flags.setdefault("uncaught", kind.is_out_of_band)
        return cls(
            kind=kind,
            message=str(exc) or type(exc).__name__,
            error_type=type(exc).__name__,
            location=location,
            stack=stack,
            exception=exc,
            **flags,
        )

    @classmethod
    def from_failure(cls, exc: BaseException, kind: ErrorKind = ErrorKind.ASSERTION) -> "ErrorRecord":
        """Like from_exception, but double settlement is always MULTIPLE_SETTLEMENT."""
        if is_multiple_settlement(exc):
            return cls.from_exception(exc, ErrorKind.MULTIPLE_SETTLEMENT, multiple=True)
        return cls.from_exception(exc, kind)

    @classmethod
    def from_value(cls, value: Any, kind: ErrorKind = ErrorKind.ASSERTION, **flags: Any) -> "ErrorRecord":
        """Builds a record for a failure signalled with something that is not an exception."""
        if isinstance(value, BaseException):
            return cls.from_exception(value, kind, **flags)
        flags.setdefault("uncaught", kind.is_out_of_band)
        return cls(kind=kind, message=f"non-exception value signalled as failure: {value!r}", raw_value=value, **flags)

    def with_kind(self, kind: ErrorKind, **flags: Any) -> "ErrorRecord":
        """Returns a copy reclassified as another kind."""
        return evolve(self, kind=kind, **flags)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "error_type": self.error_type,
            "location": str(self.location) if self.location else None,
            "stack": self.stack,
            "raw_value": repr(self.raw_value) if self.raw_value is not None else None,
            "uncaught": self.uncaught,
            "rejection": self.rejection,
            "multiple": self.multiple,
            "display": self.display,
        }


@define(slots=True)
class TestResult:
    """Final outcome of one included test, after all attempts."""

    __test__ = False  # not a pytest test class

    title: str
    full_title: str
    status: Status
    duration_ms: float = field(default=0.0)
    errors: list[ErrorRecord] = field(factory=list)
    attempts: int = field(default=0)
    slow: bool = field(default=False)
    pending_reason: str | None = field(default=None)

    @property
    def passed(self) -> bool:
        return self.status is Status.PASSED

    @property
    def failed(self) -> bool:
        return self.status is Status.FAILED

    def to_dict(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "full_title": self.full_title,
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 3),
            "attempts": self.attempts,
            "slow": self.slow,
            "pending_reason": self.pending_reason,
            "errors": [e.to_dict() for e in self.errors],
        }


@define(slots=True)
class RunSummary:
    """Aggregate counts and collected errors for a whole run."""

    results: list[TestResult] = field(factory=list)
    hook_errors: list[ErrorRecord] = field(factory=list)
    uncaught_errors: list[ErrorRecord] = field(factory=list)
    suites: int = field(default=0)
    duration_ms: float = field(default=0.0)
    bailed: bool = field(default=False)

    @property
    def tests(self) -> int:
        return len(self.results)

    @property
    def passes(self) -> int:
        return sum(1 for r in self.results if r.status is Status.PASSED)

    @property
    def failures(self) -> int:
        return sum(1 for r in self.results if r.status is Status.FAILED)

    @property
    def pending(self) -> int:
        return sum(1 for r in self.results if r.status in (Status.PENDING, Status.SKIPPED))

    @property
    def exit_code(self) -> int:
        """Zero iff every included test passed or was pending and nothing went unattributed."""
        if self.failures or self.hook_errors or self.uncaught_errors:
            return 1
        return 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "tests": self.tests,
            "passes": self.passes,
            "failures": self.failures,
            "pending": self.pending,
            "suites": self.suites,
            "duration_ms": round(self.duration_ms, 3),
            "bailed": self.bailed,
            "exit_code": self.exit_code,
            "hook_errors": [e.to_dict() for e in self.hook_errors],
            "uncaught_errors": [e.to_dict() for e in self.uncaught_errors],
        }

# 🔼⚙️
