# src/gauntlet/exceptions.py

"""
Custom exception hierarchy for gauntlet.

User test failures never surface as these; they are recorded as ErrorRecords.
These exceptions describe problems with the engine's own inputs or lifecycle.
"""


class GauntletError(Exception):
    """Base class for all gauntlet specific errors."""

    def __init__(self, message: str, details: Exception | None = None):
        self.details = details
        super().__init__(message)
        if details and hasattr(self, "add_note"):
            self.add_note(f"Original error: {type(details).__name__}: {details}")


class ConfigurationError(GauntletError):
    """Raised when run options or a config file are invalid."""

    pass


class DeclarationError(GauntletError):
    """Raised when the suite tree is declared incorrectly."""

    pass


class UncaughtSignalError(GauntletError):
    """Raised out of a run when an out-of-band error occurs and uncaught errors are allowed to propagate."""

    def __init__(self, message: str, error: BaseException | None = None):
        self.error = error
        super().__init__(message, details=error if isinstance(error, Exception) else None)


class SkipSignal(Exception):
    """Raised by RunContext.skip() to turn the running test into a pending one."""

    def __init__(self, reason: str | None = None):
        self.reason = reason
        super().__init__(reason or "skipped at runtime")


class MultipleSettlementError(GauntletError):
    """A deferred result or completion handle was settled more than once."""

    pass


class TimeoutExceeded(GauntletError):
    """A test or hook did not produce an outcome within its time budget."""

    def __init__(self, message: str, elapsed_ms: float, timeout_ms: float):
        self.elapsed_ms = elapsed_ms
        self.timeout_ms = timeout_ms
        super().__init__(message)


class RejectedValue(Exception):
    """Wraps a non-exception value a deferred result was rejected with."""

    def __init__(self, value: object):
        self.value = value
        super().__init__(f"rejected with non-exception value: {value!r}")

# 🔼⚙️
