# src/gauntlet/runtime/scheduler.py

"""
Walks a suite tree and runs its hooks and tests.

The Runner owns one ErrorInterceptor and one Attributor per run. The
Attributor holds the single "current node" pointer: it is set right before
a body is invoked and cleared in the same step that finalizes the node, so a
signal is either attached to a live node or buffered, never attached to a
finished one.
"""

import asyncio
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from gauntlet.config.models import NodeConfig, RunOptions
from gauntlet.exceptions import GauntletError, UncaughtSignalError
from gauntlet.filtering import RunPlan, build_plan, effective_retries
from gauntlet.results import ErrorKind, ErrorRecord, RunSummary, Status, TestResult
from gauntlet.runtime.context import RunContext
from gauntlet.runtime.events import EventEmitter, EventType
from gauntlet.runtime.execution import NodeExecution
from gauntlet.runtime.interceptor import ErrorInterceptor
from gauntlet.telemetry import StructLogger
from gauntlet.tree import Hook, HookKind, ParamKind, Suite, Test, TreeBuilder

log: StructLogger = structlog.get_logger("runtime.scheduler")

# Loop turns granted after a node settles so already-queued callbacks can still
# deliver their errors to it before it is finalized.
SETTLE_TURNS = 2
UNCAUGHT_GROUP_TITLE = "uncaught errors outside any test"

FatalHandler = Callable[[ErrorRecord], None]

_OUTCOME_EVENTS = {
    Status.PASSED: EventType.TEST_PASS,
    Status.FAILED: EventType.TEST_FAIL,
    Status.SKIPPED: EventType.TEST_PENDING,
    Status.PENDING: EventType.TEST_PENDING,
}


class HookAbort(Exception):
    """Unwinds the walk up to the suite that owns a failed (or skipping) hook."""

    def __init__(self, suite: Suite, error: ErrorRecord | None, skip_reason: str | None = None):
        self.suite = suite
        self.error = error
        self.skip_reason = skip_reason
        super().__init__(error.message if error else skip_reason)


def exit_on_fatal(record: ErrorRecord) -> None:
    """Default handling of a signal that arrives when no run is active."""
    log.critical(
        "Out-of-band error with no active run; terminating",
        kind=record.kind.value,
        error=record.message,
        location=str(record.location) if record.location else None,
    )
    raise SystemExit(1)


class Attributor:
    """Maps each intercepted signal to the current node, or buffers it."""

    def __init__(self, fatal_handler: FatalHandler = exit_on_fatal):
        self.current: NodeExecution | None = None
        self.active = False
        self._fatal_handler = fatal_handler
        self._buffer: list[ErrorRecord] = []

    def deliver(self, record: ErrorRecord) -> None:
        if not self.active:
            self._fatal_handler(record)
            return
        current = self.current
        if current is not None and current.attribute(record):
            return
        log.warning("Buffering error raised outside any test", kind=record.kind.value, error=record.message)
        self._buffer.append(record)

    def drain(self) -> list[ErrorRecord]:
        buffered, self._buffer = self._buffer, []
        return buffered


class Runner:
    """Executes one frozen suite tree and streams lifecycle events."""

    def __init__(
        self,
        root: Suite,
        options: RunOptions | None = None,
        reporters: Iterable[Any] = (),
        interceptor: ErrorInterceptor | None = None,
        fatal_handler: FatalHandler = exit_on_fatal,
    ):
        self.root = root
        self.options = options or RunOptions()
        self.emitter = EventEmitter(reporters)
        self.interceptor = interceptor or ErrorInterceptor()
        self.attributor = Attributor(fatal_handler)
        self.summary = RunSummary()
        self.plan: RunPlan | None = None
        self._base: NodeConfig = self.options.defaults
        self._bailed = False
        self._finished: set[int] = set()
        self._abort_error: ErrorRecord | None = None
        self._walk_task: asyncio.Task | None = None
        self._started = False

    # --- Run lifecycle ---

    async def run(self) -> RunSummary:
        """Runs the whole tree. Raises UncaughtSignalError when allow_uncaught aborted it."""
        if self._started:
            raise GauntletError("A Runner instance can only run once")
        self._started = True
        loop = asyncio.get_running_loop()
        self.plan = build_plan(self.root, self.options)
        sink = self._abort_run if self.options.allow_uncaught else self.attributor.deliver
        started_at = loop.time()

        log.info("Run starting", tests=self.plan.runnable_count, bail=self.options.bail)
        self.interceptor.install(loop, sink)
        self.attributor.active = True
        try:
            self.emitter.emit(EventType.RUN_START, total=self.plan.runnable_count)
            self._walk_task = asyncio.create_task(self._run_suite(self.root))
            try:
                await self._walk_task
            except asyncio.CancelledError:
                if self._abort_error is None:
                    raise
            if self._abort_error is not None:
                raise UncaughtSignalError(
                    f"Run aborted by uncaught error: {self._abort_error.message}",
                    error=self._abort_error.exception,
                )

            await self._settle_loop()
            self._flush_uncaught()
            self.summary.duration_ms = (loop.time() - started_at) * 1000
            self.attributor.active = False
            self.emitter.emit(EventType.RUN_END, summary=self.summary)
        finally:
            self.attributor.active = False
            self.interceptor.teardown()

        log.info(
            "Run finished",
            passes=self.summary.passes,
            failures=self.summary.failures,
            pending=self.summary.pending,
            uncaught=len(self.summary.uncaught_errors),
            exit_code=self.summary.exit_code,
        )
        return self.summary

    def _abort_run(self, record: ErrorRecord) -> None:
        """Sink used when uncaught errors are allowed to crash the run."""
        if self._abort_error is not None:
            return
        log.critical("Uncaught error aborts the run", kind=record.kind.value, error=record.message)
        self._abort_error = record
        if self._walk_task is not None and not self._walk_task.done():
            self._walk_task.cancel()

    async def _settle_loop(self) -> None:
        for _ in range(SETTLE_TURNS):
            await asyncio.sleep(0)

    def _flush_uncaught(self) -> None:
        """Reports buffered signals as a trailing synthetic failure group."""
        errors = self.attributor.drain()
        if not errors:
            return
        self.summary.uncaught_errors.extend(errors)
        self.emitter.emit(EventType.SUITE_START, suite=UNCAUGHT_GROUP_TITLE)
        for index, record in enumerate(errors, start=1):
            title = f"uncaught error #{index}"
            result = TestResult(
                title=title,
                full_title=f"{UNCAUGHT_GROUP_TITLE} {title}",
                status=Status.FAILED,
                errors=[record],
            )
            self.emitter.emit(
                EventType.TEST_FAIL, suite=UNCAUGHT_GROUP_TITLE, test=result.full_title, result=result, error=record
            )
        self.emitter.emit(EventType.SUITE_END, suite=UNCAUGHT_GROUP_TITLE)

    # --- Suites ---

    async def _run_suite(self, suite: Suite) -> None:
        assert self.plan is not None
        if self._bailed or not self.plan.has_included(suite):
            return

        self.summary.suites += 1
        self.emitter.emit(EventType.SUITE_START, suite=suite.full_title)
        abort: HookAbort | None = None
        try:
            await self._run_before_all(suite)
            for test in suite.tests:
                if self._bailed:
                    break
                if self.plan.includes(test):
                    await self._run_test(test)
            for child in suite.suites:
                if self._bailed:
                    break
                await self._run_suite(child)
        except HookAbort as e:
            abort = e
            self._block_remaining(suite, e)

        await self._run_after_all(suite)
        self.emitter.emit(EventType.SUITE_END, suite=suite.full_title)

        if abort is not None and abort.suite is not suite:
            raise abort

    async def _run_before_all(self, suite: Suite) -> None:
        for hook in suite.hooks[HookKind.BEFORE_ALL]:
            skip_reason = await self._run_hook(hook, None)
            if skip_reason is not None:
                raise HookAbort(suite, None, skip_reason=skip_reason)

    async def _run_after_all(self, suite: Suite) -> None:
        # Cleanup always runs, even after a bail or an aborted subtree.
        for hook in suite.hooks[HookKind.AFTER_ALL]:
            try:
                await self._run_hook(hook, None)
            except HookAbort:
                log.debug("after all hook failed; continuing cleanup", suite=suite.full_title)

    def _block_remaining(self, suite: Suite, abort: HookAbort) -> None:
        """Reports every included, not yet finished test under the suite without running it."""
        assert self.plan is not None
        for test in self.plan.included_under(suite):
            if self._bailed:
                break
            if id(test) in self._finished:
                continue
            if abort.error is None:
                result = TestResult(
                    title=test.title,
                    full_title=test.full_title,
                    status=Status.SKIPPED,
                    pending_reason=abort.skip_reason,
                )
            else:
                result = TestResult(
                    title=test.title,
                    full_title=test.full_title,
                    status=Status.FAILED,
                    errors=[abort.error],
                    attempts=0,
                )
            self._finish_test(test, result)

    # --- Tests ---

    async def _run_test(self, test: Test) -> None:
        assert self.plan is not None
        pending_reason = self.plan.pending_reason(test)
        if pending_reason is not None:
            self._finish_test(
                test,
                TestResult(title=test.title, full_title=test.full_title, status=Status.PENDING, pending_reason=pending_reason),
            )
            return

        config = test.effective_config(self._base)
        chain = list(test.suite.ancestors(include_self=True))[::-1]  # root to leaf
        self.emitter.emit(EventType.TEST_START, suite=test.suite.full_title, test=test.full_title)
        test.attempts = 0

        while True:
            test.attempts += 1
            execution: NodeExecution | None = None
            abort: HookAbort | None = None
            skip_reason: str | None = None
            try:
                skip_reason = await self._run_each_hooks(chain, HookKind.BEFORE_EACH, test)
                if skip_reason is None:
                    assert test.body is not None
                    execution = await self._execute(test.full_title, test.body, test.param, config, test)
            except HookAbort as e:
                abort = e
            try:
                await self._run_each_hooks(chain[::-1], HookKind.AFTER_EACH, test)
            except HookAbort as e:
                abort = abort or e

            result = self._build_result(test, execution, abort, skip_reason)
            if result.failed and abort is None and self._has_retries_left(test, execution):
                log.info("Retrying test", test=test.full_title, attempt=test.attempts)
                if self.options.report_retries:
                    self.emitter.emit(
                        EventType.TEST_RETRY,
                        suite=test.suite.full_title,
                        test=test.full_title,
                        attempt=test.attempts,
                        result=result,
                        error=result.errors[0] if result.errors else None,
                    )
                continue
            break

        self._finish_test(test, result)
        if abort is not None:
            raise abort

    def _has_retries_left(self, test: Test, execution: NodeExecution | None) -> bool:
        override = execution.retries_override if execution is not None else None
        return test.attempts <= effective_retries(test, self._base, override)

    def _build_result(
        self,
        test: Test,
        execution: NodeExecution | None,
        abort: HookAbort | None,
        skip_reason: str | None,
    ) -> TestResult:
        errors = list(execution.errors) if execution is not None else []
        if abort is not None and abort.error is not None:
            errors.append(abort.error)
        if execution is not None and execution.skipped and not errors:
            skip_reason = execution.skip_reason

        if errors:
            status = Status.FAILED
        elif skip_reason is not None:
            status = Status.SKIPPED
        else:
            status = Status.PASSED

        return TestResult(
            title=test.title,
            full_title=test.full_title,
            status=status,
            duration_ms=execution.elapsed_ms if execution is not None else 0.0,
            errors=errors,
            attempts=test.attempts,
            slow=execution.is_slow if execution is not None and status is Status.PASSED else False,
            pending_reason=skip_reason if status is Status.SKIPPED else None,
        )

    def _finish_test(self, test: Test, result: TestResult) -> None:
        self._finished.add(id(test))
        self.summary.results.append(result)
        payload = {
            "suite": test.suite.full_title,
            "test": test.full_title,
            "attempt": result.attempts,
            "result": result,
        }
        self.emitter.emit(_OUTCOME_EVENTS[result.status], error=result.errors[0] if result.errors else None, **payload)
        self.emitter.emit(EventType.TEST_END, **payload)

        log.debug(
            "Test finished",
            test=test.full_title,
            status=result.status.value,
            attempts=result.attempts,
            duration_ms=round(result.duration_ms, 1),
        )
        if result.failed and self.options.bail and not self._bailed:
            log.warning("Bail enabled; stopping after first failure", test=test.full_title)
            self._bailed = True
            self.summary.bailed = True

    # --- Hooks ---

    async def _run_each_hooks(self, chain: list[Suite], kind: HookKind, test: Test) -> str | None:
        """Runs before/after-each hooks along the chain; returns a skip reason if one asked to skip."""
        for suite in chain:
            for hook in suite.hooks[kind]:
                skip_reason = await self._run_hook(hook, test)
                if skip_reason is not None and kind is HookKind.BEFORE_EACH:
                    return skip_reason
        return None

    async def _run_hook(self, hook: Hook, test: Test | None) -> str | None:
        label = hook.full_title if test is None else f'{hook.full_title} for "{test.title}"'
        config = hook.suite.effective_config(self._base)
        execution = await self._execute(label, hook.body, hook.param, config, test)
        if execution.passed:
            return execution.skip_reason

        original = execution.errors[0]
        record = original.with_kind(ErrorKind.HOOK_FAILURE, message=f"{label} failed: {original.message}")
        self.summary.hook_errors.append(record)
        self.emitter.emit(
            EventType.HOOK_FAIL,
            suite=hook.suite.full_title,
            hook=label,
            test=test.full_title if test is not None else None,
            error=record,
        )
        log.warning("Hook failed", hook=label, error=original.message, kind=original.kind.value)
        raise HookAbort(hook.suite, record)

    # --- Node execution ---

    async def _execute(
        self,
        label: str,
        body: Callable[..., Any],
        param: ParamKind,
        config: NodeConfig,
        test: Test | None,
    ) -> NodeExecution:
        execution = NodeExecution(label, timeout_ms=config.timeout_ms, slow_ms=config.slow_ms)
        ctx = RunContext(execution, test)
        self.attributor.current = execution
        try:
            execution.start()
            execution.invoke(body, param, ctx)
            await execution.wait()
            await self._settle_loop()
        finally:
            execution.finalize()
            ctx.close()
            if self.attributor.current is execution:
                self.attributor.current = None
        return execution


async def run_tree(
    root: Suite,
    options: RunOptions | None = None,
    reporters: Iterable[Any] = (),
) -> RunSummary:
    """Runs an already declared tree on the running loop."""
    return await Runner(root, options=options, reporters=reporters).run()


def run_declarations(
    declare: Callable[[TreeBuilder], Any],
    options: RunOptions | None = None,
    reporters: Iterable[Any] = (),
) -> RunSummary:
    """Declares a tree with `declare(builder)` and runs it on a fresh event loop."""
    builder = TreeBuilder()
    declare(builder)
    root = builder.freeze()
    return asyncio.run(run_tree(root, options=options, reporters=reporters))

# 🔼⚙️
