# src/gauntlet/filtering.py

"""
Decides which declared tests are part of a run and which of those execute.
"""

import re

import structlog
from attrs import define, field

from gauntlet.config.models import NodeConfig, RunOptions
from gauntlet.telemetry import StructLogger
from gauntlet.tree import Mode, Suite, Test

log: StructLogger = structlog.get_logger("filtering")


def title_matches(full_title: str, options: RunOptions) -> bool:
    """Applies the grep/fgrep predicate, negated by the invert flag."""
    if options.grep is not None:
        matched = re.search(options.grep, full_title) is not None
    elif options.fgrep is not None:
        matched = options.fgrep in full_title
    else:
        return True
    return not matched if options.invert else matched


def effective_retries(test: Test, base: NodeConfig, override: int | None = None) -> int:
    """Retry budget of a test; a runtime override from the run context wins."""
    if override is not None:
        return override
    return test.effective_config(base).retries or 0


def _has_only(root: Suite) -> bool:
    for suite in root.iter_suites():
        if suite.mode is Mode.ONLY or any(t.mode is Mode.ONLY for t in suite.tests):
            return True
    return False


def _under_only(test: Test) -> bool:
    return test.mode is Mode.ONLY or any(s.mode is Mode.ONLY for s in test.suite.ancestors(include_self=True))


def _pending_reason(test: Test) -> str | None:
    if test.mode is Mode.SKIP or any(s.mode is Mode.SKIP for s in test.suite.ancestors(include_self=True)):
        return "marked skip"
    if test.is_pending:
        return "no body"
    return None


@define(slots=True)
class RunPlan:
    """The pruned view of a tree that the scheduler walks."""

    root: Suite
    included: list[Test] = field(factory=list)
    pending_reasons: dict[int, str] = field(factory=dict)
    _included_ids: set[int] = field(factory=set, init=False, repr=False)
    _live_suites: set[int] = field(factory=set, init=False, repr=False)

    def __attrs_post_init__(self) -> None:
        self._included_ids = {id(t) for t in self.included}
        for test in self.included:
            for suite in test.suite.ancestors(include_self=True):
                self._live_suites.add(id(suite))

    def includes(self, test: Test) -> bool:
        return id(test) in self._included_ids

    def pending_reason(self, test: Test) -> str | None:
        return self.pending_reasons.get(id(test))

    def is_runnable(self, test: Test) -> bool:
        return self.includes(test) and id(test) not in self.pending_reasons

    def has_included(self, suite: Suite) -> bool:
        """True when the suite's subtree holds at least one included test."""
        return id(suite) in self._live_suites

    def included_under(self, suite: Suite) -> list[Test]:
        return [t for t in suite.iter_tests() if self.includes(t)]

    @property
    def runnable_count(self) -> int:
        return sum(1 for t in self.included if self.is_runnable(t))


def build_plan(root: Suite, options: RunOptions) -> RunPlan:
    """
    Resolves only/skip marks and the title filter into a RunPlan.

    With any ONLY mark in the tree the included set is exactly the ONLY tests plus
    tests under ONLY suites; otherwise every test is included. SKIP marks cascade
    from suites to descendants and make an included test pending. Tests rejected
    by the title filter are excluded altogether.
    """
    only_mode = _has_only(root)
    included: list[Test] = []
    pending: dict[int, str] = {}

    for test in root.iter_tests():
        if only_mode and not _under_only(test):
            continue
        if not title_matches(test.full_title, options):
            continue
        included.append(test)
        reason = _pending_reason(test)
        if reason:
            pending[id(test)] = reason

    plan = RunPlan(root=root, included=included, pending_reasons=pending)
    log.debug(
        "Run plan built",
        only_mode=only_mode,
        included=len(included),
        pending=len(pending),
        grep=options.grep,
        fgrep=options.fgrep,
        invert=options.invert,
    )
    return plan
