#
# tests/unit/test_filtering.py
#
"""
Tests for only/skip resolution and title filtering.
"""

from gauntlet.config import RunOptions
from gauntlet.filtering import build_plan, title_matches
from gauntlet.tree import TreeBuilder


def _noop():
    pass


def _titles(plan):
    return [t.full_title for t in plan.included]


def test_title_matches_grep_fgrep_and_invert():
    assert title_matches("math adds numbers", RunOptions())
    assert title_matches("math adds numbers", RunOptions(grep=r"add\w"))
    assert not title_matches("math adds numbers", RunOptions(grep=r"^adds"))
    assert title_matches("math adds numbers", RunOptions(fgrep="adds num"))
    assert not title_matches("math adds numbers", RunOptions(fgrep="adds num", invert=True))
    assert title_matches("math subtracts", RunOptions(fgrep="adds", invert=True))


def test_everything_included_without_marks(builder: TreeBuilder):
    with builder.describe("a"):
        builder.it("one", _noop)
        builder.it("two", _noop)
    root = builder.freeze()

    plan = build_plan(root, RunOptions())
    assert _titles(plan) == ["a one", "a two"]
    assert plan.runnable_count == 2
    assert plan.has_included(root)


def test_only_test_restricts_run(builder: TreeBuilder):
    with builder.describe("a"):
        builder.it("one", _noop)
        builder.it_only("two", _noop)
    with builder.describe("b"):
        builder.it("three", _noop)
    root = builder.freeze()

    plan = build_plan(root, RunOptions())
    assert _titles(plan) == ["a two"]
    assert not plan.has_included(root.suites[1])


def test_only_suite_includes_its_descendants(builder: TreeBuilder):
    builder.it("outside", _noop)
    with builder.describe_only("focus"):
        builder.it("one", _noop)
        with builder.describe("nested"):
            builder.it("two", _noop)
    root = builder.freeze()

    plan = build_plan(root, RunOptions())
    assert _titles(plan) == ["focus one", "focus nested two"]


def test_skip_cascades_and_marks_pending(builder: TreeBuilder):
    with builder.describe_skip("skipped"):
        inner = builder.it("inner", _noop)
    todo = builder.it("todo")
    runnable = builder.it("runs", _noop)
    root = builder.freeze()

    plan = build_plan(root, RunOptions())
    assert plan.includes(inner)
    assert plan.pending_reason(inner) == "marked skip"
    assert plan.pending_reason(todo) == "no body"
    assert plan.is_runnable(runnable)
    assert plan.runnable_count == 1


def test_title_filter_excludes_tests(builder: TreeBuilder):
    with builder.describe("api"):
        builder.it("fetches users", _noop)
        builder.it("deletes users", _noop)
    root = builder.freeze()

    assert _titles(build_plan(root, RunOptions(grep="fetch"))) == ["api fetches users"]
    assert _titles(build_plan(root, RunOptions(grep="fetch", invert=True))) == ["api deletes users"]
    assert build_plan(root, RunOptions(fgrep="nothing")).included == []


def test_filter_applies_within_only(builder: TreeBuilder):
    with builder.describe_only("focus"):
        builder.it("alpha", _noop)
        builder.it("beta", _noop)
    builder.it("alpha outside", _noop)
    root = builder.freeze()

    assert _titles(build_plan(root, RunOptions(fgrep="alpha"))) == ["focus alpha"]
