#
# tests/unit/test_tree.py
#
"""
Tests for the suite tree and its declaration builder.
"""

import pytest

from gauntlet.config import NodeConfig
from gauntlet.exceptions import DeclarationError
from gauntlet.tree import HookKind, Mode, ParamKind, TreeBuilder


class TestDeclaration:
    def test_nested_titles(self, builder: TreeBuilder) -> None:
        with builder.describe("outer"):
            with builder.describe("inner"):
                test = builder.it("does a thing", lambda: None)
        root = builder.freeze()

        assert root.is_root
        assert root.full_title == ""
        assert test.full_title == "outer inner does a thing"
        assert [s.title for s in root.iter_suites()] == ["", "outer", "inner"]

    def test_declaration_order_is_preserved(self, builder: TreeBuilder) -> None:
        builder.it("first", lambda: None)
        with builder.describe("group"):
            builder.it("second", lambda: None)
        builder.it("third", lambda: None)
        root = builder.freeze()

        # Tests of a suite come before the tests of its children.
        assert [t.title for t in root.iter_tests()] == ["first", "third", "second"]

    def test_decorator_forms(self, builder: TreeBuilder) -> None:
        with builder.describe("decorated"):

            @builder.before_each
            def setup():
                pass

            @builder.after_all(title="cleanup")
            def teardown():
                pass

            @builder.test("waits", param=ParamKind.CALLBACK)
            def waits(done):
                done()

        root = builder.freeze()
        suite = root.suites[0]
        assert suite.hooks[HookKind.BEFORE_EACH][0].body is setup
        assert suite.hooks[HookKind.AFTER_ALL][0].full_title == 'decorated "after all" hook: cleanup'
        assert suite.tests[0].param is ParamKind.CALLBACK
        assert suite.tests[0].body is waits

    def test_pending_test_has_no_body(self, builder: TreeBuilder) -> None:
        test = builder.it("todo")
        assert test.is_pending

    def test_skip_and_only_modes(self, builder: TreeBuilder) -> None:
        with builder.describe_skip("skipped") as suite:
            only = builder.it_only("focused", lambda: None)
            skipped = builder.it_skip("ignored", lambda: None)

        assert suite.mode is Mode.SKIP
        assert only.mode is Mode.ONLY
        assert skipped.mode is Mode.SKIP

    def test_declaring_after_freeze_fails(self, builder: TreeBuilder) -> None:
        builder.freeze()
        with pytest.raises(DeclarationError, match="frozen"):
            builder.it("late", lambda: None)
        with pytest.raises(DeclarationError):
            builder.before_all(lambda: None)

    def test_freeze_inside_describe_fails(self, builder: TreeBuilder) -> None:
        with builder.describe("open"):
            with pytest.raises(DeclarationError, match="still open"):
                builder.freeze()

    def test_non_callable_body_rejected(self, builder: TreeBuilder) -> None:
        with pytest.raises(DeclarationError, match="callable"):
            builder.it("bad", "not a function")

    def test_unknown_config_key_rejected(self, builder: TreeBuilder) -> None:
        with pytest.raises(DeclarationError, match="Unknown node configuration"):
            builder.it("bad", lambda: None, timeout=5)

    def test_negative_config_rejected(self, builder: TreeBuilder) -> None:
        with pytest.raises(DeclarationError, match="Invalid node configuration"):
            builder.it("bad", lambda: None, retries=-1)


class TestEffectiveConfig:
    def test_nearest_override_wins(self, builder: TreeBuilder) -> None:
        base = NodeConfig(timeout_ms=2000, slow_ms=75, retries=0)
        with builder.describe("outer", timeout_ms=500, retries=2):
            with builder.describe("inner", slow_ms=10):
                test = builder.it("leaf", lambda: None, timeout_ms=50)
                inherited = builder.it("leaf2", lambda: None)
        builder.freeze()

        assert test.effective_config(base) == NodeConfig(timeout_ms=50, slow_ms=10, retries=2)
        assert inherited.effective_config(base) == NodeConfig(timeout_ms=500, slow_ms=10, retries=2)

    def test_configure_updates_current_suite(self, builder: TreeBuilder) -> None:
        base = NodeConfig(timeout_ms=2000, slow_ms=75, retries=0)
        with builder.describe("suite", retries=1) as suite:
            builder.configure(timeout_ms=0)
        assert suite.effective_config(base) == NodeConfig(timeout_ms=0, slow_ms=75, retries=1)

# 🧪🌳
