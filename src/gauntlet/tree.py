# src/gauntlet/tree.py

"""
Suite/test/hook tree and the builder used to declare it.

The tree is declared once, synchronously, through an explicit TreeBuilder
handle. After freeze() the structure is immutable; only a test's attempt
counter changes while it runs.
"""

from collections.abc import Callable, Iterator
from contextlib import contextmanager
from enum import Enum, auto
from typing import Any

import structlog
from attrs import define, field

from gauntlet.config.models import NodeConfig
from gauntlet.exceptions import DeclarationError
from gauntlet.telemetry import StructLogger

log: StructLogger = structlog.get_logger("tree")

Body = Callable[..., Any]


class Mode(Enum):
    """Selection mode a suite or test was declared with."""

    NORMAL = auto()
    SKIP = auto()
    ONLY = auto()


class HookKind(Enum):
    BEFORE_ALL = "before all"
    BEFORE_EACH = "before each"
    AFTER_EACH = "after each"
    AFTER_ALL = "after all"


class ParamKind(Enum):
    """What a body receives as its single argument."""

    NONE = auto()  # body()
    CALLBACK = auto()  # body(done)
    CONTEXT = auto()  # body(ctx)


@define(eq=False, slots=True)
class Hook:
    kind: HookKind
    body: Body
    suite: "Suite"
    param: ParamKind = field(default=ParamKind.NONE)
    title: str | None = field(default=None)

    @property
    def full_title(self) -> str:
        label = f'"{self.kind.value}" hook'
        if self.title:
            label += f": {self.title}"
        parent = self.suite.full_title
        return f"{parent} {label}" if parent else label


@define(eq=False, slots=True)
class Test:
    __test__ = False  # not a pytest test class

    title: str
    suite: "Suite"
    body: Body | None = field(default=None)
    param: ParamKind = field(default=ParamKind.NONE)
    config: NodeConfig = field(factory=NodeConfig)
    mode: Mode = field(default=Mode.NORMAL)
    attempts: int = field(default=0)

    @property
    def full_title(self) -> str:
        parent = self.suite.full_title
        return f"{parent} {self.title}" if parent else self.title

    @property
    def is_pending(self) -> bool:
        """A test declared without a body never runs."""
        return self.body is None

    def effective_config(self, base: NodeConfig) -> NodeConfig:
        return self.config.merged_over(self.suite.effective_config(base))


@define(eq=False, slots=True)
class Suite:
    title: str
    parent: "Suite | None" = field(default=None)
    suites: list["Suite"] = field(factory=list)
    tests: list[Test] = field(factory=list)
    hooks: dict[HookKind, list[Hook]] = field(factory=lambda: {kind: [] for kind in HookKind})
    config: NodeConfig = field(factory=NodeConfig)
    mode: Mode = field(default=Mode.NORMAL)

    @property
    def is_root(self) -> bool:
        return self.parent is None

    @property
    def full_title(self) -> str:
        titles = [s.title for s in reversed(list(self.ancestors(include_self=True))) if s.title]
        return " ".join(titles)

    def ancestors(self, include_self: bool = False) -> Iterator["Suite"]:
        """Yields suites from this one (optionally) up to the root."""
        node = self if include_self else self.parent
        while node is not None:
            yield node
            node = node.parent

    def effective_config(self, base: NodeConfig) -> NodeConfig:
        inherited = self.parent.effective_config(base) if self.parent else base
        return self.config.merged_over(inherited)

    def iter_tests(self) -> Iterator[Test]:
        """All tests in this subtree, depth first in declaration order."""
        yield from self.tests
        for child in self.suites:
            yield from child.iter_tests()

    def iter_suites(self) -> Iterator["Suite"]:
        yield self
        for child in self.suites:
            yield from child.iter_suites()


class TreeBuilder:
    """
    Declaration handle for a suite tree.

    Example:
        builder = TreeBuilder()
        with builder.describe("math", timeout_ms=500):
            builder.before_each(setup)
            builder.it("adds", lambda: assert_equal(1 + 1, 2))

            @builder.test("waits", param=ParamKind.CALLBACK)
            def waits(done):
                loop.call_soon(done)
        root = builder.freeze()
    """

    def __init__(self, root_title: str = "") -> None:
        self.root = Suite(title=root_title)
        self._stack: list[Suite] = [self.root]
        self._frozen = False

    @property
    def current(self) -> Suite:
        return self._stack[-1]

    def _ensure_open(self, what: str) -> None:
        if self._frozen:
            raise DeclarationError(f"Cannot declare {what} after the tree has been frozen.")

    # --- Suites ---

    @contextmanager
    def describe(self, title: str, *, mode: Mode = Mode.NORMAL, **config: Any) -> Iterator[Suite]:
        """Opens a nested suite for the duration of the with-block."""
        self._ensure_open(f"suite '{title}'")
        suite = Suite(title=title, parent=self.current, config=_node_config(config), mode=mode)
        self.current.suites.append(suite)
        self._stack.append(suite)
        try:
            yield suite
        finally:
            self._stack.pop()

    def describe_skip(self, title: str, **config: Any):
        return self.describe(title, mode=Mode.SKIP, **config)

    def describe_only(self, title: str, **config: Any):
        return self.describe(title, mode=Mode.ONLY, **config)

    def configure(self, **config: Any) -> None:
        """Sets overrides on the suite currently being declared."""
        self._ensure_open("configuration")
        overrides = _node_config(config)
        self.current.config = overrides.merged_over(self.current.config)

    # --- Tests ---

    def it(
        self,
        title: str,
        body: Body | None = None,
        *,
        param: ParamKind = ParamKind.NONE,
        mode: Mode = Mode.NORMAL,
        **config: Any,
    ) -> Test:
        """Registers a test. A test without a body is pending."""
        self._ensure_open(f"test '{title}'")
        if body is not None and not callable(body):
            raise DeclarationError(f"Body of test '{title}' must be callable, got {type(body).__name__}")
        test = Test(
            title=title,
            suite=self.current,
            body=body,
            param=param,
            config=_node_config(config),
            mode=mode,
        )
        self.current.tests.append(test)
        log.debug("Declared test", title=test.full_title, mode=mode.name, param=param.name)
        return test

    def it_skip(self, title: str, body: Body | None = None, **kwargs: Any) -> Test:
        return self.it(title, body, mode=Mode.SKIP, **kwargs)

    def it_only(self, title: str, body: Body | None = None, **kwargs: Any) -> Test:
        return self.it(title, body, mode=Mode.ONLY, **kwargs)

    def test(self, title: str, **kwargs: Any) -> Callable[[Body], Body]:
        """Decorator form of it()."""

        def decorator(body: Body) -> Body:
            self.it(title, body, **kwargs)
            return body

        return decorator

    # --- Hooks ---

    def _hook(self, kind: HookKind, body: Body | None, param: ParamKind, title: str | None):
        def register(fn: Body) -> Body:
            self._ensure_open(f"{kind.value} hook")
            if not callable(fn):
                raise DeclarationError(f"Body of {kind.value} hook must be callable")
            self.current.hooks[kind].append(Hook(kind=kind, body=fn, suite=self.current, param=param, title=title))
            return fn

        if body is None:
            return register
        return register(body)

    def before_all(self, body: Body | None = None, *, param: ParamKind = ParamKind.NONE, title: str | None = None):
        return self._hook(HookKind.BEFORE_ALL, body, param, title)

    def before_each(self, body: Body | None = None, *, param: ParamKind = ParamKind.NONE, title: str | None = None):
        return self._hook(HookKind.BEFORE_EACH, body, param, title)

    def after_each(self, body: Body | None = None, *, param: ParamKind = ParamKind.NONE, title: str | None = None):
        return self._hook(HookKind.AFTER_EACH, body, param, title)

    def after_all(self, body: Body | None = None, *, param: ParamKind = ParamKind.NONE, title: str | None = None):
        return self._hook(HookKind.AFTER_ALL, body, param, title)

    def freeze(self) -> Suite:
        """Ends the declaration phase and returns the root suite."""
        if len(self._stack) != 1:
            raise DeclarationError("Cannot freeze while a describe() block is still open.")
        self._frozen = True
        total = sum(1 for _ in self.root.iter_tests())
        log.debug("Suite tree frozen", tests=total)
        return self.root


def _node_config(config: dict[str, Any]) -> NodeConfig:
    unknown = set(config) - {"timeout_ms", "slow_ms", "retries"}
    if unknown:
        raise DeclarationError(f"Unknown node configuration key(s): {sorted(unknown)}")
    try:
        return NodeConfig(**config)
    except ValueError as e:
        raise DeclarationError(f"Invalid node configuration: {e}", details=e) from e

# 🔼⚙️
