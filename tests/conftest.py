#
# tests/conftest.py
#
"""
Shared fixtures for gauntlet tests.
"""

import logging

import pytest
import structlog

from gauntlet.config import RunOptions
from gauntlet.reporters import CollectingReporter
from gauntlet.runtime.scheduler import Runner
from gauntlet.tree import TreeBuilder


@pytest.fixture
def builder() -> TreeBuilder:
    return TreeBuilder()


@pytest.fixture
def collector() -> CollectingReporter:
    return CollectingReporter()


@pytest.fixture
def make_runner(builder: TreeBuilder, collector: CollectingReporter):
    """Freezes the builder's tree and returns a Runner wired to the collector."""

    def _make(fatal_handler=None, **options) -> Runner:
        kwargs = {"fatal_handler": fatal_handler} if fatal_handler is not None else {}
        return Runner(builder.freeze(), options=RunOptions(**options), reporters=[collector], **kwargs)

    return _make


@pytest.fixture(autouse=True)
def reset_logging():
    """CLI tests install stdlib handlers on captured streams; drop them afterwards."""
    root_logger = logging.getLogger()
    before = list(root_logger.handlers)
    level = root_logger.level
    yield
    for handler in [h for h in root_logger.handlers if h not in before]:
        handler.close()
        root_logger.removeHandler(handler)
    root_logger.setLevel(level)
    structlog.reset_defaults()
