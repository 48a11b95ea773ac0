"""
Shared pytest fixtures for stepretry tests.

This module provides:
- Scripted steps whose outcome per attempt is fixed up front
- A recording sleep so retry tests never touch the wall clock
- Fresh policy factories / category registries per test
- Logging isolation (structlog + root logger reset after each test)
"""

import logging
import sys
from pathlib import Path
from typing import Any, Callable

import pytest
import structlog

# Ensure stepretry package is importable
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from stepretry.orchestration import MemorySink
from stepretry.policies import ErrorCategoryRegistry, default_policy_factory


class ScriptedStep:
    """Step that replays a script, one entry per call.

    Entries are ``True``/``False`` (returned) or an exception instance
    (raised). The last entry repeats once the script runs out.
    """

    def __init__(self, *script: Any, name: str = "scripted"):
        if not script:
            script = (True,)
        self.script = list(script)
        self.name = name
        self.calls = 0
        self.contexts: list[Any] = []

    def perform(self, context: Any) -> bool:
        entry = self.script[min(self.calls, len(self.script) - 1)]
        self.calls += 1
        self.contexts.append(context)
        if isinstance(entry, BaseException):
            raise entry
        return entry


class RecordingSleep:
    """Stand-in for ``time.sleep`` that records requested durations."""

    def __init__(self) -> None:
        self.calls: list[float] = []

    def __call__(self, seconds: float) -> None:
        self.calls.append(seconds)


@pytest.fixture
def scripted_step() -> Callable[..., ScriptedStep]:
    """Factory fixture: ``scripted_step(False, True, name="build")``."""
    return ScriptedStep


@pytest.fixture
def fake_sleep() -> RecordingSleep:
    return RecordingSleep()


@pytest.fixture
def sink() -> MemorySink:
    return MemorySink()


@pytest.fixture
def categories() -> ErrorCategoryRegistry:
    return ErrorCategoryRegistry.with_builtins()


@pytest.fixture
def factory(categories):
    return default_policy_factory(categories)


@pytest.fixture(autouse=True)
def _isolate_logging():
    """Undo any configure_logging() a test performs."""
    root = logging.getLogger()
    handlers = list(root.handlers)
    level = root.level
    yield
    structlog.reset_defaults()
    for handler in list(root.handlers):
        if handler not in handlers:
            root.removeHandler(handler)
    root.setLevel(level)
