"""Progress sinks: where the orchestrator writes its human-readable trace."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from stepretry.core.logging import get_logger


@runtime_checkable
class LogSink(Protocol):
    """Append-only sink accepting lines of text."""

    def line(self, text: str) -> None: ...


class StructlogSink:
    """Forward each progress line to a structlog logger as a ``retry.progress`` event."""

    def __init__(self, logger: Any = None, level: str = "info"):
        self._logger = logger if logger is not None else get_logger("stepretry.progress")
        self._level = level

    def line(self, text: str) -> None:
        getattr(self._logger, self._level)("retry.progress", line=text)


class MemorySink:
    """Keep progress lines in memory (tests, CLI summaries)."""

    def __init__(self) -> None:
        self.lines: list[str] = []

    def line(self, text: str) -> None:
        self.lines.append(text)

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)
