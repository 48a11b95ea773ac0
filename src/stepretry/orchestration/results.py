"""Run bookkeeping: attempt outcomes and the final run result.

Nothing here is persisted. ``RunResult.to_dict()`` exists for logging and
for the CLI's JSON output.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunState(str, Enum):
    """Orchestrator state machine.

    The orchestrator only returns terminal states in a ``RunResult``. The
    others are carried as the ``state`` field of the log events emitted
    while a run is live.
    """

    IDLE = "idle"  # logged on retry.start
    ATTEMPTING = "attempting"  # logged on retry.attempt.start
    RETRY_WAIT = "retry_wait"  # logged on retry.wait
    SUCCEEDED = "succeeded"
    EXHAUSTED = "exhausted"  # returned failure, no more retries
    ABORTED = "aborted"  # raised failure, no more retries

    @property
    def is_terminal(self) -> bool:
        return self in (RunState.SUCCEEDED, RunState.EXHAUSTED, RunState.ABORTED)


class AttemptOutcome(str, Enum):
    """How one pass through the step sequence ended."""

    SUCCEEDED = "succeeded"
    LOGICAL_FAILURE = "logical_failure"  # a step returned False
    EXCEPTIONAL_FAILURE = "exceptional_failure"  # a step raised a recoverable error


@dataclass(frozen=True)
class AttemptResult:
    """
    One attempt.

    Attributes:
        number: 1-based attempt number
        outcome: How the attempt ended
        failing_step: Index of the step that failed, if any
        error: Recoverable error raised by that step, if any
        retry: Policy answer for a failed attempt (None on success)
        duration_seconds: Wall-clock time spent running steps
    """

    number: int
    outcome: AttemptOutcome
    failing_step: int | None = None
    error: BaseException | None = None
    retry: bool | None = None
    duration_seconds: float = 0.0

    @property
    def succeeded(self) -> bool:
        return self.outcome is AttemptOutcome.SUCCEEDED

    @property
    def has_error(self) -> bool:
        return self.outcome is AttemptOutcome.EXCEPTIONAL_FAILURE

    @property
    def error_category(self) -> str | None:
        return type(self.error).__name__ if self.error is not None else None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "number": self.number,
            "outcome": self.outcome.value,
            "duration_seconds": round(self.duration_seconds, 6),
        }
        if self.failing_step is not None:
            result["failing_step"] = self.failing_step
        if self.error is not None:
            result["error"] = {"category": self.error_category, "message": str(self.error)}
        if self.retry is not None:
            result["retry"] = self.retry
        return result


@dataclass(frozen=True)
class RunResult:
    """Outcome of a full orchestrator run."""

    state: RunState
    attempts: tuple[AttemptResult, ...] = field(default_factory=tuple)
    delays: int = 0
    error: BaseException | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.SUCCEEDED

    @property
    def attempt_count(self) -> int:
        return len(self.attempts)

    @property
    def last_attempt(self) -> AttemptResult | None:
        return self.attempts[-1] if self.attempts else None

    def to_dict(self) -> dict[str, Any]:
        result: dict[str, Any] = {
            "state": self.state.value,
            "succeeded": self.succeeded,
            "attempt_count": self.attempt_count,
            "delays": self.delays,
            "attempts": [attempt.to_dict() for attempt in self.attempts],
        }
        if self.error is not None:
            result["error"] = {"category": type(self.error).__name__, "message": str(self.error)}
        return result
