"""Retry Orchestrator: re-runs a step sequence until it succeeds or the policy gives up.

State machine::

    Idle ──► Attempting ──► Succeeded
                 │
                 ├── step returned False ──┐
                 ├── step raised RECOVERABLE ┤──► policy.shall_retry(has_error, error)
                 │                           │        │
                 │                           │        ├─ False ──► Exhausted (returned failure)
                 │                           │        │            Aborted   (raised failure)
                 │                           │        ├─ True, attempts left ──► RetryWait ──► Attempting
                 │                           │        └─ True, none left ──► Exhausted / Aborted
                 └── step raised FATAL ──► propagates (Aborted, policy not consulted)

Every retry re-runs the whole sequence from its first step. The attempt
counter has the last word: at most ``max_retries + 1`` attempts run no
matter what the policy answers.

Example::

    orchestrator = RetryOrchestrator(
        StepSequence.of(fetch, transform, publish),
        RetryOrchestratorConfig(
            max_retries=3,
            inter_attempt_delay_ms=500,
            policy=OnErrorCategoryConfig(category="ConnectionError"),
        ),
    )
    if not orchestrator.execute(context):
        print("publish failed after retries")
"""

from __future__ import annotations

import threading
import time
import uuid
from collections.abc import Callable, Iterable
from dataclasses import replace
from typing import Any

from stepretry.core.errors import ErrorClass, ErrorClassifier, ExecutionCancelled
from stepretry.core.logging import LogContext, get_logger
from stepretry.orchestration.config import RetryOrchestratorConfig
from stepretry.orchestration.results import AttemptOutcome, AttemptResult, RunResult, RunState
from stepretry.orchestration.sinks import LogSink, StructlogSink
from stepretry.orchestration.steps import Step, StepSequence, step_name
from stepretry.policies.base import RetryPolicy
from stepretry.policies.factory import RetryPolicyFactory, default_policy_factory

logger = get_logger(__name__)


class RetryOrchestrator:
    """Runs a ``StepSequence`` with retries decided by a ``RetryPolicy``.

    The orchestrator holds only immutable configuration. Each call to
    :meth:`execute` / :meth:`run` builds its own policy instance, so one
    orchestrator may serve concurrent runs.
    """

    def __init__(
        self,
        steps: StepSequence | Iterable[Step],
        config: RetryOrchestratorConfig | None = None,
        *,
        factory: RetryPolicyFactory | None = None,
        classifier: ErrorClassifier | None = None,
        sink: LogSink | None = None,
        sleep: Callable[[float], None] | None = None,
        cancel_event: threading.Event | None = None,
        strict: bool = False,
    ) -> None:
        """Initialise the orchestrator.

        Args:
            steps: Steps to run, in order.
            config: Retry loop settings (defaults: no retries, always policy).
            factory: Policy factory (defaults to the built-in variants).
            classifier: Decides which raised errors are recoverable.
            sink: Receives the human-readable progress trace.
            sleep: Blocking sleep used between attempts (seconds).
            cancel_event: When set during the wait, the run is cancelled.
            strict: Reject policy configs with unresolvable references.

        Raises:
            ConfigurationError: The config or policy cannot be used.
        """
        self._steps = steps if isinstance(steps, StepSequence) else StepSequence(steps)
        self._config = config or RetryOrchestratorConfig()
        self._factory = factory or default_policy_factory()
        self._classifier = classifier or ErrorClassifier()
        self._sink: LogSink = sink or StructlogSink()
        self._sleep = sleep or time.sleep
        self._cancel_event = cancel_event

        self._factory.validate(self._config.policy, strict=strict)

    @property
    def steps(self) -> StepSequence:
        return self._steps

    @property
    def config(self) -> RetryOrchestratorConfig:
        return self._config

    def prebuild(self, context: Any = None) -> bool:
        """Run every step's pre-build hook; False at the first refusal."""
        return self._steps.prebuild(context)

    def execute(self, context: Any = None) -> bool:
        """Run the sequence with retries.

        Returns:
            True if an attempt succeeded, False if the last attempt
            returned failure.

        Raises:
            The recoverable error of the last attempt, when the run ended on
            it. Fatal errors and ``ExecutionCancelled`` propagate as raised.
        """
        result = self.run(context)
        if result.state is RunState.ABORTED and result.error is not None:
            raise result.error
        return result.succeeded

    def run(self, context: Any = None) -> RunResult:
        """Run the sequence with retries and return the full bookkeeping.

        Unlike :meth:`execute`, a run that ends on a recoverable error
        returns a ``RunResult`` in state ``ABORTED`` carrying that error.
        """
        policy = self._factory.create(self._config.policy)
        policy.configure(context)

        total = self._config.total_attempts
        attempts: list[AttemptResult] = []
        delays = 0

        with LogContext(retry_run_id=uuid.uuid4().hex[:12]):
            logger.info(
                "retry.start",
                steps=len(self._steps),
                total_attempts=total,
                delay_ms=self._config.inter_attempt_delay_ms,
                policy=self._config.policy.kind,
                state=RunState.IDLE.value,
            )

            for number in range(1, total + 1):
                if number > 1:
                    self._check_cancelled(number - 1)

                attempt = self._attempt(number, total, context)
                if attempt.succeeded:
                    attempts.append(attempt)
                    self._sink.line(f"Attempt {number}/{total} succeeded")
                    return self._finish(RunState.SUCCEEDED, attempts, delays)

                retry = self._ask_policy(policy, attempt)
                attempt = replace(attempt, retry=retry)
                attempts.append(attempt)
                self._report_failure(attempt, total)

                if not retry or number == total:
                    if retry:
                        self._sink.line(f"No attempts left after {total} attempt(s)")
                    state = RunState.ABORTED if attempt.has_error else RunState.EXHAUSTED
                    return self._finish(state, attempts, delays, error=attempt.error)

                self._wait(number)
                delays += 1

        # total >= 1, so the loop always returns
        raise AssertionError("unreachable")

    # ── attempt ──────────────────────────────────────────────────

    def _attempt(self, number: int, total: int, context: Any) -> AttemptResult:
        """One full pass over the sequence, stopping at the first failure."""
        self._sink.line(f"Starting attempt {number}/{total}")
        logger.debug(
            "retry.attempt.start",
            attempt=number,
            total_attempts=total,
            state=RunState.ATTEMPTING.value,
        )
        started = time.perf_counter()

        for index, step in enumerate(self._steps):
            try:
                ok = step.perform(context)
            except Exception as exc:
                if self._classifier.classify(exc) is ErrorClass.FATAL:
                    self._sink.line(
                        f"Step '{step_name(step)}' raised {type(exc).__name__}: {exc} "
                        f"on attempt {number}/{total}, not retryable"
                    )
                    logger.error(
                        "retry.attempt.fatal",
                        attempt=number,
                        step=step_name(step),
                        error_type=type(exc).__name__,
                        error=str(exc),
                    )
                    raise
                return AttemptResult(
                    number=number,
                    outcome=AttemptOutcome.EXCEPTIONAL_FAILURE,
                    failing_step=index,
                    error=exc,
                    duration_seconds=time.perf_counter() - started,
                )
            if not ok:
                return AttemptResult(
                    number=number,
                    outcome=AttemptOutcome.LOGICAL_FAILURE,
                    failing_step=index,
                    duration_seconds=time.perf_counter() - started,
                )

        return AttemptResult(
            number=number,
            outcome=AttemptOutcome.SUCCEEDED,
            duration_seconds=time.perf_counter() - started,
        )

    def _ask_policy(self, policy: RetryPolicy, attempt: AttemptResult) -> bool:
        return bool(policy.shall_retry(attempt.has_error, attempt.error))

    def _report_failure(self, attempt: AttemptResult, total: int) -> None:
        name = step_name(self._steps[attempt.failing_step])
        if attempt.has_error:
            what = f"raised {attempt.error_category}: {attempt.error}"
        else:
            what = "failed"
        self._sink.line(
            f"Step '{name}' {what} on attempt {attempt.number}/{total}, retrying? {attempt.retry}"
        )
        logger.warning(
            "retry.attempt.failed",
            attempt=attempt.number,
            step=name,
            step_index=attempt.failing_step,
            outcome=attempt.outcome.value,
            error_type=attempt.error_category,
            retry=attempt.retry,
        )

    # ── wait ─────────────────────────────────────────────────────

    def _wait(self, number: int) -> None:
        delay_ms = self._config.inter_attempt_delay_ms
        self._sink.line(f"Waiting {delay_ms}ms")
        logger.info("retry.wait", attempt=number, delay_ms=delay_ms, state=RunState.RETRY_WAIT.value)

        if self._cancel_event is None:
            self._sleep(self._config.delay_seconds)
        elif self._cancel_event.wait(self._config.delay_seconds):
            self._cancelled(number)

    def _check_cancelled(self, number: int) -> None:
        if self._cancel_event is not None and self._cancel_event.is_set():
            self._cancelled(number)

    def _cancelled(self, number: int) -> None:
        self._sink.line(f"Cancelled after attempt {number}")
        logger.warning("retry.cancelled", attempt=number)
        raise ExecutionCancelled(attempt=number)

    def _finish(
        self,
        state: RunState,
        attempts: list[AttemptResult],
        delays: int,
        error: BaseException | None = None,
    ) -> RunResult:
        result = RunResult(state=state, attempts=tuple(attempts), delays=delays, error=error)
        self._sink.line(f"Run {state.value} after {result.attempt_count} attempt(s)")
        logger.info(
            "retry.complete",
            state=state.value,
            attempts=result.attempt_count,
            delays=delays,
            error_type=type(error).__name__ if error is not None else None,
        )
        return result
