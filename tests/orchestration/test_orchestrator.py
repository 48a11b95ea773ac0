"""Tests for RetryOrchestrator: the retry loop."""

import threading
import time
from dataclasses import dataclass
from typing import ClassVar

import pytest
from structlog.testing import capture_logs

from stepretry.core.errors import (
    ConfigurationError,
    ErrorClassifier,
    ExecutionCancelled,
    PolicyNotFoundError,
    StepError,
)
from stepretry.orchestration import (
    AttemptOutcome,
    FunctionStep,
    RetryOrchestrator,
    RetryOrchestratorConfig,
    RunState,
    StepSequence,
)
from stepretry.policies import (
    AlwaysConfig,
    OnErrorCategoryConfig,
    RetryPolicy,
    RetryPolicyConfig,
)


class Timeout(Exception):
    """Host-specific timeout category, registered by name in tests."""


@dataclass(frozen=True)
class RecordingConfig(RetryPolicyConfig):
    kind: ClassVar[str] = "recording"

    answer: bool = True


class RecordingPolicy(RetryPolicy):
    instances: ClassVar[list] = []

    def __init__(self, answer):
        super().__init__()
        self.answer = answer
        self.calls = []
        RecordingPolicy.instances.append(self)

    def shall_retry(self, has_error, error=None):
        self.calls.append((has_error, error))
        return self.answer


@pytest.fixture
def recording_factory(factory):
    RecordingPolicy.instances = []
    factory.register("recording", RecordingConfig, lambda cfg: RecordingPolicy(cfg.answer))
    return factory


def make(steps, sink, sleep, factory, **config):
    policy = config.pop("policy", AlwaysConfig())
    return RetryOrchestrator(
        steps,
        RetryOrchestratorConfig(policy=policy, **config),
        factory=factory,
        sink=sink,
        sleep=sleep,
    )


class TestConstruction:
    def test_unknown_policy_rejected_at_build_time(self, factory, sink):
        @dataclass(frozen=True)
        class Unknown(RetryPolicyConfig):
            kind: ClassVar[str] = "unknown"

        with pytest.raises(PolicyNotFoundError):
            RetryOrchestrator([], RetryOrchestratorConfig(policy=Unknown()), factory=factory, sink=sink)

    def test_strict_rejects_unresolvable_category(self, factory, sink):
        config = RetryOrchestratorConfig(policy=OnErrorCategoryConfig(category="NoSuchError"))
        with pytest.raises(ConfigurationError):
            RetryOrchestrator([], config, factory=factory, sink=sink, strict=True)

    def test_lenient_accepts_unresolvable_category(self, factory, sink):
        config = RetryOrchestratorConfig(policy=OnErrorCategoryConfig(category="NoSuchError"))
        RetryOrchestrator([], config, factory=factory, sink=sink)

    def test_defaults(self, scripted_step):
        orchestrator = RetryOrchestrator([scripted_step(True)])
        assert orchestrator.config == RetryOrchestratorConfig()
        assert isinstance(orchestrator.steps, StepSequence)

    def test_accepts_step_sequence(self, scripted_step):
        sequence = StepSequence([scripted_step(True)])
        assert RetryOrchestrator(sequence).steps is sequence


class TestSuccess:
    def test_first_attempt_success(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(True)
        orchestrator = make([step], sink, fake_sleep, factory, max_retries=3)
        assert orchestrator.execute() is True
        assert step.calls == 1
        assert fake_sleep.calls == []

    def test_empty_sequence_succeeds(self, sink, fake_sleep, factory):
        assert make([], sink, fake_sleep, factory).execute() is True

    @pytest.mark.parametrize("k", [1, 2, 3, 4])
    def test_success_on_attempt_k(self, k, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(*([False] * (k - 1)), True)
        result = make([step], sink, fake_sleep, factory, max_retries=3).run()
        assert result.state is RunState.SUCCEEDED
        assert result.attempt_count == k
        assert step.calls == k
        assert result.delays == k - 1

    def test_context_passed_through(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(False, True)
        context = object()
        make([step], sink, fake_sleep, factory, max_retries=1).execute(context)
        assert step.contexts == [context, context]


class TestLogicalFailure:
    @pytest.mark.parametrize("n", [0, 1, 2, 5])
    def test_always_failing_runs_n_plus_one(self, n, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(False)
        orchestrator = make([step], sink, fake_sleep, factory, max_retries=n)
        assert orchestrator.execute() is False
        assert step.calls == n + 1
        assert len(fake_sleep.calls) == n

    def test_exhausted_state(self, scripted_step, sink, fake_sleep, factory):
        result = make([scripted_step(False)], sink, fake_sleep, factory, max_retries=2).run()
        assert result.state is RunState.EXHAUSTED
        assert result.error is None
        assert all(a.outcome is AttemptOutcome.LOGICAL_FAILURE for a in result.attempts)

    def test_policy_declines_stops_early(self, scripted_step, sink, fake_sleep, recording_factory):
        step = scripted_step(False)
        orchestrator = make(
            [step], sink, fake_sleep, recording_factory,
            max_retries=5, policy=RecordingConfig(answer=False),
        )
        assert orchestrator.execute() is False
        assert step.calls == 1
        assert fake_sleep.calls == []
        assert RecordingPolicy.instances[0].calls == [(False, None)]

    def test_later_steps_skipped_after_failure(self, scripted_step, sink, fake_sleep, factory):
        first, second = scripted_step(False, name="first"), scripted_step(True, name="second")
        result = make([first, second], sink, fake_sleep, factory, max_retries=1).run()
        assert second.calls == 0
        assert result.attempts[0].failing_step == 0

    def test_whole_sequence_rerun_from_first_step(self, scripted_step, sink, fake_sleep, factory):
        first = scripted_step(True, name="first")
        second = scripted_step(False, False, True, name="second")
        third = scripted_step(True, name="third")
        result = make([first, second, third], sink, fake_sleep, factory, max_retries=3).run()
        assert result.succeeded
        assert first.calls == 3
        assert second.calls == 3
        assert third.calls == 1
        assert [a.failing_step for a in result.attempts] == [1, 1, None]


class TestRecoverableErrors:
    def test_error_offered_to_policy(self, scripted_step, sink, fake_sleep, recording_factory):
        error = OSError("disk full")
        make(
            [scripted_step(error)], sink, fake_sleep, recording_factory,
            max_retries=0, policy=RecordingConfig(answer=False),
        ).run()
        assert RecordingPolicy.instances[0].calls == [(True, error)]

    def test_declined_error_is_reraised(self, scripted_step, sink, fake_sleep, recording_factory):
        error = ConnectionError("reset")
        step = scripted_step(error)
        orchestrator = make(
            [step], sink, fake_sleep, recording_factory,
            max_retries=3, policy=RecordingConfig(answer=False),
        )
        with pytest.raises(ConnectionError) as exc_info:
            orchestrator.execute()
        assert exc_info.value is error
        assert step.calls == 1

    def test_run_returns_aborted_with_error(self, scripted_step, sink, fake_sleep, factory):
        error = StepError("flaky")
        result = make([scripted_step(error)], sink, fake_sleep, factory, max_retries=1).run()
        assert result.state is RunState.ABORTED
        assert result.error is error
        assert result.attempt_count == 2
        assert result.attempts[-1].error_category == "StepError"

    def test_recovery_after_error(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(TimeoutError("slow"), True)
        assert make([step], sink, fake_sleep, factory, max_retries=1).execute() is True
        assert step.calls == 2

    def test_error_then_logical_failure_returns_false(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(OSError("io"), False)
        assert make([step], sink, fake_sleep, factory, max_retries=1).execute() is False

    def test_logical_failure_then_error_reraises(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(False, OSError("io"))
        with pytest.raises(OSError):
            make([step], sink, fake_sleep, factory, max_retries=1).execute()

    def test_category_match_retries(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(TimeoutError("slow"), True)
        orchestrator = make(
            [step], sink, fake_sleep, factory,
            max_retries=2, policy=OnErrorCategoryConfig(category="TimeoutError"),
        )
        assert orchestrator.execute() is True

    def test_category_mismatch_aborts_without_sleep(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(ConnectionError("reset"), True)
        orchestrator = make(
            [step], sink, fake_sleep, factory,
            max_retries=2, policy=OnErrorCategoryConfig(category="TimeoutError"),
        )
        with pytest.raises(ConnectionError):
            orchestrator.execute()
        assert step.calls == 1
        assert fake_sleep.calls == []

    def test_custom_classifier(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(ValueError("parse"), True)
        orchestrator = RetryOrchestrator(
            [step],
            RetryOrchestratorConfig(max_retries=1),
            factory=factory,
            classifier=ErrorClassifier(recoverable=(ValueError,)),
            sink=sink,
            sleep=fake_sleep,
        )
        assert orchestrator.execute() is True


class TestFatalErrors:
    def test_fatal_error_propagates_immediately(self, scripted_step, sink, fake_sleep, recording_factory):
        step = scripted_step(KeyError("missing"), True)
        orchestrator = make(
            [step], sink, fake_sleep, recording_factory,
            max_retries=5, policy=RecordingConfig(answer=True),
        )
        with pytest.raises(KeyError):
            orchestrator.execute()
        assert step.calls == 1
        assert fake_sleep.calls == []
        assert RecordingPolicy.instances[0].calls == []

    def test_fatal_error_propagates_from_run(self, scripted_step, sink, fake_sleep, factory):
        with pytest.raises(ValueError):
            make([scripted_step(ValueError("bad"))], sink, fake_sleep, factory, max_retries=2).run()

    def test_fatal_on_later_attempt(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(False, RuntimeError("bug"))
        with pytest.raises(RuntimeError):
            make([step], sink, fake_sleep, factory, max_retries=5).execute()
        assert step.calls == 2
        assert len(fake_sleep.calls) == 1

    def test_keyboard_interrupt_not_caught(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(KeyboardInterrupt())
        with pytest.raises(KeyboardInterrupt):
            make([step], sink, fake_sleep, factory, max_retries=3).execute()
        assert step.calls == 1

    def test_fatal_is_traced(self, scripted_step, sink, fake_sleep, factory):
        with pytest.raises(KeyError):
            make([scripted_step(KeyError("k"), name="load")], sink, fake_sleep, factory).execute()
        assert "not retryable" in sink.lines[-1]
        assert "'load'" in sink.lines[-1]


class TestDelayAndCancellation:
    def test_delay_value_passed_to_sleep(self, scripted_step, sink, fake_sleep, factory):
        make([scripted_step(False)], sink, fake_sleep, factory, max_retries=3, inter_attempt_delay_ms=250).run()
        assert fake_sleep.calls == [0.25, 0.25, 0.25]

    def test_zero_delay_still_counts(self, scripted_step, sink, fake_sleep, factory):
        result = make([scripted_step(False)], sink, fake_sleep, factory, max_retries=2).run()
        assert result.delays == 2
        assert fake_sleep.calls == [0.0, 0.0]

    @pytest.mark.slow
    def test_wall_clock_delay(self, sink, factory):
        stamps = []

        def step(ctx):
            stamps.append(time.monotonic())
            return len(stamps) >= 3

        orchestrator = RetryOrchestrator(
            [FunctionStep(step)],
            RetryOrchestratorConfig(max_retries=2, inter_attempt_delay_ms=50),
            factory=factory,
            sink=sink,
        )
        assert orchestrator.execute() is True
        gaps = [later - earlier for earlier, later in zip(stamps, stamps[1:])]
        assert len(gaps) == 2
        assert all(gap >= 0.049 for gap in gaps)

    def test_interrupt_during_sleep_propagates(self, scripted_step, sink, factory):
        def interrupted(seconds):
            raise KeyboardInterrupt

        step = scripted_step(False)
        with pytest.raises(KeyboardInterrupt):
            make([step], sink, interrupted, factory, max_retries=3).execute()
        assert step.calls == 1

    def test_cancel_event_set_before_wait(self, sink, factory):
        cancel = threading.Event()

        def step(ctx):
            cancel.set()
            return False

        wrapped = FunctionStep(step)
        orchestrator = RetryOrchestrator(
            [wrapped],
            RetryOrchestratorConfig(max_retries=3, inter_attempt_delay_ms=10_000),
            factory=factory,
            sink=sink,
            cancel_event=cancel,
        )
        started = time.monotonic()
        with pytest.raises(ExecutionCancelled) as exc_info:
            orchestrator.execute()
        assert time.monotonic() - started < 5
        assert exc_info.value.attempt == 1
        assert sink.lines[-1] == "Cancelled after attempt 1"

    @pytest.mark.slow
    def test_cancel_event_set_during_wait(self, scripted_step, sink, factory):
        cancel = threading.Event()
        step = scripted_step(False)
        orchestrator = RetryOrchestrator(
            [step],
            RetryOrchestratorConfig(max_retries=3, inter_attempt_delay_ms=10_000),
            factory=factory,
            sink=sink,
            cancel_event=cancel,
        )
        timer = threading.Timer(0.05, cancel.set)
        timer.start()
        try:
            started = time.monotonic()
            with pytest.raises(ExecutionCancelled):
                orchestrator.execute()
            assert time.monotonic() - started < 5
        finally:
            timer.cancel()
        assert step.calls == 1

    def test_unset_cancel_event_waits_and_continues(self, scripted_step, sink, factory):
        step = scripted_step(False, True)
        orchestrator = RetryOrchestrator(
            [step],
            RetryOrchestratorConfig(max_retries=1, inter_attempt_delay_ms=1),
            factory=factory,
            sink=sink,
            cancel_event=threading.Event(),
        )
        assert orchestrator.execute() is True
        assert step.calls == 2


class TestPolicyLifecycle:
    def test_fresh_policy_per_run(self, scripted_step, sink, fake_sleep, recording_factory):
        orchestrator = make(
            [scripted_step(False)], sink, fake_sleep, recording_factory,
            max_retries=1, policy=RecordingConfig(answer=True),
        )
        orchestrator.execute("first")
        orchestrator.execute("second")
        first, second = RecordingPolicy.instances
        assert first is not second
        assert first.context == "first"
        assert second.context == "second"
        assert len(first.calls) == 2 and len(second.calls) == 2

    def test_policy_asked_once_per_failed_attempt(self, scripted_step, sink, fake_sleep, recording_factory):
        make(
            [scripted_step(False, OSError("io"), True)], sink, fake_sleep, recording_factory,
            max_retries=4, policy=RecordingConfig(answer=True),
        ).execute()
        calls = RecordingPolicy.instances[0].calls
        assert [has_error for has_error, _ in calls] == [False, True]

    def test_concurrent_runs_do_not_share_policies(self, sink, recording_factory):
        barrier = threading.Barrier(2)

        def step(ctx):
            barrier.wait(timeout=5)
            return True

        orchestrator = RetryOrchestrator(
            [FunctionStep(step)],
            RetryOrchestratorConfig(policy=RecordingConfig()),
            factory=recording_factory,
            sink=sink,
        )
        results = []
        threads = [
            threading.Thread(target=lambda c=c: results.append(orchestrator.execute(c)))
            for c in ("a", "b")
        ]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join(timeout=10)
        assert results == [True, True]
        assert {p.context for p in RecordingPolicy.instances} == {"a", "b"}

    def test_identical_configs_give_identical_runs(self, scripted_step, sink, fake_sleep, factory):
        config = dict(max_retries=3, policy=OnErrorCategoryConfig(category="OSError"))
        results = [
            make([scripted_step(OSError("a"), OSError("b"), True)], sink, fake_sleep, factory, **config).run()
            for _ in range(2)
        ]
        assert results[0].attempt_count == results[1].attempt_count == 3
        assert results[0].state is results[1].state is RunState.SUCCEEDED


class TestProgressTrace:
    def test_lines_for_logical_failure(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(False, True, name="compile")
        make([step], sink, fake_sleep, factory, max_retries=2, inter_attempt_delay_ms=50).execute()
        assert sink.lines == [
            "Starting attempt 1/3",
            "Step 'compile' failed on attempt 1/3, retrying? True",
            "Waiting 50ms",
            "Starting attempt 2/3",
            "Attempt 2/3 succeeded",
            "Run succeeded after 2 attempt(s)",
        ]

    def test_lines_for_error_and_exhaustion(self, scripted_step, sink, fake_sleep, factory):
        step = scripted_step(TimeoutError("slow"), name="fetch")
        with pytest.raises(TimeoutError):
            make([step], sink, fake_sleep, factory, max_retries=1).execute()
        assert sink.lines == [
            "Starting attempt 1/2",
            "Step 'fetch' raised TimeoutError: slow on attempt 1/2, retrying? True",
            "Waiting 0ms",
            "Starting attempt 2/2",
            "Step 'fetch' raised TimeoutError: slow on attempt 2/2, retrying? True",
            "No attempts left after 2 attempt(s)",
            "Run aborted after 2 attempt(s)",
        ]

    def test_policy_decline_ends_with_final_state(self, scripted_step, sink, fake_sleep, recording_factory):
        step = scripted_step(False, name="deploy")
        make(
            [step], sink, fake_sleep, recording_factory,
            max_retries=3, policy=RecordingConfig(answer=False),
        ).execute()
        assert sink.lines == [
            "Starting attempt 1/4",
            "Step 'deploy' failed on attempt 1/4, retrying? False",
            "Run exhausted after 1 attempt(s)",
        ]

    def test_structlog_events(self, scripted_step, sink, fake_sleep, factory):
        with capture_logs() as logs:
            make([scripted_step(False, True)], sink, fake_sleep, factory, max_retries=1).execute()
        events = [entry["event"] for entry in logs]
        assert events[0] == "retry.start"
        assert "retry.attempt.failed" in events
        assert "retry.wait" in events
        assert events[-1] == "retry.complete"
        complete = logs[-1]
        assert complete["state"] == "succeeded"
        assert complete["attempts"] == 2

    def test_live_states_on_events(self, scripted_step, sink, fake_sleep, factory):
        with capture_logs() as logs:
            make([scripted_step(False, True)], sink, fake_sleep, factory, max_retries=1).execute()
        states = {entry["event"]: entry["state"] for entry in logs if "state" in entry}
        assert states["retry.start"] == RunState.IDLE.value
        assert states["retry.attempt.start"] == RunState.ATTEMPTING.value
        assert states["retry.wait"] == RunState.RETRY_WAIT.value
        assert states["retry.complete"] == RunState.SUCCEEDED.value

    def test_default_sink_logs_progress(self, scripted_step, fake_sleep, factory):
        orchestrator = RetryOrchestrator(
            [scripted_step(True)], RetryOrchestratorConfig(), factory=factory, sleep=fake_sleep
        )
        with capture_logs() as logs:
            orchestrator.execute()
        progress = [entry["line"] for entry in logs if entry["event"] == "retry.progress"]
        assert progress == [
            "Starting attempt 1/1",
            "Attempt 1/1 succeeded",
            "Run succeeded after 1 attempt(s)",
        ]


class TestPrebuild:
    def test_delegates_to_sequence(self, factory, sink):
        ready = FunctionStep(lambda ctx: True, prebuild=lambda ctx: ctx == "ok")
        orchestrator = RetryOrchestrator([ready], factory=factory, sink=sink)
        assert orchestrator.prebuild("ok") is True
        assert orchestrator.prebuild("nope") is False
