"""Orchestration: the retry loop over an ordered step sequence.

ARCHITECTURE
────────────
::

    RetryOrchestrator.execute(context)
      ├── RetryPolicyFactory.create(config.policy) ── fresh policy per run
      ├── policy.configure(context)
      └── attempt 1..max_retries+1
            ├── StepSequence ── step.perform(context) in order
            ├── ErrorClassifier ── RECOVERABLE vs FATAL
            ├── policy.shall_retry(has_error, error)
            ├── LogSink ── progress lines
            └── sleep(inter_attempt_delay_ms) / cancel_event
"""

from stepretry.orchestration.config import RetryOrchestratorConfig, orchestrator_config_from_mapping
from stepretry.orchestration.orchestrator import RetryOrchestrator
from stepretry.orchestration.results import AttemptOutcome, AttemptResult, RunResult, RunState
from stepretry.orchestration.sinks import LogSink, MemorySink, StructlogSink
from stepretry.orchestration.steps import FunctionStep, Step, StepSequence

__all__ = [
    "AttemptOutcome",
    "AttemptResult",
    "FunctionStep",
    "LogSink",
    "MemorySink",
    "RetryOrchestrator",
    "RetryOrchestratorConfig",
    "RunResult",
    "RunState",
    "Step",
    "StepSequence",
    "StructlogSink",
    "orchestrator_config_from_mapping",
]
