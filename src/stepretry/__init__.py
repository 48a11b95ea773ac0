"""
stepretry - retry orchestration for ordered step sequences.

- stepretry.core: errors, logging, settings
- stepretry.policies: retry policies and their factory
- stepretry.orchestration: the retry loop
"""

__version__ = "0.1.0"

from stepretry.core.errors import (
    ConfigurationError,
    ErrorClass,
    ErrorClassifier,
    ExecutionCancelled,
    PolicyNotFoundError,
    StepError,
    StepRetryError,
)
from stepretry.orchestration import (
    AttemptOutcome,
    AttemptResult,
    FunctionStep,
    MemorySink,
    RetryOrchestrator,
    RetryOrchestratorConfig,
    RunResult,
    RunState,
    StepSequence,
    StructlogSink,
    orchestrator_config_from_mapping,
)
from stepretry.policies import (
    AlwaysConfig,
    AlwaysRetry,
    ErrorCategoryRegistry,
    OnErrorCategoryConfig,
    RetryOnErrorCategory,
    RetryPolicy,
    RetryPolicyConfig,
    RetryPolicyFactory,
    default_policy_factory,
)

__all__ = [
    "AlwaysConfig",
    "AlwaysRetry",
    "AttemptOutcome",
    "AttemptResult",
    "ConfigurationError",
    "ErrorCategoryRegistry",
    "ErrorClass",
    "ErrorClassifier",
    "ExecutionCancelled",
    "FunctionStep",
    "MemorySink",
    "OnErrorCategoryConfig",
    "PolicyNotFoundError",
    "RetryOnErrorCategory",
    "RetryOrchestrator",
    "RetryOrchestratorConfig",
    "RetryPolicy",
    "RetryPolicyConfig",
    "RetryPolicyFactory",
    "RunResult",
    "RunState",
    "StepError",
    "StepRetryError",
    "StepSequence",
    "StructlogSink",
    "default_policy_factory",
    "orchestrator_config_from_mapping",
]
