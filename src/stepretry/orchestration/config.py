"""Orchestrator configuration: immutable, validated at construction.

Example::

    config = RetryOrchestratorConfig(
        max_retries=2,
        inter_attempt_delay_ms=50,
        policy=OnErrorCategoryConfig(category="TimeoutError"),
    )
    config.total_attempts   # 3

    config = orchestrator_config_from_mapping(
        {"max_retries": 2, "policy": {"kind": "always"}}, factory
    )
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from stepretry.core.errors import ConfigurationError
from stepretry.core.settings import StepRetrySettings, load_settings
from stepretry.policies.base import RetryPolicyConfig
from stepretry.policies.builtin import AlwaysConfig
from stepretry.policies.factory import RetryPolicyFactory


def _non_negative_int(value: Any, name: str) -> int:
    # bool is an int subclass but never a sensible count
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationError(f"{name} must be an integer, got {value!r}", field=name)
    if value < 0:
        raise ConfigurationError(f"{name} must be >= 0, got {value}", field=name)
    return value


@dataclass(frozen=True)
class RetryOrchestratorConfig:
    """
    Retry loop settings.

    Attributes:
        max_retries: Retries after the first attempt (total = max_retries + 1)
        inter_attempt_delay_ms: Blocking wait between attempts
        policy: Which retry policy decides on failures
    """

    max_retries: int = 0
    inter_attempt_delay_ms: int = 0
    policy: RetryPolicyConfig = field(default_factory=AlwaysConfig)

    def __post_init__(self) -> None:
        _non_negative_int(self.max_retries, "max_retries")
        _non_negative_int(self.inter_attempt_delay_ms, "inter_attempt_delay_ms")
        if not isinstance(self.policy, RetryPolicyConfig):
            raise ConfigurationError(
                f"policy must be a RetryPolicyConfig, got {type(self.policy).__name__}",
                field="policy",
            )

    @property
    def total_attempts(self) -> int:
        return self.max_retries + 1

    @property
    def delay_seconds(self) -> float:
        return self.inter_attempt_delay_ms / 1000.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "max_retries": self.max_retries,
            "inter_attempt_delay_ms": self.inter_attempt_delay_ms,
            "policy": self.policy.to_dict(),
        }


def _coerce_int(raw: Mapping[str, Any], key: str, default: int) -> int:
    value = raw.get(key)
    if value is None:
        return default
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError as exc:
            raise ConfigurationError(f"{key} must be an integer, got {value!r}", field=key) from exc
    return value


def orchestrator_config_from_mapping(
    raw: Mapping[str, Any] | None,
    factory: RetryPolicyFactory,
    settings: StepRetrySettings | None = None,
) -> RetryOrchestratorConfig:
    """Build a config from a plain mapping (parsed YAML/JSON).

    Missing ``max_retries`` / ``inter_attempt_delay_ms`` fall back to
    ``settings`` (``STEPRETRY_*`` environment variables by default). An
    invalid environment value raises ``ConfigurationError``.
    """
    if raw is None:
        raw = {}
    if not isinstance(raw, Mapping):
        raise ConfigurationError("Orchestrator config must be a mapping", field="config")

    unknown = set(raw) - {"max_retries", "inter_attempt_delay_ms", "policy"}
    if unknown:
        raise ConfigurationError(
            f"Unknown orchestrator config keys: {', '.join(sorted(unknown))}",
            field="config",
        )

    settings = settings or load_settings()
    return RetryOrchestratorConfig(
        max_retries=_coerce_int(raw, "max_retries", settings.max_retries),
        inter_attempt_delay_ms=_coerce_int(raw, "inter_attempt_delay_ms", settings.inter_attempt_delay_ms),
        policy=factory.config_from_mapping(raw.get("policy")),
    )
