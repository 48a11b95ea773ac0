"""Retry policy factory: tag-based registry of policy variants.

Each variant is a ``(kind, config type, constructor)`` triple. The
orchestrator only ever talks to the factory, so adding a variant means
registering it here; the retry loop does not change.

Example::

    factory = default_policy_factory()

    @dataclass(frozen=True)
    class MaxErrorsConfig(RetryPolicyConfig):
        kind: ClassVar[str] = "max_errors"
        limit: int = 2

    factory.register("max_errors", MaxErrorsConfig, lambda cfg: MaxErrors(cfg.limit))
    policy = factory.create(MaxErrorsConfig(limit=3))
"""

from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass
from typing import Any

from stepretry.core.errors import ConfigurationError, PolicyNotFoundError
from stepretry.core.logging import get_logger
from stepretry.policies.base import RetryPolicy, RetryPolicyConfig
from stepretry.policies.builtin import (
    AlwaysConfig,
    AlwaysRetry,
    OnErrorCategoryConfig,
    RetryOnErrorCategory,
)
from stepretry.policies.categories import ErrorCategoryRegistry

logger = get_logger(__name__)

PolicyConstructor = Callable[[Any], RetryPolicy]
PolicyCheck = Callable[[Any], list[str]]


@dataclass(frozen=True)
class PolicyVariant:
    """A registered policy variant."""

    kind: str
    config_type: type[RetryPolicyConfig]
    constructor: PolicyConstructor
    display_name: str
    check: PolicyCheck | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind,
            "display_name": self.display_name,
            "config_type": self.config_type.__name__,
        }


class RetryPolicyFactory:
    """Creates fresh ``RetryPolicy`` instances from ``RetryPolicyConfig`` values."""

    def __init__(self) -> None:
        self._variants: dict[str, PolicyVariant] = {}

    def register(
        self,
        kind: str,
        config_type: type[RetryPolicyConfig],
        constructor: PolicyConstructor,
        display_name: str | None = None,
        check: PolicyCheck | None = None,
    ) -> PolicyVariant:
        """Register a policy variant under ``kind``.

        Args:
            kind: Tag matched against ``config.kind``
            config_type: Config dataclass for this variant
            constructor: Builds a new policy from a config instance
            display_name: Human readable name (defaults to the kind)
            check: Optional build-time check returning problem descriptions
        """
        if not kind:
            raise ConfigurationError("Policy kind must not be empty", field="kind")
        if kind in self._variants:
            raise ConfigurationError(f"Retry policy '{kind}' is already registered", field="kind")
        if config_type.kind != kind:
            raise ConfigurationError(
                f"Config type {config_type.__name__} declares kind "
                f"'{config_type.kind}', expected '{kind}'",
                field="kind",
            )

        variant = PolicyVariant(
            kind=kind,
            config_type=config_type,
            constructor=constructor,
            display_name=display_name or kind,
            check=check,
        )
        self._variants[kind] = variant
        logger.debug("policy.registered", kind=kind, config_type=config_type.__name__)
        return variant

    def variant(self, kind: str) -> PolicyVariant:
        try:
            return self._variants[kind]
        except KeyError:
            raise PolicyNotFoundError(kind, self._variants) from None

    def variants(self) -> list[PolicyVariant]:
        return [self._variants[kind] for kind in sorted(self._variants)]

    def __contains__(self, kind: object) -> bool:
        return kind in self._variants

    def validate(self, config: RetryPolicyConfig, *, strict: bool = False) -> None:
        """Check that ``config`` can be turned into a policy.

        Unknown kinds always raise. Variant-specific problems (such as an
        unresolvable error category) raise only when ``strict`` is set and
        are logged as warnings otherwise.
        """
        if not isinstance(config, RetryPolicyConfig):
            raise ConfigurationError(
                f"Expected a RetryPolicyConfig, got {type(config).__name__}",
                field="policy",
            )
        variant = self.variant(config.kind)
        if not isinstance(config, variant.config_type):
            raise ConfigurationError(
                f"Policy '{config.kind}' expects {variant.config_type.__name__}, "
                f"got {type(config).__name__}",
                field="policy",
            )
        if variant.check is None:
            return
        for problem in variant.check(config):
            if strict:
                raise ConfigurationError(problem, field="policy")
            logger.warning("policy.config_warning", kind=config.kind, problem=problem)

    def create(self, config: RetryPolicyConfig) -> RetryPolicy:
        """Build a new, unconfigured policy for one run."""
        variant = self.variant(config.kind)
        return variant.constructor(config)

    def config_from_mapping(self, raw: Mapping[str, Any] | None) -> RetryPolicyConfig:
        """Parse ``{"kind": ..., **fields}`` into the registered config type."""
        if raw is None:
            return AlwaysConfig()
        if not isinstance(raw, Mapping):
            raise ConfigurationError("Retry policy config must be a mapping", field="policy")

        # null fields fall back to the config defaults
        fields = {key: value for key, value in raw.items() if value is not None}
        kind = fields.pop("kind", AlwaysConfig.kind)
        variant = self.variant(str(kind))
        try:
            return variant.config_type(**fields)
        except TypeError as exc:
            raise ConfigurationError(
                f"Invalid fields for retry policy '{kind}': {exc}",
                field="policy",
                cause=exc,
            ) from exc


def default_policy_factory(categories: ErrorCategoryRegistry | None = None) -> RetryPolicyFactory:
    """Factory with the built-in ``always`` and ``on_error_category`` variants."""
    registry = categories if categories is not None else ErrorCategoryRegistry.with_builtins()

    def _check_category(config: OnErrorCategoryConfig) -> list[str]:
        if config.category not in registry:
            return [f"Error category '{config.category}' is not registered; policy will never retry"]
        return []

    factory = RetryPolicyFactory()
    factory.register(
        AlwaysConfig.kind,
        AlwaysConfig,
        lambda config: AlwaysRetry(),
        display_name=AlwaysRetry.display_name,
    )
    factory.register(
        OnErrorCategoryConfig.kind,
        OnErrorCategoryConfig,
        lambda config: RetryOnErrorCategory(config.category, registry),
        display_name=RetryOnErrorCategory.display_name,
        check=_check_category,
    )
    return factory
