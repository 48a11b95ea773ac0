"""Retry policies: pluggable decisions on whether a failed attempt is re-run.

ARCHITECTURE
────────────
::

    RetryPolicyConfig (declarative, frozen)
      ├── AlwaysConfig            kind="always"
      └── OnErrorCategoryConfig   kind="on_error_category", category="Exception"
      │
      ▼
    RetryPolicyFactory ── kind → (config type, constructor)
      │
      ▼
    RetryPolicy (fresh per run)
      ├── AlwaysRetry
      └── RetryOnErrorCategory ── ErrorCategoryRegistry (name → class)
"""

from stepretry.policies.base import RetryPolicy, RetryPolicyConfig
from stepretry.policies.builtin import (
    AlwaysConfig,
    AlwaysRetry,
    OnErrorCategoryConfig,
    RetryOnErrorCategory,
)
from stepretry.policies.categories import CATCH_ALL_CATEGORY, ErrorCategoryRegistry
from stepretry.policies.factory import PolicyVariant, RetryPolicyFactory, default_policy_factory

__all__ = [
    "AlwaysConfig",
    "AlwaysRetry",
    "CATCH_ALL_CATEGORY",
    "ErrorCategoryRegistry",
    "OnErrorCategoryConfig",
    "PolicyVariant",
    "RetryOnErrorCategory",
    "RetryPolicy",
    "RetryPolicyConfig",
    "RetryPolicyFactory",
    "default_policy_factory",
]
