"""Built-in retry policies: always retry, and retry on a named error category."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from stepretry.core.errors import ConfigurationError
from stepretry.core.logging import get_logger
from stepretry.policies.base import RetryPolicy, RetryPolicyConfig
from stepretry.policies.categories import CATCH_ALL_CATEGORY, ErrorCategoryRegistry

logger = get_logger(__name__)


@dataclass(frozen=True)
class AlwaysConfig(RetryPolicyConfig):
    """Retry every failure, returned or raised."""

    kind: ClassVar[str] = "always"


@dataclass(frozen=True)
class OnErrorCategoryConfig(RetryPolicyConfig):
    """Retry only when the raised error belongs to ``category``."""

    kind: ClassVar[str] = "on_error_category"

    category: str = CATCH_ALL_CATEGORY

    def __post_init__(self) -> None:
        if not isinstance(self.category, str) or not self.category.strip():
            raise ConfigurationError(
                "on_error_category policy requires a non-empty category name",
                field="category",
            )


class AlwaysRetry(RetryPolicy):
    """Retry whatever happened."""

    display_name: ClassVar[str] = "Always retry in case of error"

    def shall_retry(self, has_error: bool, error: BaseException | None = None) -> bool:
        return True


class RetryOnErrorCategory(RetryPolicy):
    """
    Retry when the raised error is an instance of the configured category.

    The category name is resolved once, against the registry given at
    construction. A name that does not resolve makes the policy refuse
    every retry. Returned failures (no error) are never retried.
    """

    display_name: ClassVar[str] = "Retry on error category"

    def __init__(self, category: str, categories: ErrorCategoryRegistry):
        super().__init__()
        self.category = category
        self._category_type = categories.resolve(category)
        if self._category_type is None:
            logger.warning("policy.category_unresolved", category=category)

    @property
    def resolved(self) -> bool:
        return self._category_type is not None

    def shall_retry(self, has_error: bool, error: BaseException | None = None) -> bool:
        if error is None or self._category_type is None:
            return False
        return isinstance(error, self._category_type)

    def __repr__(self) -> str:
        return f"RetryOnErrorCategory(category={self.category!r}, resolved={self.resolved})"
