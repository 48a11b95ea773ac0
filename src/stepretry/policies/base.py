"""Retry policy contract and the base policy configuration.

A ``RetryPolicy`` is created fresh for every orchestrator run, so it may
keep whatever run-scoped state it needs. A ``RetryPolicyConfig`` is the
immutable, declarative description the factory turns into a policy.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any, ClassVar


class RetryPolicy:
    """
    Decides whether a failed attempt is retried.

    Subclasses override :meth:`shall_retry`. The base implementation never
    retries, which is the safe default for a policy that forgets to.

    Lifecycle:
        1. ``configure(context)`` once, before the first attempt
        2. ``shall_retry(has_error, error)`` once per failed attempt
        3. dropped when the run ends
    """

    display_name: ClassVar[str] = "Never retry"

    def __init__(self) -> None:
        self.context: Any = None

    def configure(self, context: Any) -> None:
        """Record the execution context for later inspection."""
        self.context = context

    def shall_retry(self, has_error: bool, error: BaseException | None = None) -> bool:
        """Return True to re-run the whole step sequence.

        Args:
            has_error: True when a step raised a recoverable error,
                False when a step returned failure.
            error: The raised error, or None for a returned failure.
        """
        return False

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}()"


@dataclass(frozen=True)
class RetryPolicyConfig:
    """Declarative policy selection. Subclasses set ``kind``."""

    kind: ClassVar[str] = ""

    def to_dict(self) -> dict[str, Any]:
        return {"kind": self.kind, **asdict(self)}
