"""
Structured error types for stepretry.

Every failure the retry orchestrator sees falls into one of four buckets.
Two of them are not exceptions at all (a step returning ``False``) or are
never caught (fatal errors), so the module is as much about classification
as it is about exception classes.

Manifesto:
    - **Explicit classification:** Recoverable vs fatal is an ``ErrorClass``
      value produced by an ``ErrorClassifier``, not an ``except`` clause
    - **Fail at setup:** Configuration problems raise before any attempt
    - **Error chaining:** Wrapped exceptions are kept as ``cause``

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      StepRetryError                          │
        │                  (message, cause, context)                   │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  ConfigurationError      StepError        ExecutionCancelled │
        │  (setup time)            (recoverable)    (wait interrupted) │
        │       │                                                      │
        │  PolicyNotFoundError                                         │
        │                                                              │
        └─────────────────────────────────────────────────────────────┘

        Failure taxonomy seen by the orchestrator
        ──────────────────────────────────────────
        LogicalFailure    step returned False        → policy(has_error=False)
        RecoverableError  ErrorClass.RECOVERABLE     → policy(has_error=True)
        FatalError        ErrorClass.FATAL           → propagates, no policy
        ConfigurationError                           → raised at build time

Examples:
    >>> classifier = ErrorClassifier()
    >>> classifier.classify(TimeoutError("slow"))
    <ErrorClass.RECOVERABLE: 'RECOVERABLE'>
    >>> classifier.classify(KeyError("x"))
    <ErrorClass.FATAL: 'FATAL'>

Tags:
    error-handling, exception-hierarchy, retry-logic, stepretry
"""

from __future__ import annotations

from collections.abc import Iterable
from enum import Enum
from typing import Any


class ErrorClass(str, Enum):
    """Whether a raised error takes part in retry bookkeeping."""

    RECOVERABLE = "RECOVERABLE"  # Offered to the retry policy
    FATAL = "FATAL"  # Propagates immediately


class StepRetryError(Exception):
    """
    Base exception for all stepretry errors.

    Attributes:
        message: Human readable message
        cause: Underlying exception, also chained as ``__cause__``
        context: Free-form metadata for logging
    """

    def __init__(
        self,
        message: str,
        *,
        cause: BaseException | None = None,
        context: dict[str, Any] | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.cause = cause
        self.context = dict(context or {})

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> StepRetryError:
        """Add context to this error (fluent API)."""
        self.context.update(kwargs)
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
        }
        if self.context:
            result["context"] = dict(self.context)
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r})"


# =============================================================================
# CONFIGURATION ERRORS (raised before any attempt runs)
# =============================================================================


class ConfigurationError(StepRetryError):
    """Invalid orchestrator or policy configuration."""

    def __init__(self, message: str, *, field: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.field = field

    def to_dict(self) -> dict[str, Any]:
        result = super().to_dict()
        if self.field is not None:
            result["field"] = self.field
        return result


class PolicyNotFoundError(ConfigurationError):
    """Raised when a policy config names a variant nobody registered."""

    def __init__(self, kind: str, available: Iterable[str] = ()):
        self.kind = kind
        self.available = sorted(available)
        known = ", ".join(self.available) or "none"
        super().__init__(
            f"Retry policy '{kind}' is not registered. Available: {known}",
            field="kind",
        )


# =============================================================================
# RUN-TIME ERRORS
# =============================================================================


class StepError(StepRetryError):
    """
    Recoverable failure raised by a step.

    Steps that want the retry policy to see a failure, without relying on
    an I/O exception type, raise this.
    """


class ExecutionCancelled(StepRetryError):
    """The inter-attempt wait was interrupted by the host."""

    def __init__(self, message: str = "Retry execution cancelled", *, attempt: int | None = None):
        super().__init__(message, context={"attempt": attempt} if attempt is not None else None)
        self.attempt = attempt


# =============================================================================
# CLASSIFICATION
# =============================================================================


DEFAULT_RECOVERABLE: tuple[type[BaseException], ...] = (OSError, StepError)


class ErrorClassifier:
    """
    Decides whether a raised error is recoverable or fatal.

    Only instances of the ``recoverable`` types are offered to the retry
    policy. Everything else is fatal and bypasses the policy entirely.
    ``OSError`` covers the I/O family (``TimeoutError``, ``ConnectionError``,
    ``FileNotFoundError``...).

    Example:
        >>> classifier = ErrorClassifier(recoverable=(ValueError,))
        >>> classifier.is_recoverable(ValueError("bad"))
        True
    """

    def __init__(self, recoverable: Iterable[type[BaseException]] = DEFAULT_RECOVERABLE):
        self._recoverable = tuple(recoverable)
        for exc_type in self._recoverable:
            if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
                raise ConfigurationError(
                    f"Recoverable error types must be exception classes, got {exc_type!r}",
                    field="recoverable",
                )

    @property
    def recoverable(self) -> tuple[type[BaseException], ...]:
        return self._recoverable

    def classify(self, error: BaseException) -> ErrorClass:
        if isinstance(error, self._recoverable):
            return ErrorClass.RECOVERABLE
        return ErrorClass.FATAL

    def is_recoverable(self, error: BaseException) -> bool:
        return self.classify(error) is ErrorClass.RECOVERABLE

    def __repr__(self) -> str:
        names = ", ".join(t.__name__ for t in self._recoverable)
        return f"ErrorClassifier(recoverable=({names}))"


__all__ = [
    "ConfigurationError",
    "DEFAULT_RECOVERABLE",
    "ErrorClass",
    "ErrorClassifier",
    "ExecutionCancelled",
    "PolicyNotFoundError",
    "StepError",
    "StepRetryError",
]
