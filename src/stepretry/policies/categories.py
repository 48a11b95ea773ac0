"""Error category registry: resolves category names to exception classes.

Policies that match on error category never import classes by name. They
look the name up in an ``ErrorCategoryRegistry`` handed to them at
construction, so the set of resolvable categories is explicit and
testable.

Example::

    registry = ErrorCategoryRegistry.with_builtins()
    registry.register(UpstreamTimeout, name="Timeout")
    registry.resolve("Timeout")          # -> UpstreamTimeout
    registry.resolve("TimeoutError")     # -> builtins.TimeoutError
    registry.resolve("IOError")          # -> builtins.OSError (alias)
    registry.resolve("NoSuchThing")      # -> None
"""

from __future__ import annotations

import builtins
from collections.abc import Iterator

from stepretry.core import errors as _errors
from stepretry.core.errors import ConfigurationError
from stepretry.core.logging import get_logger

logger = get_logger(__name__)

CATCH_ALL_CATEGORY = "Exception"


def _qualified_name(exc_type: type[BaseException]) -> str:
    return f"{exc_type.__module__}.{exc_type.__qualname__}"


class ErrorCategoryRegistry:
    """Name → exception class mapping used by category-matching policies."""

    def __init__(self) -> None:
        self._categories: dict[str, type[BaseException]] = {}

    @classmethod
    def with_builtins(cls) -> ErrorCategoryRegistry:
        """Registry preloaded with Python's built-in exceptions and stepretry's own.

        Built-ins are registered under every name the ``builtins`` module
        binds them to, so aliases such as ``IOError`` resolve to ``OSError``.
        """
        registry = cls()
        for name, value in vars(builtins).items():
            if isinstance(value, type) and issubclass(value, BaseException):
                registry.register(value, name=name)
        for name in _errors.__all__:
            value = getattr(_errors, name)
            if isinstance(value, type) and issubclass(value, BaseException):
                registry.register(value)
        return registry

    def register(self, exc_type: type[BaseException], name: str | None = None) -> type[BaseException]:
        """Register ``exc_type`` under its class name (or ``name``) and qualified name.

        Re-registering a name with a different class replaces it.
        """
        if not (isinstance(exc_type, type) and issubclass(exc_type, BaseException)):
            raise ConfigurationError(
                f"Error categories must be exception classes, got {exc_type!r}",
                field="category",
            )
        key = name or exc_type.__name__
        if not key:
            raise ConfigurationError("Error category name must not be empty", field="category")

        previous = self._categories.get(key)
        if previous is not None and previous is not exc_type:
            logger.debug(
                "category.replaced",
                name=key,
                previous=_qualified_name(previous),
                current=_qualified_name(exc_type),
            )
        self._categories[key] = exc_type
        self._categories.setdefault(_qualified_name(exc_type), exc_type)
        return exc_type

    def resolve(self, name: str) -> type[BaseException] | None:
        """Return the class registered under ``name``, or None."""
        return self._categories.get(name.strip()) if name else None

    def names(self) -> list[str]:
        """Short (non-dotted) names, sorted."""
        return sorted(key for key in self._categories if "." not in key)

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def __iter__(self) -> Iterator[str]:
        return iter(self.names())

    def __len__(self) -> int:
        return len(self.names())
