"""Steps and step sequences.

A step is anything with ``perform(context) -> bool``. The orchestrator
never looks inside one: it calls ``perform``, reads the boolean, and
notices if it raised.

``StepSequence`` is immutable. Build it once at configuration time; to
change it, build a new sequence (and a new orchestrator).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Iterator
from typing import Any, Protocol, overload, runtime_checkable

from stepretry.core.errors import ConfigurationError


@runtime_checkable
class Step(Protocol):
    """A unit of work in a retried sequence."""

    def perform(self, context: Any) -> bool:
        """Run the step. Return False to signal failure; may also raise."""
        ...


class FunctionStep:
    """Adapt a plain callable to the ``Step`` protocol.

    ``fn(context)`` returning ``None`` counts as success, so functions that
    signal failure only by raising need no ``return True``.

    Example:
        >>> step = FunctionStep(lambda ctx: ctx["ready"], name="check-ready")
        >>> step.perform({"ready": True})
        True
    """

    def __init__(
        self,
        fn: Callable[[Any], bool | None],
        name: str | None = None,
        prebuild: Callable[[Any], bool] | None = None,
    ):
        if not callable(fn):
            raise ConfigurationError(f"FunctionStep needs a callable, got {fn!r}", field="fn")
        self.fn = fn
        self.name = name or getattr(fn, "__name__", "step")
        self._prebuild = prebuild

    def perform(self, context: Any) -> bool:
        result = self.fn(context)
        return True if result is None else bool(result)

    def prebuild(self, context: Any) -> bool:
        if self._prebuild is None:
            return True
        return bool(self._prebuild(context))

    def __repr__(self) -> str:
        return f"FunctionStep({self.name!r})"


def step_name(step: Any) -> str:
    """Display name of a step for progress lines."""
    name = getattr(step, "name", None)
    if isinstance(name, str) and name:
        return name
    return type(step).__name__


class StepSequence:
    """Ordered, immutable sequence of steps. Insertion order is execution order."""

    __slots__ = ("_steps",)

    def __init__(self, steps: Iterable[Step] = ()):
        steps = tuple(steps)
        for index, step in enumerate(steps):
            if not callable(getattr(step, "perform", None)):
                raise ConfigurationError(
                    f"Step #{index} ({step!r}) has no perform(context) method",
                    field="steps",
                )
        self._steps: tuple[Step, ...] = steps

    @classmethod
    def of(cls, *items: Step | Callable[[Any], bool | None]) -> StepSequence:
        """Build a sequence from steps and/or plain callables."""
        return cls(item if isinstance(item, Step) else FunctionStep(item) for item in items)

    def with_step(self, step: Step) -> StepSequence:
        """Return a new sequence with ``step`` appended."""
        return StepSequence((*self._steps, step))

    def prebuild(self, context: Any) -> bool:
        """Run each step's ``prebuild`` hook; stop at the first that refuses.

        Steps without a ``prebuild`` method count as ready.
        """
        for step in self._steps:
            hook = getattr(step, "prebuild", None)
            if hook is not None and not hook(context):
                return False
        return True

    @property
    def names(self) -> list[str]:
        return [step_name(step) for step in self._steps]

    def __iter__(self) -> Iterator[Step]:
        return iter(self._steps)

    def __len__(self) -> int:
        return len(self._steps)

    @overload
    def __getitem__(self, index: int) -> Step: ...

    @overload
    def __getitem__(self, index: slice) -> tuple[Step, ...]: ...

    def __getitem__(self, index: int | slice) -> Step | tuple[Step, ...]:
        return self._steps[index]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StepSequence):
            return NotImplemented
        return self._steps == other._steps

    def __hash__(self) -> int:
        return hash(self._steps)

    def __repr__(self) -> str:
        return f"StepSequence({self.names!r})"
