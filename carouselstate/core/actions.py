"""
Built-in action kinds and helpers to declare them.

Three kinds of actions exist:

* ``AssignAction`` - a pure context update, applied immediately to the
  working context of the step.
* ``RaiseAction`` - queues an internal event, processed before any event
  waiting on the external queue.
* ``EffectAction`` - an arbitrary host callback receiving ``(context, event)``.
  Effects run after the step commits.

Definitions refer to actions by name; the compiler looks the names up in the
implementation registry and wraps plain callables as effects.
"""

import copy
from typing import Any, Callable, Mapping, Optional, Union

from carouselstate.core.event import Event
from carouselstate.core.types import AssignFunction, Context, EffectFunction

Assignment = Union[AssignFunction, Mapping[str, Any]]
RaiseTarget = Union[str, Event, Callable[[Context, Event], Event]]


class Action:
    """Base class for every executable action."""

    def __init__(self, name: str) -> None:
        if not name or not isinstance(name, str):
            raise ValueError("Action name must be a non-empty string")
        self._name = name

    @property
    def name(self) -> str:
        """Get the action name used in logs and error messages."""
        return self._name

    def named(self, name: str) -> "Action":
        """Return a copy of this action carrying a registry name."""
        clone = copy.copy(self)
        clone._name = name
        return clone

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self._name!r})"


class AssignAction(Action):
    """Updates the extended state.

    The assignment is either a function returning a partial update, or a
    mapping of context keys to values or ``(context, event)`` callables.
    Assignments must be deterministic and free of side effects.
    """

    def __init__(self, assignment: Assignment, name: str = "assign") -> None:
        super().__init__(name)
        if not callable(assignment) and not isinstance(assignment, Mapping):
            raise ValueError("Assignment must be a callable or a mapping")
        self._assignment = assignment

    def apply(self, context: Context, event: Event) -> Context:
        """Compute the next context.

        Args:
            context: Current context (not modified)
            event: Triggering event

        Returns:
            A new context dictionary with the update merged in
        """
        if callable(self._assignment):
            update = self._assignment(context, event)
            if update is None:
                return dict(context)
            if not isinstance(update, Mapping):
                raise TypeError(f"Assignment returned {type(update).__name__}, expected a mapping")
        else:
            update = {
                key: value(context, event) if callable(value) else value for key, value in self._assignment.items()
            }
        return {**context, **update}


class RaiseAction(Action):
    """Queues an internal event."""

    def __init__(self, event: RaiseTarget, name: Optional[str] = None) -> None:
        if isinstance(event, str):
            event = Event(event)
        super().__init__(name or (f"raise:{event.type}" if isinstance(event, Event) else "raise"))
        self._event = event

    def resolve(self, context: Context, event: Event) -> Event:
        """Build the event to raise."""
        if isinstance(self._event, Event):
            return self._event
        raised = self._event(context, event)
        return Event(raised) if isinstance(raised, str) else raised


class EffectAction(Action):
    """Runs a host supplied callback."""

    def __init__(self, fn: EffectFunction, name: Optional[str] = None) -> None:
        if not callable(fn):
            raise ValueError("Effect must be callable")
        super().__init__(name or getattr(fn, "__name__", "effect"))
        self._fn = fn

    def execute(self, context: Context, event: Event) -> None:
        self._fn(context, event)


def assign(assignment: Assignment) -> AssignAction:
    """Declare a context assignment.

    Example:
        >>> increment = assign({"cursor": lambda ctx, e: ctx["cursor"] + 1})
    """
    return AssignAction(assignment)


def raise_event(event: RaiseTarget) -> RaiseAction:
    """Declare an action that raises an internal event."""
    return RaiseAction(event)


def effect(fn: EffectFunction) -> EffectAction:
    return EffectAction(fn)


def to_action(value: Any, name: str) -> Action:
    """Turn a registry entry into an Action carrying the registry name.

    Raises:
        ValueError: If the value is neither an Action nor callable
    """
    if isinstance(value, Action):
        return value.named(name)
    if callable(value):
        return EffectAction(value, name)
    raise ValueError(f"Action '{name}' must be an Action or a callable, got {type(value).__name__}")
