"""
Transition and guard definitions.

Architecture:
- Implements guarded transition candidates
- Keeps declaration order for first-match selection
- Distinguishes internal from external transitions
- Coordinates with the resolver for domain/LCA computation

Design Patterns:
- Command Pattern: Transitions encapsulate a state change
- Strategy Pattern: Guards are pluggable predicates
- Composite Pattern: Guards compose with ``&``, ``|`` and ``~``

Responsibilities:
1. Transition Definition
   - Source state and event type
   - Targets (resolved by the compiler)
   - Actions executed between exit and entry
   - Internal/external kind

2. Guard Evaluation
   - Pure predicate over ``(context, event)``
   - Error wrapping into GuardEvaluationError

Dependencies:
- state.py: Source and target nodes
- event.py: Event triggers
- actions.py: Transition actions
"""

from typing import TYPE_CHECKING, Optional, Tuple

from carouselstate.core.actions import Action
from carouselstate.core.errors import GuardEvaluationError
from carouselstate.core.event import Event
from carouselstate.core.types import Context, GuardFunction

if TYPE_CHECKING:
    from carouselstate.core.state import StateNode


class Guard:
    """Represents a named guard condition for a transition.

    Class Invariants:
    1. Must be deterministic
    2. Must be side-effect free
    3. Must compose properly
    """

    def __init__(self, condition: GuardFunction, name: Optional[str] = None) -> None:
        """Initialize a Guard instance.

        Args:
            condition: Function of ``(context, event)`` returning bool
            name: Name used in error messages
        """
        if not callable(condition):
            raise ValueError("Guard condition must be callable")
        self._condition = condition
        self._name = name or getattr(condition, "__name__", "guard")

    @property
    def name(self) -> str:
        return self._name

    def evaluate(self, context: Context, event: Event) -> bool:
        """Evaluate the guard condition.

        Args:
            context: Extended state
            event: Triggering event

        Returns:
            True if condition is satisfied, False otherwise

        Raises:
            GuardEvaluationError: If the condition raises
        """
        try:
            return bool(self._condition(context, event))
        except GuardEvaluationError:
            raise
        except Exception as e:
            raise GuardEvaluationError(self._name, e) from e

    def __and__(self, other: "Guard") -> "Guard":
        """Compose two guards with AND logic."""
        return Guard(
            lambda ctx, event: self.evaluate(ctx, event) and other.evaluate(ctx, event),
            f"({self._name} & {other.name})",
        )

    def __or__(self, other: "Guard") -> "Guard":
        """Compose two guards with OR logic."""
        return Guard(
            lambda ctx, event: self.evaluate(ctx, event) or other.evaluate(ctx, event),
            f"({self._name} | {other.name})",
        )

    def __invert__(self) -> "Guard":
        """Negate the guard condition."""
        return Guard(lambda ctx, event: not self.evaluate(ctx, event), f"~{self._name}")

    def __repr__(self) -> str:
        return f"Guard({self._name!r})"


def to_guard(value: object, name: str) -> Guard:
    """Wrap a registry entry into a Guard carrying the registry name."""
    if isinstance(value, Guard):
        return Guard(value.evaluate, name)
    if callable(value):
        return Guard(value, name)
    raise ValueError(f"Guard '{name}' must be callable, got {type(value).__name__}")


class Transition:
    """Represents one candidate transition of a state node.

    Candidates for the same event on the same node are kept in declaration
    order; the first one whose guard passes is taken.

    Class Invariants:
    1. Source state must be set
    2. Targets are resolved exactly once by the compiler
    3. A transition without targets is internal (actions only)
    4. Guard conditions must be side-effect free
    """

    def __init__(
        self,
        source: "StateNode",
        event_type: Optional[str],
        target_refs: Tuple[str, ...] = (),
        guard: Optional[Guard] = None,
        actions: Tuple[Action, ...] = (),
        internal: Optional[bool] = None,
        order: int = 0,
    ) -> None:
        """Initialize a Transition instance.

        Args:
            source: Node declaring the transition
            event_type: Triggering event type, ``None`` for eventless transitions
            target_refs: Unresolved target references as written in the definition
            guard: Optional guard condition
            actions: Actions executed between exit and entry
            internal: Explicit internal flag; defaults to True when every target
                is written child-relative (``.child``) or there is no target
            order: Declaration index among the node's transitions

        Raises:
            ValueError: If any parameters are invalid
        """
        if source is None:
            raise ValueError("Source state must be provided")

        if event_type is not None and (not event_type or not isinstance(event_type, str)):
            raise ValueError("Event type must be a non-empty string or None")

        self._source = source
        self._event_type = event_type
        self._target_refs = tuple(target_refs)
        self._targets: Optional[Tuple["StateNode", ...]] = None
        self._guard = guard
        self._actions = tuple(actions)
        if internal is None:
            internal = all(ref.startswith(".") for ref in self._target_refs)
        self._internal = internal
        self._order = order

    @property
    def source(self) -> "StateNode":
        """Get the source state."""
        return self._source

    @property
    def event_type(self) -> Optional[str]:
        """Get the triggering event type (None when eventless)."""
        return self._event_type

    @property
    def eventless(self) -> bool:
        return self._event_type is None

    @property
    def target_refs(self) -> Tuple[str, ...]:
        return self._target_refs

    @property
    def targets(self) -> Tuple["StateNode", ...]:
        """Get the resolved target states."""
        if self._targets is None:
            raise RuntimeError(f"Targets of {self!r} have not been resolved")
        return self._targets

    @property
    def guard(self) -> Optional[Guard]:
        return self._guard

    @property
    def actions(self) -> Tuple[Action, ...]:
        return self._actions

    @property
    def internal(self) -> bool:
        """Whether the source is left untouched when targets are its descendants."""
        return self._internal

    @property
    def order(self) -> int:
        return self._order

    def resolve_targets(self, targets: Tuple["StateNode", ...]) -> None:
        """Bind the resolved targets. Called once by the compiler."""
        if self._targets is not None:
            raise RuntimeError(f"Targets of {self!r} are already resolved")
        self._targets = tuple(targets)

    def is_enabled(self, context: Context, event: Event) -> bool:
        """Evaluate the guard; transitions without guard are always enabled."""
        if self._guard is None:
            return True
        return self._guard.evaluate(context, event)

    def __repr__(self) -> str:
        trigger = self._event_type if self._event_type is not None else "(always)"
        targets = ", ".join(self._target_refs) or "-"
        return f"Transition({self._source.id}: {trigger} -> {targets})"
