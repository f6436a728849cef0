"""
Read-only view of an interpreter's state after a step.
"""

from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple, Union

from carouselstate.core.errors import GuardEvaluationError
from carouselstate.core.event import Event, is_builtin_event_type
from carouselstate.core.state import StateNode
from carouselstate.core.types import Context
from carouselstate.runtime.resolver import TransitionResolver, document_order

StateValue = Union[str, Dict[str, Any]]


def state_value(node: StateNode, configuration: FrozenSet[StateNode]) -> StateValue:
    """Render the active configuration below ``node`` as nested dicts and strings.

    Compound nodes render their active child, by key when it is a leaf.
    Parallel nodes render every region; a leaf region renders as ``{}``.
    """
    if node.is_compound:
        for child in node.child_nodes:
            if child in configuration:
                if child.is_atomic:
                    return child.key
                return {child.key: state_value(child, configuration)}
        return {}
    if node.is_parallel:
        return {
            region.key: {} if region.is_atomic else state_value(region, configuration) for region in node.child_nodes
        }
    return {}


class Snapshot:
    """Immutable state of an interpreter: configuration, context and last event.

    Class Invariants:
    1. Never changes after creation
    2. The context is a private copy
    """

    def __init__(
        self,
        root: StateNode,
        configuration: Iterable[StateNode],
        context: Context,
        event: Optional[Event],
        done: bool,
        event_types: Iterable[str] = (),
    ) -> None:
        self._root = root
        self._nodes: FrozenSet[StateNode] = frozenset(configuration)
        self._context = dict(context)
        self._event = event
        self._done = done
        self._event_types = frozenset(event_types)
        self._resolver = TransitionResolver(root)

    @property
    def value(self) -> StateValue:
        """Nested rendering of the active configuration, e.g. ``{"loaded": "start"}``."""
        return state_value(self._root, self._nodes)

    @property
    def context(self) -> Context:
        """Get a copy of the context."""
        return dict(self._context)

    @property
    def configuration(self) -> Tuple[str, ...]:
        """Ids of the active nodes in document order, root first."""
        return tuple(node.id for node in document_order(self._nodes))

    @property
    def nodes(self) -> FrozenSet[StateNode]:
        return self._nodes

    @property
    def tags(self) -> FrozenSet[str]:
        tags: FrozenSet[str] = frozenset()
        for node in self._nodes:
            tags |= node.tags
        return tags

    @property
    def event(self) -> Optional[Event]:
        """Get the event that produced this snapshot."""
        return self._event

    @property
    def done(self) -> bool:
        """Whether a top-level final state has been reached."""
        return self._done

    def has_tag(self, tag: str) -> bool:
        return any(tag in node.tags for node in self._nodes)

    def matches(self, path: str) -> bool:
        """Check whether the node with a dotted id (``"loaded.carousel.start"``) is active."""
        return any(node.id == path for node in self._nodes if node.parent is not None)

    def can(self, event: Union[str, Event]) -> bool:
        """Check whether sending an event would take at least one transition.

        Guards are evaluated against the snapshot's context; a raising guard
        counts as not enabled.
        """
        if self._done:
            return False
        if isinstance(event, str):
            event = Event(event)
        try:
            return bool(self._resolver.select(set(self._nodes), event.type, self._context, event))
        except GuardEvaluationError:
            return False

    def next_events(self, exclude: Iterable[str] = ()) -> List[str]:
        """User events the current configuration can handle, sorted.

        Interpreter-generated events (``after.*``, ``done.*``, ``error.*``)
        are never listed.
        """
        excluded = set(exclude)
        return sorted(
            event_type
            for event_type in self._event_types
            if event_type not in excluded and not is_builtin_event_type(event_type) and self.can(event_type)
        )

    def __repr__(self) -> str:
        return f"Snapshot(value={self.value!r}, context={self._context!r})"
