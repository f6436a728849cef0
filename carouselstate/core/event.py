"""
Event representation and built-in event naming.

Architecture:
- Defines the immutable event record passed to guards and actions
- Classifies events by origin (signal, time, completion, error)
- Owns the naming scheme for interpreter-generated events
- Coordinates with the runtime package for queuing

Design Patterns:
- Command Pattern: Events encapsulate a request for a transition
- Value Object: Events are never mutated after creation

Responsibilities:
1. Event Data
   - Event type used for transition lookup
   - Payload data (e.g. ``{"cursor": 4}`` for ``goTo``)
   - Origin classification

2. Built-in Events
   - ``after.<delay>.<state id>`` for delayed transitions
   - ``done.invoke.<service id>`` for settled services
   - ``error.invoke.<service id>`` for failed services
   - ``done.state.<state id>`` for completed compound/parallel states

Dependencies:
- runtime/event_queue.py: Event queuing
- runtime/interpreter.py: Event dispatch
"""

from enum import Enum, auto
from typing import Any, Dict, Mapping, Optional, Union

INIT_EVENT_TYPE = "init"
AFTER_PREFIX = "after."
DONE_INVOKE_PREFIX = "done.invoke."
ERROR_INVOKE_PREFIX = "error.invoke."
DONE_STATE_PREFIX = "done.state."

BUILTIN_PREFIXES = (AFTER_PREFIX, DONE_INVOKE_PREFIX, ERROR_INVOKE_PREFIX, DONE_STATE_PREFIX)


class EventKind(Enum):
    """Defines where an event came from.

    Used for logging and for filtering built-in events out of UI affordances.
    """

    SIGNAL = auto()  # Sent by the host, a listener service or a raise action
    TIME = auto()  # Delayed transition expiry
    COMPLETION = auto()  # Service or state completion
    ERROR = auto()  # Service failure
    INIT = auto()  # Synthetic event used while entering the initial configuration


class Event:
    """Represents an event delivered to the statechart.

    Class Invariants:
    1. Event type must be a non-empty string
    2. Event kind must not change after creation
    3. Event data is copied on creation and on access
    """

    __slots__ = ("_type", "_kind", "_data")

    def __init__(
        self,
        event_type: str,
        data: Optional[Mapping[str, Any]] = None,
        kind: EventKind = EventKind.SIGNAL,
    ) -> None:
        """Initialize a new Event instance.

        Args:
            event_type: Name used to look up transitions
            data: Optional payload
            kind: Origin of the event

        Raises:
            ValueError: If any parameters are invalid
        """
        if not event_type or not isinstance(event_type, str):
            raise ValueError("Event type must be a non-empty string")

        if not isinstance(kind, EventKind):
            raise ValueError("Event kind must be an EventKind enum value")

        self._type = event_type
        self._kind = kind
        self._data: Dict[str, Any] = dict(data) if data else {}

    @property
    def type(self) -> str:
        """Get the event type."""
        return self._type

    @property
    def kind(self) -> EventKind:
        """Get the event kind."""
        return self._kind

    @property
    def data(self) -> Dict[str, Any]:
        """Get a copy of the event data."""
        return self._data.copy()

    def get(self, key: str, default: Any = None) -> Any:
        """Read a single payload value."""
        return self._data.get(key, default)

    def __getitem__(self, key: str) -> Any:
        return self._data[key]

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Event):
            return NotImplemented
        return self._type == other._type and self._kind == other._kind and self._data == other._data

    def __hash__(self) -> int:
        return hash((self._type, self._kind))

    def __repr__(self) -> str:
        if self._data:
            return f"Event({self._type!r}, {self._data!r})"
        return f"Event({self._type!r})"


def to_event(event: Union[str, Event], data: Optional[Mapping[str, Any]] = None) -> Event:
    """Normalise a host-supplied event.

    Args:
        event: Event instance or event type string
        data: Payload used when ``event`` is a string

    Returns:
        An Event instance

    Raises:
        ValueError: If payload data is given together with an Event instance
    """
    if isinstance(event, Event):
        if data:
            raise ValueError("Event data cannot be combined with an Event instance")
        return event
    return Event(event, data)


def after_event_type(delay_key: Union[str, int, float], state_id: str) -> str:
    return f"{AFTER_PREFIX}{delay_key}.{state_id}"


def done_invoke_event_type(service_id: str) -> str:
    return f"{DONE_INVOKE_PREFIX}{service_id}"


def error_invoke_event_type(service_id: str) -> str:
    return f"{ERROR_INVOKE_PREFIX}{service_id}"


def done_state_event_type(state_id: str) -> str:
    return f"{DONE_STATE_PREFIX}{state_id}"


def is_builtin_event_type(event_type: str) -> bool:
    """Check whether an event type is generated by the interpreter itself."""
    return event_type == INIT_EVENT_TYPE or event_type.startswith(BUILTIN_PREFIXES)
