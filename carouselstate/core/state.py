"""
State node hierarchy.

Architecture:
- Implements the hierarchical state structure using the Composite pattern
- Nodes are created by the compiler and never mutated afterwards
- Parallel nodes hold regions as ordinary children
- Document order drives entry/exit ordering and conflict resolution

Design Patterns:
- Composite Pattern: Hierarchical state structure
- Flyweight Pattern: One immutable tree shared by every interpreter
- Visitor Pattern: Ancestor/descendant traversal helpers

Responsibilities:
1. State Hierarchy
   - Parent/child relationships
   - Compound and parallel composition
   - Initial child resolution
   - Final states

2. State Behavior
   - Entry/exit actions
   - Event transition table and eventless transitions
   - Delayed transitions
   - Invoked services
   - Tags

Dependencies:
- transition.py: Transition candidates
- actions.py: Entry/exit actions
- compiler.py: Construction from declarative definitions
"""

from typing import Dict, FrozenSet, Iterator, List, Mapping, Optional, Tuple, Union

from carouselstate.core.actions import Action
from carouselstate.core.transition import Transition
from carouselstate.core.types import StateType


class DelayedTransition:
    """An ``after`` entry: a delay owned by a node and the event it fires.

    The transitions themselves live in the node's ``on`` table under
    ``event_type`` so they are selected like any other transition.
    """

    __slots__ = ("delay", "event_type")

    def __init__(self, delay: Union[str, int, float], event_type: str) -> None:
        self.delay = delay
        self.event_type = event_type

    @property
    def is_named(self) -> bool:
        """Whether the delay is resolved through the ``delays`` registry."""
        return isinstance(self.delay, str)

    def __repr__(self) -> str:
        return f"DelayedTransition({self.delay!r}, {self.event_type!r})"


class InvokeDefinition:
    """An ``invoke`` entry: the service a node runs while it is active."""

    __slots__ = ("id", "src", "done_event_type", "error_event_type")

    def __init__(self, invoke_id: str, src: str, done_event_type: str, error_event_type: str) -> None:
        self.id = invoke_id
        self.src = src
        self.done_event_type = done_event_type
        self.error_event_type = error_event_type

    def __repr__(self) -> str:
        return f"InvokeDefinition({self.id!r}, src={self.src!r})"


class StateNode:
    """Represents a node of the compiled state tree.

    Class Invariants:
    1. A node's key is unique among its siblings
    2. A node's type never changes after compilation
    3. Compound nodes always have an initial child
    4. Atomic and final nodes have no children
    5. The tree is immutable once the compiler has finished
    """

    def __init__(
        self,
        key: str,
        state_type: StateType,
        parent: Optional["StateNode"] = None,
        machine_id: Optional[str] = None,
    ) -> None:
        """Initialize a StateNode instance.

        Args:
            key: Name of the node within its parent
            state_type: Kind of node
            parent: Parent node, None for the root
            machine_id: Identifier of the machine, used as the root's id

        Raises:
            ValueError: If any parameters are invalid
        """
        if not key or not isinstance(key, str):
            raise ValueError("State key must be a non-empty string")

        if "." in key or key.startswith("#"):
            raise ValueError(f"State key '{key}' must not contain '.' or start with '#'")

        if not isinstance(state_type, StateType):
            raise ValueError("State type must be a StateType enum value")

        self._key = key
        self._type = state_type
        self._parent = parent
        if parent is None:
            self._path: Tuple[str, ...] = ()
            self._id = machine_id or key
        else:
            self._path = parent.path + (key,)
            self._id = ".".join(self._path)
        self._depth = 0 if parent is None else parent.depth + 1
        self._children: Dict[str, "StateNode"] = {}
        self._initial: Optional[str] = None
        self._entry: Tuple[Action, ...] = ()
        self._exit: Tuple[Action, ...] = ()
        self._on: Dict[str, Tuple[Transition, ...]] = {}
        self._always: Tuple[Transition, ...] = ()
        self._after: Tuple[DelayedTransition, ...] = ()
        self._invoke: Tuple[InvokeDefinition, ...] = ()
        self._tags: FrozenSet[str] = frozenset()
        self._order = 0

    def __hash__(self) -> int:
        return hash(self._id)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, StateNode):
            return NotImplemented
        return self is other

    def __repr__(self) -> str:
        return f"StateNode({self._id!r}, {self._type.name})"

    @property
    def key(self) -> str:
        """Get the node key within its parent."""
        return self._key

    @property
    def id(self) -> str:
        """Get the dotted path of the node (the machine id for the root)."""
        return self._id

    @property
    def path(self) -> Tuple[str, ...]:
        """Get the keys from the root (excluded) down to this node."""
        return self._path

    @property
    def type(self) -> StateType:
        return self._type

    @property
    def parent(self) -> Optional["StateNode"]:
        return self._parent

    @property
    def depth(self) -> int:
        return self._depth

    @property
    def order(self) -> int:
        """Get the document-order index (pre-order position in the tree)."""
        return self._order

    @property
    def children(self) -> Mapping[str, "StateNode"]:
        return dict(self._children)

    @property
    def child_nodes(self) -> Tuple["StateNode", ...]:
        """Get the children in declaration order."""
        return tuple(self._children.values())

    @property
    def initial(self) -> Optional["StateNode"]:
        """Get the default child entered with a compound node."""
        if self._initial is None:
            return None
        return self._children[self._initial]

    @property
    def entry(self) -> Tuple[Action, ...]:
        return self._entry

    @property
    def exit(self) -> Tuple[Action, ...]:
        return self._exit

    @property
    def on(self) -> Mapping[str, Tuple[Transition, ...]]:
        return dict(self._on)

    @property
    def always(self) -> Tuple[Transition, ...]:
        return self._always

    @property
    def after(self) -> Tuple[DelayedTransition, ...]:
        return self._after

    @property
    def invoke(self) -> Tuple[InvokeDefinition, ...]:
        return self._invoke

    @property
    def tags(self) -> FrozenSet[str]:
        return self._tags

    @property
    def is_atomic(self) -> bool:
        """Whether the node is a leaf (atomic or final)."""
        return self._type in (StateType.ATOMIC, StateType.FINAL)

    @property
    def is_compound(self) -> bool:
        return self._type == StateType.COMPOUND

    @property
    def is_parallel(self) -> bool:
        return self._type == StateType.PARALLEL

    @property
    def is_final(self) -> bool:
        return self._type == StateType.FINAL

    @property
    def event_types(self) -> FrozenSet[str]:
        """Get the event types this node declares transitions for."""
        return frozenset(self._on)

    def candidates(self, event_type: Optional[str]) -> Tuple[Transition, ...]:
        """Get the transitions declared for an event, in declaration order.

        Args:
            event_type: Event type, or None for eventless transitions
        """
        if event_type is None:
            return self._always
        return self._on.get(event_type, ())

    def ancestors(self, upto: Optional["StateNode"] = None) -> Iterator["StateNode"]:
        """Iterate proper ancestors from the parent towards the root.

        Args:
            upto: Stop before this ancestor (exclusive)
        """
        current = self._parent
        while current is not None and current is not upto:
            yield current
            current = current._parent

    def lineage(self) -> Iterator["StateNode"]:
        """Iterate this node followed by its proper ancestors."""
        yield self
        yield from self.ancestors()

    def is_descendant_of(self, other: "StateNode") -> bool:
        """Check for a proper descendant relationship."""
        return any(ancestor is other for ancestor in self.ancestors())

    def descendants(self) -> Iterator["StateNode"]:
        """Iterate proper descendants in document order."""
        for child in self._children.values():
            yield child
            yield from child.descendants()

    def get_child(self, key: str) -> "StateNode":
        """Get a direct child by key.

        Raises:
            KeyError: If no such child exists
        """
        return self._children[key]

    def find(self, relative_path: List[str]) -> Optional["StateNode"]:
        """Follow a list of keys down from this node."""
        node: Optional[StateNode] = self
        for key in relative_path:
            if node is None:
                return None
            node = node._children.get(key)
        return node
