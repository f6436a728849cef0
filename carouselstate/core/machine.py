"""
Machine definition facade and implementation registry.

Architecture:
- Binds a declarative definition to named implementations
- Compiles the definition once into an immutable state tree
- Produces derived machines with merged implementations

Design Patterns:
- Facade Pattern: One object exposing the compiled tree and registry
- Registry Pattern: Name based lookup of guards, actions, services and delays
- Prototype Pattern: ``provide`` clones the machine with new wiring

Responsibilities:
1. Registry
   - Guards ``(context, event) -> bool``
   - Actions (assign/raise/effect or plain callables)
   - Services (one-shot or listener)
   - Delays ``(context, event) -> milliseconds``

2. Machine
   - Compilation and validation at construction
   - Initial context
   - Node lookup by id

Dependencies:
- compiler.py: Definition compilation
- state.py: Compiled nodes
"""

import copy
from dataclasses import dataclass, field, fields
from typing import Any, Dict, FrozenSet, Mapping, Optional, Union

from carouselstate.core.compiler import collect_nodes, compile_definition, user_event_types
from carouselstate.core.errors import DefinitionError
from carouselstate.core.state import StateNode
from carouselstate.core.types import Context


@dataclass(frozen=True)
class Implementations:
    """Named implementations referenced by a machine definition."""

    guards: Mapping[str, Any] = field(default_factory=dict)
    actions: Mapping[str, Any] = field(default_factory=dict)
    services: Mapping[str, Any] = field(default_factory=dict)
    delays: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        for registry in fields(self):
            value = getattr(self, registry.name)
            if not isinstance(value, Mapping):
                raise ValueError(f"'{registry.name}' must be a mapping, got {type(value).__name__}")
            object.__setattr__(self, registry.name, dict(value))

    @classmethod
    def coerce(cls, value: Union["Implementations", Mapping[str, Any], None]) -> "Implementations":
        """Accept a registry instance, a plain mapping with registry keys, or None."""
        if value is None:
            return cls()
        if isinstance(value, cls):
            return value
        if isinstance(value, Mapping):
            unknown = set(value) - {registry.name for registry in fields(cls)}
            if unknown:
                raise DefinitionError(f"Unknown implementation kinds: {', '.join(sorted(unknown))}")
            return cls(**value)
        raise DefinitionError(f"Implementations must be a mapping, got {type(value).__name__}")

    def merge(self, other: "Implementations") -> "Implementations":
        """Return a registry where entries of ``other`` override this one."""
        return Implementations(
            guards={**self.guards, **other.guards},
            actions={**self.actions, **other.actions},
            services={**self.services, **other.services},
            delays={**self.delays, **other.delays},
        )


class Machine:
    """Represents a compiled statechart definition.

    A Machine is immutable and may back any number of interpreters.

    Class Invariants:
    1. The definition compiles without error
    2. Every referenced implementation name is registered
    3. The state tree is never mutated
    """

    def __init__(
        self,
        definition: Mapping[str, Any],
        implementations: Union[Implementations, Mapping[str, Any], None] = None,
    ) -> None:
        """Compile a definition.

        Args:
            definition: Nested definition (see the compiler for the accepted keys)
            implementations: Registry resolving the names used by the definition

        Raises:
            DefinitionError: If the definition is malformed or a name is missing
        """
        self._definition = definition
        self._implementations = Implementations.coerce(implementations)
        self._root = compile_definition(definition, self._implementations)
        self._nodes = collect_nodes(self._root)
        self._event_types = frozenset(user_event_types(self._root))

        context = definition.get("context") or {}
        if not isinstance(context, Mapping):
            raise DefinitionError("'context' must be a mapping")
        self._context: Context = dict(context)

    @property
    def id(self) -> str:
        return self._root.id

    @property
    def root(self) -> StateNode:
        """Get the root node of the compiled tree."""
        return self._root

    @property
    def implementations(self) -> Implementations:
        return self._implementations

    @property
    def definition(self) -> Mapping[str, Any]:
        return self._definition

    @property
    def event_types(self) -> FrozenSet[str]:
        """Get every event type some node declares a transition for."""
        return self._event_types

    def initial_context(self, overrides: Optional[Mapping[str, Any]] = None) -> Context:
        """Build a fresh initial context.

        Args:
            overrides: Values replacing the definition's defaults
        """
        context = copy.deepcopy(self._context)
        if overrides:
            context.update(overrides)
        return context

    def get_node(self, node_id: str) -> StateNode:
        """Look up a node by id.

        Raises:
            KeyError: If no node has this id
        """
        return self._nodes[node_id]

    @property
    def nodes(self) -> Dict[str, StateNode]:
        return dict(self._nodes)

    def provide(
        self,
        implementations: Union[Implementations, Mapping[str, Any], None] = None,
        **kinds: Mapping[str, Any],
    ) -> "Machine":
        """Return a new machine with merged implementations.

        Example:
            >>> wired = machine.provide(actions={"scroll_to_item": view.scroll_to_item})
        """
        extra = Implementations.coerce(implementations)
        if kinds:
            extra = extra.merge(Implementations.coerce(kinds))
        return Machine(self._definition, self._implementations.merge(extra))

    def __repr__(self) -> str:
        return f"Machine({self.id!r}, states={len(self._nodes) - 1})"
