"""
Compilation of declarative definitions into the immutable state tree.

Architecture:
- Walks a nested ``dict`` definition once and builds StateNode objects
- Resolves every name against the implementation registry
- Resolves every transition target to a node
- Assigns document order (pre-order index) to every node

Design Patterns:
- Builder Pattern: Incremental construction of the node graph
- Interpreter Pattern: Target reference syntax (``#id``, ``.child``, ``sibling``)

Responsibilities:
1. Structural Validation
   - Unknown keys and state types
   - ``initial`` references and placement
   - Transition targets

2. Registry Validation
   - Guards, actions, services and delays referenced by name
   - All missing names reported together

Dependencies:
- state.py: Node classes
- transition.py: Transition and guard wrappers
- actions.py: Action wrappers
- machine.py: Implementation registry
"""

import logging
from typing import TYPE_CHECKING, Any, Dict, Iterable, List, Mapping, Optional, Set, Tuple

from carouselstate.core.actions import Action, to_action
from carouselstate.core.errors import DefinitionError
from carouselstate.core.event import (
    after_event_type,
    done_invoke_event_type,
    done_state_event_type,
    error_invoke_event_type,
)
from carouselstate.core.state import DelayedTransition, InvokeDefinition, StateNode
from carouselstate.core.transition import Guard, Transition, to_guard
from carouselstate.core.types import StateType

if TYPE_CHECKING:
    from carouselstate.core.machine import Implementations

logger = logging.getLogger(__name__)

DEFAULT_MACHINE_ID = "machine"

NODE_KEYS = frozenset(
    {"initial", "states", "type", "on", "always", "after", "invoke", "entry", "exit", "tags", "on_done"}
)
ROOT_KEYS = NODE_KEYS | {"id", "context"}
TRANSITION_KEYS = frozenset({"target", "guard", "actions", "internal"})
INVOKE_KEYS = frozenset({"src", "id", "on_done", "on_error"})

_STATE_TYPES = {"parallel": StateType.PARALLEL, "final": StateType.FINAL}


class DefinitionCompiler:
    """Compiles one definition against one implementation registry.

    Instances are single use: call :meth:`compile` once.
    """

    def __init__(self, definition: Mapping[str, Any], implementations: "Implementations") -> None:
        if not isinstance(definition, Mapping):
            raise DefinitionError(f"Definition must be a mapping, got {type(definition).__name__}")
        self._definition = definition
        self._implementations = implementations
        self._pending: List[Transition] = []
        self._missing: List[str] = []
        self._nodes_by_id: Dict[str, StateNode] = {}

    def compile(self) -> StateNode:
        """Build the state tree.

        Returns:
            The root StateNode

        Raises:
            DefinitionError: If the definition is malformed or the registry is incomplete
        """
        machine_id = self._definition.get("id", DEFAULT_MACHINE_ID)
        if not isinstance(machine_id, str) or not machine_id:
            raise DefinitionError("Machine id must be a non-empty string")

        root = self._build_node(machine_id, self._definition, None, machine_id, ROOT_KEYS)
        self._assign_order(root)
        for transition in self._pending:
            targets = tuple(self._resolve_ref(transition.source, ref) for ref in transition.target_refs)
            transition.resolve_targets(targets)

        if self._missing:
            raise DefinitionError("Missing implementations: " + ", ".join(sorted(set(self._missing))))

        logger.debug("Compiled machine '%s' with %d state nodes", machine_id, len(self._nodes_by_id))
        return root

    # Structure

    def _build_node(
        self,
        key: str,
        config: Mapping[str, Any],
        parent: Optional[StateNode],
        machine_id: Optional[str],
        allowed_keys: frozenset,
    ) -> StateNode:
        location = ".".join(parent.path + (key,)) if parent is not None else key
        if not isinstance(config, Mapping):
            raise DefinitionError(f"State '{location}' must be a mapping, got {type(config).__name__}")

        unknown = set(config) - allowed_keys
        if unknown:
            raise DefinitionError(f"State '{location}' has unknown keys: {', '.join(sorted(map(str, unknown)))}")

        states = config.get("states") or {}
        if not isinstance(states, Mapping):
            raise DefinitionError(f"'states' of '{location}' must be a mapping")
        state_type = self._state_type(location, config.get("type"), bool(states))

        try:
            node = StateNode(key, state_type, parent, machine_id)
        except ValueError as e:
            raise DefinitionError(str(e)) from e
        if node.id in self._nodes_by_id:
            # Ids share one namespace with the root, whose id is the machine id
            raise DefinitionError(
                f"Top-level state '{key}' has the same id as the machine; rename the state or set another machine 'id'"
            )
        self._nodes_by_id[node.id] = node

        for child_key, child_config in states.items():
            node._children[child_key] = self._build_node(child_key, child_config, node, None, NODE_KEYS)

        node._initial = self._initial(node, config.get("initial"))
        node._tags = frozenset(self._as_list(config.get("tags"), f"'tags' of '{node.id}'"))
        node._entry = self._actions(config.get("entry"))
        node._exit = self._actions(config.get("exit"))

        table: Dict[str, List[Transition]] = {}
        for event_type, transition_config in (config.get("on") or {}).items():
            self._add_transitions(table, node, event_type, transition_config)

        after: List[DelayedTransition] = []
        for delay, transition_config in (config.get("after") or {}).items():
            after.append(self._delayed(node, delay))
            self._add_transitions(table, node, after[-1].event_type, transition_config)
        node._after = tuple(after)

        invocations: List[InvokeDefinition] = []
        for index, invoke_config in enumerate(self._as_list(config.get("invoke"), f"'invoke' of '{node.id}'")):
            if isinstance(invoke_config, str):
                invoke_config = {"src": invoke_config}
            invocation = self._invocation(node, index, invoke_config)
            invocations.append(invocation)
            if "on_done" in invoke_config:
                self._add_transitions(table, node, invocation.done_event_type, invoke_config["on_done"])
            if "on_error" in invoke_config:
                self._add_transitions(table, node, invocation.error_event_type, invoke_config["on_error"])
        node._invoke = tuple(invocations)

        if "on_done" in config:
            self._add_transitions(table, node, done_state_event_type(node.id), config["on_done"])

        node._on = {event_type: tuple(transitions) for event_type, transitions in table.items()}
        node._always = tuple(self._transitions(node, None, config.get("always")))
        return node

    def _state_type(self, location: str, declared: Any, has_children: bool) -> StateType:
        if declared is None:
            return StateType.COMPOUND if has_children else StateType.ATOMIC
        if declared not in _STATE_TYPES:
            raise DefinitionError(f"State '{location}' has unknown type {declared!r}")
        state_type = _STATE_TYPES[declared]
        if state_type == StateType.FINAL and has_children:
            raise DefinitionError(f"Final state '{location}' cannot have child states")
        if state_type == StateType.PARALLEL and not has_children:
            raise DefinitionError(f"Parallel state '{location}' needs at least one region")
        return state_type

    def _initial(self, node: StateNode, initial: Any) -> Optional[str]:
        if initial is None:
            if node.is_compound:
                return next(iter(node._children))
            return None
        if not node.is_compound:
            raise DefinitionError(f"'initial' is only allowed on compound states, found on '{node.id}'")
        if initial not in node._children:
            raise DefinitionError(f"Initial state '{initial}' of '{node.id}' does not exist")
        return initial

    @staticmethod
    def _assign_order(root: StateNode) -> None:
        root._order = 0
        for index, node in enumerate(root.descendants(), start=1):
            node._order = index

    # Transitions

    def _add_transitions(
        self, table: Dict[str, List[Transition]], node: StateNode, event_type: str, config: Any
    ) -> None:
        if not isinstance(event_type, str) or not event_type:
            raise DefinitionError(f"Event type on '{node.id}' must be a non-empty string, got {event_type!r}")
        existing = table.setdefault(event_type, [])
        existing.extend(self._transitions(node, event_type, config, start=len(existing)))

    def _transitions(self, node: StateNode, event_type: Optional[str], config: Any, start: int = 0) -> List[Transition]:
        if config is None:
            return []
        configs = config if isinstance(config, list) else [config]
        transitions = []
        for index, item in enumerate(configs, start=start):
            if isinstance(item, str):
                item = {"target": item}
            if not isinstance(item, Mapping):
                raise DefinitionError(f"Transition on '{node.id}' must be a string or a mapping, got {item!r}")
            unknown = set(item) - TRANSITION_KEYS
            if unknown:
                raise DefinitionError(
                    f"Transition on '{node.id}' has unknown keys: {', '.join(sorted(map(str, unknown)))}"
                )

            target_refs = tuple(self._as_list(item.get("target"), f"target on '{node.id}'"))
            if not all(isinstance(ref, str) and ref for ref in target_refs):
                raise DefinitionError(f"Targets on '{node.id}' must be non-empty strings")

            internal = item.get("internal")
            if internal is not None and not isinstance(internal, bool):
                raise DefinitionError(f"'internal' on '{node.id}' must be a boolean")

            transition = Transition(
                node,
                event_type,
                target_refs,
                guard=self._guard(item.get("guard")),
                actions=self._actions(item.get("actions")),
                internal=internal,
                order=index,
            )
            self._pending.append(transition)
            transitions.append(transition)
        return transitions

    def _resolve_ref(self, source: StateNode, ref: str) -> StateNode:
        if ref.startswith("#"):
            target = self._nodes_by_id.get(ref[1:])
        elif ref.startswith("."):
            target = source.find(ref[1:].split("."))
        else:
            base = source.parent if source.parent is not None else source
            target = base.find(ref.split("."))
        if target is None:
            raise DefinitionError(f"Target '{ref}' of a transition on '{source.id}' does not exist")
        return target

    # Registry lookups

    def _guard(self, reference: Any) -> Optional[Guard]:
        if reference is None:
            return None
        if isinstance(reference, str):
            implementation = self._implementations.guards.get(reference)
            if implementation is None:
                self._missing.append(f"guard '{reference}'")
                return None
            try:
                return to_guard(implementation, reference)
            except ValueError as e:
                raise DefinitionError(str(e)) from e
        if isinstance(reference, Guard):
            return reference
        if callable(reference):
            return Guard(reference)
        raise DefinitionError(f"Guard must be a name or a callable, got {reference!r}")

    def _actions(self, references: Any) -> Tuple[Action, ...]:
        actions = []
        for reference in self._as_list(references, "actions"):
            if isinstance(reference, str):
                implementation = self._implementations.actions.get(reference)
                if implementation is None:
                    self._missing.append(f"action '{reference}'")
                    continue
                try:
                    actions.append(to_action(implementation, reference))
                except ValueError as e:
                    raise DefinitionError(str(e)) from e
            elif isinstance(reference, Action):
                actions.append(reference)
            elif callable(reference):
                actions.append(to_action(reference, getattr(reference, "__name__", "effect")))
            else:
                raise DefinitionError(f"Action must be a name, an Action or a callable, got {reference!r}")
        return tuple(actions)

    def _delayed(self, node: StateNode, delay: Any) -> DelayedTransition:
        if isinstance(delay, bool) or not isinstance(delay, (str, int, float)):
            raise DefinitionError(f"Delay on '{node.id}' must be a name or a number, got {delay!r}")
        if isinstance(delay, str):
            implementation = self._implementations.delays.get(delay)
            if implementation is None:
                self._missing.append(f"delay '{delay}'")
            elif not callable(implementation) and (
                isinstance(implementation, bool) or not isinstance(implementation, (int, float)) or implementation < 0
            ):
                raise DefinitionError(
                    f"Delay '{delay}' must be a callable or a non-negative number of milliseconds, "
                    f"got {implementation!r}"
                )
        elif delay < 0:
            raise DefinitionError(f"Delay on '{node.id}' must not be negative, got {delay!r}")
        return DelayedTransition(delay, after_event_type(delay, node.id))

    def _invocation(self, node: StateNode, index: int, config: Any) -> InvokeDefinition:
        if not isinstance(config, Mapping) or "src" not in config:
            raise DefinitionError(f"Invoke on '{node.id}' needs a 'src'")
        unknown = set(config) - INVOKE_KEYS
        if unknown:
            raise DefinitionError(f"Invoke on '{node.id}' has unknown keys: {', '.join(sorted(map(str, unknown)))}")

        src = config["src"]
        if not isinstance(src, str) or not src:
            raise DefinitionError(f"Invoke 'src' on '{node.id}' must be a service name")
        implementation = self._implementations.services.get(src)
        if implementation is None:
            self._missing.append(f"service '{src}'")
        else:
            # Import here to avoid circular dependency
            from carouselstate.runtime.services import to_service

            try:
                to_service(implementation, src)
            except ValueError as e:
                raise DefinitionError(str(e)) from e

        invoke_id = config.get("id") or f"{node.id}:invocation[{index}]"
        return InvokeDefinition(
            invoke_id, src, done_invoke_event_type(invoke_id), error_invoke_event_type(invoke_id)
        )

    @staticmethod
    def _as_list(value: Any, what: str) -> List[Any]:
        if value is None:
            return []
        if isinstance(value, (list, tuple)):
            return list(value)
        if isinstance(value, (set, frozenset)):
            return sorted(value)
        if isinstance(value, Iterable) and not isinstance(value, (str, Mapping)):
            raise DefinitionError(f"Unsupported collection for {what}: {type(value).__name__}")
        return [value]


def compile_definition(definition: Mapping[str, Any], implementations: "Implementations") -> StateNode:
    """Compile a definition into its root StateNode."""
    return DefinitionCompiler(definition, implementations).compile()


def collect_nodes(root: StateNode) -> Dict[str, StateNode]:
    """Index every node of a compiled tree by id."""
    nodes = {root.id: root}
    for node in root.descendants():
        nodes[node.id] = node
    return nodes


def user_event_types(root: StateNode) -> Set[str]:
    """All event types any node declares a transition for."""
    event_types: Set[str] = set(root.event_types)
    for node in root.descendants():
        event_types |= node.event_types
    return event_types
