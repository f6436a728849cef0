"""
Macrostep execution with run-to-completion semantics.

Architecture:
- A Macrostep works on private copies of the configuration and context
- Microsteps exit, run transition actions, then enter
- Eventless transitions and raised events are drained before the step ends
- Nothing is published until the interpreter commits the step

Design Patterns:
- Command Pattern: Deferred effects are execution units
- Memento Pattern: The prior configuration and context stay untouched until commit
- Unit of Work Pattern: Entered nodes, resolved delays and effects are recorded for the commit

Responsibilities:
1. Microsteps
   - Exit actions, innermost first
   - Transition actions, in declaration order
   - Entry actions, outermost first
   - Completion events for final states

2. Macrostep
   - Eventless transitions until none is enabled
   - Internal (raised) events before any external event
   - Runaway loop protection

3. Actions
   - Assignments applied to the working context
   - Raised events queued internally
   - Effects deferred with a context snapshot

Dependencies:
- resolver.py: Selection and set computation
- timers.py: Delay resolution
- event_queue.py: Internal queue
"""

import logging
from typing import Dict, List, Mapping, Set, Tuple

from carouselstate.core.actions import Action, AssignAction, EffectAction, RaiseAction
from carouselstate.core.errors import ActionExecutionError, InterpreterError
from carouselstate.core.event import Event, EventKind, done_state_event_type
from carouselstate.core.state import StateNode
from carouselstate.core.transition import Transition
from carouselstate.core.types import Context
from carouselstate.runtime.event_queue import EventQueue
from carouselstate.runtime.resolver import TransitionResolver
from carouselstate.runtime.timers import resolve_delay

logger = logging.getLogger(__name__)


class ExecutionUnit:
    """An effect recorded during a macrostep, run before the step is committed."""

    __slots__ = ("action", "context", "event")

    def __init__(self, action: EffectAction, context: Context, event: Event) -> None:
        self.action = action
        self.context = context
        self.event = event

    def execute(self) -> None:
        """
        Raises:
            ActionExecutionError: If the effect raises
        """
        try:
            self.action.execute(self.context, self.event)
        except Exception as e:
            raise ActionExecutionError(self.action.name, e) from e

    def __repr__(self) -> str:
        return f"ExecutionUnit({self.action.name!r}, {self.event!r})"


class Entry:
    """What the commit needs to know about a node entered during a step."""

    __slots__ = ("node", "context", "event", "delays")

    def __init__(self, node: StateNode, context: Context, event: Event, delays: List[Tuple[str, float]]) -> None:
        self.node = node
        self.context = context
        self.event = event
        self.delays = delays


class Macrostep:
    """Processes one event to a stable configuration.

    Class Invariants:
    1. The configuration handed in is never modified
    2. The context handed in is never modified
    3. Effects never run inside the step
    4. The configuration is complete after every microstep
    """

    def __init__(
        self,
        resolver: TransitionResolver,
        configuration: Set[StateNode],
        context: Context,
        delays: Mapping[str, object],
        max_microsteps: int = 1000,
        max_queue_size: int = 1000,
    ) -> None:
        self._resolver = resolver
        self._configuration: Set[StateNode] = set(configuration)
        self._context: Context = dict(context)
        self._delays = delays
        self._max_microsteps = max_microsteps
        self._internal = EventQueue("internal", max_queue_size)
        self._effects: List[ExecutionUnit] = []
        self._entries: Dict[StateNode, Entry] = {}
        self._exited: Set[StateNode] = set()
        self._taken: List[Transition] = []
        self._microsteps = 0
        self._done = False

    @property
    def configuration(self) -> Set[StateNode]:
        return self._configuration

    @property
    def context(self) -> Context:
        return self._context

    @property
    def effects(self) -> List[ExecutionUnit]:
        return list(self._effects)

    @property
    def exited(self) -> Set[StateNode]:
        """Every node exited at some point of the step."""
        return set(self._exited)

    @property
    def entries(self) -> List[Entry]:
        """Nodes entered during the step, latest entry per node, in document order."""
        return sorted(self._entries.values(), key=lambda entry: entry.node.order)

    @property
    def taken(self) -> List[Transition]:
        return list(self._taken)

    @property
    def microsteps(self) -> int:
        return self._microsteps

    @property
    def done(self) -> bool:
        """Whether a top-level final state was reached."""
        return self._done

    def start(self, event: Event) -> None:
        """Enter the initial configuration and stabilize."""
        for node in self._resolver.initial_entry_set():
            self._enter(node, event)
        self._stabilize(event)

    def process(self, event: Event) -> bool:
        """Run the transitions an external event enables and stabilize.

        Returns:
            False if no active node handles the event
        """
        transitions = self._resolver.select(self._configuration, event.type, self._context, event)
        if not transitions:
            return False
        self._microstep(transitions, event)
        self._stabilize(event)
        return True

    def _stabilize(self, event: Event) -> None:
        current = event
        while not self._done:
            transitions = self._resolver.select(self._configuration, None, self._context, current)
            if transitions:
                self._microstep(transitions, current)
                continue
            raised = self._internal.dequeue()
            if raised is None:
                break
            logger.debug("Processing internal event %r", raised)
            current = raised
            transitions = self._resolver.select(self._configuration, raised.type, self._context, raised)
            if transitions:
                self._microstep(transitions, raised)

    def _microstep(self, transitions: List[Transition], event: Event) -> None:
        self._microsteps += 1
        if self._microsteps > self._max_microsteps:
            raise InterpreterError(
                f"Exceeded {self._max_microsteps} microsteps while processing {event!r}; "
                "check for eventless transitions that never disable"
            )

        for node in self._resolver.exit_set_of(transitions, self._configuration):
            self._exit(node, event)

        for transition in transitions:
            logger.debug("Taking %r", transition)
            self._taken.append(transition)
            self._run_actions(transition.actions, event)

        for node in self._resolver.entry_set(transitions):
            self._enter(node, event)

    def _exit(self, node: StateNode, event: Event) -> None:
        self._run_actions(node.exit, event)
        self._configuration.discard(node)
        self._exited.add(node)
        self._entries.pop(node, None)

    def _enter(self, node: StateNode, event: Event) -> None:
        self._configuration.add(node)
        self._run_actions(node.entry, event)
        delays = [
            (delayed.event_type, resolve_delay(delayed, self._delays, self._context, event)) for delayed in node.after
        ]
        self._entries[node] = Entry(node, dict(self._context), event, delays)
        if node.is_final:
            self._complete(node)

    def _complete(self, node: StateNode) -> None:
        parent = node.parent
        if parent is None or parent.parent is None:
            logger.debug("Reached top-level final state '%s'", node.id)
            self._done = True
            return
        self._raise(Event(done_state_event_type(parent.id), kind=EventKind.COMPLETION))
        grandparent = parent.parent
        if grandparent.is_parallel and self._resolver.is_in_final_state(grandparent, self._configuration):
            self._raise(Event(done_state_event_type(grandparent.id), kind=EventKind.COMPLETION))

    def _raise(self, event: Event) -> None:
        self._internal.enqueue(event)

    def _run_actions(self, actions: Tuple[Action, ...], event: Event) -> None:
        for action in actions:
            if isinstance(action, AssignAction):
                try:
                    self._context = action.apply(self._context, event)
                except Exception as e:
                    raise ActionExecutionError(action.name, e) from e
            elif isinstance(action, RaiseAction):
                try:
                    raised = action.resolve(self._context, event)
                except Exception as e:
                    raise ActionExecutionError(action.name, e) from e
                self._raise(raised)
            elif isinstance(action, EffectAction):
                self._effects.append(ExecutionUnit(action, dict(self._context), event))
            else:
                raise ActionExecutionError(action.name, TypeError(f"Unsupported action type {type(action).__name__}"))


def run_effects(units: List[ExecutionUnit]) -> None:
    """Run deferred effects in order, stopping at the first failure.

    Raises:
        ActionExecutionError: From the first effect that raised
    """
    for unit in units:
        try:
            unit.execute()
        except ActionExecutionError as e:
            logger.error("Effect '%s' failed: %s", unit.action.name, e.cause)
            raise
