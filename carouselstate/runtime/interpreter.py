"""
Statechart interpreter: lifecycle, event queues and commits.

Architecture:
- Owns the committed configuration and context of one running machine
- Serializes every event through a re-entrant lock and an external queue
- Runs each event as a Macrostep and commits it atomically
- Starts and stops timers and services at commit time

Design Patterns:
- Facade Pattern: Single entry point for hosts
- Observer Pattern: Subscribers receive snapshots after each commit
- State Pattern: Lifecycle status

Responsibilities:
1. Lifecycle
   - start, stop, completion through top-level final states
   - Misuse detection (send before start, after stop)

2. Event Processing
   - Run-to-completion: one macrostep at a time, FIFO
   - Re-entrant sends queued, never executed inline
   - Events from timers, services and other threads serialized

3. Commit
   - Run deferred effects; the first failure discards the step
   - Cancel timers and stop services of exited nodes
   - Arm timers and start services of entered nodes
   - Notify subscribers

Cross-cutting:
- Errors abort the macrostep and keep the previous stable state
- The last error is exposed for inspection
- Strict mode warns about unhandled events

Dependencies:
- executor.py: Macrostep execution
- timers.py: Delayed transitions
- services.py: Invoked services
- snapshot.py: Published state
"""

import logging
import threading
import warnings
from dataclasses import dataclass
from enum import Enum, auto
from typing import Any, Callable, FrozenSet, List, Mapping, Optional, Union

from carouselstate.core.errors import (
    ActionExecutionError,
    GuardEvaluationError,
    InterpreterError,
    StatechartError,
    UnhandledEventWarning,
)
from carouselstate.core.event import INIT_EVENT_TYPE, Event, EventKind, is_builtin_event_type, to_event
from carouselstate.core.machine import Machine
from carouselstate.core.state import StateNode
from carouselstate.core.types import Context
from carouselstate.runtime.event_queue import EventQueue
from carouselstate.runtime.executor import Macrostep, run_effects
from carouselstate.runtime.resolver import TransitionResolver, exit_order
from carouselstate.runtime.services import ServiceSupervisor
from carouselstate.runtime.snapshot import Snapshot
from carouselstate.runtime.timers import Clock, ThreadingClock, TimerManager

logger = logging.getLogger(__name__)

Listener = Callable[[Snapshot], None]


class InterpreterStatus(Enum):
    """Defines the lifecycle of an interpreter."""

    NOT_STARTED = auto()  # Created, start() not called yet
    RUNNING = auto()  # Processing events
    DONE = auto()  # Reached a top-level final state
    STOPPED = auto()  # Stopped by the host


@dataclass(frozen=True)
class InterpreterOptions:
    """Tunable limits and behaviour of an interpreter."""

    max_microsteps: int = 1000
    max_queue_size: int = 1000
    strict: bool = False

    def __post_init__(self) -> None:
        if self.max_microsteps <= 0:
            raise ValueError("max_microsteps must be positive")
        if self.max_queue_size <= 0:
            raise ValueError("max_queue_size must be positive")


class Interpreter:
    """Runs a Machine.

    Class Invariants:
    1. At most one macrostep runs at a time
    2. The committed configuration is always complete
    3. Timers and services exist only for active nodes
    4. A failed macrostep leaves the committed state untouched

    Threading/Concurrency Guarantees:
    1. Every state change happens under one re-entrant lock
    2. Callbacks from timer threads and services queue their events
    3. Sends made while processing are queued and run afterwards, FIFO
    """

    def __init__(
        self,
        machine: Machine,
        clock: Optional[Clock] = None,
        options: Optional[InterpreterOptions] = None,
    ) -> None:
        """Create an interpreter.

        Args:
            machine: Compiled machine to run
            clock: Clock for delayed transitions (a ThreadingClock by default)
            options: Limits and strictness
        """
        if not isinstance(machine, Machine):
            raise ValueError("machine must be a Machine instance")
        self._machine = machine
        self._options = options or InterpreterOptions()
        self._clock = clock or ThreadingClock()
        self._resolver = TransitionResolver(machine.root)
        self._lock = threading.RLock()
        self._external = EventQueue("external", self._options.max_queue_size)
        self._timers = TimerManager(self._clock, self._deliver)
        self._services = ServiceSupervisor(self._deliver)
        self._status = InterpreterStatus.NOT_STARTED
        self._configuration: FrozenSet[StateNode] = frozenset()
        self._context: Context = {}
        self._event: Optional[Event] = None
        self._last_error: Optional[StatechartError] = None
        self._listeners: List[Listener] = []
        self._processing = False

    @property
    def machine(self) -> Machine:
        return self._machine

    @property
    def clock(self) -> Clock:
        return self._clock

    @property
    def status(self) -> InterpreterStatus:
        return self._status

    @property
    def options(self) -> InterpreterOptions:
        return self._options

    @property
    def last_error(self) -> Optional[StatechartError]:
        """Get the error of the most recent failed macrostep."""
        return self._last_error

    @property
    def timers(self) -> TimerManager:
        return self._timers

    @property
    def services(self) -> ServiceSupervisor:
        return self._services

    def start(self, context_overrides: Optional[Mapping[str, Any]] = None) -> Snapshot:
        """Enter the initial configuration.

        Args:
            context_overrides: Values replacing the machine's initial context

        Returns:
            The snapshot after the initial macrostep

        Raises:
            InterpreterError: If the interpreter was already started
            GuardEvaluationError: If a guard fails while entering
            ActionExecutionError: If an action fails while entering
        """
        with self._lock:
            if self._status != InterpreterStatus.NOT_STARTED:
                raise InterpreterError(f"Interpreter cannot start from status {self._status.name}")

            self._status = InterpreterStatus.RUNNING
            self._processing = True
            event = Event(INIT_EVENT_TYPE, kind=EventKind.INIT)
            logger.debug("Starting machine '%s'", self._machine.id)
            try:
                step = self._new_step(frozenset(), self._machine.initial_context(context_overrides))
                step.start(event)
                self._commit(step, event)
            except StatechartError as e:
                self._last_error = e
                self._status = InterpreterStatus.STOPPED
                raise
            finally:
                self._processing = False
            errors = self._drain()

        if errors:
            raise errors[0]
        return self.get_snapshot()

    def send(self, event: Union[str, Event], **data: Any) -> Snapshot:
        """Send an event and process it to completion.

        When called while a macrostep is running (from an effect or a
        subscriber) the event is queued and processed after that macrostep.

        Args:
            event: Event instance or event type
            **data: Payload when ``event`` is a type string

        Returns:
            The snapshot after processing

        Raises:
            InterpreterError: If the interpreter is not running or the queue overflows
            GuardEvaluationError: If a guard failed; the previous state is kept
            ActionExecutionError: If an action failed
        """
        event = to_event(event, data or None)
        with self._lock:
            if self._status in (InterpreterStatus.NOT_STARTED, InterpreterStatus.STOPPED):
                raise InterpreterError(f"Cannot send {event!r} to an interpreter that is {self._status.name}")
            if self._status == InterpreterStatus.DONE:
                logger.debug("Ignoring %r sent after completion", event)
                return self.get_snapshot()

            self._external.enqueue(event)
            if self._processing:
                return self.get_snapshot()
            errors = self._drain()

        if errors:
            raise errors[0]
        return self.get_snapshot()

    def get_snapshot(self) -> Snapshot:
        with self._lock:
            return Snapshot(
                self._machine.root,
                self._configuration,
                self._context,
                self._event,
                self._status == InterpreterStatus.DONE,
                self._machine.event_types,
            )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener called with a snapshot after every commit.

        Returns:
            A callable removing the listener
        """
        if not callable(listener):
            raise ValueError("Listener must be callable")
        with self._lock:
            self._listeners.append(listener)

        def unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return unsubscribe

    def stop(self) -> None:
        """Stop the interpreter, cancelling timers and stopping services. Idempotent."""
        with self._lock:
            if self._status == InterpreterStatus.STOPPED:
                return
            self._status = InterpreterStatus.STOPPED
            self._external.clear()
            self._timers.cancel_all()
            self._services.stop_all()
            logger.debug("Stopped machine '%s'", self._machine.id)

    def _new_step(self, configuration: FrozenSet[StateNode], context: Context) -> Macrostep:
        return Macrostep(
            self._resolver,
            set(configuration),
            context,
            self._machine.implementations.delays,
            max_microsteps=self._options.max_microsteps,
            max_queue_size=self._options.max_queue_size,
        )

    def _deliver(self, event: Event) -> None:
        """Queue an event coming from a timer, a service or a listener."""
        with self._lock:
            if self._status != InterpreterStatus.RUNNING:
                logger.debug("Dropped %r delivered to a %s interpreter", event, self._status.name)
                return
            try:
                self._external.enqueue(event)
            except InterpreterError as e:
                self._last_error = e
                logger.error("Dropped %r: %s", event, e)
                return
            if not self._processing:
                self._drain()

    def _drain(self) -> List[StatechartError]:
        errors: List[StatechartError] = []
        self._processing = True
        try:
            while self._status == InterpreterStatus.RUNNING:
                event = self._external.dequeue()
                if event is None:
                    break
                try:
                    self._process(event)
                except (GuardEvaluationError, ActionExecutionError, InterpreterError) as e:
                    self._last_error = e
                    logger.error("Processing %r failed: %s", event, e)
                    errors.append(e)
        finally:
            self._processing = False
        return errors

    def _process(self, event: Event) -> None:
        logger.debug("Processing %r", event)
        step = self._new_step(self._configuration, self._context)
        if not step.process(event):
            self._unhandled(event)
            return
        self._commit(step, event)

    def _unhandled(self, event: Event) -> None:
        if is_builtin_event_type(event.type):
            logger.debug("No transition for %r", event)
            return
        if self._options.strict:
            message = f"Event '{event.type}' is not handled in {sorted(node.id for node in self._configuration)}"
            logger.warning(message)
            warnings.warn(message, UnhandledEventWarning, stacklevel=4)
        else:
            logger.debug("Ignored unhandled %r", event)

    def _commit(self, step: Macrostep, event: Event) -> None:
        """Apply a finished step.

        Raises:
            ActionExecutionError: If an effect failed; the step is discarded
        """
        # Exited nodes keep their timers and services until every effect succeeded
        run_effects(step.effects)

        exited = [node for node in exit_order(step.exited) if node in self._configuration]
        for node in exited:
            self._timers.cancel(node.id)
            self._services.stop(node.id)

        self._configuration = frozenset(step.configuration)
        self._context = step.context
        self._event = event
        if step.done and self._status == InterpreterStatus.RUNNING:
            self._status = InterpreterStatus.DONE

        if self._status == InterpreterStatus.DONE:
            self._timers.cancel_all()
            self._services.stop_all()
        elif self._status == InterpreterStatus.RUNNING:
            self._activate(step)
        self._notify()

    def _activate(self, step: Macrostep) -> None:
        services = self._machine.implementations.services
        for entry in step.entries:
            if entry.node not in self._configuration:
                continue
            for event_type, delay_ms in entry.delays:
                self._timers.arm(entry.node.id, event_type, delay_ms)
            for invocation in entry.node.invoke:
                self._services.start(entry.node.id, invocation, services, entry.context, entry.event)

    def _notify(self) -> None:
        if not self._listeners:
            return
        snapshot = self.get_snapshot()
        for listener in list(self._listeners):
            try:
                listener(snapshot)
            except Exception:
                logger.exception("Subscriber %r failed", listener)
