"""carouselstate: statechart interpreter and the carousel machines built on it

This package provides a run-to-completion statechart interpreter with
hierarchical and parallel states, guarded transitions, delayed transitions,
invoked services and raised events, plus five carousel machines defined
declaratively on top of it.

Responsibilities:
    - Definition compilation and validation
    - Event processing with run-to-completion semantics
    - Timers and services owned by active states
    - Carousel navigation, loading, autoplay and keyboard control

Example:
    >>> from carouselstate import Interpreter, ManualClock
    >>> from carouselstate.carousels import CarouselOptions, base
    >>> interpreter = Interpreter(base.create_machine(CarouselOptions(total=10)), clock=ManualClock())
    >>> interpreter.start().value
    'start'
    >>> interpreter.send("next").context["cursor"]
    1
"""

from carouselstate.core import (
    ActionExecutionError,
    DefinitionError,
    Event,
    GuardEvaluationError,
    Implementations,
    InterpreterError,
    Machine,
    ServiceError,
    StatechartError,
    StateType,
    UnhandledEventWarning,
    assign,
    effect,
    raise_event,
)
from carouselstate.runtime import (
    AsyncioClock,
    Interpreter,
    InterpreterOptions,
    InterpreterStatus,
    ManualClock,
    Snapshot,
    ThreadingClock,
    listener,
    one_shot,
)

__version__ = "0.1.0"

__all__ = [
    "Machine",
    "Implementations",
    "Interpreter",
    "InterpreterOptions",
    "InterpreterStatus",
    "Snapshot",
    "Event",
    "StateType",
    "assign",
    "effect",
    "raise_event",
    "one_shot",
    "listener",
    "ManualClock",
    "ThreadingClock",
    "AsyncioClock",
    "StatechartError",
    "DefinitionError",
    "GuardEvaluationError",
    "ActionExecutionError",
    "ServiceError",
    "InterpreterError",
    "UnhandledEventWarning",
]
