"""
Core package providing the static structure of a statechart.

Architecture:
- Declarative definitions are compiled once into an immutable node tree
- Guards, actions, services and delays are bound by name through a registry
- Runtime behaviour lives in the ``runtime`` package

Design Patterns:
- Composite Pattern for the state hierarchy
- Command Pattern for transitions and actions
- Registry Pattern for named implementations
"""

# Import order matters to avoid circular dependencies
from .types import StateType
from .errors import (
    ActionExecutionError,
    DefinitionError,
    GuardEvaluationError,
    InterpreterError,
    ServiceError,
    StatechartError,
    UnhandledEventWarning,
)
from .event import Event, EventKind
from .actions import Action, AssignAction, EffectAction, RaiseAction, assign, effect, raise_event
from .transition import Guard, Transition
from .state import StateNode
from .machine import Implementations, Machine

__all__ = [
    # Structure
    "StateType",
    "StateNode",
    "Transition",
    "Guard",
    "Machine",
    "Implementations",
    # Events and actions
    "Event",
    "EventKind",
    "Action",
    "AssignAction",
    "EffectAction",
    "RaiseAction",
    "assign",
    "effect",
    "raise_event",
    # Errors
    "StatechartError",
    "DefinitionError",
    "GuardEvaluationError",
    "ActionExecutionError",
    "ServiceError",
    "InterpreterError",
    "UnhandledEventWarning",
]
