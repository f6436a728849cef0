"""
Runtime package interpreting compiled machines.

Architecture:
- The Interpreter runs one machine with run-to-completion semantics
- Macrosteps execute against private copies and commit atomically
- Timers and services are owned by active state nodes
"""

from .event_queue import EventQueue
from .timers import AsyncioClock, Clock, ManualClock, ThreadingClock, TimerManager
from .services import Service, ServiceHandle, ServiceKind, ServiceSupervisor, listener, one_shot
from .resolver import TransitionResolver
from .executor import ExecutionUnit, Macrostep
from .snapshot import Snapshot
from .interpreter import Interpreter, InterpreterOptions, InterpreterStatus

__all__ = [
    "EventQueue",
    "Clock",
    "ManualClock",
    "ThreadingClock",
    "AsyncioClock",
    "TimerManager",
    "Service",
    "ServiceKind",
    "ServiceHandle",
    "ServiceSupervisor",
    "one_shot",
    "listener",
    "TransitionResolver",
    "Macrostep",
    "ExecutionUnit",
    "Snapshot",
    "Interpreter",
    "InterpreterOptions",
    "InterpreterStatus",
]
