"""
Type definitions and enums for the statechart.

This module contains shared type definitions and enums used across
the interpreter implementation. It helps break circular dependencies
between modules and provides a central location for type information.

Design:
- No runtime dependencies on other modules
- Only contains type definitions and enums
- Used by state.py, transition.py, actions.py and the runtime package
- Provides type hints for static analysis
"""

from enum import Enum, auto
from typing import TYPE_CHECKING, Any, Callable, Dict, Mapping, Union

if TYPE_CHECKING:
    from carouselstate.core.event import Event


class StateType(Enum):
    """Defines the different kinds of state nodes in the statechart.

    Used to distinguish leaf states from containers so entry, exit and
    completion semantics can be applied per kind.
    """

    ATOMIC = auto()  # Leaf state with no substates
    COMPOUND = auto()  # Exactly one child active at a time
    PARALLEL = auto()  # All children (regions) active together
    FINAL = auto()  # Leaf state signalling completion of its parent


# Type aliases for common types
Context = Dict[str, Any]
ContextUpdate = Mapping[str, Any]
GuardFunction = Callable[[Context, "Event"], bool]
EffectFunction = Callable[[Context, "Event"], None]
AssignFunction = Callable[[Context, "Event"], ContextUpdate]
DelayFunction = Callable[[Context, "Event"], Union[int, float]]
