"""
Empty carousel: a machine with no states and no events.
"""

from typing import Any, Dict

from carouselstate.core.machine import Machine

DEFINITION: Dict[str, Any] = {"id": "carousel"}


def create_machine() -> Machine:
    return Machine(DEFINITION)
