"""
Base carousel: ``start | middle | end`` navigation with a root-level reset.
"""

from typing import Any, Dict, Optional

from carouselstate.carousels.common import (
    GUARDS,
    CarouselOptions,
    CarouselView,
    NullView,
    navigation_actions,
    navigation_states,
    view_actions,
    with_context,
)
from carouselstate.core.machine import Implementations, Machine

DEFINITION: Dict[str, Any] = {
    "id": "carousel",
    "initial": "start",
    "context": {"cursor": 0, "total": 5},
    "on": {"reset": {"target": "start", "actions": ["reset_context"]}},
    "states": navigation_states(cyclic_wrap=False),
}


def create_machine(options: Optional[CarouselOptions] = None, view: Optional[CarouselView] = None) -> Machine:
    """Build the base carousel.

    The cursor always starts at 0 and ``reset`` returns to it.
    """
    options = options or CarouselOptions()
    context = {"cursor": 0, "total": options.total}
    return Machine(
        with_context(DEFINITION, context),
        Implementations(
            guards=GUARDS,
            actions={**navigation_actions(reset_to_start_index=False), **view_actions(view or NullView())},
        ),
    )
