"""
Complete carousel: autoplay, arrow-key control and ``goTo``.

Adds a ``keyboard`` region invoking the arrow-key listener while images are
loaded, and a ``goTo`` event (``{"cursor": n}``) that assigns the cursor and
re-enters ``checkingInitialState``.
"""

import copy
from typing import Any, Dict, Optional

from carouselstate.carousels.autoplay import AUTO_PLAY_REGION, carousel_region, implementations
from carouselstate.carousels.common import (
    CarouselOptions,
    CarouselView,
    ImageLoader,
    KeySource,
    KeyboardEmitter,
    arrow_keys_service,
    loading_states,
    with_context,
)
from carouselstate.core.machine import Implementations, Machine

# Hidden from the generated buttons; driven by the item selector instead
HIDDEN_EVENTS = ("goTo",)

DEFINITION: Dict[str, Any] = {
    "id": "carousel",
    "initial": "loading",
    "context": CarouselOptions().to_context(),
    "states": loading_states(
        {
            "type": "parallel",
            "entry": ["enable_smooth_scroll"],
            "states": {
                "keyboard": {"invoke": {"src": "register_arrow_keys", "id": "register_arrow_keys"}},
                "autoPlay": copy.deepcopy(AUTO_PLAY_REGION),
                "carousel": carousel_region(
                    goTo={"target": ".checkingInitialState", "actions": ["set_arbitrary_cursor"]}
                ),
            },
        }
    ),
}


def create_machine(
    options: Optional[CarouselOptions] = None,
    view: Optional[CarouselView] = None,
    image_loader: Optional[ImageLoader] = None,
    key_source: Optional[KeySource] = None,
) -> Machine:
    """Build the complete carousel.

    Args:
        options: Carousel configuration
        view: Rendering capability
        image_loader: Image loading capability
        key_source: Source of arrow-key presses (an unconnected KeyboardEmitter by default)
    """
    options = options or CarouselOptions()
    keyboard = Implementations(services={"register_arrow_keys": arrow_keys_service(key_source or KeyboardEmitter())})
    return Machine(
        with_context(DEFINITION, options.to_context()), implementations(view, image_loader).merge(keyboard)
    )
