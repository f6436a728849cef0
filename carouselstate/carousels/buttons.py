"""
Carousel with image loading: ``loading -> {failed | loaded}``.

``loaded`` holds the base navigation; ``failed`` retries on ``reload``.
"""

from typing import Any, Dict, Optional

from carouselstate.carousels.common import (
    GUARDS,
    CarouselOptions,
    CarouselView,
    ImageLoader,
    NullView,
    PlaceholderImageLoader,
    load_images_service,
    loading_states,
    navigation_actions,
    navigation_states,
    placeholder_images,
    view_actions,
    with_context,
)
from carouselstate.core.machine import Implementations, Machine

DEFINITION: Dict[str, Any] = {
    "id": "carousel",
    "initial": "loading",
    "context": {"cursor": 0, "total": 5, "images": placeholder_images(5)},
    "states": loading_states(
        {
            "initial": "start",
            "on": {"reset": {"target": ".start", "actions": ["reset_context"]}},
            "states": navigation_states(cyclic_wrap=False),
        }
    ),
}


def create_machine(
    options: Optional[CarouselOptions] = None,
    view: Optional[CarouselView] = None,
    image_loader: Optional[ImageLoader] = None,
) -> Machine:
    options = options or CarouselOptions()
    context = {"cursor": 0, "total": options.total, "images": list(options.images or [])}
    return Machine(
        with_context(DEFINITION, context),
        Implementations(
            guards=GUARDS,
            actions={**navigation_actions(reset_to_start_index=False), **view_actions(view or NullView())},
            services={"load_images": load_images_service(image_loader or PlaceholderImageLoader())},
        ),
    )
