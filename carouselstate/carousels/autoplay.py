"""
Carousel with autoplay.

Once images are loaded, ``loaded`` runs two regions in parallel:

* ``autoPlay`` - ``enabled`` (``playing``/``paused``) or ``disabled``.
  While ``playing.idle``, the ``auto_play`` delay moves to ``ticking``,
  which raises ``next`` and returns to ``idle`` immediately.
* ``carousel`` - navigation starting from ``start_index``, with
  wrap-around when ``cyclic`` is set and ``reset`` back to ``start_index``.
"""

import copy
from typing import Any, Dict, Optional

from carouselstate.carousels.common import (
    GUARDS,
    CarouselOptions,
    CarouselView,
    ImageLoader,
    NullView,
    PlaceholderImageLoader,
    auto_play_delay,
    load_images_service,
    loading_states,
    navigation_actions,
    navigation_states,
    view_actions,
    with_context,
)
from carouselstate.core.machine import Implementations, Machine

AUTO_PLAY_REGION: Dict[str, Any] = {
    "initial": "checkingInitialState",
    "states": {
        "checkingInitialState": {
            "always": [
                {"target": "enabled", "guard": "auto_play_is_enabled"},
                {"target": "disabled"},
            ],
        },
        "enabled": {
            "initial": "playing",
            "on": {"disableAutoPlay": "disabled"},
            "states": {
                "paused": {"on": {"play": "playing"}},
                "playing": {
                    "initial": "idle",
                    "on": {"pause": "paused"},
                    "states": {
                        "idle": {"after": {"auto_play": "ticking"}},
                        "ticking": {"entry": ["go_next"], "always": "idle"},
                    },
                },
            },
        },
        "disabled": {"on": {"enableAutoPlay": "enabled"}},
    },
}


def carousel_region(**extra_events: Any) -> Dict[str, Any]:
    """Navigation region re-entering ``checkingInitialState`` on ``reset``.

    Args:
        **extra_events: Additional region-level transitions (``goTo`` in the final variant)
    """
    states = {
        "checkingInitialState": {
            "always": [
                {"target": "start", "guard": "start_index_is_first"},
                {"target": "end", "guard": "start_index_is_last"},
                {"target": "middle"},
            ],
        },
    }
    states.update(navigation_states(cyclic_wrap=True))
    return {
        "initial": "checkingInitialState",
        "on": {
            "reset": {"target": ".checkingInitialState", "actions": ["reset_context"]},
            **extra_events,
        },
        "states": states,
    }


DEFINITION: Dict[str, Any] = {
    "id": "carousel",
    "initial": "loading",
    "context": CarouselOptions().to_context(),
    "states": loading_states(
        {
            "type": "parallel",
            "entry": ["enable_smooth_scroll"],
            "states": {"autoPlay": copy.deepcopy(AUTO_PLAY_REGION), "carousel": carousel_region()},
        }
    ),
}


def implementations(
    view: Optional[CarouselView] = None, image_loader: Optional[ImageLoader] = None
) -> Implementations:
    return Implementations(
        guards=GUARDS,
        actions={**navigation_actions(reset_to_start_index=True), **view_actions(view or NullView())},
        services={"load_images": load_images_service(image_loader or PlaceholderImageLoader())},
        delays={"auto_play": auto_play_delay},
    )


def create_machine(
    options: Optional[CarouselOptions] = None,
    view: Optional[CarouselView] = None,
    image_loader: Optional[ImageLoader] = None,
) -> Machine:
    options = options or CarouselOptions()
    return Machine(with_context(DEFINITION, options.to_context()), implementations(view, image_loader))
