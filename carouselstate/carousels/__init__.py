"""
Carousel machines built on the statechart interpreter.

Variants, from simplest to complete:

* ``empty`` - no states
* ``base`` - navigation only
* ``buttons`` - image loading around the navigation
* ``autoplay`` - parallel autoplay and navigation regions
* ``final`` - autoplay, arrow keys and ``goTo``
"""

from . import autoplay, base, buttons, empty, final
from .common import (
    ARROW_KEY_EVENTS,
    CarouselOptions,
    CarouselView,
    ImageLoader,
    KeyboardEmitter,
    KeySource,
    NullView,
    PlaceholderImageLoader,
    placeholder_images,
)

VARIANTS = {
    "empty": empty.create_machine,
    "base": base.create_machine,
    "buttons": buttons.create_machine,
    "autoplay": autoplay.create_machine,
    "final": final.create_machine,
}

__all__ = [
    "VARIANTS",
    "ARROW_KEY_EVENTS",
    "CarouselOptions",
    "CarouselView",
    "ImageLoader",
    "KeySource",
    "KeyboardEmitter",
    "NullView",
    "PlaceholderImageLoader",
    "placeholder_images",
]
