"""
Building blocks shared by the carousel machines.

Architecture:
- Guards and context assignments are plain registry entries
- Rendering and input are injected capabilities (view, image loader, key source)
- Navigation states are generated once and reused by every variant

Design Patterns:
- Registry Pattern: Named guards, actions, services and delays
- Dependency Injection: Host capabilities passed at construction
- Adapter Pattern: Key presses translated into machine events

Responsibilities:
1. Context
   - Options validation and initial context
   - Cursor arithmetic and boundary guards

2. Capabilities
   - Scrolling through a CarouselView
   - Image loading through an ImageLoader
   - Arrow-key input through a KeySource

Dependencies:
- core: Actions and machine registry
- runtime: Service shapes
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Protocol

from carouselstate.core.actions import assign, effect, raise_event
from carouselstate.core.event import Event
from carouselstate.core.types import Context
from carouselstate.runtime.services import SendBack, Service, listener, one_shot

logger = logging.getLogger(__name__)

KeyHandler = Callable[[str], None]

ARROW_KEY_EVENTS = {"ArrowRight": "next", "ArrowLeft": "prev"}


def placeholder_images(total: int) -> List[str]:
    """Image list used until real images are loaded: ``["0", "1", ...]``."""
    return [str(index) for index in range(total)]


@dataclass
class CarouselOptions:
    """Host supplied configuration of one carousel.

    Attributes:
        total: Number of items
        start_index: Item shown first
        cyclic: Whether navigation wraps around at both ends
        auto_play: Autoplay cadence in milliseconds, None to start with autoplay disabled
        images: Initial image list, placeholders when omitted
    """

    total: int = 5
    start_index: int = 0
    cyclic: bool = False
    auto_play: Optional[float] = None
    images: Optional[List[str]] = field(default=None)

    def __post_init__(self) -> None:
        if isinstance(self.total, bool) or not isinstance(self.total, int) or self.total < 1:
            raise ValueError("total must be a positive integer")
        if isinstance(self.start_index, bool) or not isinstance(self.start_index, int):
            raise ValueError("start_index must be an integer")
        if not 0 <= self.start_index < self.total:
            raise ValueError(f"start_index must be between 0 and {self.total - 1}")
        if not isinstance(self.cyclic, bool):
            raise ValueError("cyclic must be a boolean")
        if self.auto_play is not None and (
            isinstance(self.auto_play, bool) or not isinstance(self.auto_play, (int, float)) or self.auto_play <= 0
        ):
            raise ValueError("auto_play must be None or a positive number of milliseconds")
        if self.images is None:
            self.images = placeholder_images(self.total)
        elif len(self.images) != self.total:
            raise ValueError(f"Expected {self.total} images, got {len(self.images)}")

    def to_context(self) -> Context:
        """Build the initial context; the cursor starts at ``start_index``."""
        return {
            "cursor": self.start_index,
            "total": self.total,
            "start_index": self.start_index,
            "cyclic": self.cyclic,
            "auto_play": self.auto_play,
            "images": list(self.images or []),
        }


class CarouselView(Protocol):
    """Rendering side of a carousel."""

    def scroll_to_item(self, index: int) -> None:
        ...

    def enable_smooth_scroll(self) -> None:
        ...


class ImageLoader(Protocol):
    """Loads ``total`` images.

    May return the list itself, a ``concurrent.futures.Future``, an asyncio
    future or a coroutine resolving to it.
    """

    def load(self, total: int) -> Any:
        ...


class KeySource(Protocol):
    """A source of key presses, identified by key name (``"ArrowRight"``)."""

    def add_key_listener(self, handler: KeyHandler) -> None:
        ...

    def remove_key_listener(self, handler: KeyHandler) -> None:
        ...


class NullView:
    """View used when the host renders nothing."""

    def scroll_to_item(self, index: int) -> None:
        logger.debug("scroll_to_item(%d)", index)

    def enable_smooth_scroll(self) -> None:
        logger.debug("enable_smooth_scroll()")


class PlaceholderImageLoader:
    """Resolves immediately with placeholder images."""

    def load(self, total: int) -> List[str]:
        return placeholder_images(total)


class KeyboardEmitter:
    """In-memory KeySource: ``press`` dispatches a key to every listener."""

    def __init__(self) -> None:
        self._handlers: List[KeyHandler] = []

    def add_key_listener(self, handler: KeyHandler) -> None:
        self._handlers.append(handler)

    def remove_key_listener(self, handler: KeyHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    @property
    def listener_count(self) -> int:
        return len(self._handlers)

    def press(self, key: str) -> None:
        for handler in list(self._handlers):
            handler(key)


# Guards


def is_first_cursor(context: Context, event: Event) -> bool:
    return context["cursor"] == 1


def is_last_cursor(context: Context, event: Event) -> bool:
    # Checked before the increment of the same transition, hence total - 2
    return context["cursor"] == context["total"] - 2


def is_cyclic(context: Context, event: Event) -> bool:
    return bool(context.get("cyclic"))


def auto_play_is_enabled(context: Context, event: Event) -> bool:
    value = context.get("auto_play")
    return isinstance(value, (int, float)) and not isinstance(value, bool) and value > 0


def start_index_is_first(context: Context, event: Event) -> bool:
    return context["start_index"] == 0


def start_index_is_last(context: Context, event: Event) -> bool:
    return context["start_index"] == context["total"] - 1


GUARDS: Dict[str, Callable[[Context, Event], bool]] = {
    "is_first_cursor": is_first_cursor,
    "is_last_cursor": is_last_cursor,
    "is_cyclic": is_cyclic,
    "auto_play_is_enabled": auto_play_is_enabled,
    "start_index_is_first": start_index_is_first,
    "start_index_is_last": start_index_is_last,
}


# Actions


def navigation_actions(reset_to_start_index: bool) -> Dict[str, Any]:
    """Cursor assignments shared by every variant.

    Args:
        reset_to_start_index: Whether ``reset_context`` returns to ``start_index`` (otherwise to 0)
    """
    if reset_to_start_index:
        reset_context = assign({"cursor": lambda ctx, e: ctx["start_index"]})
    else:
        reset_context = assign({"cursor": 0})
    return {
        "increment_cursor": assign({"cursor": lambda ctx, e: ctx["cursor"] + 1}),
        "decrement_cursor": assign({"cursor": lambda ctx, e: ctx["cursor"] - 1}),
        "set_cursor_to_last": assign({"cursor": lambda ctx, e: ctx["total"] - 1}),
        "set_cursor_to_first": assign({"cursor": 0}),
        "reset_context": reset_context,
        "save_images": assign({"images": lambda ctx, e: list(e["data"])}),
        "set_arbitrary_cursor": assign({"cursor": lambda ctx, e: e["cursor"]}),
        "go_next": raise_event("next"),
    }


def view_actions(view: CarouselView) -> Dict[str, Any]:
    """Effects delegating to the host view."""
    return {
        "scroll_to_item": effect(lambda ctx, e: view.scroll_to_item(ctx["cursor"])),
        "enable_smooth_scroll": effect(lambda ctx, e: view.enable_smooth_scroll()),
    }


# Services


def load_images_service(loader: ImageLoader) -> Service:
    """One-shot service loading ``context["total"]`` images."""

    def load_images(context: Context, event: Event) -> Any:
        return loader.load(context["total"])

    return one_shot(load_images)


def arrow_keys_service(source: KeySource) -> Service:
    """Listener service translating arrow keys into ``next``/``prev``."""

    def register_arrow_keys(context: Context, event: Event, send_back: SendBack) -> Callable[[], None]:
        def handler(key: str) -> None:
            event_type = ARROW_KEY_EVENTS.get(key)
            if event_type is not None:
                send_back(event_type)

        source.add_key_listener(handler)
        return lambda: source.remove_key_listener(handler)

    return listener(register_arrow_keys)


def auto_play_delay(context: Context, event: Event) -> Any:
    value = context.get("auto_play")
    # A zero cadence would re-arm the idle timer at the same instant forever
    if isinstance(value, (int, float)) and not isinstance(value, bool) and value <= 0:
        raise ValueError(f"auto_play must be a positive number of milliseconds, got {value!r}")
    return value


# Definitions


def navigation_states(cyclic_wrap: bool) -> Dict[str, Any]:
    """The ``start | middle | end`` navigation states.

    Args:
        cyclic_wrap: Add the guarded wrap-around transitions at both ends
    """
    start: Dict[str, Any] = {
        "entry": ["scroll_to_item"],
        "on": {"next": {"target": "middle", "actions": ["increment_cursor"]}},
    }
    middle = {
        "entry": ["scroll_to_item"],
        "on": {
            "next": [
                {"target": "end", "guard": "is_last_cursor", "actions": ["increment_cursor"]},
                {"target": "middle", "actions": ["increment_cursor"]},
            ],
            "prev": [
                {"target": "start", "guard": "is_first_cursor", "actions": ["decrement_cursor"]},
                {"target": "middle", "actions": ["decrement_cursor"]},
            ],
        },
    }
    end: Dict[str, Any] = {
        "entry": ["scroll_to_item"],
        "on": {"prev": {"target": "middle", "actions": ["decrement_cursor"]}},
    }
    if cyclic_wrap:
        start["on"]["prev"] = {"target": "end", "guard": "is_cyclic", "actions": ["set_cursor_to_last"]}
        end["on"]["next"] = {"target": "start", "guard": "is_cyclic", "actions": ["set_cursor_to_first"]}
    return {"start": start, "middle": middle, "end": end}


def loading_states(loaded: Mapping[str, Any]) -> Dict[str, Any]:
    """``loading -> {failed | loaded}`` around a ``loaded`` state definition."""
    return {
        "loading": {
            "entry": ["scroll_to_item"],
            "invoke": {
                "src": "load_images",
                "id": "load_images",
                "on_done": {"target": "loaded", "actions": ["save_images"]},
                "on_error": {"target": "failed"},
            },
        },
        "failed": {"tags": ["failed"], "on": {"reload": "loading"}},
        "loaded": dict(loaded, tags=["loaded"]),
    }


def with_context(definition: Mapping[str, Any], context: Context) -> Dict[str, Any]:
    return {**definition, "context": context}
