"""
Delayed transition timers and pluggable clocks.

Architecture:
- A Clock abstracts "call me back in N milliseconds"
- The TimerManager arms one timer per ``after`` entry of an entered node
- Timers are owned by a node and cancelled when the node is exited
- Activation tokens drop expiries that race with cancellation

Design Patterns:
- Strategy Pattern: Manual, threading and asyncio clocks
- Observer Pattern: Expiries are delivered through a callback

Responsibilities:
1. Clocks
   - Deterministic virtual time for tests (ManualClock)
   - Wall clock timers on threads (ThreadingClock)
   - Timers on an asyncio loop (AsyncioClock)

2. Timer Lifecycle
   - Delay resolution at entry time
   - Arming, cancellation and stale expiry suppression

Dependencies:
- event.py: Time events
- state.py: Delayed transition declarations
"""

from __future__ import annotations

import asyncio
import heapq
import itertools
import logging
import threading
import time
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from carouselstate.core.errors import ActionExecutionError
from carouselstate.core.event import Event, EventKind
from carouselstate.core.state import DelayedTransition
from carouselstate.core.types import Context

logger = logging.getLogger(__name__)


class Cancellable(ABC):
    """Handle returned by :meth:`Clock.call_later`."""

    @abstractmethod
    def cancel(self) -> None:
        """Prevent the callback from running. Idempotent."""


class Clock(ABC):
    """Source of time and one-shot callbacks, in milliseconds."""

    @abstractmethod
    def now(self) -> float:
        """Current time in milliseconds."""

    @abstractmethod
    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Cancellable:
        """Run ``callback`` once after ``delay_ms`` milliseconds."""


class _ManualCall(Cancellable):
    __slots__ = ("due", "callback", "cancelled")

    def __init__(self, due: float, callback: Callable[[], None]) -> None:
        self.due = due
        self.callback = callback
        self.cancelled = False

    def cancel(self) -> None:
        self.cancelled = True


class ManualClock(Clock):
    """Virtual clock advanced explicitly by tests.

    Callbacks run synchronously inside :meth:`advance`, in due order, and
    only those due at or before the new time run. Callbacks scheduled while
    advancing fire in the same call when they fall due within the window.
    """

    def __init__(self, start: float = 0.0) -> None:
        self._now = float(start)
        self._sequence = itertools.count()
        self._heap: List[Tuple[float, int, _ManualCall]] = []

    def now(self) -> float:
        return self._now

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Cancellable:
        call = _ManualCall(self._now + delay_ms, callback)
        heapq.heappush(self._heap, (call.due, next(self._sequence), call))
        return call

    def advance(self, ms: float) -> None:
        """Move virtual time forward, firing every callback that falls due.

        Raises:
            ValueError: If ``ms`` is negative
        """
        if ms < 0:
            raise ValueError("Cannot move a clock backwards")
        target = self._now + ms
        while self._heap and self._heap[0][0] <= target:
            due, _, call = heapq.heappop(self._heap)
            self._now = due
            if not call.cancelled:
                call.callback()
        self._now = target

    @property
    def pending(self) -> int:
        """Number of scheduled, non-cancelled callbacks."""
        return sum(1 for _, _, call in self._heap if not call.cancelled)


class _ThreadingCall(Cancellable):
    def __init__(self, timer: threading.Timer) -> None:
        self._timer = timer

    def cancel(self) -> None:
        self._timer.cancel()


class ThreadingClock(Clock):
    """Wall clock running each callback on a daemon ``threading.Timer``."""

    def now(self) -> float:
        return time.monotonic() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Cancellable:
        timer = threading.Timer(delay_ms / 1000.0, callback)
        timer.daemon = True
        timer.start()
        return _ThreadingCall(timer)


class AsyncioClock(Clock):
    """Clock scheduling callbacks on an asyncio event loop.

    When no loop is given, the loop running at scheduling time is used.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None) -> None:
        self._loop = loop

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        return self._loop

    def now(self) -> float:
        return self._get_loop().time() * 1000.0

    def call_later(self, delay_ms: float, callback: Callable[[], None]) -> Cancellable:
        # asyncio.TimerHandle already provides an idempotent cancel()
        return self._get_loop().call_later(delay_ms / 1000.0, callback)


def resolve_delay(
    delayed: DelayedTransition, delays: Mapping[str, Any], context: Context, event: Event
) -> float:
    """Resolve an ``after`` delay to milliseconds at entry time.

    Raises:
        ActionExecutionError: If a named delay raises or yields a negative or non-numeric value
    """
    name = f"delay:{delayed.delay}"
    value: Any = delayed.delay
    if delayed.is_named:
        implementation = delays[delayed.delay]
        if callable(implementation):
            try:
                value = implementation(context, event)
            except Exception as e:
                raise ActionExecutionError(name, e) from e
        else:
            value = implementation
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise ActionExecutionError(name, TypeError(f"delay must be a number of milliseconds, got {value!r}"))
    if value < 0:
        raise ActionExecutionError(name, ValueError(f"delay must not be negative, got {value!r}"))
    return float(value)


class _Timer:
    __slots__ = ("owner_id", "event_type", "delay_ms", "handle", "active")

    def __init__(self, owner_id: str, event_type: str, delay_ms: float) -> None:
        self.owner_id = owner_id
        self.event_type = event_type
        self.delay_ms = delay_ms
        self.handle: Optional[Cancellable] = None
        self.active = True


class TimerManager:
    """Arms and cancels the delayed transitions of active nodes.

    Class Invariants:
    1. A timer never outlives the active interval of its owner
    2. A cancelled timer never delivers, even if its callback already fired
    3. Re-entering a node arms a fresh timer
    """

    def __init__(self, clock: Clock, deliver: Callable[[Event], None]) -> None:
        """
        Args:
            clock: Clock used to schedule expiries
            deliver: Callback receiving the time event of an expired timer
        """
        self._clock = clock
        self._deliver = deliver
        self._lock = threading.Lock()
        self._timers: Dict[str, List[_Timer]] = {}

    @property
    def clock(self) -> Clock:
        return self._clock

    def arm(self, owner_id: str, event_type: str, delay_ms: float) -> None:
        """Schedule a time event for an active node."""
        timer = _Timer(owner_id, event_type, delay_ms)
        with self._lock:
            self._timers.setdefault(owner_id, []).append(timer)
        timer.handle = self._clock.call_later(delay_ms, lambda: self._expire(timer))
        logger.debug("Armed timer %s (%sms) for '%s'", event_type, delay_ms, owner_id)

    def cancel(self, owner_id: str) -> None:
        """Cancel every pending timer owned by a node."""
        with self._lock:
            timers = self._timers.pop(owner_id, [])
        for timer in timers:
            timer.active = False
            if timer.handle is not None:
                timer.handle.cancel()
            logger.debug("Cancelled timer %s for '%s'", timer.event_type, owner_id)

    def cancel_all(self) -> None:
        with self._lock:
            owners = list(self._timers)
        for owner_id in owners:
            self.cancel(owner_id)

    def pending(self, owner_id: Optional[str] = None) -> int:
        """Count active timers, optionally for one owner."""
        with self._lock:
            if owner_id is not None:
                return len(self._timers.get(owner_id, []))
            return sum(len(timers) for timers in self._timers.values())

    def _expire(self, timer: _Timer) -> None:
        with self._lock:
            if not timer.active:
                logger.debug("Dropped stale expiry %s for '%s'", timer.event_type, timer.owner_id)
                return
            timer.active = False
            owned = self._timers.get(timer.owner_id, [])
            if timer in owned:
                owned.remove(timer)
            if not owned:
                self._timers.pop(timer.owner_id, None)
        logger.debug("Timer %s fired for '%s'", timer.event_type, timer.owner_id)
        self._deliver(Event(timer.event_type, {"delay": timer.delay_ms}, kind=EventKind.TIME))
