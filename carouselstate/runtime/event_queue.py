"""
Bounded FIFO event queues.

Architecture:
- A deque guarded by a lock, safe to fill from timer and service threads
- One internal queue per macrostep, one external queue per interpreter

Design Patterns:
- Producer-Consumer Pattern: Hosts, timers and services produce, the interpreter consumes

Responsibilities:
1. Ordering
   - Strict first-in first-out delivery
   - No priorities

2. Limits
   - Overflow raises InterpreterError naming the queue

Dependencies:
- event.py: Queued events
"""

from __future__ import annotations

import threading
from collections import deque
from typing import Deque, Optional

from carouselstate.core.errors import InterpreterError
from carouselstate.core.event import Event


class _EventQueueLock:
    """
    Internal context manager ensuring thread-safe access to the event queue.
    """

    def __init__(self, lock: threading.Lock) -> None:
        self._lock = lock

    def __enter__(self) -> None:
        self._lock.acquire()

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self._lock.release()


class EventQueue:
    """
    A bounded FIFO queue feeding events to the interpreter.

    The interpreter owns two of them: the internal queue for raised events,
    drained within the current macrostep, and the external queue for events
    sent by the host, timers and services.
    """

    def __init__(self, name: str = "external", max_size: Optional[int] = None) -> None:
        """
        Create a queue.

        :param name: Label used in overflow errors.
        :param max_size: Maximum number of pending events, None for unbounded.
        """
        if max_size is not None and max_size <= 0:
            raise ValueError("max_size must be a positive integer")
        self._name = name
        self._max_size = max_size
        self._lock = threading.Lock()
        self._queue: Deque[Event] = deque()

    def enqueue(self, event: Event) -> None:
        """
        Add an event to the back of the queue.

        :param event: The event to enqueue.
        :raises InterpreterError: If the queue is full.
        """
        with _EventQueueLock(self._lock):
            if self._max_size is not None and len(self._queue) >= self._max_size:
                raise InterpreterError(f"The {self._name} event queue overflowed ({self._max_size} pending events)")
            self._queue.append(event)

    def dequeue(self) -> Optional[Event]:
        """
        Remove and return the next event from the queue, or None if empty.
        """
        with _EventQueueLock(self._lock):
            if self._queue:
                return self._queue.popleft()
            return None

    def clear(self) -> None:
        """
        Remove all events from the queue.
        """
        with _EventQueueLock(self._lock):
            self._queue.clear()

    def is_empty(self) -> bool:
        with _EventQueueLock(self._lock):
            return not self._queue

    def __len__(self) -> int:
        with _EventQueueLock(self._lock):
            return len(self._queue)

    @property
    def name(self) -> str:
        return self._name

    @property
    def max_size(self) -> Optional[int]:
        return self._max_size
