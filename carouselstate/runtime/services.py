"""
Invoked services: asynchronous work owned by an active state node.

Architecture:
- A service is started when its owner is entered and stopped when it is exited
- One-shot services settle once with a result or an error
- Listener services send events back until they are stopped
- Settlements are delivered as events through the interpreter's external queue

Design Patterns:
- Strategy Pattern: One-shot and listener service shapes
- Proxy Pattern: ServiceHandle tracks a running invocation
- Observer Pattern: Settlements delivered through a callback

Responsibilities:
1. Service Shapes
   - One-shot: plain value, concurrent future, asyncio future/task or coroutine
   - Listener: registration returning a cleanup callable

2. Supervision
   - ``done.invoke.<id>`` / ``error.invoke.<id>`` delivery
   - Start failures turned into error events
   - Stale settlement suppression after the owner exited
   - Cleanup on exit and on interpreter stop

Dependencies:
- event.py: Completion and error events
- state.py: Invoke declarations
- errors.py: ServiceError payloads
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import inspect
import logging
import threading
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Mapping, Optional, Union

from carouselstate.core.errors import ServiceError
from carouselstate.core.event import Event, EventKind, to_event
from carouselstate.core.state import InvokeDefinition
from carouselstate.core.types import Context

logger = logging.getLogger(__name__)

SendBack = Callable[..., None]


class ServiceKind(Enum):
    """Defines the shape of an invoked service."""

    ONE_SHOT = auto()  # Settles once with a result or an error
    LISTENER = auto()  # Sends events back until stopped


class Service:
    """A named service implementation.

    One-shot functions receive ``(context, event)``; listener functions
    receive ``(context, event, send_back)`` and return a cleanup callable.
    """

    def __init__(self, fn: Callable[..., Any], kind: ServiceKind = ServiceKind.ONE_SHOT) -> None:
        if not callable(fn):
            raise ValueError("Service implementation must be callable")
        if not isinstance(kind, ServiceKind):
            raise ValueError("Service kind must be a ServiceKind enum value")
        self._fn = fn
        self._kind = kind

    @property
    def fn(self) -> Callable[..., Any]:
        return self._fn

    @property
    def kind(self) -> ServiceKind:
        return self._kind

    def __repr__(self) -> str:
        return f"Service({getattr(self._fn, '__name__', 'service')!r}, {self._kind.name})"


def one_shot(fn: Callable[[Context, Event], Any]) -> Service:
    """Declare a service settling once (the default for plain callables)."""
    return Service(fn, ServiceKind.ONE_SHOT)


def listener(fn: Callable[[Context, Event, SendBack], Optional[Callable[[], None]]]) -> Service:
    """Declare a service that sends events back while its owner is active.

    Example:
        >>> @listener
        ... def register_arrow_keys(context, event, send_back):
        ...     source.add_key_listener(handler)
        ...     return lambda: source.remove_key_listener(handler)
    """
    return Service(fn, ServiceKind.LISTENER)


def to_service(value: Union[Service, Callable[..., Any]], name: str) -> Service:
    """Turn a registry entry into a Service.

    Raises:
        ValueError: If the value is neither a Service nor callable
    """
    if isinstance(value, Service):
        return value
    if callable(value):
        return one_shot(value)
    raise ValueError(f"Service '{name}' must be a Service or a callable, got {type(value).__name__}")


class ServiceHandle:
    """A running invocation.

    Class Invariants:
    1. Belongs to exactly one owner node
    2. Delivers nothing once inactive
    3. Stops at most once
    """

    def __init__(self, owner_id: str, invocation: InvokeDefinition, service: Service) -> None:
        self.owner_id = owner_id
        self.invocation = invocation
        self.service = service
        self._active = True
        self._lock = threading.Lock()
        self._future: Optional[Any] = None
        self._cleanup: Optional[Callable[[], None]] = None

    @property
    def id(self) -> str:
        return self.invocation.id

    @property
    def active(self) -> bool:
        return self._active

    def deactivate(self) -> bool:
        """Mark the handle inactive; returns False when it already was."""
        with self._lock:
            if not self._active:
                return False
            self._active = False
            return True

    def stop(self) -> None:
        if not self.deactivate():
            return
        if self._future is not None and not self._future.done():
            self._future.cancel()
        if self._cleanup is not None:
            try:
                self._cleanup()
            except Exception:
                logger.exception("Cleanup of service '%s' owned by '%s' failed", self.id, self.owner_id)
        logger.debug("Stopped service '%s' owned by '%s'", self.id, self.owner_id)

    def __repr__(self) -> str:
        return f"ServiceHandle({self.id!r}, owner={self.owner_id!r}, active={self._active})"


class ServiceSupervisor:
    """Starts, tracks and stops the services of active nodes."""

    def __init__(self, deliver: Callable[[Event], None]) -> None:
        """
        Args:
            deliver: Callback receiving completion, error and sent-back events
        """
        self._deliver = deliver
        self._lock = threading.Lock()
        self._handles: Dict[str, List[ServiceHandle]] = {}

    def start(
        self,
        owner_id: str,
        invocation: InvokeDefinition,
        services: Mapping[str, Any],
        context: Context,
        event: Event,
    ) -> ServiceHandle:
        """Start the service of an invoke declaration.

        Failures to start are delivered as ``error.invoke.<id>`` events.
        """
        handle = ServiceHandle(owner_id, invocation, to_service(services[invocation.src], invocation.src))
        with self._lock:
            self._handles.setdefault(owner_id, []).append(handle)
        logger.debug("Starting service '%s' (%s) for '%s'", invocation.id, invocation.src, owner_id)

        try:
            if handle.service.kind == ServiceKind.LISTENER:
                self._start_listener(handle, context, event)
            else:
                self._start_one_shot(handle, context, event)
        except Exception as e:
            self._settle(handle, error=e)
        return handle

    def stop(self, owner_id: str) -> None:
        """Stop every service owned by a node."""
        with self._lock:
            handles = self._handles.pop(owner_id, [])
        for handle in handles:
            handle.stop()

    def stop_all(self) -> None:
        with self._lock:
            owners = list(self._handles)
        for owner_id in owners:
            self.stop(owner_id)

    def running(self, owner_id: Optional[str] = None) -> List[ServiceHandle]:
        """Get the active handles, optionally for one owner."""
        with self._lock:
            if owner_id is not None:
                handles = list(self._handles.get(owner_id, []))
            else:
                handles = [handle for owned in self._handles.values() for handle in owned]
        return [handle for handle in handles if handle.active]

    def _start_one_shot(self, handle: ServiceHandle, context: Context, event: Event) -> None:
        result = handle.service.fn(dict(context), event)

        if inspect.iscoroutine(result):
            try:
                loop = asyncio.get_running_loop()
            except RuntimeError:
                result.close()
                raise RuntimeError("Coroutine services need a running asyncio event loop")
            result = loop.create_task(result)

        if asyncio.isfuture(result) or isinstance(result, concurrent.futures.Future):
            handle._future = result
            result.add_done_callback(lambda future: self._settle_future(handle, future))
        else:
            self._settle(handle, result=result)

    def _start_listener(self, handle: ServiceHandle, context: Context, event: Event) -> None:
        def send_back(sent: Union[str, Event], **data: Any) -> None:
            if not handle.active:
                logger.debug("Dropped %r sent back by stopped service '%s'", sent, handle.id)
                return
            self._deliver(to_event(sent, data))

        cleanup = handle.service.fn(dict(context), event, send_back)
        if cleanup is not None and not callable(cleanup):
            raise TypeError(f"Listener service '{handle.id}' must return a cleanup callable or None")
        handle._cleanup = cleanup

    def _settle_future(self, handle: ServiceHandle, future: Any) -> None:
        if future.cancelled():
            self._settle(handle, error=concurrent.futures.CancelledError())
            return
        error = future.exception()
        if error is not None:
            self._settle(handle, error=error)
        else:
            self._settle(handle, result=future.result())

    def _settle(self, handle: ServiceHandle, result: Any = None, error: Optional[BaseException] = None) -> None:
        if not handle.deactivate():
            logger.debug("Dropped stale settlement of service '%s' owned by '%s'", handle.id, handle.owner_id)
            return
        with self._lock:
            owned = self._handles.get(handle.owner_id, [])
            if handle in owned:
                owned.remove(handle)
            if not owned:
                self._handles.pop(handle.owner_id, None)

        invocation = handle.invocation
        if error is None:
            logger.debug("Service '%s' completed", handle.id)
            self._deliver(Event(invocation.done_event_type, {"data": result}, kind=EventKind.COMPLETION))
        else:
            logger.debug("Service '%s' failed: %r", handle.id, error)
            service_error = ServiceError(handle.id, error)
            self._deliver(Event(invocation.error_event_type, {"data": service_error}, kind=EventKind.ERROR))
