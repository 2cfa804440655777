"""Thread-safe EventBus connecting the scanner to its consumers.

Handlers run synchronously on the publisher's thread. An event published
from inside a handler for the same event type is deferred until the
current dispatch of that type returns, so a handler is never re-entered
from its own call stack.
"""

from __future__ import annotations

import threading
import time
from typing import Any, Callable, Dict, List, Type, TypeVar

from app.events.error_bus import ErrorCategory, ErrorSeverity, publish_error
from log_config.logger import get_logger

logger = get_logger(__name__)

EventType = TypeVar('EventType')
EventHandler = Callable[[EventType], None]


class _DispatchState(threading.local):
    def __init__(self) -> None:
        self.active: set = set()
        self.pending: List[Any] = []


class EventBus:
    """Type-keyed publish/subscribe bus.

    Example:
        ```python
        bus = EventBus()
        bus.subscribe(ScanReadEvent, lambda event: print(event.text))
        bus.publish(ScanReadEvent(result=ScanResult(text="hello")))
        ```
    """

    def __init__(self):
        self._subscribers: Dict[Type, List[EventHandler]] = {}
        self._lock = threading.Lock()
        self._event_count: Dict[Type, int] = {}
        self._dispatch = _DispatchState()
        self._start_time = time.time()

    def subscribe(self, event_type: Type[EventType], handler: EventHandler) -> Callable[[], bool]:
        """Register handler for event type.

        Returns:
            A callable that unsubscribes the handler
        """
        with self._lock:
            self._subscribers.setdefault(event_type, []).append(handler)
            self._event_count.setdefault(event_type, 0)
            logger.debug(f"Subscribed handler to {event_type.__name__} "
                         f"({len(self._subscribers[event_type])} total subscribers)")

        return lambda: self.unsubscribe(event_type, handler)

    def unsubscribe(self, event_type: Type[EventType], handler: EventHandler) -> bool:
        """Unregister handler; returns True if it was registered."""
        with self._lock:
            try:
                self._subscribers.get(event_type, []).remove(handler)
                return True
            except ValueError:
                return False

    def publish(self, event: EventType) -> None:
        """Publish event to all subscribers of its type.

        If a handler raises, the error is logged and reported on the error
        bus, and the remaining handlers still run.
        """
        event_type = type(event)
        state = self._dispatch

        if event_type in state.active:
            logger.debug(f"Deferring nested {event_type.__name__} until current dispatch returns")
            state.pending.append(event)
            return

        state.active.add(event_type)
        try:
            self._deliver(event)
        finally:
            state.active.discard(event_type)

        deferred = [e for e in state.pending if type(e) is event_type]
        if deferred:
            state.pending = [e for e in state.pending if type(e) is not event_type]
            for nested in deferred:
                self.publish(nested)

    def _deliver(self, event: Any) -> None:
        event_type = type(event)

        # Copy handler list inside lock, call handlers outside it
        with self._lock:
            handlers = self._subscribers.get(event_type, []).copy()
            self._event_count[event_type] = self._event_count.get(event_type, 0) + 1

        if not handlers:
            logger.debug(f"Published {event_type.__name__} with no subscribers")
            return

        failed_handlers = 0
        for handler in handlers:
            try:
                handler(event)
            except Exception as e:
                failed_handlers += 1
                handler_name = getattr(handler, "__name__", repr(handler))
                logger.error(
                    f"Event handler {handler_name} failed for {event_type.__name__}: "
                    f"{e.__class__.__name__}: {e}"
                )
                publish_error(
                    category=ErrorCategory.SYSTEM,
                    severity=ErrorSeverity.WARNING,
                    message=f"Event handler failed: {e}",
                    source="EventBus",
                    exception=e,
                    event=event_type.__name__,
                    handler=handler_name,
                )

        if failed_handlers > 0:
            logger.warning(f"{failed_handlers}/{len(handlers)} handlers failed for {event_type.__name__}")

    def get_subscriber_count(self, event_type: Type[EventType]) -> int:
        with self._lock:
            return len(self._subscribers.get(event_type, []))

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "event_types": len(self._subscribers),
                "total_subscribers": sum(len(handlers) for handlers in self._subscribers.values()),
                "event_counts": {
                    event_type.__name__: count
                    for event_type, count in self._event_count.items()
                },
                "uptime_seconds": time.time() - self._start_time,
            }

    def clear_all_subscribers(self) -> None:
        with self._lock:
            self._subscribers.clear()
            self._event_count.clear()

    def __repr__(self) -> str:
        stats = self.get_stats()
        return (f"EventBus(event_types={stats['event_types']}, "
                f"subscribers={stats['total_subscribers']}, "
                f"uptime={stats['uptime_seconds']:.1f}s)")
