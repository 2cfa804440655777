"""Process-wide error bus for scanner diagnostics.

Components report recoverable and fatal errors here; diagnostics (debug
overlays, the CLI's error log) subscribe to them. Scanner consumers get the
fatal ones as scanner events instead, see ``app.events.event_types``.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

logger = logging.getLogger(__name__)


class ErrorSeverity(Enum):
    INFO = "info"
    WARNING = "warning"  # Recovered locally, scanning continues
    ERROR = "error"  # The current start() attempt failed
    CRITICAL = "critical"  # Scanner instance cannot work on this platform


class ErrorCategory(Enum):
    CAPTURE = "capture"
    DECODE = "decode"
    CONFIG = "config"
    SYSTEM = "system"


_LOG_LEVELS = {
    ErrorSeverity.INFO: logging.INFO,
    ErrorSeverity.WARNING: logging.WARNING,
    ErrorSeverity.ERROR: logging.ERROR,
    ErrorSeverity.CRITICAL: logging.CRITICAL,
}


@dataclass
class ErrorEvent:
    category: ErrorCategory
    severity: ErrorSeverity
    message: str
    source: str
    timestamp: float = field(default_factory=time.time)
    exception: Optional[Exception] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:
        exc_info = f" ({self.exception.__class__.__name__})" if self.exception else ""
        return f"[{self.severity.value.upper()}] {self.category.value}/{self.source}: {self.message}{exc_info}"


class ErrorEventBus:
    """Publish-subscribe error bus with a bounded history."""

    def __init__(self, max_history: int = 100):
        self._subscribers: Dict[ErrorCategory, List[Callable[[ErrorEvent], None]]] = {}
        self._all_subscribers: List[Callable[[ErrorEvent], None]] = []
        self._lock = threading.Lock()
        self._event_history: List[ErrorEvent] = []
        self._max_history = max_history
        self._error_counts: Dict[ErrorCategory, int] = {}

    def subscribe(
        self, callback: Callable[[ErrorEvent], None], category: Optional[ErrorCategory] = None
    ) -> None:
        """Subscribe to one category, or to every error when ``category`` is None."""
        with self._lock:
            if category is None:
                self._all_subscribers.append(callback)
            else:
                self._subscribers.setdefault(category, []).append(callback)

    def unsubscribe(
        self, callback: Callable[[ErrorEvent], None], category: Optional[ErrorCategory] = None
    ) -> None:
        with self._lock:
            if category is None:
                if callback in self._all_subscribers:
                    self._all_subscribers.remove(callback)
            elif callback in self._subscribers.get(category, []):
                self._subscribers[category].remove(callback)

    def publish(self, event: ErrorEvent) -> None:
        with self._lock:
            self._event_history.append(event)
            if len(self._event_history) > self._max_history:
                self._event_history.pop(0)
            self._error_counts[event.category] = self._error_counts.get(event.category, 0) + 1

            category_subscribers = self._subscribers.get(event.category, []).copy()
            all_subscribers = self._all_subscribers.copy()

        logger.log(_LOG_LEVELS[event.severity], str(event))

        # Notify subscribers outside the lock to avoid deadlocks
        for callback in category_subscribers + all_subscribers:
            try:
                callback(event)
            except Exception as e:
                callback_name = getattr(callback, "__name__", repr(callback))
                logger.error(f"Error in error subscriber {callback_name}: {e}", exc_info=True)

    def get_history(
        self, category: Optional[ErrorCategory] = None, limit: int = 100
    ) -> List[ErrorEvent]:
        with self._lock:
            history = self._event_history.copy()

        if category is not None:
            history = [e for e in history if e.category == category]

        return history[-limit:]

    def get_error_counts(self) -> Dict[ErrorCategory, int]:
        with self._lock:
            return self._error_counts.copy()

    def clear_history(self) -> None:
        with self._lock:
            self._event_history.clear()
            self._error_counts.clear()


# Global error event bus instance
_error_bus: Optional[ErrorEventBus] = None
_bus_lock = threading.Lock()


def get_error_bus() -> ErrorEventBus:
    global _error_bus
    if _error_bus is None:
        with _bus_lock:
            if _error_bus is None:
                _error_bus = ErrorEventBus()
    return _error_bus


def publish_error(
    category: ErrorCategory,
    severity: ErrorSeverity,
    message: str,
    source: str,
    exception: Optional[Exception] = None,
    **metadata: Any,
) -> None:
    """Build an ErrorEvent and publish it on the global bus."""
    get_error_bus().publish(
        ErrorEvent(
            category=category,
            severity=severity,
            message=message,
            source=source,
            exception=exception,
            metadata=metadata,
        )
    )


__all__ = [
    "ErrorSeverity",
    "ErrorCategory",
    "ErrorEvent",
    "ErrorEventBus",
    "get_error_bus",
    "publish_error",
]
