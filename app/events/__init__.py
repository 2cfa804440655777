"""Event system for scanner and error events."""

from app.events.error_bus import (
    ErrorCategory,
    ErrorEvent,
    ErrorEventBus,
    ErrorSeverity,
    get_error_bus,
    publish_error,
)
from app.events.event_types import (
    DeviceNotAllowedEvent,
    PipelineStateChangedEvent,
    ScanReadEvent,
    UnsupportedPlatformEvent,
)

__all__ = [
    "DeviceNotAllowedEvent",
    "ErrorCategory",
    "ErrorEvent",
    "ErrorEventBus",
    "ErrorSeverity",
    "PipelineStateChangedEvent",
    "ScanReadEvent",
    "UnsupportedPlatformEvent",
    "get_error_bus",
    "publish_error",
]
