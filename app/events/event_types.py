"""Tagged events emitted by the capture scheduler.

All events are immutable dataclasses that flow through the EventBus. A
consumer subscribes to the event class it cares about.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from contracts import PipelineState, ScanResult


@dataclass(frozen=True)
class ScanReadEvent:
    """Published once per successful decode attempt.

    Attributes:
        result: Decoded value plus the frame it came from
    """
    result: ScanResult

    @property
    def text(self) -> str:
        return self.result.text


@dataclass(frozen=True)
class DeviceNotAllowedEvent:
    """Published when acquisition fails (permission refused or no camera).

    The scanner stays stopped; call ``start()`` again to retry.
    """
    message: str
    device_id: Optional[str] = None
    timestamp_ns: int = 0


@dataclass(frozen=True)
class UnsupportedPlatformEvent:
    """Published when no camera capture API is available."""
    reason: str
    timestamp_ns: int = 0


@dataclass(frozen=True)
class PipelineStateChangedEvent:
    old_state: PipelineState
    new_state: PipelineState
    timestamp_ns: int = 0
