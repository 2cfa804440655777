"""Core data contracts for capture, geometry, and decoding."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional


@dataclass(frozen=True)
class VideoFrame:
    frame_index: int
    t_capture_monotonic_ns: int
    image: Any
    width: int
    height: int


@dataclass(frozen=True)
class DeviceInfo:
    """One entry from device enumeration."""

    device_id: str
    label: str
    kind: str = "videoinput"


@dataclass(frozen=True)
class DeviceDescriptor:
    """Concrete capture request produced by the device selector.

    ``device_id`` of ``None`` means "any device matching ``facing``".
    """

    facing: str
    device_id: Optional[str] = None
    label: str = ""

    @property
    def is_facing_only(self) -> bool:
        return self.device_id is None


@dataclass(frozen=True)
class CaptureConstraints:
    descriptor: DeviceDescriptor
    ideal_width: int
    ideal_height: int
    audio: bool = False


@dataclass(frozen=True)
class Rect:
    x: float
    y: float
    width: float
    height: float


class Orientation(Enum):
    LANDSCAPE = "landscape"
    PORTRAIT = "portrait"


@dataclass(frozen=True)
class FrameGeometry:
    orientation: Orientation
    source_rect: Rect
    dest_rect: Rect
    clear_first: bool


class PipelineState(Enum):
    IDLE = "idle"
    ACQUIRING = "acquiring"
    STREAMING = "streaming"
    STOPPED = "stopped"


@dataclass(frozen=True)
class ScanResult:
    text: str
    frame_index: int = 0
    timestamp_ns: int = 0
