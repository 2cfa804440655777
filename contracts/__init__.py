"""Shared data contracts for the capture-to-decode pipeline."""

from .types import (
    CaptureConstraints,
    DeviceDescriptor,
    DeviceInfo,
    FrameGeometry,
    Orientation,
    PipelineState,
    Rect,
    ScanResult,
    VideoFrame,
)

__all__ = [
    "CaptureConstraints",
    "DeviceDescriptor",
    "DeviceInfo",
    "FrameGeometry",
    "Orientation",
    "PipelineState",
    "Rect",
    "ScanResult",
    "VideoFrame",
]
