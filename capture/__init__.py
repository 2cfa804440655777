"""Capture module."""

from .device_selector import DeviceSelector
from .providers import (
    CaptureProvider,
    LegacyOpenCVCaptureProvider,
    OpenCVCaptureProvider,
    UnsupportedCaptureProvider,
    select_capture_provider,
)
from .raster import FrameBuffer
from .session import CaptureSession, VideoSource, build_constraints
from .simulated_provider import SimulatedCaptureProvider
from .stream import CaptureStream, VideoTrack
from .transformer import FrameTransformer, compute_geometry

__all__ = [
    "CaptureProvider",
    "CaptureSession",
    "CaptureStream",
    "DeviceSelector",
    "FrameBuffer",
    "FrameTransformer",
    "LegacyOpenCVCaptureProvider",
    "OpenCVCaptureProvider",
    "SimulatedCaptureProvider",
    "UnsupportedCaptureProvider",
    "VideoSource",
    "VideoTrack",
    "build_constraints",
    "compute_geometry",
    "select_capture_provider",
]
