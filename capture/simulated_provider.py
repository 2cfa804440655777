"""Simulated capture provider for pipeline testing and demos."""

from __future__ import annotations

import time
from typing import Callable, List, Optional, Sequence

import cv2
import numpy as np

from contracts import CaptureConstraints, DeviceInfo
from exceptions import AcquisitionDeniedError, EnumerationError

from .providers import CaptureProvider
from .stream import CaptureStream, VideoTrack

FrameSource = Callable[[int], Optional[np.ndarray]]


def render_qr_frame(text: str, width: int, height: int) -> np.ndarray:
    """Render ``text`` as a QR code centred on a white BGR frame."""
    encoder = cv2.QRCodeEncoder.create()
    code = encoder.encode(text)
    side = max(1, min(width, height) // 2)
    code = cv2.resize(code, (side, side), interpolation=cv2.INTER_NEAREST)
    if code.ndim == 2:
        code = cv2.cvtColor(code, cv2.COLOR_GRAY2BGR)

    image = np.full((height, width, 3), 255, dtype=np.uint8)
    top = (height - side) // 2
    left = (width - side) // 2
    image[top:top + side, left:left + side] = code
    return image


class _SimulatedCapture:
    """Quacks like ``cv2.VideoCapture`` for ``VideoTrack``."""

    def __init__(self, frame_source: FrameSource, fps: int) -> None:
        self._frame_source = frame_source
        self._fps = fps
        self._frame_index = 0
        self._last_frame_time = time.monotonic()
        self.released = False
        self.release_calls = 0

    def read(self):
        if self.released:
            return False, None
        if self._fps > 0:
            target_delay = 1.0 / self._fps
            elapsed = time.monotonic() - self._last_frame_time
            if elapsed < target_delay:
                time.sleep(target_delay - elapsed)
        self._last_frame_time = time.monotonic()
        self._frame_index += 1
        image = self._frame_source(self._frame_index)
        if image is None:
            return False, None
        return True, image

    def release(self) -> None:
        self.release_calls += 1
        self.released = True


class SimulatedCaptureProvider(CaptureProvider):
    """In-memory camera: synthetic frames, scripted devices and failures."""

    name = "simulated"

    def __init__(
        self,
        width: int = 1280,
        height: int = 720,
        devices: Optional[Sequence[DeviceInfo]] = None,
        frame_source: Optional[FrameSource] = None,
        text: Optional[str] = None,
        deny: bool = False,
        enumeration_error: bool = False,
        fps: int = 0,
    ) -> None:
        self._width = width
        self._height = height
        self._devices = list(devices) if devices is not None else None
        self._deny = deny
        self._enumeration_error = enumeration_error
        self._fps = fps
        if frame_source is None:
            frame_source = self._make_frame_source(text)
        self._frame_source = frame_source

        self.enumerate_calls = 0
        self.open_calls: List[CaptureConstraints] = []
        self.captures: List[_SimulatedCapture] = []

    def _make_frame_source(self, text: Optional[str]) -> FrameSource:
        if text is not None:
            image = render_qr_frame(text, self._width, self._height)
        else:
            # Dark blue-gray test pattern
            image = np.zeros((self._height, self._width, 3), dtype=np.uint8)
            image[:, :, 0] = 40
            image[:, :, 1] = 30
            image[:, :, 2] = 20
        return lambda index: image

    @property
    def supports_enumeration(self) -> bool:
        return self._devices is not None

    def enumerate_devices(self) -> List[DeviceInfo]:
        self.enumerate_calls += 1
        if self._enumeration_error:
            raise EnumerationError("Simulated enumeration failure")
        if self._devices is None:
            raise EnumerationError("Simulated provider has no device list")
        return list(self._devices)

    def open_stream(self, constraints: CaptureConstraints) -> CaptureStream:
        self.open_calls.append(constraints)
        if self._deny:
            raise AcquisitionDeniedError(
                "Simulated permission denial", device_id=constraints.descriptor.device_id
            )
        capture = _SimulatedCapture(self._frame_source, self._fps)
        self.captures.append(capture)
        label = constraints.descriptor.label or "Simulated Camera"
        return CaptureStream(
            [VideoTrack(capture, label=label)],
            device_id=constraints.descriptor.device_id or "sim",
        )
