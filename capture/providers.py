"""Capture providers: capability-checked strategies for opening camera streams.

A provider is selected once at startup by ``select_capture_provider()``:

- ``OpenCVCaptureProvider``: OpenCV capture with device enumeration through
  the V4L2 sysfs tree (device labels available).
- ``LegacyOpenCVCaptureProvider``: index-only OpenCV capture, no enumeration.
- ``UnsupportedCaptureProvider``: no usable camera API; every request fails
  with ``UnsupportedPlatformError``.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import List, Optional, Union

import cv2

from contracts import CaptureConstraints, DeviceInfo
from exceptions import AcquisitionDeniedError, EnumerationError, UnsupportedPlatformError
from log_config.logger import get_logger

from .stream import CaptureStream, VideoTrack

logger = get_logger(__name__)

DEFAULT_SYSFS_ROOT = Path("/sys/class/video4linux")


class CaptureProvider(ABC):
    name = "abstract"

    @property
    def supported(self) -> bool:
        return True

    @property
    def supports_enumeration(self) -> bool:
        return False

    def enumerate_devices(self) -> List[DeviceInfo]:
        """List capture devices.

        Raises:
            EnumerationError: If the platform cannot list devices
        """
        raise EnumerationError(f"{self.name} provider cannot enumerate devices")

    @abstractmethod
    def open_stream(self, constraints: CaptureConstraints) -> CaptureStream:
        """Open a live stream matching ``constraints``.

        Raises:
            AcquisitionDeniedError: If the device is unavailable or access is refused
            UnsupportedPlatformError: If the provider has no camera API at all
        """

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(supported={self.supported}, enumeration={self.supports_enumeration})"


class OpenCVCaptureProvider(CaptureProvider):
    name = "opencv"

    def __init__(
        self,
        sysfs_root: Union[str, Path] = DEFAULT_SYSFS_ROOT,
        backend: int = cv2.CAP_ANY,
        default_index: int = 0,
    ) -> None:
        self._sysfs_root = Path(sysfs_root)
        self._backend = backend
        self._default_index = default_index

    @property
    def supports_enumeration(self) -> bool:
        return self._sysfs_root.is_dir()

    def enumerate_devices(self) -> List[DeviceInfo]:
        try:
            devices: List[DeviceInfo] = []
            for node in sorted(self._sysfs_root.glob("video*")):
                index = node.name[len("video"):]
                if not index.isdigit():
                    continue
                name_file = node / "name"
                label = name_file.read_text().strip() if name_file.exists() else f"Camera {index}"
                devices.append(DeviceInfo(device_id=index, label=label))
            logger.debug(f"Enumerated {len(devices)} video devices under {self._sysfs_root}")
            return devices
        except OSError as e:
            raise EnumerationError(f"Failed to enumerate devices under {self._sysfs_root}: {e}")

    def _resolve_index(self, device_id: Optional[str]) -> int:
        if device_id is None:
            return self._default_index
        if not str(device_id).isdigit():
            raise AcquisitionDeniedError(
                f"OpenCV provider only supports index-based devices, got '{device_id}'",
                device_id=device_id,
            )
        return int(device_id)

    def open_stream(self, constraints: CaptureConstraints) -> CaptureStream:
        descriptor = constraints.descriptor
        index = self._resolve_index(descriptor.device_id)
        logger.info(f"Opening OpenCV camera index {index} (facing={descriptor.facing})")

        capture = cv2.VideoCapture(index, self._backend)
        if capture is None or not capture.isOpened():
            if capture is not None:
                capture.release()
            raise AcquisitionDeniedError(
                f"Failed to open camera index {index} - camera may be in use, not found, or access denied",
                device_id=str(index),
            )

        capture.set(cv2.CAP_PROP_FRAME_WIDTH, constraints.ideal_width)
        capture.set(cv2.CAP_PROP_FRAME_HEIGHT, constraints.ideal_height)

        # Resolution hints are "ideal", a mismatch is not an error
        actual_width = int(capture.get(cv2.CAP_PROP_FRAME_WIDTH))
        actual_height = int(capture.get(cv2.CAP_PROP_FRAME_HEIGHT))
        if actual_width != constraints.ideal_width or actual_height != constraints.ideal_height:
            logger.debug(
                f"Camera {index}: requested {constraints.ideal_width}x{constraints.ideal_height} "
                f"but got {actual_width}x{actual_height}"
            )

        label = descriptor.label or f"Camera {index}"
        return CaptureStream([VideoTrack(capture, label=label)], device_id=str(index))


class LegacyOpenCVCaptureProvider(OpenCVCaptureProvider):
    """Index-only capture for platforms without a device listing."""

    name = "opencv-legacy"

    @property
    def supports_enumeration(self) -> bool:
        return False

    def enumerate_devices(self) -> List[DeviceInfo]:
        raise EnumerationError("Legacy OpenCV provider cannot enumerate devices")


class UnsupportedCaptureProvider(CaptureProvider):
    name = "unsupported"

    def __init__(self, reason: str = "No camera capture API available") -> None:
        self.reason = reason

    @property
    def supported(self) -> bool:
        return False

    def open_stream(self, constraints: CaptureConstraints) -> CaptureStream:
        raise UnsupportedPlatformError(self.reason)


def select_capture_provider(sysfs_root: Union[str, Path] = DEFAULT_SYSFS_ROOT) -> CaptureProvider:
    """Pick the best provider for this platform by capability check."""
    if not hasattr(cv2, "VideoCapture"):
        return UnsupportedCaptureProvider("OpenCV build has no VideoCapture")

    try:
        backends = cv2.videoio_registry.getCameraBackends()
    except (AttributeError, cv2.error):
        backends = None
    if backends is not None and len(backends) == 0:
        return UnsupportedCaptureProvider("OpenCV build has no camera backends")

    if Path(sysfs_root).is_dir():
        provider: CaptureProvider = OpenCVCaptureProvider(sysfs_root)
    else:
        provider = LegacyOpenCVCaptureProvider(sysfs_root)
    logger.info(f"Selected capture provider: {provider!r}")
    return provider
