"""Capture session: owns the live stream and the video source it feeds."""

from __future__ import annotations

from typing import Any, Optional

import cv2

from configs.settings import CaptureConfig
from contracts import CaptureConstraints, DeviceDescriptor, VideoFrame
from exceptions import AcquisitionDeniedError, UnsupportedPlatformError
from log_config.logger import get_logger

from .providers import CaptureProvider
from .stream import CaptureStream, VideoTrack

logger = get_logger(__name__)


def build_constraints(descriptor: DeviceDescriptor, config: CaptureConfig) -> CaptureConstraints:
    return CaptureConstraints(
        descriptor=descriptor,
        ideal_width=config.ideal_width,
        ideal_height=config.ideal_height,
        audio=False,
    )


class VideoSource:
    """Where the live stream is attached; frames are read from here each tick."""

    def __init__(self) -> None:
        self._stream: Any = None
        self._owns_stream = False  # True when attach() opened the capture itself
        self.attach_mode: Optional[str] = None
        self.video_width = 0
        self.video_height = 0

    @property
    def attached(self) -> bool:
        return self._stream is not None

    def attach(self, stream: Any) -> None:
        """Attach a stream.

        Prefers direct stream assignment, then URL/index assignment (opened
        with ``cv2.VideoCapture``), then a last-resort direct assignment.
        A capture opened here is released again by ``detach()``.
        """
        self.detach()
        try:
            if isinstance(stream, CaptureStream):
                self._stream = stream
                self.attach_mode = "stream"
            else:
                capture = cv2.VideoCapture(stream)
                if not capture.isOpened():
                    capture.release()
                    raise ValueError(f"Cannot open video source {stream!r}")
                self._stream = CaptureStream([VideoTrack(capture, label=str(stream))])
                self._owns_stream = True
                self.attach_mode = "url"
        except Exception as e:
            logger.debug(f"Falling back to direct assignment of {stream!r}: {e}")
            self._stream = stream
            self.attach_mode = "direct"

    def detach(self) -> None:
        if self._owns_stream:
            stopped = self._stream.stop_tracks()
            logger.debug(f"Released {stopped} track(s) opened for {self.attach_mode} source")
        self._owns_stream = False
        self._stream = None
        self.attach_mode = None
        self.video_width = 0
        self.video_height = 0

    def current_frame(self) -> Optional[VideoFrame]:
        """Current frame, or None if the source is not ready."""
        if self._stream is None:
            return None
        frame = self._stream.read_frame()
        if frame is not None:
            self.video_width = frame.width
            self.video_height = frame.height
        return frame


class CaptureSession:
    """Owns at most one live stream; the only place hardware tracks get stopped."""

    def __init__(self, provider: CaptureProvider, video_source: Optional[VideoSource] = None) -> None:
        self._provider = provider
        self._video_source = video_source or VideoSource()
        self._stream: Optional[CaptureStream] = None
        self.release_count = 0

    @property
    def video_source(self) -> VideoSource:
        return self._video_source

    @property
    def stream(self) -> Optional[CaptureStream]:
        return self._stream

    @property
    def acquired(self) -> bool:
        return self._stream is not None

    def acquire(self, descriptor: DeviceDescriptor, config: CaptureConfig) -> CaptureStream:
        """Request a stream and attach it to the video source.

        Raises:
            UnsupportedPlatformError: If the provider has no camera API
            AcquisitionDeniedError: If the stream cannot be acquired
        """
        if not self._provider.supported:
            raise UnsupportedPlatformError(f"{self._provider.name} provider cannot capture video")

        # Never hold two streams at once
        self.release()

        constraints = build_constraints(descriptor, config)
        try:
            stream = self._provider.open_stream(constraints)
        except (AcquisitionDeniedError, UnsupportedPlatformError):
            raise
        except Exception as e:
            raise AcquisitionDeniedError(
                f"Failed to acquire capture stream: {e}",
                device_id=descriptor.device_id,
            ) from e

        self._stream = stream
        self._video_source.attach(stream)
        logger.info(
            f"Capture stream acquired (device={stream.device_id}, facing={descriptor.facing}, "
            f"attach={self._video_source.attach_mode})"
        )
        return stream

    def release(self) -> None:
        """Stop every track on the held stream. No-op if nothing is held."""
        if self._stream is None:
            return

        stream = self._stream
        self._stream = None
        self._video_source.detach()
        try:
            stopped = stream.stop_tracks()
            self.release_count += 1
            logger.info(f"Capture stream released ({stopped} track(s) stopped)")
        except Exception as e:
            logger.error(f"Error stopping capture tracks: {e}")
