"""Live capture stream handles."""

from __future__ import annotations

import time
from typing import Any, List, Optional

from contracts import VideoFrame
from log_config.logger import get_logger

logger = get_logger(__name__)


class VideoTrack:
    """One hardware track, backed by a ``cv2.VideoCapture``-like object.

    The wrapped object must provide ``read() -> (ok, image)`` and ``release()``.
    """

    def __init__(self, capture: Any, label: str = "") -> None:
        self._capture = capture
        self.label = label
        self._ended = False

    @property
    def ended(self) -> bool:
        return self._ended

    def read(self) -> Optional[Any]:
        if self._ended:
            return None
        ok, image = self._capture.read()
        if not ok:
            return None
        return image

    def stop(self) -> None:
        """Release the underlying device. Idempotent."""
        if self._ended:
            return
        self._ended = True
        self._capture.release()
        logger.debug(f"Track '{self.label}' stopped")


class CaptureStream:
    """A live media stream made of one or more video tracks."""

    def __init__(self, tracks: List[VideoTrack], device_id: Optional[str] = None) -> None:
        self._tracks = list(tracks)
        self.device_id = device_id
        self._frame_index = 0

    def get_tracks(self) -> List[VideoTrack]:
        return list(self._tracks)

    @property
    def active(self) -> bool:
        return any(not track.ended for track in self._tracks)

    def read_frame(self) -> Optional[VideoFrame]:
        """Read the current frame from the first live track, or None if not ready."""
        for track in self._tracks:
            if track.ended:
                continue
            image = track.read()
            if image is None:
                return None
            self._frame_index += 1
            return VideoFrame(
                frame_index=self._frame_index,
                t_capture_monotonic_ns=time.monotonic_ns(),
                image=image,
                width=int(image.shape[1]),
                height=int(image.shape[0]),
            )
        return None

    def stop_tracks(self) -> int:
        """Stop every track; returns how many were still live."""
        stopped = 0
        for track in self._tracks:
            if not track.ended:
                track.stop()
                stopped += 1
        return stopped
