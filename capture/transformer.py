"""Orientation-aware projection of video frames into the raster."""

from __future__ import annotations

from contracts import FrameGeometry, Orientation, Rect, VideoFrame
from exceptions import TransientCaptureError
from log_config.logger import get_logger

from .raster import FrameBuffer

logger = get_logger(__name__)


def classify_orientation(source_width: int, source_height: int) -> Orientation:
    if source_width >= source_height:
        return Orientation.LANDSCAPE
    return Orientation.PORTRAIT


def compute_geometry(
    source_width: int,
    source_height: int,
    raster_width: int,
    raster_height: int,
) -> FrameGeometry:
    """Compute where a source frame lands in the raster.

    Landscape frames are stretched over the whole raster. Portrait frames are
    painted into a centred rectangle after clearing. The portrait formula
    reduces to ``(raster_width / 2, raster_height / 2)`` for the painted
    height and width; it is kept in its long form so results match existing
    deployments exactly.
    """
    orientation = classify_orientation(source_width, source_height)
    source_rect = Rect(0.0, 0.0, float(source_width), float(source_height))

    if orientation is Orientation.LANDSCAPE:
        return FrameGeometry(
            orientation=orientation,
            source_rect=source_rect,
            dest_rect=Rect(0.0, 0.0, float(raster_width), float(raster_height)),
            clear_first=False,
        )

    scale = raster_width / raster_height
    scaled_height = (raster_width * scale) / (scale * 2)
    scaled_width = (raster_height * scale) / (scale * 2)
    margin_left = (raster_width - scaled_width) / 2
    return FrameGeometry(
        orientation=orientation,
        source_rect=source_rect,
        dest_rect=Rect(margin_left, 0.0, scaled_width, scaled_height),
        clear_first=True,
    )


class FrameTransformer:
    """Paints the current frame of a video source into a FrameBuffer."""

    def __init__(self, frame_buffer: FrameBuffer) -> None:
        self._buffer = frame_buffer

    @property
    def frame_buffer(self) -> FrameBuffer:
        return self._buffer

    def project(self, frame: VideoFrame) -> FrameGeometry:
        """Paint ``frame`` into the raster.

        Raises:
            TransientCaptureError: If the frame cannot be painted (e.g. the
                source is not ready yet)
        """
        try:
            if frame is None or frame.image is None:
                raise ValueError("No frame available from video source")
            if frame.width <= 0 or frame.height <= 0:
                raise ValueError(f"Video source reports empty size {frame.width}x{frame.height}")

            geometry = compute_geometry(
                frame.width, frame.height, self._buffer.width, self._buffer.height
            )
            if geometry.clear_first:
                self._buffer.clear()
            self._buffer.draw_image(frame.image, geometry.dest_rect)
            return geometry

        except TransientCaptureError:
            raise
        except Exception as e:
            raise TransientCaptureError(f"Failed to paint frame: {e}") from e
