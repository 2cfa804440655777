"""Fixed-size raster that frames are painted into before decoding."""

from __future__ import annotations

import cv2
import numpy as np

from contracts import Rect


class FrameBuffer:
    """BGR pixel surface with an optional persistent horizontal flip.

    The flip is a coordinate transform set once by ``initialize()``: every
    later paint lands mirrored about the raster's vertical centre line, the
    same as ``translate(width, 0); scale(-1, 1)`` on a 2D canvas.
    """

    def __init__(self, width: int, height: int) -> None:
        if width <= 0 or height <= 0:
            raise ValueError(f"Raster size must be positive, got {width}x{height}")
        self._width = width
        self._height = height
        self._pixels = np.zeros((height, width, 3), dtype=np.uint8)
        self._flip_horizontal = False
        self._paint_count = 0

    @property
    def width(self) -> int:
        return self._width

    @property
    def height(self) -> int:
        return self._height

    @property
    def pixels(self) -> np.ndarray:
        return self._pixels

    @property
    def flip_horizontal(self) -> bool:
        return self._flip_horizontal

    @property
    def paint_count(self) -> int:
        return self._paint_count

    def initialize(self, flip_horizontal: bool) -> None:
        """Clear the raster and fix its coordinate transform for the session."""
        self.clear()
        self._flip_horizontal = flip_horizontal
        self._paint_count = 0

    def clear(self) -> None:
        self._pixels.fill(0)

    def snapshot(self) -> np.ndarray:
        return self._pixels.copy()

    def draw_image(self, image: np.ndarray, dest: Rect) -> None:
        """Scale ``image`` into ``dest`` (raster coordinates), clipping at the edges."""
        if image is None or image.size == 0:
            raise ValueError("Cannot draw an empty image")

        if image.ndim == 2:
            image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
        elif image.shape[2] == 4:
            image = cv2.cvtColor(image, cv2.COLOR_BGRA2BGR)

        x = dest.x
        if self._flip_horizontal:
            x = self._width - dest.x - dest.width
            image = cv2.flip(image, 1)

        x0 = int(round(x))
        y0 = int(round(dest.y))
        x1 = int(round(x + dest.width))
        y1 = int(round(dest.y + dest.height))
        target_w = x1 - x0
        target_h = y1 - y0
        if target_w <= 0 or target_h <= 0:
            return

        resized = cv2.resize(image, (target_w, target_h), interpolation=cv2.INTER_AREA)

        # Intersect with raster bounds
        cx0, cy0 = max(x0, 0), max(y0, 0)
        cx1, cy1 = min(x1, self._width), min(y1, self._height)
        if cx0 >= cx1 or cy0 >= cy1:
            return

        self._pixels[cy0:cy1, cx0:cx1] = resized[cy0 - y0:cy1 - y0, cx0 - x0:cx1 - x0]
        self._paint_count += 1
