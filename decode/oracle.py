"""Decode oracle contract and the default OpenCV QR code adapter."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

import cv2
import numpy as np

from exceptions import DecodeError


class DecodeOracle(ABC):
    @abstractmethod
    def decode(self, raster: np.ndarray) -> Optional[str]:
        """Return the decoded text, or None if nothing was found.

        Must not modify ``raster``.
        """


class OpenCVQRDecoder(DecodeOracle):
    """QR decoding with ``cv2.QRCodeDetector``.

    The raster may be horizontally flipped (see ``FrameBuffer``), so a miss
    is retried on the mirrored image.
    """

    def __init__(self, try_mirrored: bool = True) -> None:
        self._detector = cv2.QRCodeDetector()
        self._try_mirrored = try_mirrored

    def _detect(self, gray: np.ndarray) -> Optional[str]:
        text, _points, _ = self._detector.detectAndDecode(gray)
        return text or None

    def decode(self, raster: np.ndarray) -> Optional[str]:
        try:
            gray = cv2.cvtColor(raster, cv2.COLOR_BGR2GRAY) if raster.ndim == 3 else raster
            text = self._detect(gray)
            if text is None and self._try_mirrored:
                text = self._detect(cv2.flip(gray, 1))
        except cv2.error as e:
            raise DecodeError(f"QR detection failed: {e}") from e
        return text
