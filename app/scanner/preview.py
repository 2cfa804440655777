"""Live preview rendering for the scanner window."""

from __future__ import annotations

from typing import Optional

import cv2
import numpy as np

from configs.settings import CaptureConfig


def center_crop_to_aspect(image: np.ndarray, aspect: float) -> np.ndarray:
    """Largest centred crop of ``image`` with width/height == ``aspect``."""
    height, width = image.shape[:2]
    if width / height > aspect:
        crop_w = max(1, int(round(height * aspect)))
        left = (width - crop_w) // 2
        return image[:, left:left + crop_w]
    crop_h = max(1, int(round(width / aspect)))
    top = (height - crop_h) // 2
    return image[top:top + crop_h, :]


def render_preview(image: np.ndarray, config: CaptureConfig, mirrored: bool) -> np.ndarray:
    """Scale a camera frame for display.

    Square mode fills the raster-sized box without distortion (cover);
    otherwise the frame is stretched to the preview size.
    """
    if image.ndim == 2:
        image = cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)

    if config.square:
        cropped = center_crop_to_aspect(image, config.canvas_width / config.canvas_height)
        view = cv2.resize(cropped, (config.canvas_width, config.canvas_height), interpolation=cv2.INTER_AREA)
    else:
        view = cv2.resize(image, (config.preview_width, config.preview_height), interpolation=cv2.INTER_AREA)

    if mirrored:
        view = cv2.flip(view, 1)
    return view


def show_preview(window_name: str, image: Optional[np.ndarray], config: CaptureConfig, mirrored: bool) -> int:
    """Draw one preview frame; returns the key pressed (255 when none)."""
    if image is not None:
        cv2.imshow(window_name, render_preview(image, config, mirrored))
    return cv2.waitKey(1) & 0xFF
