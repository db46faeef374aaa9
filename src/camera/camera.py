"""
FrameSource factory + orientation helpers.

This is the single entrypoint the rest of the project should use to create a
frame source.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

import cv2
import numpy as np

from .base import FrameSource
from .backends.opencv import FrameTransform, OpenCVFrameSource


_ROTATIONS = {
    90: cv2.ROTATE_90_CLOCKWISE,
    180: cv2.ROTATE_180,
    270: cv2.ROTATE_90_COUNTERCLOCKWISE,
}


def apply_orientation(
    frame: np.ndarray,
    rotate: int = 0,
    flip_horizontal: bool = False,
    flip_vertical: bool = False,
) -> np.ndarray:
    """Rotate then flip a frame. Rotation is clockwise in degrees (0/90/180/270)."""
    if rotate in _ROTATIONS:
        frame = cv2.rotate(frame, _ROTATIONS[rotate])
    if flip_horizontal or flip_vertical:
        flip_code = -1 if (flip_horizontal and flip_vertical) else (1 if flip_horizontal else 0)
        frame = cv2.flip(frame, flip_code)
    return frame


def build_transform(camera_cfg: Dict[str, Any]) -> Optional[FrameTransform]:
    """Return a frame transform for the configured orientation, or None if none is needed."""
    rotate = int(camera_cfg.get("rotate", 0) or 0)
    flip_h = bool(camera_cfg.get("flip_horizontal", False))
    flip_v = bool(camera_cfg.get("flip_vertical", False))

    if rotate not in _ROTATIONS and not (flip_h or flip_v):
        return None

    def _transform(frame: np.ndarray) -> np.ndarray:
        return apply_orientation(frame, rotate, flip_h, flip_v)

    return _transform


def create_frame_source(camera_cfg: Dict[str, Any], source_id: str = "camera") -> FrameSource:
    backend = camera_cfg.get("backend", "opencv")
    if backend != "opencv":
        raise ValueError(f"Unsupported camera backend: {backend}")

    resolution = tuple(camera_cfg.get("resolution", [640, 480]))
    return OpenCVFrameSource(
        device_id=camera_cfg.get("device_id", 0),
        resolution=resolution,
        fps=int(camera_cfg.get("fps", 30)),
        buffer_size=int(camera_cfg.get("buffer_size", 1)),
        max_retries=int(camera_cfg.get("max_retries", 3)),
        transform=build_transform(camera_cfg),
        source_id=source_id,
    )
