"""
Overlay renderer.

Draws detection boxes and labels onto a transparent RGBA layer the size of
the live video. The layer is kept separate from camera frames; callers that
want a single image (the MJPEG preview, the local window) use
``composite()``.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import List, Optional, Tuple

import cv2
import numpy as np

from models.config import OverlayConfig
from models.detection import Detection, DetectionBatch


FONT = cv2.FONT_HERSHEY_SIMPLEX

Rect = Tuple[int, int, int, int]


@dataclass(frozen=True)
class LabelLayout:
    """
    Where a label goes on the surface.

    Attributes:
        background: (x0, y0, x1, y1) of the filled background, end-exclusive.
        text_origin: Bottom-left corner passed to cv2.putText.
    """
    background: Rect
    text_origin: Tuple[int, int]

    @property
    def width(self) -> int:
        return self.background[2] - self.background[0]

    @property
    def height(self) -> int:
        return self.background[3] - self.background[1]


@dataclass(frozen=True)
class DrawnDetection:
    """Record of one detection as it was drawn on the current surface."""
    box: Rect
    text: str
    label: LabelLayout


def measure_text(text: str, style: OverlayConfig) -> int:
    """Pixel width of ``text`` in the overlay font."""
    (text_width, _), _ = cv2.getTextSize(text, FONT, style.font_scale, style.text_thickness)
    return int(text_width)


def label_layout(
    x: int,
    y: int,
    text_width: int,
    surface_width: int,
    surface_height: int,
    style: OverlayConfig,
) -> LabelLayout:
    """
    Place a label background directly above a box's top-left corner.

    The background is clamped to stay on the surface: a box touching the top
    edge gets its label moved down to y=0 (over the top of the box), and a box
    near the right edge gets its label shifted left. A label larger than the
    surface itself is cut at the far edges.
    """
    label_w = text_width + 2 * style.padding
    label_h = style.label_height

    x0 = max(0, min(x, surface_width - label_w))
    y0 = max(0, min(y - label_h, surface_height - label_h))
    x1 = min(x0 + label_w, surface_width)
    y1 = min(y0 + label_h, surface_height)

    text_x = min(x0 + style.padding, max(x0, x1 - 1))
    text_y = max(y0, y1 - style.baseline_offset)
    return LabelLayout(background=(x0, y0, x1, y1), text_origin=(text_x, text_y))


def _rgba(color: Tuple[int, int, int]) -> Tuple[int, int, int, int]:
    b, g, r = color
    return (int(b), int(g), int(r), 255)


class OverlayRenderer:
    """
    Owns the overlay drawing surface.

    Only the detection loop calls ``render``; the web stream and the local
    display read through ``surface`` and ``composite``. A lock keeps readers
    from seeing a half-drawn surface.
    """

    def __init__(self, style: Optional[OverlayConfig] = None) -> None:
        self.style = style or OverlayConfig()
        self._lock = threading.Lock()
        self._surface = np.zeros((0, 0, 4), dtype=np.uint8)
        self._drawn: List[DrawnDetection] = []
        self._last_batch: Optional[DetectionBatch] = None

    @property
    def size(self) -> Tuple[int, int]:
        """Current surface (width, height)."""
        with self._lock:
            return (self._surface.shape[1], self._surface.shape[0])

    @property
    def surface(self) -> np.ndarray:
        """Copy of the RGBA surface; alpha 0 where nothing is drawn."""
        with self._lock:
            return self._surface.copy()

    @property
    def drawn(self) -> List[DrawnDetection]:
        with self._lock:
            return list(self._drawn)

    @property
    def last_batch(self) -> Optional[DetectionBatch]:
        with self._lock:
            return self._last_batch

    def render(self, batch: DetectionBatch, target_width: int, target_height: int) -> None:
        """
        Clear the surface and draw ``batch`` on it.

        Args:
            batch: Detections to draw. Rescaled if it was computed against a
                different frame size than the target.
            target_width: Width the surface must have after this call.
            target_height: Height the surface must have after this call.
        """
        target_width = max(0, int(target_width))
        target_height = max(0, int(target_height))

        with self._lock:
            if self._surface.shape[:2] != (target_height, target_width):
                logging.debug(
                    f"Overlay surface resized {self._surface.shape[1]}x{self._surface.shape[0]} "
                    f"-> {target_width}x{target_height}"
                )
                self._surface = np.zeros((target_height, target_width, 4), dtype=np.uint8)
            else:
                self._surface.fill(0)

            self._drawn = []
            self._last_batch = batch
            if target_width == 0 or target_height == 0:
                return

            scaled = batch.scaled_to(target_width, target_height)
            for det in scaled:
                self._drawn.append(self._draw_detection(det))

    def clear(self) -> None:
        with self._lock:
            self._surface.fill(0)
            self._drawn = []
            self._last_batch = None

    def composite(self, frame: np.ndarray) -> np.ndarray:
        """
        Alpha-blend the overlay onto a BGR frame and return the result.

        The overlay is stretched to the frame size when they differ.
        """
        overlay = self.surface
        if overlay.size == 0:
            return frame.copy()

        frame_h, frame_w = frame.shape[:2]
        if overlay.shape[:2] != (frame_h, frame_w):
            overlay = cv2.resize(overlay, (frame_w, frame_h), interpolation=cv2.INTER_NEAREST)

        alpha = overlay[..., 3:4].astype(np.float32) / 255.0
        blended = frame.astype(np.float32) * (1.0 - alpha) + overlay[..., :3].astype(np.float32) * alpha
        return blended.astype(np.uint8)

    def _draw_detection(self, det: Detection) -> DrawnDetection:
        style = self.style
        surface = self._surface
        surface_h, surface_w = surface.shape[:2]

        x1, y1, x2, y2 = det.bbox.as_int_xyxy()
        cv2.rectangle(surface, (x1, y1), (x2, y2), _rgba(style.box_color), style.line_width)

        text = det.label_text
        layout = label_layout(x1, y1, measure_text(text, style), surface_w, surface_h, style)
        bx0, by0, bx1, by1 = layout.background
        cv2.rectangle(surface, (bx0, by0), (bx1 - 1, by1 - 1), _rgba(style.label_color), -1)
        cv2.putText(
            surface,
            text,
            layout.text_origin,
            FONT,
            style.font_scale,
            _rgba(style.text_color),
            style.text_thickness,
            cv2.LINE_AA,
        )
        return DrawnDetection(box=(x1, y1, x2, y2), text=text, label=layout)
