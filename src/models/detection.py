"""
Detection models for object detection results.

Boxes are kept in (x, y, width, height) pixel coordinates of the frame the
model saw. A DetectionBatch carries those frame dimensions with it so the
overlay can rescale when the drawing surface is a different size.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, Iterator, List, Optional, Sequence, Tuple


def confidence_percent(confidence: float) -> int:
    """
    Round a [0, 1] confidence to an integer percent.

    Halves round up (0.925 -> 93), matching what a browser's Math.round
    shows, rather than Python's round-half-to-even.
    """
    return int(math.floor(confidence * 100 + 0.5))


def format_label(label: str, confidence: float) -> str:
    """Return the overlay/list text for a detection, e.g. ``person (92%)``."""
    return f"{label} ({confidence_percent(confidence)}%)"


@dataclass(frozen=True)
class BoundingBox:
    """
    A bounding box in pixel coordinates.

    Attributes:
        x: Left edge x coordinate.
        y: Top edge y coordinate.
        width: Box width in pixels.
        height: Box height in pixels.
    """
    x: float
    y: float
    width: float
    height: float

    def __post_init__(self) -> None:
        if self.width < 0 or self.height < 0:
            raise ValueError(f"Bounding box size must be non-negative, got {self.width}x{self.height}")

    @property
    def x2(self) -> float:
        return self.x + self.width

    @property
    def y2(self) -> float:
        return self.y + self.height

    @property
    def center(self) -> Tuple[float, float]:
        return (self.x + self.width / 2, self.y + self.height / 2)

    @property
    def area(self) -> float:
        return self.width * self.height

    def as_xywh(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.width, self.height)

    def as_xyxy(self) -> Tuple[float, float, float, float]:
        return (self.x, self.y, self.x2, self.y2)

    def as_int_xyxy(self) -> Tuple[int, int, int, int]:
        """Return integer (x1, y1, x2, y2), rounded to the nearest pixel."""
        return (
            int(round(self.x)),
            int(round(self.y)),
            int(round(self.x2)),
            int(round(self.y2)),
        )

    def scaled(self, sx: float, sy: float) -> "BoundingBox":
        return BoundingBox(x=self.x * sx, y=self.y * sy, width=self.width * sx, height=self.height * sy)

    @classmethod
    def from_xyxy(cls, x1: float, y1: float, x2: float, y2: float) -> "BoundingBox":
        """Create from (x1, y1, x2, y2) corners."""
        return cls(x=x1, y=y1, width=max(0.0, x2 - x1), height=max(0.0, y2 - y1))

    @classmethod
    def from_sequence(cls, values: Sequence[float]) -> "BoundingBox":
        """Create from an (x, y, width, height) sequence."""
        if len(values) != 4:
            raise ValueError(f"Expected 4 bbox values, got {len(values)}")
        x, y, w, h = (float(v) for v in values)
        return cls(x=x, y=y, width=w, height=h)


@dataclass(frozen=True)
class Detection:
    """
    A single recognized object.

    Attributes:
        label: Human-readable class name.
        confidence: Detection confidence score (0-1).
        bbox: Bounding box in source-frame pixel coordinates.
        class_id: Optional class ID from the detector.
    """
    label: str
    confidence: float
    bbox: BoundingBox
    class_id: Optional[int] = None

    def __post_init__(self) -> None:
        if not 0.0 <= self.confidence <= 1.0:
            raise ValueError(f"Detection confidence must be within [0, 1], got {self.confidence}")

    @property
    def percent(self) -> int:
        return confidence_percent(self.confidence)

    @property
    def label_text(self) -> str:
        return format_label(self.label, self.confidence)

    def scaled(self, sx: float, sy: float) -> "Detection":
        return Detection(
            label=self.label,
            confidence=self.confidence,
            bbox=self.bbox.scaled(sx, sy),
            class_id=self.class_id,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "label": self.label,
            "confidence": self.confidence,
            "percent": self.percent,
            "text": self.label_text,
            "bbox": list(self.bbox.as_xywh()),
            "class_id": self.class_id,
        }

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Detection":
        """
        Adapter: Create a Detection from a plain mapping.

        Accepts both this project's keys (label/confidence/bbox) and the
        COCO-SSD style keys (class/score/bbox).
        """
        label = d.get("label", d.get("class"))
        confidence = d.get("confidence", d.get("score"))
        if label is None or confidence is None or "bbox" not in d:
            raise ValueError(f"Incomplete detection mapping: {sorted(d)}")
        return cls(
            label=str(label),
            confidence=float(confidence),
            bbox=BoundingBox.from_sequence(d["bbox"]),
            class_id=d.get("class_id"),
        )


@dataclass(frozen=True)
class DetectionBatch:
    """
    All detections produced by one inference call.

    Box coordinates are only meaningful against ``width`` x ``height``, the
    frame size the model was run on. Use ``scaled_to`` before drawing on a
    surface of any other size.

    Attributes:
        detections: Detections in the order the model returned them.
        width: Frame width the batch was computed against.
        height: Frame height the batch was computed against.
        sequence: Capture sequence number of the source frame (-1 if none).
        captured_at: Timestamp of the source frame.
        latency_ms: Wall-clock duration of the inference call.
        failed: True when the batch stands in for a failed or timed-out call.
    """
    detections: Tuple[Detection, ...] = ()
    width: int = 0
    height: int = 0
    sequence: int = -1
    captured_at: Optional[float] = None
    latency_ms: Optional[float] = None
    failed: bool = False

    def __post_init__(self) -> None:
        # Callers may hand in any sequence; store a tuple so the batch stays immutable.
        if not isinstance(self.detections, tuple):
            object.__setattr__(self, "detections", tuple(self.detections))

    def __len__(self) -> int:
        return len(self.detections)

    def __iter__(self) -> Iterator[Detection]:
        return iter(self.detections)

    @property
    def size(self) -> Tuple[int, int]:
        return (self.width, self.height)

    @classmethod
    def empty(
        cls,
        width: int = 0,
        height: int = 0,
        sequence: int = -1,
        captured_at: Optional[float] = None,
        failed: bool = False,
    ) -> "DetectionBatch":
        return cls(
            detections=(),
            width=width,
            height=height,
            sequence=sequence,
            captured_at=captured_at,
            failed=failed,
        )

    def scaled_to(self, width: int, height: int) -> "DetectionBatch":
        """
        Return this batch with boxes rescaled to a ``width`` x ``height`` surface.

        Batches with no recorded size (or already at the target size) are
        returned unchanged.
        """
        if (width, height) == (self.width, self.height) or self.width <= 0 or self.height <= 0:
            return self
        sx = width / self.width
        sy = height / self.height
        return DetectionBatch(
            detections=tuple(d.scaled(sx, sy) for d in self.detections),
            width=width,
            height=height,
            sequence=self.sequence,
            captured_at=self.captured_at,
            latency_ms=self.latency_ms,
            failed=self.failed,
        )

    def labels(self) -> List[str]:
        return [d.label_text for d in self.detections]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "sequence": self.sequence,
            "width": self.width,
            "height": self.height,
            "captured_at": self.captured_at,
            "latency_ms": self.latency_ms,
            "failed": self.failed,
            "detections": [d.to_dict() for d in self.detections],
        }
