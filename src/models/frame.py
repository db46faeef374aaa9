"""
FrameData model for captured video frames.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np


@dataclass(frozen=True)
class FrameData:
    """
    One sampled instant of the live video plus its pixel dimensions.

    Frames are borrowed by the detection loop for a single tick; the loop
    never keeps a reference past the inference call it was read for.

    Attributes:
        frame: The raw frame data as a numpy array (BGR format).
        width: Frame width in pixels at capture time.
        height: Frame height in pixels at capture time.
        timestamp: Unix timestamp when frame was captured.
        frame_index: Sequential capture number since the source was opened.
        source: Identifier for the camera/video source.
    """
    frame: np.ndarray
    width: int
    height: int
    timestamp: float
    frame_index: int = 0
    source: Optional[str] = None

    @classmethod
    def from_numpy(
        cls,
        frame: np.ndarray,
        timestamp: float,
        frame_index: int = 0,
        source: Optional[str] = None,
    ) -> "FrameData":
        """Create FrameData from a numpy array."""
        h, w = frame.shape[:2]
        return cls(
            frame=frame,
            width=w,
            height=h,
            timestamp=timestamp,
            frame_index=frame_index,
            source=source,
        )

    @property
    def shape(self) -> Tuple[int, ...]:
        return self.frame.shape

    @property
    def size(self) -> Tuple[int, int]:
        """Return (width, height)."""
        return (self.width, self.height)

    @property
    def is_empty(self) -> bool:
        """True when the frame has no usable pixels."""
        return self.width <= 0 or self.height <= 0 or self.frame.size == 0
