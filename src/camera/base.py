"""
FrameSource interface.

The detection loop only ever polls a source; it never drives acquisition.
Backends keep capturing on their own and expose the most recent frame:
- OpenCV VideoCapture (USB webcams, RTSP streams, video files)
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Optional

from models.frame import FrameData


class FrameSource(ABC):
    """
    Live video source polled once per detection tick.

    Lifecycle:
        1. Create instance with config
        2. Call open() to start acquisition
        3. Poll is_ready() / current_frame() as often as needed
        4. Call close() to release resources

    Can also be used as a context manager.
    """

    @abstractmethod
    def is_ready(self) -> bool:
        """True once a frame with non-zero dimensions is available."""

    @abstractmethod
    def current_frame(self) -> Optional[FrameData]:
        """Return the latest captured frame, or None if none is available."""

    @abstractmethod
    def width(self) -> int:
        """Native width of the live video in pixels (0 when not ready)."""

    @abstractmethod
    def height(self) -> int:
        """Native height of the live video in pixels (0 when not ready)."""

    def open(self) -> None:
        """Start acquisition. Sources that need no setup may leave this as is."""

    def close(self) -> None:
        """Release the source. Safe to call multiple times."""

    def __enter__(self) -> "FrameSource":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()
