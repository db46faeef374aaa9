"""
Typed models for the live detection overlay.

Frames and detection batches are immutable value objects so they can be
handed between the timer thread, the inference worker and web readers
without copying.
"""

from .frame import FrameData
from .detection import BoundingBox, Detection, DetectionBatch, confidence_percent, format_label
from .status import LoopState, LoopStats
from .config import (
    Config,
    CameraConfig,
    DetectionConfig,
    YoloConfig,
    LoopConfig,
    OverlayConfig,
    WebConfig,
)

__all__ = [
    # Frame
    "FrameData",
    # Detection
    "BoundingBox",
    "Detection",
    "DetectionBatch",
    "confidence_percent",
    "format_label",
    # Loop
    "LoopState",
    "LoopStats",
    # Config
    "Config",
    "CameraConfig",
    "DetectionConfig",
    "YoloConfig",
    "LoopConfig",
    "OverlayConfig",
    "WebConfig",
]
