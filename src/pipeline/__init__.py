"""
Pipeline module for the live detection overlay.

The pipeline orchestrates the detection flow:
- Frame sampling from the frame source on a fixed cadence
- Asynchronous inference with at most one call in flight
- Publishing results (ResultStore) and redrawing the overlay
"""

from .errors import DetectionLoopError, InferenceFailure, InvalidStartPrecondition, SourceNotReady
from .loop import DetectionLoop
from .store import ResultStore

__all__ = [
    "DetectionLoop",
    "ResultStore",
    "DetectionLoopError",
    "InferenceFailure",
    "InvalidStartPrecondition",
    "SourceNotReady",
]
