"""Error kinds raised or recovered by the detection loop."""

from __future__ import annotations


class DetectionLoopError(Exception):
    """Base class for detection loop errors."""


class SourceNotReady(DetectionLoopError):
    """No usable frame this tick. Recovered by skipping the tick."""


class InferenceFailure(DetectionLoopError):
    """The detector call raised, rejected or timed out. Recovered with an empty batch."""

    def __init__(self, message: str, sequence: int = -1):
        super().__init__(message)
        self.sequence = sequence


class InvalidStartPrecondition(DetectionLoopError):
    """start() was called before a detector was attached."""
