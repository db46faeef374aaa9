"""
Detection loop state and runtime statistics.
"""

from __future__ import annotations

from dataclasses import dataclass, asdict
from enum import Enum
from typing import Any, Dict, Optional


class LoopState(str, Enum):
    """Detection loop lifecycle states."""
    IDLE = "idle"
    RUNNING = "running"


@dataclass
class LoopStats:
    """
    Counters kept by the detection loop.

    Attributes:
        ticks: Timer ticks handled (including skipped ones).
        skipped_busy: Ticks skipped because an inference was still in flight.
        skipped_not_ready: Ticks skipped because the frame source was not ready.
        inferences: Detector calls issued.
        failures: Detector calls that raised or resolved with an error.
        timeouts: Detector calls that exceeded the configured timeout.
        published: Batches handed to the result store and renderer.
        last_latency_ms: Duration of the most recent completed inference.
        last_published_ts: Unix timestamp of the most recent publish.
    """
    ticks: int = 0
    skipped_busy: int = 0
    skipped_not_ready: int = 0
    inferences: int = 0
    failures: int = 0
    timeouts: int = 0
    published: int = 0
    last_latency_ms: Optional[float] = None
    last_published_ts: Optional[float] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
