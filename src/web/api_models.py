from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, Field


class DetectionModel(BaseModel):
    label: str
    confidence: float = Field(..., ge=0.0, le=1.0)
    percent: int
    text: str = Field(..., description="Pre-formatted label, e.g. 'person (92%)'")
    bbox: List[float] = Field(..., description="[x, y, width, height] in frame pixels")
    class_id: Optional[int] = None


class PredictionsResponse(BaseModel):
    sequence: int
    width: int
    height: int
    captured_at: Optional[float]
    latency_ms: Optional[float]
    failed: bool
    detections: List[DetectionModel]


class LoopStatsModel(BaseModel):
    ticks: int
    skipped_busy: int
    skipped_not_ready: int
    inferences: int
    failures: int
    timeouts: int
    published: int
    last_latency_ms: Optional[float]
    last_published_ts: Optional[float]


class StatusResponse(BaseModel):
    state: str = Field(..., description="idle|running")
    model_ready: bool
    model_error: Optional[str]
    source_ready: bool
    frame_width: int
    frame_height: int
    interval_ms: int
    uptime_seconds: int
    stats: LoopStatsModel


class ToggleResponse(BaseModel):
    state: str = Field(..., description="idle|running")
    running: bool
