from __future__ import annotations

import logging
import time
from concurrent.futures import Future
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import numpy as np

from camera.base import FrameSource
from camera.camera import create_frame_source
from detection.base import Detector
from detection.loader import load_detector_async
from models.config import Config
from overlay.renderer import OverlayRenderer
from pipeline.errors import InvalidStartPrecondition
from pipeline.loop import DetectionLoop
from pipeline.store import ResultStore


@dataclass
class RuntimeContext:
    """Holds runtime state and service references; avoids global singletons."""

    config: Config
    source: FrameSource
    renderer: OverlayRenderer
    store: ResultStore
    loop: DetectionLoop
    model_future: Optional["Future[Detector]"] = None
    start_time: float = field(default_factory=time.time)
    model_error: Optional[str] = None

    @property
    def model_ready(self) -> bool:
        return self.loop.detector is not None

    def watch_model(self) -> None:
        """Attach the detector to the loop once loading finishes (autostarting if configured)."""
        if self.model_future is None:
            return
        self.model_future.add_done_callback(self._on_model_loaded)

    def _on_model_loaded(self, future: "Future[Detector]") -> None:
        try:
            detector = future.result()
        except Exception as e:
            self.model_error = str(e)
            logging.error(f"Detection unavailable, model failed to load: {e}")
            return
        self.loop.attach_detector(detector)
        if self.config.loop.autostart:
            try:
                self.loop.start()
            except InvalidStartPrecondition as e:
                logging.error(f"Autostart failed: {e}")

    def preview_frame(self) -> Optional[np.ndarray]:
        """Current camera frame with the overlay blended in, or None if the camera is not ready."""
        if not self.source.is_ready():
            return None
        frame_data = self.source.current_frame()
        if frame_data is None:
            return None
        return self.renderer.composite(frame_data.frame)

    def status(self) -> Dict[str, Any]:
        return {
            "state": self.loop.state.value,
            "model_ready": self.model_ready,
            "model_error": self.model_error,
            "source_ready": self.source.is_ready(),
            "frame_width": self.source.width(),
            "frame_height": self.source.height(),
            "interval_ms": self.config.loop.interval_ms,
            "uptime_seconds": int(time.time() - self.start_time),
            "stats": self.loop.stats().to_dict(),
        }

    def shutdown(self) -> None:
        self.loop.close()
        detector = self.loop.detector
        if detector is not None:
            detector.close()
        try:
            self.source.close()
        except Exception as e:
            logging.warning(f"Error closing source: {e}")


def build_context(
    config: Config,
    source: Optional[FrameSource] = None,
    model_future: Optional["Future[Detector]"] = None,
) -> RuntimeContext:
    """
    Factory: wire source, renderer, store and loop from config.

    Args:
        config: Typed application config.
        source: Frame source to use. Defaults to one built from ``config.camera``.
        model_future: Detector future. Defaults to loading ``config.detection``
            in the background.
    """
    if source is None:
        source = create_frame_source(config.camera.to_dict(), source_id="main-camera")
    if model_future is None:
        model_future = load_detector_async(config.detection)

    renderer = OverlayRenderer(config.overlay)
    store = ResultStore()
    loop = DetectionLoop(source, renderer, store, config.loop)
    ctx = RuntimeContext(
        config=config,
        source=source,
        renderer=renderer,
        store=store,
        loop=loop,
        model_future=model_future,
    )
    ctx.watch_model()
    return ctx
