"""
Model loading.

Loading weights can take seconds (and may download them on first use), so
the app kicks it off in the background and attaches the detector to the loop
once the future resolves.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from typing import Callable, Optional

from models.config import DetectionConfig
from .base import Detector
from .yolo import UltralyticsDetector


def create_detector(detection_cfg: DetectionConfig) -> Detector:
    """Build the configured detector backend. Blocks while the model loads."""
    if detection_cfg.backend == "yolo":
        return UltralyticsDetector(detection_cfg.yolo)
    raise ValueError(f"Unsupported detection backend: {detection_cfg.backend}")


def load_detector_async(
    detection_cfg: DetectionConfig,
    factory: Optional[Callable[[DetectionConfig], Detector]] = None,
) -> "Future[Detector]":
    """
    Load the detector on a background thread.

    Returns:
        Future resolving to a ready Detector, or to the exception that
        prevented loading.
    """
    factory = factory or create_detector
    executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="model-loader")

    def _load() -> Detector:
        started = time.time()
        logging.info(f"Loading detection model (backend={detection_cfg.backend})")
        try:
            detector = factory(detection_cfg)
        except Exception as e:
            logging.error(f"Error loading the model: {e}")
            raise
        logging.info(f"Model loaded in {time.time() - started:.1f}s")
        return detector

    future = executor.submit(_load)
    executor.shutdown(wait=False)
    return future
