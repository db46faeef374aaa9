"""
Detection interfaces.

A Detector answers asynchronously: ``detect(frame)`` returns a
``concurrent.futures.Future`` that resolves to the detections or to the
exception the model raised. Backends that run synchronously subclass
ThreadedDetector and implement ``predict``.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from concurrent.futures import Future, ThreadPoolExecutor
from typing import List, Optional

import numpy as np

from models.detection import Detection
from models.frame import FrameData


class Detector(ABC):
    """Detector interface returning detections in source-frame pixel space."""

    name: str = "detector"

    @abstractmethod
    def detect(self, frame: FrameData) -> "Future[List[Detection]]":
        """Start inference on ``frame`` and return a future for its detections."""

    def close(self) -> None:
        """Release model resources. Safe to call multiple times."""


class ThreadedDetector(Detector):
    """
    Runs a synchronous ``predict`` on a dedicated worker thread.

    One worker is enough: the detection loop never has more than one call in
    flight, and model objects are generally not safe to share across threads.
    """

    def __init__(self, name: Optional[str] = None) -> None:
        if name:
            self.name = name
        self._executor: Optional[ThreadPoolExecutor] = ThreadPoolExecutor(
            max_workers=1,
            thread_name_prefix=f"{self.name}-inference",
        )

    @abstractmethod
    def predict(self, image: np.ndarray) -> List[Detection]:
        """Run the model on a BGR image and return detections."""

    def detect(self, frame: FrameData) -> "Future[List[Detection]]":
        if self._executor is None:
            raise RuntimeError(f"Detector {self.name} is closed")
        return self._executor.submit(self.predict, frame.frame)

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=False)
            self._executor = None
            logging.info(f"Detector {self.name} closed")
