"""
YOLO detector backed by Ultralytics.

Ultralytics is an optional dependency (the `yolo` extra); the import is
deferred so the rest of the project, including the tests, runs without it.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import numpy as np

from models.config import YoloConfig
from models.detection import BoundingBox, Detection
from .base import ThreadedDetector


def _to_numpy(values: Any) -> np.ndarray:
    return values.cpu().numpy() if hasattr(values, "cpu") else np.asarray(values)


class UltralyticsDetector(ThreadedDetector):
    name = "yolo"

    def __init__(self, cfg: YoloConfig, model: Any = None):
        self.cfg = cfg
        if model is None:
            try:
                from ultralytics import YOLO  # type: ignore
            except Exception as e:  # pragma: no cover
                raise ImportError(
                    "Ultralytics is not installed. Install with `pip install ultralytics` "
                    "or `pip install .[yolo]`."
                ) from e
            model = YOLO(cfg.model)
        self._model = model
        super().__init__()
        logging.info(f"YOLO detector ready (model={cfg.model}, conf={cfg.conf_threshold}, iou={cfg.iou_threshold})")

    def predict(self, image: np.ndarray) -> List[Detection]:
        kwargs: Dict[str, Any] = {
            "source": image,
            "conf": self.cfg.conf_threshold,
            "iou": self.cfg.iou_threshold,
            "classes": list(self.cfg.classes) if self.cfg.classes is not None else None,
            "verbose": False,
        }
        if self.cfg.device:
            kwargs["device"] = self.cfg.device
        results = self._model.predict(**kwargs)
        if not results:
            return []

        r0 = results[0]
        names = getattr(r0, "names", None) or {}
        boxes = getattr(r0, "boxes", None)
        if boxes is None:
            return []

        xyxy = _to_numpy(boxes.xyxy)
        conf = _to_numpy(boxes.conf)
        cls = _to_numpy(boxes.cls)

        out: List[Detection] = []
        for (x1, y1, x2, y2), c, k in zip(xyxy, conf, cls):
            class_id = int(k)
            label = (
                (self.cfg.class_name_overrides or {}).get(class_id)
                or names.get(class_id)
                or str(class_id)
            )
            out.append(
                Detection(
                    label=label,
                    # float32 scores can land a hair outside [0, 1]
                    confidence=min(1.0, max(0.0, float(c))),
                    bbox=BoundingBox.from_xyxy(float(x1), float(y1), float(x2), float(y2)),
                    class_id=class_id,
                )
            )

        return out
