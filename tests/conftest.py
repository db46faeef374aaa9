"""
Pytest configuration and shared fixtures.
"""

import os
import sys
import threading
import time
from concurrent.futures import Future

import numpy as np
import pytest

# Add src to path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "src"))

from camera.base import FrameSource  # noqa: E402
from detection.base import Detector  # noqa: E402
from models.frame import FrameData  # noqa: E402


class FakeFrameSource(FrameSource):
    """In-memory frame source whose size and readiness tests can change."""

    def __init__(self, width: int = 640, height: int = 480, ready: bool = True):
        self._lock = threading.Lock()
        self._ready = ready
        self._index = 0
        self.set_size(width, height)

    def set_size(self, width: int, height: int) -> None:
        with self._lock:
            self._width = width
            self._height = height
            self._image = np.zeros((max(height, 0), max(width, 0), 3), dtype=np.uint8)

    def set_ready(self, ready: bool) -> None:
        with self._lock:
            self._ready = ready

    def is_ready(self) -> bool:
        with self._lock:
            return self._ready and self._width > 0 and self._height > 0

    def current_frame(self):
        with self._lock:
            if not self._ready:
                return None
            self._index += 1
            return FrameData(
                frame=self._image,
                width=self._width,
                height=self._height,
                timestamp=time.time(),
                frame_index=self._index,
                source="fake",
            )

    def width(self) -> int:
        with self._lock:
            return self._width if self._ready else 0

    def height(self) -> int:
        with self._lock:
            return self._height if self._ready else 0


class ControlledDetector(Detector):
    """
    Detector whose futures stay pending until the test resolves them.

    Tracks how many calls are outstanding at once.
    """

    name = "controlled"

    def __init__(self):
        self._lock = threading.Lock()
        self.futures = []
        self.frames = []
        self.outstanding = 0
        self.max_outstanding = 0

    def detect(self, frame):
        future = Future()
        with self._lock:
            self.futures.append(future)
            self.frames.append(frame)
            self.outstanding += 1
            self.max_outstanding = max(self.max_outstanding, self.outstanding)
        return future

    @property
    def calls(self) -> int:
        with self._lock:
            return len(self.futures)

    def _finish(self):
        with self._lock:
            self.outstanding -= 1

    def resolve(self, index, detections):
        self._finish()
        self.futures[index].set_result(detections)

    def fail(self, index, error):
        self._finish()
        self.futures[index].set_exception(error)


class ImmediateDetector(Detector):
    """Detector that resolves every call right away with a fixed result."""

    name = "immediate"

    def __init__(self, detections=None, error=None):
        self.detections = detections or []
        self.error = error
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        future = Future()
        if self.error is not None:
            future.set_exception(self.error)
        else:
            future.set_result(list(self.detections))
        return future


@pytest.fixture
def fake_source():
    return FakeFrameSource()


@pytest.fixture
def controlled_detector():
    return ControlledDetector()


@pytest.fixture
def temp_config_dir(tmp_path):
    """Create a temporary config directory with default.yaml."""
    config_dir = tmp_path / "config"
    config_dir.mkdir()

    default_yaml = config_dir / "default.yaml"
    default_yaml.write_text("""
camera:
  backend: "opencv"
  device_id: 0
  resolution: [640, 480]
  fps: 30

detection:
  backend: "yolo"
  yolo:
    model: "yolov8n.pt"
    conf_threshold: 0.5

loop:
  interval_ms: 100

log_path: "logs/test.log"
log_level: "INFO"
""")

    return config_dir


@pytest.fixture
def valid_config():
    """Return a valid configuration dictionary."""
    return {
        "camera": {
            "backend": "opencv",
            "device_id": 0,
            "resolution": [640, 480],
            "fps": 30,
        },
        "detection": {
            "backend": "yolo",
            "yolo": {"model": "yolov8n.pt", "conf_threshold": 0.5, "iou_threshold": 0.45},
        },
        "loop": {"interval_ms": 100, "inference_timeout_s": None},
        "web": {"port": 5000},
        "log_path": "logs/test.log",
        "log_level": "INFO",
    }
