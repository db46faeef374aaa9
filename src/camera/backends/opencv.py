"""
OpenCV camera backend.

Supports:
- USB webcams (device_id as int, e.g. 0)
- RTSP/IP cameras (device_id as str URL, e.g. "rtsp://...")
- Video files (device_id as file path)

Frames are read on a background thread and only the newest one is kept, so
a slow consumer never builds up a backlog of stale frames.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional, Tuple, Union

import cv2
import numpy as np

from models.frame import FrameData
from ..base import FrameSource


FrameTransform = Callable[[np.ndarray], np.ndarray]


class OpenCVFrameSource(FrameSource):
    """
    cv2.VideoCapture-backed FrameSource.

    The reader thread reopens the device after read failures, backing off
    between attempts. ``is_ready()`` stays False until the first frame with
    non-zero dimensions arrives, and goes back to False whenever the device
    is lost.
    """

    def __init__(
        self,
        device_id: Union[int, str] = 0,
        resolution: Tuple[int, int] = (640, 480),
        fps: int = 30,
        buffer_size: int = 1,
        max_retries: int = 3,
        reopen_delay_s: float = 1.0,
        transform: Optional[FrameTransform] = None,
        source_id: str = "camera",
    ) -> None:
        self.device_id = device_id
        self.resolution = resolution
        self.fps = fps
        self.buffer_size = buffer_size
        self.max_retries = max_retries
        self.reopen_delay_s = reopen_delay_s
        self.source_id = source_id
        self._transform = transform

        self._cap: Optional[cv2.VideoCapture] = None
        self._thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._frame_lock = threading.Lock()
        self._latest: Optional[FrameData] = None
        self._frame_index = 0
        self._consecutive_failures = 0

    # FrameSource ------------------------------------------------------------

    def is_ready(self) -> bool:
        with self._frame_lock:
            latest = self._latest
        return latest is not None and not latest.is_empty

    def current_frame(self) -> Optional[FrameData]:
        with self._frame_lock:
            return self._latest

    def width(self) -> int:
        with self._frame_lock:
            return self._latest.width if self._latest is not None else 0

    def height(self) -> int:
        with self._frame_lock:
            return self._latest.height if self._latest is not None else 0

    def open(self) -> None:
        """Start the background reader thread if it is not already running."""
        if self._thread is not None and self._thread.is_alive():
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._run, name="FrameSourceReader", daemon=True)
        self._thread.start()
        logging.info(f"Camera reader started (backend=opencv, id={self.device_id}, res={self.resolution}, fps={self.fps})")

    def close(self) -> None:
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=2.0)
        self._thread = None
        self._release_capture()

    # Internal ---------------------------------------------------------------

    def _open_capture(self) -> bool:
        for attempt in range(self.max_retries):
            if attempt > 0:
                wait_time = min(2 ** attempt, 10) * self.reopen_delay_s
                logging.info(
                    f"Retrying camera initialization (attempt {attempt + 1}/{self.max_retries}) after {wait_time}s"
                )
                if self._stop_event.wait(wait_time):
                    return False

            cap = cv2.VideoCapture(self.device_id)
            if not cap.isOpened():
                cap.release()
                logging.warning(f"Failed to open camera device {self.device_id}")
                continue

            # Only set properties for USB cameras (integers), not IP streams or files
            if isinstance(self.device_id, int):
                cap.set(cv2.CAP_PROP_FRAME_WIDTH, self.resolution[0])
                cap.set(cv2.CAP_PROP_FRAME_HEIGHT, self.resolution[1])
                cap.set(cv2.CAP_PROP_FPS, self.fps)
                cap.set(cv2.CAP_PROP_BUFFERSIZE, self.buffer_size)
                actual_width = cap.get(cv2.CAP_PROP_FRAME_WIDTH)
                actual_height = cap.get(cv2.CAP_PROP_FRAME_HEIGHT)
                actual_fps = cap.get(cv2.CAP_PROP_FPS)
                logging.info(f"Camera actual settings - Resolution: ({actual_width}x{actual_height}), FPS: {actual_fps}")

            self._cap = cap
            self._consecutive_failures = 0
            return True

        logging.error(f"Failed to open camera device {self.device_id} after {self.max_retries} attempts")
        return False

    def _release_capture(self) -> None:
        # Without a capture the last frame is stale; report not-ready until reopened
        with self._frame_lock:
            self._latest = None
        if self._cap is not None:
            self._cap.release()
            self._cap = None
            logging.info("Camera released")

    def _run(self) -> None:
        while not self._stop_event.is_set():
            if self._cap is None and not self._open_capture():
                if self._stop_event.wait(self.reopen_delay_s):
                    break
                continue

            assert self._cap is not None
            ok, frame = self._cap.read()
            if not ok or frame is None:
                self._consecutive_failures += 1
                logging.warning(
                    f"Failed to read frame (consecutive failures: {self._consecutive_failures}), reinitializing..."
                )
                self._release_capture()
                continue

            self._consecutive_failures = 0
            if self._transform is not None:
                frame = self._transform(frame)
            self._frame_index += 1
            frame_data = FrameData.from_numpy(
                frame,
                timestamp=time.time(),
                frame_index=self._frame_index,
                source=self.source_id,
            )
            with self._frame_lock:
                self._latest = frame_data

            # Files and streams decode as fast as we ask; pace them at the configured fps
            if not isinstance(self.device_id, int) and self.fps > 0:
                self._stop_event.wait(1.0 / self.fps)

        self._release_capture()
