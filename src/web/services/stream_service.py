from __future__ import annotations

import time
from typing import Iterable, Optional

import cv2
import numpy as np

from runtime.context import RuntimeContext


class StreamService:
    """Encodes the overlaid preview for the browser."""

    @staticmethod
    def encode_jpeg(frame: np.ndarray, quality: int = 80) -> Optional[bytes]:
        ok, buf = cv2.imencode(".jpg", frame, [int(cv2.IMWRITE_JPEG_QUALITY), quality])
        if not ok:
            return None
        return buf.tobytes()

    @staticmethod
    def snapshot_jpeg(ctx: RuntimeContext) -> bytes:
        frame = ctx.preview_frame()
        if frame is None:
            raise RuntimeError("Camera is not ready")
        jpg = StreamService.encode_jpeg(frame)
        if jpg is None:
            raise RuntimeError("Failed to encode JPEG")
        return jpg

    @staticmethod
    def mjpeg_stream(ctx: RuntimeContext, fps: int = 10) -> Iterable[bytes]:
        """
        Yield MJPEG multipart chunks of the camera frame with the overlay blended in.

        Reads the latest frame from the shared source; never opens the camera itself.
        """
        fps = max(1, min(30, int(fps)))
        delay = 1.0 / fps

        while True:
            frame = ctx.preview_frame()
            if frame is None:
                time.sleep(0.1)
                continue
            jpg = StreamService.encode_jpeg(frame)
            if jpg is None:
                time.sleep(delay)
                continue
            yield b"--frame\r\nContent-Type: image/jpeg\r\n\r\n" + jpg + b"\r\n"
            time.sleep(delay)
