"""
Latest-result store.

Holds the most recent DetectionBatch for read-side consumers (the web API,
the local window). Batches are immutable, so publishing is a reference swap
and readers can never see a half-written result.
"""

from __future__ import annotations

import logging
import threading
from typing import Optional

from models.detection import DetectionBatch


class ResultStore:
    """Single-slot holder for the newest detection batch."""

    def __init__(self) -> None:
        self._batch: DetectionBatch = DetectionBatch.empty()
        self._version = 0
        # Serializes writers only; readers take the reference without locking.
        self._write_lock = threading.Lock()

    def publish(self, batch: DetectionBatch) -> bool:
        """
        Replace the stored batch.

        Returns:
            False if ``batch`` was captured before the stored one and was
            dropped, True otherwise.
        """
        with self._write_lock:
            current = self._batch
            if batch.sequence >= 0 and batch.sequence < current.sequence:
                logging.debug(
                    f"Dropping out-of-order batch seq={batch.sequence} (current seq={current.sequence})"
                )
                return False
            self._batch = batch
            self._version += 1
            return True

    def current(self) -> DetectionBatch:
        """Return the latest published batch, or an empty batch if none yet."""
        return self._batch

    @property
    def version(self) -> int:
        """Number of accepted publishes."""
        return self._version

    def clear(self) -> None:
        with self._write_lock:
            self._batch = DetectionBatch.empty()
            self._version += 1
