"""
Detection loop.

Periodically samples the frame source, runs the detector on the sampled
frame and, when the result arrives, publishes it to the result store and
redraws the overlay.

At most one detector call is ever in flight. A tick that fires while the
previous call is still running is skipped outright rather than queued, so a
model slower than the tick interval simply lowers the detection rate instead
of building a backlog.
"""

from __future__ import annotations

import dataclasses
import logging
import threading
import time
from concurrent.futures import Future
from dataclasses import dataclass
from typing import Any, Callable, List, Optional, Sequence

from camera.base import FrameSource
from detection.base import Detector
from models.config import LoopConfig
from models.detection import Detection, DetectionBatch
from models.frame import FrameData
from models.status import LoopState, LoopStats
from overlay.renderer import OverlayRenderer
from .errors import InferenceFailure, InvalidStartPrecondition, SourceNotReady
from .store import ResultStore


BatchListener = Callable[[DetectionBatch], None]


@dataclass
class _InFlight:
    """The one outstanding detector call, with the frame facts it was issued against."""
    sequence: int
    width: int
    height: int
    captured_at: float
    started: float
    timed_out: bool = False


def _coerce_detections(raw: Optional[Sequence[Any]]) -> List[Detection]:
    if raw is None:
        return []
    out: List[Detection] = []
    for item in raw:
        if isinstance(item, Detection):
            out.append(item)
        elif isinstance(item, dict):
            out.append(Detection.from_dict(item))
        else:
            raise TypeError(f"Detector returned unsupported item {type(item).__name__}")
    return out


class DetectionLoop:
    """
    Owns the tick schedule, the in-flight guard and the loop state.

    State, the in-flight slot and the timer handle are only touched while
    holding ``_lock``. Completions arrive on the detector's worker thread and
    take the same lock, so batches are delivered strictly one at a time and
    in capture order.

    Example:
        loop = DetectionLoop(source, OverlayRenderer(), ResultStore(), LoopConfig(interval_ms=100))
        loop.attach_detector(detector)
        loop.start()
        ...
        loop.close()
    """

    def __init__(
        self,
        source: FrameSource,
        renderer: OverlayRenderer,
        store: ResultStore,
        config: Optional[LoopConfig] = None,
        detector: Optional[Detector] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.source = source
        self.renderer = renderer
        self.store = store
        self.config = config or LoopConfig()
        if self.config.interval_ms <= 0:
            raise ValueError(f"loop.interval_ms must be positive, got {self.config.interval_ms}")
        self._detector = detector
        self._clock = clock

        self._lock = threading.RLock()
        self._idle = threading.Condition(self._lock)
        self._state = LoopState.IDLE
        self._in_flight: Optional[_InFlight] = None
        self._sequence = 0
        self._stats = LoopStats()
        self._stop_event: Optional[threading.Event] = None
        self._timer: Optional[threading.Thread] = None
        # Timers replaced by a restart; they exit on their own stop event and are joined on close()
        self._retired: List[threading.Thread] = []
        self._listeners: List[BatchListener] = []

    # ------------------------------------------------------------------ state

    @property
    def state(self) -> LoopState:
        with self._lock:
            return self._state

    @property
    def is_running(self) -> bool:
        return self.state is LoopState.RUNNING

    @property
    def detector(self) -> Optional[Detector]:
        return self._detector

    @property
    def in_flight(self) -> bool:
        with self._lock:
            return self._in_flight is not None

    def stats(self) -> LoopStats:
        """Snapshot of the loop counters."""
        with self._lock:
            return dataclasses.replace(self._stats)

    def attach_detector(self, detector: Detector) -> None:
        """Provide the detector once the model has loaded."""
        with self._lock:
            self._detector = detector
        logging.info(f"Detector attached: {getattr(detector, 'name', type(detector).__name__)}")

    def add_listener(self, callback: BatchListener) -> None:
        """
        Add a callback invoked with every delivered batch.

        Args:
            callback: Function taking the DetectionBatch. Errors are logged and
                never reach the loop.
        """
        self._listeners.append(callback)

    # -------------------------------------------------------------- lifecycle

    def start(self) -> None:
        """
        Begin ticking every ``config.interval_ms``. No-op if already running.

        Raises:
            InvalidStartPrecondition: No detector has been attached yet.
        """
        with self._lock:
            if self._detector is None:
                raise InvalidStartPrecondition("Detection model is not loaded yet")
            if self._state is LoopState.RUNNING:
                return
            self._state = LoopState.RUNNING
            self._retired = [t for t in self._retired if t.is_alive()]
            if self._timer is not None and self._timer.is_alive():
                self._retired.append(self._timer)
            stop_event = threading.Event()
            self._stop_event = stop_event
            self._timer = threading.Thread(
                target=self._run,
                args=(stop_event,),
                name="DetectionLoopTimer",
                daemon=True,
            )
            self._timer.start()
        logging.info(f"Detection started (interval={self.config.interval_ms}ms)")

    def stop(self) -> None:
        """
        Stop issuing ticks. No-op if already idle.

        An inference already in flight is not cancelled; its result is still
        published when it arrives.
        """
        with self._lock:
            if self._state is LoopState.IDLE:
                return
            self._state = LoopState.IDLE
            if self._stop_event is not None:
                self._stop_event.set()
            self._stop_event = None
        logging.info("Detection stopped")

    def toggle(self) -> LoopState:
        """Start if idle, stop if running. Returns the new state."""
        with self._lock:
            if self._state is LoopState.RUNNING:
                self.stop()
            else:
                self.start()
            return self._state

    def close(self, timeout: float = 2.0) -> None:
        """Stop the loop and wait for every timer thread it started to exit."""
        self.stop()
        with self._lock:
            timers = self._retired + ([self._timer] if self._timer is not None else [])
            self._timer = None
            self._retired = []
        deadline = time.monotonic() + timeout
        for timer in timers:
            if timer is not threading.current_thread():
                timer.join(timeout=max(0.0, deadline - time.monotonic()))

    def wait_idle(self, timeout: Optional[float] = None) -> bool:
        """Block until no inference is in flight. Returns False on timeout."""
        with self._idle:
            return self._idle.wait_for(lambda: self._in_flight is None, timeout=timeout)

    # ------------------------------------------------------------------- tick

    def tick(self) -> bool:
        """
        Run one work unit.

        Returns:
            True if a detector call was issued, False if the tick was skipped.
        """
        with self._lock:
            self._stats.ticks += 1

            if self._in_flight is not None:
                self._stats.skipped_busy += 1
                self._check_timeout(self._in_flight)
                return False

            detector = self._detector
            if detector is None:
                logging.debug("Tick skipped: no detector attached")
                return False

            try:
                frame = self._read_frame()
            except SourceNotReady as e:
                self._stats.skipped_not_ready += 1
                logging.debug(f"Tick skipped: {e}")
                return False

            self._sequence += 1
            flight = _InFlight(
                sequence=self._sequence,
                width=frame.width,
                height=frame.height,
                captured_at=frame.timestamp,
                started=self._clock(),
            )
            self._in_flight = flight
            self._stats.inferences += 1

            try:
                future = detector.detect(frame)
            except Exception as e:
                self._complete(flight, error=e)
                return True

            # Runs inline when the future is already done; the lock is re-entrant.
            future.add_done_callback(lambda f, flight=flight: self._on_done(flight, f))
            return True

    def _read_frame(self) -> FrameData:
        if not self.source.is_ready():
            raise SourceNotReady("frame source not ready")
        frame = self.source.current_frame()
        if frame is None or frame.is_empty:
            raise SourceNotReady("frame source returned no frame")
        return frame

    def _run(self, stop_event: threading.Event) -> None:
        interval = self.config.interval_s
        next_tick = self._clock() + interval
        while not stop_event.wait(max(0.0, next_tick - self._clock())):
            with self._lock:
                if stop_event.is_set():
                    break
                try:
                    self.tick()
                except Exception as e:
                    logging.error(f"Detection tick failed: {e}")
            next_tick += interval
            now = self._clock()
            if next_tick < now:
                # Fell behind (e.g. process suspended); realign instead of bursting.
                next_tick = now + interval
        logging.debug("Detection timer exited")

    # ------------------------------------------------------------- completion

    def _on_done(self, flight: _InFlight, future: "Future[Sequence[Any]]") -> None:
        try:
            raw = future.result()
        except Exception as e:
            self._complete(flight, error=e)
            return
        self._complete(flight, raw=raw)

    def _complete(
        self,
        flight: _InFlight,
        raw: Optional[Sequence[Any]] = None,
        error: Optional[BaseException] = None,
    ) -> None:
        latency_ms = (self._clock() - flight.started) * 1000.0
        with self._lock:
            try:
                if flight.timed_out:
                    logging.debug(f"Discarding late result for seq={flight.sequence} ({latency_ms:.0f}ms)")
                    return

                batch: Optional[DetectionBatch] = None
                if error is None:
                    try:
                        batch = DetectionBatch(
                            detections=tuple(_coerce_detections(raw)),
                            width=flight.width,
                            height=flight.height,
                            sequence=flight.sequence,
                            captured_at=flight.captured_at,
                            latency_ms=latency_ms,
                        )
                    except (TypeError, ValueError) as e:
                        error = e
                if batch is None:
                    failure = InferenceFailure(f"Detector call failed: {error}", sequence=flight.sequence)
                    logging.warning(f"{failure} (seq={flight.sequence})")
                    self._stats.failures += 1
                    batch = self._failed_batch(flight, latency_ms)

                self._stats.last_latency_ms = latency_ms
                self._deliver(batch)
            finally:
                if self._in_flight is flight:
                    self._in_flight = None
                    self._idle.notify_all()

    def _check_timeout(self, flight: _InFlight) -> None:
        timeout = self.config.inference_timeout_s
        if timeout is None or flight.timed_out:
            return
        elapsed = self._clock() - flight.started
        if elapsed <= timeout:
            return
        flight.timed_out = True
        self._stats.timeouts += 1
        failure = InferenceFailure(f"Detector call exceeded {timeout}s", sequence=flight.sequence)
        logging.warning(f"{failure} (seq={flight.sequence})")
        self._deliver(self._failed_batch(flight, elapsed * 1000.0))

    @staticmethod
    def _failed_batch(flight: _InFlight, latency_ms: float) -> DetectionBatch:
        return DetectionBatch(
            detections=(),
            width=flight.width,
            height=flight.height,
            sequence=flight.sequence,
            captured_at=flight.captured_at,
            latency_ms=latency_ms,
            failed=True,
        )

    def _deliver(self, batch: DetectionBatch) -> None:
        """Publish and draw ``batch``. Caller holds the lock."""
        self.store.publish(batch)
        self._stats.published += 1
        self._stats.last_published_ts = time.time()

        if self.source.is_ready():
            target_w, target_h = self.source.width(), self.source.height()
        else:
            target_w, target_h = batch.width, batch.height
        try:
            self.renderer.render(batch, target_w, target_h)
        except Exception as e:
            logging.error(f"Overlay render failed for seq={batch.sequence}: {e}")

        for callback in self._listeners:
            try:
                callback(batch)
            except Exception as e:
                logging.warning(f"Callback error: {e}")
