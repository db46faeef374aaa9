"""
Tests for DetectionLoop scheduling, the in-flight guard and failure handling.
"""

import threading
import time

import pytest

from conftest import ControlledDetector, FakeFrameSource, ImmediateDetector
from detection.base import Detector
from models.config import LoopConfig
from models.detection import BoundingBox, Detection
from models.status import LoopState
from overlay.renderer import OverlayRenderer
from pipeline.errors import InvalidStartPrecondition
from pipeline.loop import DetectionLoop
from pipeline.store import ResultStore


PERSON = Detection(label="person", confidence=0.92, bbox=BoundingBox(10, 10, 100, 200))


def _wait_for(predicate, timeout=2.0):
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.005)
    return predicate()


class FakeClock:
    def __init__(self, now=0.0):
        self.now = now

    def __call__(self):
        return self.now


class RaisingDetector(Detector):
    """Raises straight out of detect() instead of returning a future."""

    def __init__(self):
        self.calls = 0

    def detect(self, frame):
        self.calls += 1
        raise RuntimeError("model crashed")


@pytest.fixture
def make_loop():
    loops = []

    def factory(detector=None, source=None, **config):
        loop = DetectionLoop(
            source or FakeFrameSource(),
            OverlayRenderer(),
            ResultStore(),
            LoopConfig(**config),
            detector=detector,
        )
        loops.append(loop)
        return loop

    yield factory
    for loop in loops:
        loop.close()


@pytest.fixture
def clocked_loop():
    """Loop driven by a hand-advanced clock; ticks are issued by the test."""
    loops = []

    def factory(detector, timeout=None):
        clock = FakeClock()
        loop = DetectionLoop(
            FakeFrameSource(),
            OverlayRenderer(),
            ResultStore(),
            LoopConfig(interval_ms=100, inference_timeout_s=timeout),
            detector=detector,
            clock=clock,
        )
        loops.append(loop)
        return loop, clock

    yield factory
    for loop in loops:
        loop.close()


class TestLifecycle:
    def test_interval_must_be_positive(self):
        with pytest.raises(ValueError):
            DetectionLoop(FakeFrameSource(), OverlayRenderer(), ResultStore(), LoopConfig(interval_ms=0))

    def test_start_without_detector_fails(self, make_loop):
        loop = make_loop()
        with pytest.raises(InvalidStartPrecondition):
            loop.start()
        assert loop.state is LoopState.IDLE

    def test_start_is_idempotent(self, make_loop):
        loop = make_loop(detector=ControlledDetector(), interval_ms=1000)
        loop.start()
        timer = loop._timer
        loop.start()

        assert loop.state is LoopState.RUNNING
        assert loop._timer is timer
        assert [t.name for t in threading.enumerate()].count("DetectionLoopTimer") == 1

    def test_stop_is_idempotent(self, make_loop):
        loop = make_loop(detector=ImmediateDetector(), interval_ms=10)
        loop.stop()
        loop.start()
        loop.stop()
        loop.stop()
        assert loop.state is LoopState.IDLE

    def test_no_ticks_after_stop(self, make_loop):
        detector = ImmediateDetector()
        loop = make_loop(detector=detector, interval_ms=10)
        loop.start()
        assert _wait_for(lambda: detector.calls >= 2)

        loop.stop()
        ticks = loop.stats().ticks
        time.sleep(0.1)
        assert loop.stats().ticks == ticks

    def test_toggle(self, make_loop):
        loop = make_loop(detector=ControlledDetector(), interval_ms=1000)
        assert loop.toggle() is LoopState.RUNNING
        assert loop.is_running
        assert loop.toggle() is LoopState.IDLE
        assert not loop.is_running

    def test_toggle_without_detector_raises(self, make_loop):
        loop = make_loop()
        with pytest.raises(InvalidStartPrecondition):
            loop.toggle()

    def test_attach_detector_enables_start(self, make_loop):
        loop = make_loop(interval_ms=1000)
        loop.attach_detector(ControlledDetector())
        loop.start()
        assert loop.is_running

    def test_close_joins_timers_from_earlier_runs(self, make_loop):
        loop = make_loop(detector=ImmediateDetector(), interval_ms=10)
        loop.start()
        first = loop._timer
        loop.stop()
        loop.start()
        second = loop._timer
        assert second is not first

        loop.close()
        assert not first.is_alive()
        assert not second.is_alive()

    def test_close_joins_timer(self, make_loop):
        loop = make_loop(detector=ImmediateDetector(), interval_ms=10)
        loop.start()
        timer = loop._timer
        loop.close()
        assert not timer.is_alive()


class TestTick:
    def test_end_to_end_publish_and_render(self, make_loop):
        loop = make_loop(detector=ImmediateDetector([PERSON]))

        assert loop.tick()

        batch = loop.store.current()
        assert batch.labels() == ["person"]
        assert batch.size == (640, 480)
        assert batch.sequence == 1
        assert not batch.failed

        drawn = loop.renderer.drawn
        assert [d.text for d in drawn] == ["person (92%)"]
        assert drawn[0].box == (10, 10, 110, 210)
        assert loop.renderer.size == (640, 480)

    def test_busy_tick_is_skipped(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector)

        assert loop.tick()
        assert loop.in_flight
        assert not loop.tick()
        assert not loop.tick()
        assert detector.calls == 1

        detector.resolve(0, [])
        assert not loop.in_flight
        assert loop.tick()
        assert detector.calls == 2

        stats = loop.stats()
        assert stats.ticks == 4
        assert stats.skipped_busy == 2
        assert stats.inferences == 2

    def test_source_not_ready_skips_without_calling(self, make_loop):
        detector = ControlledDetector()
        source = FakeFrameSource(ready=False)
        loop = make_loop(detector=detector, source=source)

        assert not loop.tick()
        assert detector.calls == 0
        assert loop.stats().skipped_not_ready == 1
        assert loop.store.version == 0

        source.set_ready(True)
        assert loop.tick()
        assert detector.calls == 1

    def test_zero_sized_source_is_not_ready(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector, source=FakeFrameSource(width=0, height=0))
        assert not loop.tick()
        assert detector.calls == 0

    def test_dimensions_are_taken_when_frame_is_sampled(self, make_loop):
        detector = ControlledDetector()
        source = FakeFrameSource(640, 480)
        loop = make_loop(detector=detector, source=source)

        loop.tick()
        source.set_size(1280, 960)
        detector.resolve(0, [PERSON])

        batch = loop.store.current()
        assert batch.size == (640, 480)
        # Drawn at the current source size, so coordinates are rescaled
        assert loop.renderer.size == (1280, 960)
        assert loop.renderer.drawn[0].box == (20, 20, 220, 420)

    def test_dict_results_are_accepted(self, make_loop):
        detector = ImmediateDetector([{"class": "cup", "score": 0.8675, "bbox": [1, 2, 3, 4]}])
        loop = make_loop(detector=detector)
        loop.tick()
        assert [d.label_text for d in loop.store.current()] == ["cup (87%)"]

    def test_empty_result_clears_overlay(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector)

        loop.tick()
        detector.resolve(0, [PERSON])
        assert loop.renderer.surface[..., 3].any()

        loop.tick()
        detector.resolve(1, [])
        assert not loop.renderer.surface[..., 3].any()
        assert len(loop.store.current()) == 0

    def test_sequences_increase(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector)
        seen = []
        loop.add_listener(lambda batch: seen.append(batch.sequence))

        for i in range(5):
            loop.tick()
            detector.resolve(i, [])

        assert seen == [1, 2, 3, 4, 5]


class TestFailures:
    def test_detector_raising_publishes_empty_batch(self, make_loop):
        detector = RaisingDetector()
        loop = make_loop(detector=detector)

        assert loop.tick()
        batch = loop.store.current()
        assert batch.failed
        assert len(batch) == 0
        assert not loop.in_flight

        # The loop keeps going
        assert loop.tick()
        assert detector.calls == 2
        assert loop.stats().failures == 2

    def test_failed_future_publishes_empty_batch(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector)

        loop.tick()
        detector.resolve(0, [PERSON])
        assert loop.renderer.drawn

        loop.tick()
        detector.fail(1, RuntimeError("GPU lost"))

        batch = loop.store.current()
        assert batch.failed
        assert batch.sequence == 2
        assert len(batch) == 0
        assert loop.renderer.drawn == []
        assert not loop.renderer.surface[..., 3].any()

    def test_malformed_result_counts_as_failure(self, make_loop):
        loop = make_loop(detector=ImmediateDetector(["not a detection"]))
        loop.tick()
        assert loop.store.current().failed
        assert loop.stats().failures == 1

    def test_failing_listener_does_not_stop_delivery(self, make_loop):
        loop = make_loop(detector=ImmediateDetector([PERSON]))
        received = []

        def broken(batch):
            raise ValueError("listener bug")

        loop.add_listener(broken)
        loop.add_listener(received.append)

        loop.tick()
        loop.tick()
        assert len(received) == 2
        assert loop.store.current().sequence == 2


class TestTimeout:
    def test_slow_call_publishes_empty_batch_and_keeps_guard(self, clocked_loop):
        detector = ControlledDetector()
        loop, clock = clocked_loop(detector, timeout=1.0)

        loop.tick()
        clock.now = 0.5
        assert not loop.tick()
        assert loop.store.version == 0

        clock.now = 1.5
        assert not loop.tick()
        batch = loop.store.current()
        assert batch.failed
        assert batch.sequence == 1
        assert loop.stats().timeouts == 1
        # Still waiting on the real call
        assert loop.in_flight
        assert detector.calls == 1

        clock.now = 2.0
        loop.tick()
        assert loop.stats().timeouts == 1

    def test_late_result_is_discarded(self, clocked_loop):
        detector = ControlledDetector()
        loop, clock = clocked_loop(detector, timeout=1.0)

        loop.tick()
        clock.now = 1.5
        loop.tick()
        version = loop.store.version

        detector.resolve(0, [PERSON])
        assert not loop.in_flight
        assert loop.store.version == version
        assert loop.store.current().failed

        assert loop.tick()
        assert detector.calls == 2

    def test_no_timeout_by_default(self, clocked_loop):
        detector = ControlledDetector()
        loop, clock = clocked_loop(detector)

        loop.tick()
        clock.now = 3600.0
        loop.tick()
        assert loop.store.version == 0
        assert loop.stats().timeouts == 0

    def test_latency_uses_loop_clock(self, clocked_loop):
        detector = ControlledDetector()
        loop, clock = clocked_loop(detector)

        loop.tick()
        clock.now = 0.25
        detector.resolve(0, [])
        assert loop.store.current().latency_ms == pytest.approx(250.0)


class TestTimer:
    def test_never_more_than_one_call_outstanding(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector, interval_ms=10)
        loop.start()

        time.sleep(0.15)
        assert detector.calls == 1
        assert loop.stats().skipped_busy >= 3

        detector.resolve(0, [])
        assert _wait_for(lambda: detector.calls == 2)
        assert detector.max_outstanding == 1

    def test_first_tick_after_one_interval(self, make_loop):
        detector = ImmediateDetector()
        loop = make_loop(detector=detector, interval_ms=200)
        loop.start()
        assert detector.calls == 0
        assert _wait_for(lambda: detector.calls >= 1, timeout=1.0)

    def test_batches_arrive_in_capture_order(self, make_loop):
        loop = make_loop(detector=ImmediateDetector([PERSON]), interval_ms=5)
        seen = []
        loop.add_listener(lambda batch: seen.append(batch.sequence))
        loop.start()
        assert _wait_for(lambda: len(seen) >= 10)
        loop.stop()

        assert seen == sorted(seen)
        assert len(set(seen)) == len(seen)

    def test_completion_after_stop_is_still_published(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector, interval_ms=10)
        loop.start()
        assert _wait_for(lambda: detector.calls == 1)

        loop.stop()
        detector.resolve(0, [PERSON])

        assert loop.store.current().labels() == ["person"]
        assert loop.renderer.drawn
        assert detector.calls == 1

    def test_wait_idle(self, make_loop):
        detector = ControlledDetector()
        loop = make_loop(detector=detector)

        loop.tick()
        assert not loop.wait_idle(timeout=0.01)

        resolver = threading.Timer(0.05, detector.resolve, args=(0, []))
        resolver.start()
        try:
            assert loop.wait_idle(timeout=2.0)
        finally:
            resolver.join()
