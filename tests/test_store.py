"""
Tests for ResultStore.
"""

import threading

from models.detection import BoundingBox, Detection, DetectionBatch
from pipeline.store import ResultStore


def _batch(sequence, label="person"):
    return DetectionBatch(
        detections=[Detection(label=label, confidence=0.9, bbox=BoundingBox(0, 0, 10, 10))],
        width=640,
        height=480,
        sequence=sequence,
    )


def test_starts_empty():
    store = ResultStore()
    current = store.current()
    assert len(current) == 0
    assert store.version == 0


def test_publish_replaces_current():
    store = ResultStore()
    first = _batch(1, "cat")
    second = _batch(2, "dog")

    assert store.publish(first)
    assert store.current() is first
    assert store.publish(second)
    assert store.current() is second
    assert store.version == 2


def test_same_sequence_is_accepted():
    """A timed-out placeholder and its late replacement share a sequence."""
    store = ResultStore()
    store.publish(_batch(4, "a"))
    assert store.publish(_batch(4, "b"))
    assert store.current().labels() == ["b"]


def test_older_batch_is_dropped():
    store = ResultStore()
    newer = _batch(5)
    store.publish(newer)

    assert not store.publish(_batch(3))
    assert store.current() is newer
    assert store.version == 1


def test_unsequenced_batch_always_accepted():
    store = ResultStore()
    store.publish(_batch(5))
    blank = DetectionBatch.empty()
    assert store.publish(blank)
    assert store.current() is blank


def test_clear():
    store = ResultStore()
    store.publish(_batch(1))
    store.clear()
    assert len(store.current()) == 0
    assert store.version == 2


def test_concurrent_readers_see_whole_batches():
    store = ResultStore()
    store.publish(_batch(0))
    stop = threading.Event()
    torn = []

    def reader():
        while not stop.is_set():
            batch = store.current()
            if len(batch.detections) != 1 or batch.size != (640, 480):
                torn.append(batch)

    threads = [threading.Thread(target=reader) for _ in range(4)]
    for t in threads:
        t.start()
    for seq in range(1, 500):
        store.publish(_batch(seq))
    stop.set()
    for t in threads:
        t.join()

    assert torn == []
    assert store.current().sequence == 499
