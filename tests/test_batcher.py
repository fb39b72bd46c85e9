import asyncio

import pytest

from conftest import FakeClock
from jobs.analyze.batcher import BatchScheduler, BatchState, partition
from jobs.schemas import NormalizedReview, default_results


def _reviews(n):
    return [NormalizedReview(id=f"csv-row-{i}", content=f"r{i}", date="2025-01-01", source="CSV") for i in range(1, n + 1)]


class RecordingClassifier:
    def __init__(self):
        self.batches = []
        self.in_flight = 0
        self.max_in_flight = 0

    async def classify(self, batch):
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0)
        self.batches.append([r.id for r in batch])
        self.in_flight -= 1
        return default_results(batch)


def test_partition_keeps_order():
    chunks = partition(list(range(31)), 15)
    assert [len(c) for c in chunks] == [15, 15, 1]
    assert sum(chunks, []) == list(range(31))


def test_partition_rejects_bad_size():
    with pytest.raises(ValueError):
        partition([1], 0)


def test_batches_run_sequentially_with_cooldown():
    clock = FakeClock(start=0.0)
    classifier = RecordingClassifier()
    scheduler = BatchScheduler(classifier.classify, batch_size=15, delay_seconds=12.0, clock=clock)

    results = asyncio.run(scheduler.run(_reviews(31)))

    assert [len(b) for b in classifier.batches] == [15, 15, 1]
    assert classifier.max_in_flight == 1
    assert clock.sleeps == [12.0, 12.0]
    assert [r.mention_id for r in results] == [f"csv-row-{i}" for i in range(1, 32)]


def test_state_transitions():
    clock = FakeClock(start=0.0)
    scheduler = BatchScheduler(RecordingClassifier().classify, batch_size=2, delay_seconds=12.0, clock=clock)
    assert scheduler.state is BatchState.IDLE

    asyncio.run(scheduler.run(_reviews(3)))

    assert [(t.state, t.batch_index) for t in scheduler.history] == [
        (BatchState.DISPATCHING, 0),
        (BatchState.WAITING, 0),
        (BatchState.DISPATCHING, 1),
        (BatchState.DONE, None),
    ]
    assert scheduler.history[1].until == 12.0
    assert scheduler.state is BatchState.DONE


def test_empty_input_finishes_without_calls():
    clock = FakeClock()
    classifier = RecordingClassifier()
    scheduler = BatchScheduler(classifier.classify, clock=clock)

    assert asyncio.run(scheduler.run([])) == []
    assert classifier.batches == []
    assert clock.sleeps == []
    assert scheduler.state is BatchState.DONE


def test_single_batch_has_no_cooldown():
    clock = FakeClock()
    scheduler = BatchScheduler(RecordingClassifier().classify, clock=clock)
    asyncio.run(scheduler.run(_reviews(15)))
    assert clock.sleeps == []


def test_scheduler_is_single_use():
    scheduler = BatchScheduler(RecordingClassifier().classify, clock=FakeClock())
    asyncio.run(scheduler.run(_reviews(1)))
    with pytest.raises(RuntimeError):
        asyncio.run(scheduler.run(_reviews(1)))
