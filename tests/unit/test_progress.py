"""Unit tests for progress tracking and delivery."""

import asyncio

import pytest

from site_auditor.audit.progress import ProgressTracker, compute_percentage


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self) -> float:
        return self.now


def test_compute_percentage():
    assert compute_percentage(0, 0) == 0
    assert compute_percentage(1, 3) == 33
    assert compute_percentage(10, 10) == 100
    assert compute_percentage(5, 4) == 100


class TestProgressTracker:
    """Test cases for throttling and monotonicity."""

    def test_first_update_always_emits(self):
        tracker = ProgressTracker(clock=FakeClock())
        event = tracker.update(0, 10)

        assert event is not None
        assert event.percent == 0

    def test_step_throttling(self):
        tracker = ProgressTracker(step=5, clock=FakeClock())

        assert tracker.update(1, 100).percent == 1
        assert tracker.update(2, 100) is None
        assert tracker.update(5, 100) is None
        assert tracker.update(6, 100).percent == 6

    def test_interval_forces_update(self):
        clock = FakeClock()
        tracker = ProgressTracker(step=50, interval_seconds=5, clock=clock)
        tracker.update(1, 100)

        assert tracker.update(2, 100) is None
        clock.now = 6
        event = tracker.update(3, 100)
        assert event is not None
        assert event.percent == 3

    def test_percentage_never_decreases(self):
        """Discovering more URLs does not move the reported percentage back."""
        clock = FakeClock()
        tracker = ProgressTracker(step=1, interval_seconds=1, clock=clock)
        tracker.update(5, 10)

        clock.now = 10
        event = tracker.update(5, 40)
        assert tracker.percent == 50
        assert event is not None and event.percent == 50

    @pytest.mark.asyncio
    async def test_callback_receives_monotonic_events(self):
        received = []
        tracker = ProgressTracker(lambda p, d, c: received.append((p, d, c)), step=10, clock=FakeClock())
        tracker.start()

        for processed, discovered in [(1, 10), (3, 10), (3, 30), (6, 12), (9, 10)]:
            tracker.update(processed, discovered)
        await tracker.finish(10, 10)

        percents = [p for p, _, _ in received]
        assert percents == sorted(percents)
        assert percents[0] == 10
        assert percents[-1] == 100
        assert received[-1] == (100, 10, 10)

    @pytest.mark.asyncio
    async def test_async_callback(self):
        received = []

        async def callback(percent, discovered, processed):
            await asyncio.sleep(0)
            received.append(percent)

        tracker = ProgressTracker(callback, clock=FakeClock())
        tracker.start()
        tracker.update(1, 2)
        await tracker.finish(2, 2)

        assert received == [50, 100]
        assert tracker.delivered == 2

    @pytest.mark.asyncio
    async def test_callback_errors_are_contained(self):
        def callback(percent, discovered, processed):
            raise RuntimeError("database is down")

        tracker = ProgressTracker(callback, clock=FakeClock())
        tracker.start()
        tracker.update(1, 2)
        await tracker.finish(2, 2)

        assert tracker.failures == 2
        assert tracker.delivered == 0

    @pytest.mark.asyncio
    async def test_overflow_drops_oldest(self):
        received = []
        tracker = ProgressTracker(lambda p, d, c: received.append(p), step=1, max_pending=2, clock=FakeClock())

        # Not started yet, so nothing is drained
        for processed in (10, 20, 30, 40):
            tracker.update(processed, 100)
        assert tracker.dropped == 2

        tracker.start()
        await tracker.finish(40, 100)

        assert received == [30, 40]

    @pytest.mark.asyncio
    async def test_finish_without_callback(self):
        tracker = ProgressTracker()
        tracker.start()
        await tracker.finish(3, 3)
        assert tracker.percent == 100
