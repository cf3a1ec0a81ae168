"""
Tests for the background snapshot scheduler.
"""

import time

from leadtemplates.ab_testing.metric_tracker import MetricTracker
from leadtemplates.ab_testing.scheduler import SnapshotScheduler


def test_run_once_snapshots_and_runs_tasks(clock):
    tracker = MetricTracker(clock=clock)
    tracker.track("t1", "A", "impressions")
    calls = []
    scheduler = SnapshotScheduler(tracker, tasks=[lambda: calls.append("sweep")])

    assert scheduler.run_once() == 1
    assert len(tracker.history("t1")) == 1
    assert calls == ["sweep"]


def test_background_thread_takes_snapshots(clock):
    tracker = MetricTracker(clock=clock)
    tracker.track("t1", "A", "impressions")
    scheduler = SnapshotScheduler(tracker, interval_seconds=0.01)

    scheduler.start()
    try:
        assert scheduler.running
        deadline = time.time() + 5
        while not tracker.history("t1") and time.time() < deadline:
            time.sleep(0.01)
    finally:
        scheduler.stop()

    assert tracker.history("t1")
    assert not scheduler.running


def test_failing_task_does_not_stop_the_loop(clock):
    tracker = MetricTracker(clock=clock)
    tracker.track("t1", "A", "impressions")
    calls = []

    def flaky():
        calls.append(1)
        raise RuntimeError("disk full")

    scheduler = SnapshotScheduler(tracker, interval_seconds=0.01, tasks=[flaky])
    scheduler.start()
    try:
        deadline = time.time() + 5
        while len(calls) < 2 and time.time() < deadline:
            time.sleep(0.01)
    finally:
        scheduler.stop()

    assert len(calls) >= 2


def test_start_twice_keeps_one_thread(clock):
    scheduler = SnapshotScheduler(MetricTracker(clock=clock), interval_seconds=60)
    scheduler.start()
    try:
        first = scheduler._thread
        scheduler.start()
        assert scheduler._thread is first
    finally:
        scheduler.stop()
