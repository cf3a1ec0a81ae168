"""
Tests for experiment event tracking and snapshots.
"""

import pytest
from prometheus_client import REGISTRY

from leadtemplates.ab_testing.metric_tracker import MetricKind, MetricTracker


@pytest.fixture
def tracker(clock):
    return MetricTracker(clock=clock)


def test_parse_metric_kinds():
    assert MetricKind.parse("impressions") is MetricKind.IMPRESSIONS
    assert MetricKind.parse("Click") is MetricKind.CLICKS
    assert MetricKind.parse(MetricKind.OPENS) is MetricKind.OPENS
    with pytest.raises(ValueError, match="Unknown metric kind"):
        MetricKind.parse("bounces")


def test_track_records_event(tracker, clock):
    event = tracker.track("t1", "A", "impression", metadata={"lead_id": 7})

    assert event.metric is MetricKind.IMPRESSIONS
    assert event.timestamp == clock.now
    assert event.count == 1
    assert tracker.events("t1") == [event]
    assert tracker.counts("t1", "A") == {MetricKind.IMPRESSIONS: 1}
    assert tracker.test_ids() == ["t1"]


def test_unknown_metric_records_nothing(tracker):
    with pytest.raises(ValueError):
        tracker.track("t1", "A", "bounce")
    assert tracker.events("t1") == []


def test_track_batch(tracker):
    total = tracker.track_batch("t1", "A", {"impressions": 10, "conversions": 2})
    assert total == 12
    assert tracker.counts("t1", "A") == {
        MetricKind.IMPRESSIONS: 10,
        MetricKind.CONVERSIONS: 2,
    }


def test_track_batch_validates_before_recording(tracker):
    with pytest.raises(ValueError, match="must not be negative"):
        tracker.track_batch("t1", "A", {"impressions": 5, "clicks": -1})
    with pytest.raises(ValueError):
        tracker.track_batch("t1", "A", {"impressions": 5, "likes": 1})
    assert tracker.events("t1") == []


def events_counter(kind):
    value = REGISTRY.get_sample_value("experiment_events_total", {"metric_kind": kind})
    return value or 0.0


def test_track_counts_event_and_notifies_listeners(tracker, mocker):
    listener = mocker.Mock()
    tracker.subscribe(listener)
    before = events_counter("opens")

    tracker.track("t1", "A", "opens")
    tracker.track_batch("t1", "A", {"opens": 2})

    assert events_counter("opens") == before + 3
    assert listener.call_count == 3
    listener.assert_called_with("t1")
    assert tracker.counts("t1", "A") == {MetricKind.OPENS: 3}


def test_track_batch_rejects_fractional_counts(tracker):
    with pytest.raises(ValueError, match="must be an integer"):
        tracker.track_batch("t1", "A", {"impressions": 2.5})
    with pytest.raises(ValueError, match="must be an integer"):
        tracker.track_batch("t1", "A", {"impressions": True})
    assert tracker.events("t1") == []


def test_current_snapshot(tracker):
    assert tracker.current_snapshot("t1") is None

    tracker.track_batch("t1", "A", {"impressions": 100, "opens": 40, "conversions": 10})
    tracker.track_batch("t1", "B", {"impressions": 300, "clicks": 30, "conversions": 6})
    snapshot = tracker.current_snapshot("t1")

    a, b = snapshot.variant("A"), snapshot.variant("B")
    assert a.open_rate == pytest.approx(0.4)
    assert a.conversion_rate == pytest.approx(0.1)
    assert b.click_rate == pytest.approx(0.1)
    assert b.conversion_rate == pytest.approx(0.02)
    assert snapshot.variant("C") is None

    overall = snapshot.overall
    assert overall.total_impressions == 400
    assert overall.total_conversions == 16
    # plain mean of the variant rates
    assert overall.average_conversion_rate == pytest.approx(0.06)
    assert snapshot.to_dict()["overall"]["total_impressions"] == 400


def test_rates_are_zero_without_impressions(tracker):
    tracker.track("t1", "A", "conversion")
    variant = tracker.current_snapshot("t1").variant("A")
    assert variant.conversions == 1
    assert variant.conversion_rate == 0.0


def test_listeners_are_notified_and_isolated(tracker):
    seen = []

    def broken(test_id):
        raise RuntimeError("listener down")

    tracker.subscribe(broken)
    tracker.subscribe(seen.append)
    tracker.track_batch("t1", "A", {"impressions": 3})

    assert seen == ["t1", "t1", "t1"]
    assert len(tracker.events("t1")) == 3


def test_snapshot_history_and_trends(tracker, clock):
    tracker.track_batch("t1", "A", {"impressions": 10, "conversions": 1})
    assert tracker.take_snapshots() == 1
    clock.advance(hours=2)
    tracker.track_batch("t1", "A", {"impressions": 10, "conversions": 3})
    tracker.take_snapshots()

    history = tracker.history("t1", hours=24)
    assert len(history) == 2
    assert len(tracker.history("t1", hours=1)) == 1

    trends = tracker.trends("t1")
    assert [t["variant_rates"]["A"] for t in trends] == [
        pytest.approx(0.1),
        pytest.approx(0.2),
    ]
    assert trends[0]["overall_conversion_rate"] == pytest.approx(0.1)


def test_history_is_bounded(clock):
    tracker = MetricTracker(clock=clock, history_limit=3)
    tracker.track("t1", "A", "impressions")
    for _ in range(5):
        clock.advance(minutes=5)
        tracker.take_snapshots()
    assert len(tracker.history("t1")) == 3


def test_cleanup_drops_old_events_and_snapshots(tracker, clock):
    tracker.track_batch("t1", "A", {"impressions": 5})
    tracker.track_batch("old", "A", {"impressions": 5})
    tracker.take_snapshots()
    clock.advance(days=20)
    tracker.track_batch("t1", "A", {"impressions": 2})
    clock.advance(days=15)

    removed = tracker.cleanup(max_age_days=30)

    assert removed == {"events": 10, "snapshots": 2}
    assert tracker.test_ids() == ["t1"]
    assert tracker.counts("t1", "A") == {MetricKind.IMPRESSIONS: 2}
    assert tracker.current_snapshot("old") is None


def test_statistics(tracker):
    assert tracker.statistics()["average_metrics_per_test"] == 0.0
    tracker.track_batch("t1", "A", {"impressions": 4})
    tracker.track_batch("t2", "A", {"impressions": 2})
    tracker.take_snapshots()

    stats = tracker.statistics()
    assert stats["active_tests"] == 2
    assert stats["total_metrics"] == 6
    assert stats["total_snapshots"] == 2
    assert stats["average_metrics_per_test"] == 3.0
