"""
Performance event tracking for template experiments.

Events are appended per test and folded into running per-variant counters,
so building a snapshot costs one pass over the variants rather than over
every event.
"""

from collections import deque
from dataclasses import asdict, dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from threading import RLock
from typing import Any, Callable, Deque, Dict, List, Mapping, Optional

from leadtemplates.utils.clock import Clock, utc_now
from leadtemplates.utils.logging import get_logger
from leadtemplates.utils.metrics import (
    EXPERIMENT_EVENTS,
    SNAPSHOTS_TAKEN,
    TRACKED_TESTS,
    record_metric,
)

logger = get_logger(__name__)

DEFAULT_HISTORY_LIMIT = 288


class MetricKind(str, Enum):
    IMPRESSIONS = "impressions"
    OPENS = "opens"
    CLICKS = "clicks"
    RESPONSES = "responses"
    CONVERSIONS = "conversions"

    @classmethod
    def parse(cls, value) -> "MetricKind":
        """Accept members, plural names or singular names (``"click"``)."""
        if isinstance(value, cls):
            return value
        name = str(value).lower()
        for kind in cls:
            if name in (kind.value, kind.value[:-1]):
                return kind
        raise ValueError(
            f"Unknown metric kind '{value}'; expected one of {[k.value for k in cls]}"
        )


@dataclass(frozen=True)
class PerformanceMetric:
    test_id: str
    variant_id: str
    metric: MetricKind
    timestamp: datetime
    count: int = 1
    metadata: Optional[Dict[str, Any]] = None


def _rate(count: int, impressions: int) -> float:
    return count / impressions if impressions > 0 else 0.0


@dataclass
class VariantPerformance:
    variant_id: str
    impressions: int = 0
    opens: int = 0
    clicks: int = 0
    responses: int = 0
    conversions: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    response_rate: float = 0.0
    conversion_rate: float = 0.0

    @classmethod
    def from_counts(cls, variant_id: str, counts: Mapping[MetricKind, int]):
        impressions = counts.get(MetricKind.IMPRESSIONS, 0)
        opens = counts.get(MetricKind.OPENS, 0)
        clicks = counts.get(MetricKind.CLICKS, 0)
        responses = counts.get(MetricKind.RESPONSES, 0)
        conversions = counts.get(MetricKind.CONVERSIONS, 0)
        return cls(
            variant_id=variant_id,
            impressions=impressions,
            opens=opens,
            clicks=clicks,
            responses=responses,
            conversions=conversions,
            open_rate=_rate(opens, impressions),
            click_rate=_rate(clicks, impressions),
            response_rate=_rate(responses, impressions),
            conversion_rate=_rate(conversions, impressions),
        )


@dataclass
class OverallPerformance:
    """
    Totals across variants.

    Averages are the plain mean of the per-variant rates, not weighted by
    impressions.
    """

    total_impressions: int = 0
    total_opens: int = 0
    total_clicks: int = 0
    total_responses: int = 0
    total_conversions: int = 0
    average_open_rate: float = 0.0
    average_click_rate: float = 0.0
    average_response_rate: float = 0.0
    average_conversion_rate: float = 0.0

    @classmethod
    def from_variants(cls, variants: List[VariantPerformance]) -> "OverallPerformance":
        if not variants:
            return cls()
        n = len(variants)
        return cls(
            total_impressions=sum(v.impressions for v in variants),
            total_opens=sum(v.opens for v in variants),
            total_clicks=sum(v.clicks for v in variants),
            total_responses=sum(v.responses for v in variants),
            total_conversions=sum(v.conversions for v in variants),
            average_open_rate=sum(v.open_rate for v in variants) / n,
            average_click_rate=sum(v.click_rate for v in variants) / n,
            average_response_rate=sum(v.response_rate for v in variants) / n,
            average_conversion_rate=sum(v.conversion_rate for v in variants) / n,
        )


@dataclass
class TestPerformanceSnapshot:
    __test__ = False

    test_id: str
    timestamp: datetime
    variants: List[VariantPerformance] = field(default_factory=list)
    overall: OverallPerformance = field(default_factory=OverallPerformance)

    def variant(self, variant_id: str) -> Optional[VariantPerformance]:
        return next((v for v in self.variants if v.variant_id == variant_id), None)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "test_id": self.test_id,
            "timestamp": self.timestamp.isoformat(),
            "variants": [asdict(v) for v in self.variants],
            "overall": asdict(self.overall),
        }


Listener = Callable[[str], None]


class MetricTracker:
    """
    In-memory store of experiment events and their periodic snapshots.

    All mutation happens under one re-entrant lock. Listeners registered with
    ``subscribe`` are called with the test id after every tracked event,
    outside the lock.
    """

    def __init__(self, clock: Clock = utc_now, history_limit: int = DEFAULT_HISTORY_LIMIT):
        self.clock = clock
        self.history_limit = history_limit
        self._events: Dict[str, List[PerformanceMetric]] = {}
        self._counts: Dict[str, Dict[str, Dict[MetricKind, int]]] = {}
        self._snapshots: Dict[str, Deque[TestPerformanceSnapshot]] = {}
        self._listeners: List[Listener] = []
        self._lock = RLock()
        self.logger = get_logger(f"{__name__}.MetricTracker")

    def subscribe(self, listener: Listener) -> None:
        self._listeners.append(listener)

    def test_ids(self) -> List[str]:
        with self._lock:
            return list(self._events)

    def _append(self, event: PerformanceMetric) -> None:
        with self._lock:
            self._events.setdefault(event.test_id, []).append(event)
            variant_counts = self._counts.setdefault(event.test_id, {}).setdefault(
                event.variant_id, {}
            )
            variant_counts[event.metric] = variant_counts.get(event.metric, 0) + event.count
            TRACKED_TESTS.set(len(self._events))

    def _notify(self, test_id: str) -> None:
        for listener in self._listeners:
            try:
                listener(test_id)
            except Exception as e:
                self.logger.error(
                    f"Metric listener failed for test {test_id}: {e}",
                    extra={"test_id": test_id, "error": str(e)},
                )

    def track(
        self,
        test_id: str,
        variant_id: str,
        metric,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PerformanceMetric:
        """
        Record one event for a variant.

        Raises:
            ValueError: if ``metric`` is not a known metric kind
        """
        kind = MetricKind.parse(metric)
        event = PerformanceMetric(
            test_id=test_id,
            variant_id=variant_id,
            metric=kind,
            timestamp=self.clock(),
            metadata=metadata,
        )
        self._append(event)
        record_metric(EXPERIMENT_EVENTS, metric_kind=kind.value)
        self._notify(test_id)
        return event

    def track_batch(
        self,
        test_id: str,
        variant_id: str,
        counts: Mapping[Any, int],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        """
        Record ``count`` events per metric kind, one ``track`` call per unit.

        The whole batch is validated before anything is recorded.

        Returns:
            Number of events recorded
        """
        parsed = []
        for metric, count in counts.items():
            kind = MetricKind.parse(metric)
            if isinstance(count, bool) or not isinstance(count, int):
                raise ValueError(f"Count for {kind.value} must be an integer: {count!r}")
            if count < 0:
                raise ValueError(f"Count for {kind.value} must not be negative: {count}")
            parsed.append((kind, count))

        total = 0
        for kind, count in parsed:
            for _ in range(count):
                self.track(test_id, variant_id, kind, metadata)
            total += count
        return total

    def counts(self, test_id: str, variant_id: str) -> Dict[MetricKind, int]:
        with self._lock:
            return dict(self._counts.get(test_id, {}).get(variant_id, {}))

    def events(self, test_id: str) -> List[PerformanceMetric]:
        with self._lock:
            return list(self._events.get(test_id, []))

    def current_snapshot(self, test_id: str) -> Optional[TestPerformanceSnapshot]:
        """Aggregate everything tracked for ``test_id``; ``None`` if nothing was."""
        with self._lock:
            variant_counts = self._counts.get(test_id)
            if not variant_counts:
                return None
            variants = [
                VariantPerformance.from_counts(variant_id, counts)
                for variant_id, counts in variant_counts.items()
            ]

        return TestPerformanceSnapshot(
            test_id=test_id,
            timestamp=self.clock(),
            variants=variants,
            overall=OverallPerformance.from_variants(variants),
        )

    def take_snapshots(self) -> int:
        """Append a snapshot to every test's history; returns how many were taken."""
        taken = 0
        for test_id in self.test_ids():
            snapshot = self.current_snapshot(test_id)
            if snapshot is None:
                continue
            with self._lock:
                history = self._snapshots.setdefault(
                    test_id, deque(maxlen=self.history_limit)
                )
                history.append(snapshot)
            taken += 1

        if taken:
            record_metric(SNAPSHOTS_TAKEN, taken)
        self.logger.debug(f"Took {taken} performance snapshots")
        return taken

    def history(self, test_id: str, hours: float = 24) -> List[TestPerformanceSnapshot]:
        cutoff = self.clock() - timedelta(hours=hours)
        with self._lock:
            snapshots = list(self._snapshots.get(test_id, []))
        return [s for s in snapshots if s.timestamp > cutoff]

    def trends(self, test_id: str, hours: float = 24) -> List[Dict[str, Any]]:
        """Conversion rate over time, overall and per variant."""
        return [
            {
                "timestamp": snapshot.timestamp.isoformat(),
                "overall_conversion_rate": snapshot.overall.average_conversion_rate,
                "variant_rates": {
                    v.variant_id: v.conversion_rate for v in snapshot.variants
                },
            }
            for snapshot in self.history(test_id, hours)
        ]

    def cleanup(self, max_age_days: int = 30) -> Dict[str, int]:
        """Drop events and snapshots older than ``max_age_days``; counters are rebuilt."""
        cutoff = self.clock() - timedelta(days=max_age_days)
        removed_events = removed_snapshots = 0

        with self._lock:
            for test_id in list(self._events):
                recent = [e for e in self._events[test_id] if e.timestamp > cutoff]
                removed_events += len(self._events[test_id]) - len(recent)
                if recent:
                    self._events[test_id] = recent
                else:
                    del self._events[test_id]

            self._counts = {}
            for test_id, events in self._events.items():
                variants = self._counts.setdefault(test_id, {})
                for event in events:
                    counts = variants.setdefault(event.variant_id, {})
                    counts[event.metric] = counts.get(event.metric, 0) + event.count

            for test_id in list(self._snapshots):
                history = self._snapshots[test_id]
                recent = [s for s in history if s.timestamp > cutoff]
                removed_snapshots += len(history) - len(recent)
                if recent:
                    self._snapshots[test_id] = deque(recent, maxlen=self.history_limit)
                else:
                    del self._snapshots[test_id]

            TRACKED_TESTS.set(len(self._events))

        self.logger.info(
            f"Removed {removed_events} events and {removed_snapshots} snapshots "
            f"older than {max_age_days} days"
        )
        return {"events": removed_events, "snapshots": removed_snapshots}

    def statistics(self) -> Dict[str, Any]:
        with self._lock:
            active_tests = len(self._events)
            total_metrics = sum(len(events) for events in self._events.values())
            total_snapshots = sum(len(s) for s in self._snapshots.values())
        return {
            "active_tests": active_tests,
            "total_metrics": total_metrics,
            "total_snapshots": total_snapshots,
            "average_metrics_per_test": total_metrics / active_tests if active_tests else 0.0,
        }
