"""
Heuristic alerts for running experiments.

Four independent checks run against the tracker's current snapshot; each can
raise at most one alert per check. Alerts are not deduplicated across calls
and never expire on their own: they stay active until resolved.
"""

import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Any, Callable, Dict, List, Optional

from leadtemplates.ab_testing.metric_tracker import MetricTracker, TestPerformanceSnapshot
from leadtemplates.utils.clock import Clock, utc_now
from leadtemplates.utils.logging import get_logger
from leadtemplates.utils.metrics import ALERTS_RAISED, record_metric

EARLY_WINNER_LIFT = 1.2
EARLY_WINNER_MIN_IMPRESSIONS = 1000
LOW_CONVERSION_RATE = 0.01
LOW_CONVERSION_MIN_IMPRESSIONS = 5000
NO_DIFFERENCE_MARGIN = 0.005
NO_DIFFERENCE_MIN_IMPRESSIONS = 2000
MIN_SAMPLE_IMPRESSIONS = 1000


class AlertType(str, Enum):
    EARLY_WINNER = "early_winner"
    NO_DIFFERENCE = "no_difference"
    HIGH_VARIANCE = "high_variance"
    LOW_CONVERSION = "low_conversion"
    SAMPLE_SIZE = "sample_size"


class AlertSeverity(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


@dataclass
class PerformanceAlert:
    id: str
    test_id: str
    type: AlertType
    severity: AlertSeverity
    message: str
    recommendation: str
    triggered_at: datetime
    resolved_at: Optional[datetime] = None

    @property
    def is_active(self) -> bool:
        return self.resolved_at is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "test_id": self.test_id,
            "type": self.type.value,
            "severity": self.severity.value,
            "message": self.message,
            "recommendation": self.recommendation,
            "triggered_at": self.triggered_at.isoformat(),
            "resolved_at": self.resolved_at.isoformat() if self.resolved_at else None,
        }


@dataclass(frozen=True)
class AlertDraft:
    type: AlertType
    severity: AlertSeverity
    message: str
    recommendation: str


Heuristic = Callable[[TestPerformanceSnapshot], Optional[AlertDraft]]


def check_early_winner(snapshot: TestPerformanceSnapshot) -> Optional[AlertDraft]:
    threshold = snapshot.overall.average_conversion_rate * EARLY_WINNER_LIFT
    winners = [
        v
        for v in snapshot.variants
        if v.conversion_rate > threshold and v.impressions >= EARLY_WINNER_MIN_IMPRESSIONS
    ]
    if not winners:
        return None
    leader = winners[0]
    return AlertDraft(
        type=AlertType.EARLY_WINNER,
        severity=AlertSeverity.MEDIUM,
        message=(
            f"Early winner detected: {leader.variant_id} shows "
            f"{round(leader.conversion_rate * 100)}% conversion rate"
        ),
        recommendation="Consider concluding test early if trend continues",
    )


def check_low_conversion(snapshot: TestPerformanceSnapshot) -> Optional[AlertDraft]:
    overall = snapshot.overall
    if (
        overall.average_conversion_rate < LOW_CONVERSION_RATE
        and overall.total_impressions >= LOW_CONVERSION_MIN_IMPRESSIONS
    ):
        return AlertDraft(
            type=AlertType.LOW_CONVERSION,
            severity=AlertSeverity.HIGH,
            message="Overall conversion rate is below 1% with significant sample size",
            recommendation="Review test variants and consider major changes to improve engagement",
        )
    return None


def check_no_difference(snapshot: TestPerformanceSnapshot) -> Optional[AlertDraft]:
    average = snapshot.overall.average_conversion_rate
    if snapshot.variants and all(
        abs(v.conversion_rate - average) < NO_DIFFERENCE_MARGIN
        and v.impressions >= NO_DIFFERENCE_MIN_IMPRESSIONS
        for v in snapshot.variants
    ):
        return AlertDraft(
            type=AlertType.NO_DIFFERENCE,
            severity=AlertSeverity.MEDIUM,
            message="All variants show similar performance with adequate sample size",
            recommendation="Consider testing different variations or concluding test",
        )
    return None


def check_sample_size(snapshot: TestPerformanceSnapshot) -> Optional[AlertDraft]:
    under_sampled = [v for v in snapshot.variants if v.impressions < MIN_SAMPLE_IMPRESSIONS]
    if not under_sampled:
        return None
    return AlertDraft(
        type=AlertType.SAMPLE_SIZE,
        severity=AlertSeverity.LOW,
        message=(
            f"{len(under_sampled)} variants have insufficient sample size "
            f"for reliable results"
        ),
        recommendation="Continue running test to reach minimum sample size",
    )


HEURISTICS: Dict[AlertType, Heuristic] = {
    AlertType.EARLY_WINNER: check_early_winner,
    AlertType.LOW_CONVERSION: check_low_conversion,
    AlertType.NO_DIFFERENCE: check_no_difference,
    AlertType.SAMPLE_SIZE: check_sample_size,
}


class AlertEngine:
    """Raises, lists and resolves experiment alerts."""

    def __init__(
        self,
        tracker: MetricTracker,
        clock: Clock = utc_now,
        heuristics: Optional[Dict[AlertType, Heuristic]] = None,
    ):
        self.tracker = tracker
        self.clock = clock
        self.heuristics = dict(heuristics if heuristics is not None else HEURISTICS)
        self._alerts: Dict[str, List[PerformanceAlert]] = {}
        self._lock = Lock()
        self.logger = get_logger(f"{__name__}.AlertEngine")

    def check_alerts(self, test_id: str) -> List[PerformanceAlert]:
        """Run every heuristic on the current snapshot; returns the new alerts."""
        snapshot = self.tracker.current_snapshot(test_id)
        if snapshot is None:
            return []

        new_alerts = []
        for alert_type, heuristic in self.heuristics.items():
            try:
                draft = heuristic(snapshot)
            except Exception as e:
                self.logger.error(
                    f"Alert heuristic {alert_type.value} failed for test {test_id}: {e}",
                    extra={"test_id": test_id, "error": str(e)},
                )
                continue
            if draft is None:
                continue

            alert = PerformanceAlert(
                id=f"alert_{uuid.uuid4().hex[:12]}",
                test_id=test_id,
                type=draft.type,
                severity=draft.severity,
                message=draft.message,
                recommendation=draft.recommendation,
                triggered_at=self.clock(),
            )
            new_alerts.append(alert)
            record_metric(
                ALERTS_RAISED, alert_type=alert.type.value, severity=alert.severity.value
            )
            self.logger.info(
                f"Alert raised for test {test_id}: {alert.message}",
                extra={"test_id": test_id, "alert_type": alert.type.value},
            )

        if new_alerts:
            with self._lock:
                self._alerts.setdefault(test_id, []).extend(new_alerts)
        return new_alerts

    def active_alerts(self, test_id: str) -> List[PerformanceAlert]:
        return [a for a in self._alerts.get(test_id, []) if a.is_active]

    def all_alerts(self, test_id: str) -> List[PerformanceAlert]:
        return list(self._alerts.get(test_id, []))

    def resolve(self, test_id: str, alert_id: str) -> bool:
        """Mark an alert resolved; False if the test or alert is unknown."""
        alert = next((a for a in self._alerts.get(test_id, []) if a.id == alert_id), None)
        if alert is None:
            return False
        if alert.resolved_at is None:
            alert.resolved_at = self.clock()
        return True

    def cleanup(self, max_age_days: int = 30) -> int:
        """Forget alerts triggered more than ``max_age_days`` ago."""
        cutoff = self.clock() - timedelta(days=max_age_days)
        removed = 0
        with self._lock:
            for test_id in list(self._alerts):
                recent = [a for a in self._alerts[test_id] if a.triggered_at > cutoff]
                removed += len(self._alerts[test_id]) - len(recent)
                if recent:
                    self._alerts[test_id] = recent
                else:
                    del self._alerts[test_id]

        self.logger.info(f"Removed {removed} alerts older than {max_age_days} days")
        return removed

    def statistics(self) -> Dict[str, int]:
        alerts = [a for test_alerts in self._alerts.values() for a in test_alerts]
        return {
            "total_alerts": len(alerts),
            "active_alerts": sum(1 for a in alerts if a.is_active),
        }
