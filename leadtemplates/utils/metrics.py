"""
Prometheus instrumentation for template selection and experiment tracking.
"""

import time

from prometheus_client import Counter, Gauge, Histogram, start_http_server

from .logging import get_logger

logger = get_logger(__name__)

# Selection metrics
TEMPLATES_SCORED = Counter(
    "template_scores_total",
    "Total number of template/lead pairs scored",
    ["confidence"],
)
SELECTION_DURATION = Histogram(
    "template_selection_duration_seconds",
    "Duration of template selection calls in seconds",
    ["status"],
)

# Experiment metrics
EXPERIMENT_EVENTS = Counter(
    "experiment_events_total",
    "Total number of performance events tracked",
    ["metric_kind"],
)
ALERTS_RAISED = Counter(
    "experiment_alerts_total",
    "Total number of experiment alerts raised",
    ["alert_type", "severity"],
)
SNAPSHOTS_TAKEN = Counter(
    "experiment_snapshots_total", "Total number of performance snapshots taken"
)
TRACKED_TESTS = Gauge(
    "experiment_tracked_tests", "Number of experiments with tracked events"
)


def start_metrics_server(port: int = 9090) -> bool:
    """
    Start the Prometheus metrics HTTP server.

    Args:
        port: The port to expose metrics on

    Returns:
        True if the server started, False otherwise
    """
    try:
        start_http_server(port)
        logger.info(f"Started metrics server on port {port}", extra={"port": port})
        return True
    except OSError as e:
        logger.error(
            f"Failed to start metrics server: {e}",
            extra={"error": str(e), "port": port},
        )
        return False


class MetricsTimer:
    """
    Context manager timing an operation into a labelled histogram.

    Usage:
        with MetricsTimer(SELECTION_DURATION):
            selector.select(...)
    """

    def __init__(self, metric, **labels):
        self.metric = metric
        self.labels = labels
        self.start_time = None

    def __enter__(self):
        self.start_time = time.time()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        duration = time.time() - self.start_time
        self.labels["status"] = "error" if exc_type is not None else "success"
        if exc_type is not None:
            logger.warning(
                f"Operation failed after {duration:.4f}s",
                extra={"duration": duration, "error": str(exc_val)},
            )

        try:
            self.metric.labels(**self.labels).observe(duration)
        except Exception as e:
            logger.error(f"Failed to record metric: {e}", extra={"error": str(e)})


def record_metric(metric, value=1, **labels):
    """
    Record a value on a counter, gauge or histogram without ever raising.

    Args:
        metric: The prometheus metric
        value: Amount to add, set or observe
        **labels: Label values for labelled metrics
    """
    try:
        target = metric.labels(**labels) if labels else metric
        if hasattr(target, "inc"):
            target.inc(value)
        elif hasattr(target, "set"):
            target.set(value)
        elif hasattr(target, "observe"):
            target.observe(value)
    except Exception as e:
        logger.error(
            f"Failed to record metric: {e}",
            extra={"metric": getattr(metric, "_name", str(metric)), "error": str(e)},
        )
