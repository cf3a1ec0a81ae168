"""
A/B experimentation: template variations, event tracking, statistics and alerts.
"""

from leadtemplates.ab_testing.alert_engine import (
    AlertEngine,
    AlertSeverity,
    AlertType,
    PerformanceAlert,
)
from leadtemplates.ab_testing.assignment import VariantAssigner
from leadtemplates.ab_testing.metric_tracker import (
    MetricKind,
    MetricTracker,
    PerformanceMetric,
    TestPerformanceSnapshot,
)
from leadtemplates.ab_testing.scheduler import SnapshotScheduler
from leadtemplates.ab_testing.statistical_engine import (
    ExperimentConclusion,
    StatisticalAnalysis,
    StatisticalAnalyzer,
    Verdict,
)
from leadtemplates.ab_testing.variant_generator import (
    ChangeType,
    ExperimentVariant,
    TargetMetric,
    TemplateVariation,
    VariantGenerator,
    VariationChange,
    VariationSuggestion,
)

__all__ = [
    "AlertEngine",
    "AlertSeverity",
    "AlertType",
    "ChangeType",
    "ExperimentConclusion",
    "ExperimentVariant",
    "MetricKind",
    "MetricTracker",
    "PerformanceAlert",
    "PerformanceMetric",
    "SnapshotScheduler",
    "StatisticalAnalysis",
    "StatisticalAnalyzer",
    "TargetMetric",
    "TemplateVariation",
    "TestPerformanceSnapshot",
    "VariantAssigner",
    "VariantGenerator",
    "VariationChange",
    "VariationSuggestion",
    "Verdict",
]
