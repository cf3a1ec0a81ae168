"""
Composition root wiring template matching to experimentation.

``TemplateEngine`` owns one instance of every service and passes them to
each other explicitly; callers hold the engine instead of reaching for
process-wide singletons.
"""

import random
import uuid
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Union

from leadtemplates.ab_testing.alert_engine import AlertEngine, PerformanceAlert
from leadtemplates.ab_testing.assignment import VariantAssigner
from leadtemplates.ab_testing.metric_tracker import MetricTracker, PerformanceMetric
from leadtemplates.ab_testing.scheduler import SnapshotScheduler
from leadtemplates.ab_testing.statistical_engine import (
    ExperimentConclusion,
    StatisticalAnalysis,
    StatisticalAnalyzer,
)
from leadtemplates.ab_testing.variant_generator import (
    ExperimentVariant,
    TargetMetric,
    VariantGenerator,
    VariationSuggestion,
)
from leadtemplates.config import get_config
from leadtemplates.exceptions import TemplateEngineError, UnknownTestError
from leadtemplates.matching.catalog import (
    InMemoryTemplateCatalog,
    TemplateCatalog,
    TemplateFilter,
)
from leadtemplates.matching.models import (
    Channel,
    LeadCharacteristics,
    MatchResult,
    Template,
    TemplateCategory,
    TemplateStatus,
)
from leadtemplates.matching.rule_config import RuleCatalogConfig, load_rule_config
from leadtemplates.matching.scorer import TemplateScorer
from leadtemplates.matching.selector import (
    Recommendation,
    SelectionOptions,
    TemplateSelector,
)
from leadtemplates.utils.cache import TTLCache
from leadtemplates.utils.clock import Clock, utc_now
from leadtemplates.utils.logging import get_logger


@dataclass
class Experiment:
    """A registered A/B test: its variants and what it optimizes."""

    test_id: str
    template_id: str
    target_metric: TargetMetric
    variants: List[ExperimentVariant]
    suggestions: List[VariationSuggestion]
    started_at: datetime
    metadata: Dict[str, Any] = field(default_factory=dict)
    concluded_at: Optional[datetime] = None
    conclusion: Optional[ExperimentConclusion] = None

    @property
    def is_concluded(self) -> bool:
        return self.concluded_at is not None

    @property
    def control_id(self) -> Optional[str]:
        return next((v.id for v in self.variants if v.is_control), None)


class TemplateEngine:
    """Template selection plus experiment tracking behind one object."""

    def __init__(
        self,
        catalog: Optional[TemplateCatalog] = None,
        settings: Optional[Dict[str, Any]] = None,
        rule_config: Optional[RuleCatalogConfig] = None,
        clock: Clock = utc_now,
        alert_on_track: bool = True,
        rng: Optional[random.Random] = None,
    ):
        settings = settings if settings is not None else get_config()
        self.settings = settings
        self.clock = clock
        self.logger = get_logger(f"{__name__}.TemplateEngine")

        if rule_config is None:
            rule_config = load_rule_config(settings.get("MATCHING_RULES_PATH"))

        self.catalog = catalog if catalog is not None else InMemoryTemplateCatalog()
        self.scorer = TemplateScorer(rule_config)
        self.selector = TemplateSelector(
            scorer=self.scorer,
            catalog=self.catalog,
            default_min_score=settings.get("DEFAULT_MIN_SCORE", 0),
            default_max_results=settings.get("DEFAULT_MAX_RESULTS", 5),
            fallback_limit=settings.get("FALLBACK_RESULT_LIMIT", 3),
        )
        self.generator = VariantGenerator(clock=clock)
        self.tracker = MetricTracker(
            clock=clock, history_limit=settings.get("SNAPSHOT_HISTORY_LIMIT", 288)
        )
        self.analyzer = StatisticalAnalyzer(self.tracker)
        self.assigner = VariantAssigner(rng=rng)
        self.alerts = AlertEngine(self.tracker, clock=clock)
        if alert_on_track:
            self.tracker.subscribe(self.alerts.check_alerts)

        self.cache = TTLCache(
            default_ttl=settings.get("TEMPLATE_CACHE_TTL_SECONDS", 300), clock=clock
        )
        self.scheduler = SnapshotScheduler(
            self.tracker,
            interval_seconds=settings.get("SNAPSHOT_INTERVAL_SECONDS", 300),
            tasks=[self.run_maintenance],
        )
        self._experiments: Dict[str, Experiment] = {}

    # Catalog

    def add_template(self, template: Template) -> None:
        self.catalog.upsert(template)
        self.cache.clear()

    def remove_template(self, template_id: str) -> None:
        self.catalog.delete(template_id)
        self.cache.clear()

    def list_templates(self, template_filter: Optional[TemplateFilter] = None) -> List[Template]:
        """Catalog listing served from the TTL cache while it is fresh."""
        template_filter = template_filter or TemplateFilter()
        key = template_filter.cache_key()
        templates, expired = self.cache.get(key)
        if not expired:
            return templates

        templates = self.catalog.list(template_filter)
        self.cache.set(key, templates)
        return templates

    # Selection

    def select(
        self,
        characteristics: LeadCharacteristics,
        options: Optional[SelectionOptions] = None,
    ) -> List[MatchResult]:
        candidates = self.list_templates(TemplateFilter(status=TemplateStatus.ACTIVE))
        return self.selector.select(characteristics, candidates, options)

    def select_best(
        self,
        characteristics: LeadCharacteristics,
        options: Optional[SelectionOptions] = None,
    ) -> Optional[MatchResult]:
        candidates = self.list_templates(TemplateFilter(status=TemplateStatus.ACTIVE))
        return self.selector.select_best(characteristics, candidates, options)

    def recommend(
        self,
        characteristics: LeadCharacteristics,
        options: Optional[SelectionOptions] = None,
    ) -> Recommendation:
        candidates = self.list_templates(TemplateFilter(status=TemplateStatus.ACTIVE))
        return self.selector.recommend(characteristics, candidates, options)

    def fallback_template(
        self, category: TemplateCategory, channel: Channel
    ) -> Optional[Template]:
        return self.selector.get_fallback_template(category, channel)

    # Experiments

    def start_experiment(
        self,
        template: Union[Template, str],
        target_metric: TargetMetric = TargetMetric.CONVERSION_RATE,
        count: int = 3,
        test_id: Optional[str] = None,
    ) -> Experiment:
        """Generate variants for a template and register them under a test id."""
        if isinstance(template, str):
            template_id = template
            template = self.catalog.get(template_id)
            if template is None:
                raise TemplateEngineError(f"Unknown template '{template_id}'")

        target_metric = TargetMetric(target_metric)
        suggestions = self.generator.generate_suggestions(template, target_metric, count)
        experiment = Experiment(
            test_id=test_id or f"test_{uuid.uuid4().hex[:12]}",
            template_id=template.id,
            target_metric=target_metric,
            variants=self.generator.generate_test_variants(template, suggestions),
            suggestions=suggestions,
            started_at=self.clock(),
        )
        self._experiments[experiment.test_id] = experiment
        self.logger.info(
            f"Started experiment {experiment.test_id} on template {template.id} "
            f"with {len(experiment.variants)} variants",
            extra={"test_id": experiment.test_id, "template_id": template.id},
        )
        return experiment

    def get_experiment(self, test_id: str) -> Experiment:
        try:
            return self._experiments[test_id]
        except KeyError:
            raise UnknownTestError(test_id)

    def assign_variant(self, test_id: str, lead_id: str) -> str:
        """
        Variant a lead should receive; the same lead always gets the same one.

        Raises:
            UnknownTestError: if ``test_id`` was never started on this engine
            TemplateEngineError: if the experiment is concluded and the lead
                was never assigned
        """
        experiment = self.get_experiment(test_id)
        if experiment.is_concluded:
            assigned = self.assigner.assignment(test_id, lead_id)
            if assigned is None:
                raise TemplateEngineError(
                    f"Experiment {test_id} is concluded; no new leads are assigned"
                )
            return assigned
        return self.assigner.assign(test_id, lead_id, experiment.variants)

    def conclude_experiment(self, test_id: str) -> ExperimentConclusion:
        """
        Pick the winner of an experiment and stop assigning new leads to it.

        Events can still be tracked afterwards; calling this again recomputes
        the conclusion from the current counts.
        """
        experiment = self.get_experiment(test_id)
        conclusion = self.analyzer.conclude(test_id, experiment.variants)
        experiment.conclusion = conclusion
        if experiment.concluded_at is None:
            experiment.concluded_at = self.clock()
        self.logger.info(
            f"Concluded experiment {test_id}",
            extra={"test_id": test_id, "winner": conclusion.winner},
        )
        return conclusion

    def track(
        self,
        test_id: str,
        variant_id: str,
        metric,
        metadata: Optional[Dict[str, Any]] = None,
    ) -> PerformanceMetric:
        return self.tracker.track(test_id, variant_id, metric, metadata)

    def track_batch(
        self,
        test_id: str,
        variant_id: str,
        counts: Dict[Any, int],
        metadata: Optional[Dict[str, Any]] = None,
    ) -> int:
        return self.tracker.track_batch(test_id, variant_id, counts, metadata)

    def analyze(self, test_id: str) -> List[StatisticalAnalysis]:
        """
        Statistics for every variant of a registered experiment.

        Raises:
            UnknownTestError: if ``test_id`` was never started on this engine
        """
        experiment = self.get_experiment(test_id)
        return self.analyzer.analyze(test_id, experiment.variants)

    def check_alerts(self, test_id: str) -> List[PerformanceAlert]:
        return self.alerts.check_alerts(test_id)

    def active_alerts(self, test_id: str) -> List[PerformanceAlert]:
        return self.alerts.active_alerts(test_id)

    def resolve_alert(self, test_id: str, alert_id: str) -> bool:
        return self.alerts.resolve(test_id, alert_id)

    # Background work

    def start(self) -> None:
        self.scheduler.start()

    def stop(self) -> None:
        self.scheduler.stop()

    def run_maintenance(self) -> Dict[str, Any]:
        """
        Apply the retention windows to events, snapshots and variations.

        Alerts are left alone: they stay until resolved, and only an explicit
        ``cleanup_alerts`` call forgets them.
        """
        removed = self.tracker.cleanup(self.settings.get("METRIC_RETENTION_DAYS", 30))
        removed["variations"] = self.generator.cleanup_old_variations(
            self.settings.get("VARIATION_RETENTION_DAYS", 90)
        )
        return removed

    def cleanup_alerts(self, max_age_days: Optional[int] = None) -> int:
        """Forget alerts older than ``max_age_days``, resolved or not."""
        if max_age_days is None:
            max_age_days = self.settings.get("METRIC_RETENTION_DAYS", 30)
        return self.alerts.cleanup(max_age_days)
