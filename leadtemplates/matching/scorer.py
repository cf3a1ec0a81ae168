"""
Template scorer - applies the matching rule catalog to a (lead, template) pair.
"""

from typing import List, Optional

from leadtemplates.matching.condition_evaluator import ConditionEvaluator
from leadtemplates.matching.models import (
    Confidence,
    EstimatedPerformance,
    LeadCharacteristics,
    MatchResult,
    Template,
)
from leadtemplates.matching.rule_config import RuleCatalogConfig
from leadtemplates.matching.rules import MatchingRule, build_default_rules
from leadtemplates.utils.logging import get_logger
from leadtemplates.utils.metrics import TEMPLATES_SCORED, record_metric

MIN_SCORE = 0.0
MAX_SCORE = 100.0

# Projection for templates with no recorded history
DEFAULT_ESTIMATE = EstimatedPerformance(
    open_rate=0.25, response_rate=0.15, conversion_rate=0.05
)


class TemplateScorer:
    """
    Scores templates against lead characteristics.

    The total is the sum of every rule's contribution whose gate holds,
    clamped to [0, 100]. A rule that raises is logged and counted as a
    failed gate; scoring never aborts because of one bad rule.
    """

    def __init__(
        self,
        config: Optional[RuleCatalogConfig] = None,
        evaluator: Optional[ConditionEvaluator] = None,
    ):
        self.config = config or RuleCatalogConfig()
        self.evaluator = evaluator or ConditionEvaluator()
        self._rules: List[MatchingRule] = build_default_rules(self.config, self.evaluator)
        self.logger = get_logger(f"{__name__}.TemplateScorer")

    @property
    def rules(self) -> List[MatchingRule]:
        """Rules in evaluation order (highest priority first)."""
        return list(self._rules)

    def add_rule(self, rule: MatchingRule) -> None:
        """Append a custom rule; it is ordered among the others by priority."""
        if rule.id in self.config.disabled_rules:
            self.logger.info(f"Rule {rule.id} is disabled by configuration; not added")
            return
        self._rules = [r for r in self._rules if r.id != rule.id] + [rule]
        self._rules.sort(key=lambda r: r.priority, reverse=True)

    def remove_rule(self, rule_id: str) -> bool:
        remaining = [r for r in self._rules if r.id != rule_id]
        removed = len(remaining) != len(self._rules)
        self._rules = remaining
        return removed

    def _applies(self, rule: MatchingRule, lead: LeadCharacteristics, template: Template):
        """Return the rule's points when its gate holds, otherwise ``None``."""
        try:
            if not rule.gate(lead, template):
                return None
            return float(rule.score(lead, template))
        except Exception as e:
            self.logger.error(
                f"Matching rule {rule.id} failed for template {template.id}: {e}",
                extra={"rule_id": rule.id, "template_id": template.id, "error": str(e)},
            )
            return None

    def score(self, characteristics: LeadCharacteristics, template: Template) -> MatchResult:
        total = 0.0
        reasoning = []
        for rule in self._rules:
            points = self._applies(rule, characteristics, template)
            if points is None:
                continue
            total += points
            reasoning.append(rule.reasoning)

        score = min(max(total, MIN_SCORE), MAX_SCORE)
        confidence = Confidence.from_score(score)
        report = self.evaluator.evaluate_all(template.conditions, characteristics)

        record_metric(TEMPLATES_SCORED, confidence=confidence.value)
        self.logger.debug(
            f"Scored template {template.id}: {score}",
            extra={"template_id": template.id, "score": score},
        )

        return MatchResult(
            template=template,
            score=score,
            confidence=confidence,
            matched_conditions=report.matched,
            missing_conditions=report.missing,
            reasoning=tuple(reasoning),
            estimated_performance=self.estimate_performance(template, report.fraction),
        )

    def estimate_performance(
        self, template: Template, condition_fraction: float
    ) -> EstimatedPerformance:
        """Project performance from history, scaled by how well conditions matched."""
        if template.performance is None:
            return DEFAULT_ESTIMATE

        factor = condition_fraction if template.conditions else 1.0
        history = template.performance
        return EstimatedPerformance(
            open_rate=min(history.open_rate * factor, 1.0),
            response_rate=min(history.response_rate * factor, 1.0),
            conversion_rate=min(history.conversion_rate * factor, 1.0),
        )
