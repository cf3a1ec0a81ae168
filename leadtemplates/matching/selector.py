"""
Template selection.

Filters a candidate set, scores what remains and returns a deterministic
ranking: score first, then template priority, then most recent use.
"""

from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Optional, Sequence

from leadtemplates.matching.catalog import TemplateCatalog, TemplateFilter
from leadtemplates.matching.models import (
    Channel,
    LeadCharacteristics,
    MatchResult,
    Template,
    TemplateCategory,
    TemplateStatus,
)
from leadtemplates.matching.scorer import TemplateScorer
from leadtemplates.utils.logging import LogContext, get_logger, log_execution_time
from leadtemplates.utils.metrics import SELECTION_DURATION, MetricsTimer

WEAK_MATCH_SCORE = 30
RECOMMENDATION_LIMIT = 10


@dataclass
class SelectionOptions:
    """Per-call selection settings; ``None`` means use the selector default."""

    category: Optional[TemplateCategory] = None
    channel: Optional[Channel] = None
    exclude_template_ids: List[str] = field(default_factory=list)
    min_score: Optional[float] = None
    max_results: Optional[int] = None
    include_fallbacks: bool = False
    # Raw lead record used to check that required variables can be filled
    lead_data: Optional[Dict[str, Any]] = None


@dataclass
class Recommendation:
    primary: Optional[MatchResult]
    alternatives: List[MatchResult]
    suggestions: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.to_dict() if self.primary else None,
            "alternatives": [match.to_dict() for match in self.alternatives],
            "suggestions": list(self.suggestions),
        }


def get_nested_value(data: Dict[str, Any], path: str) -> Any:
    """Follow a dotted path (``contact.firstName``) through nested mappings."""
    current: Any = data
    for part in path.split("."):
        if not isinstance(current, dict) or part not in current:
            return None
        current = current[part]
    return current


def can_populate(template: Template, lead_data: Dict[str, Any]) -> bool:
    """True when every required variable has a value in ``lead_data``."""
    return all(
        get_nested_value(lead_data, variable.name) is not None
        for variable in template.variables
        if variable.required
    )


def _ranking_key(match: MatchResult):
    last_used = match.template.last_used
    recency = last_used.timestamp() if last_used else float("-inf")
    return (-match.score, -match.template.priority, -recency, match.template.id)


class TemplateSelector:
    """Ranks candidate templates for a lead."""

    def __init__(
        self,
        scorer: Optional[TemplateScorer] = None,
        catalog: Optional[TemplateCatalog] = None,
        default_min_score: float = 0,
        default_max_results: int = 5,
        fallback_limit: int = 3,
    ):
        self.scorer = scorer or TemplateScorer()
        self.catalog = catalog
        self.default_min_score = default_min_score
        self.default_max_results = default_max_results
        self.fallback_limit = fallback_limit
        self.logger = get_logger(f"{__name__}.TemplateSelector")

    def filter_candidates(
        self, templates: Sequence[Template], options: SelectionOptions
    ) -> List[Template]:
        candidates = []
        for template in templates:
            if template.status is not TemplateStatus.ACTIVE:
                continue
            if options.category is not None and template.category != options.category:
                continue
            if options.channel is not None and template.channel != options.channel:
                continue
            if template.id in options.exclude_template_ids:
                continue
            if options.lead_data is not None and not can_populate(
                template, options.lead_data
            ):
                self.logger.debug(
                    f"Dropping template {template.id}: required variables missing"
                )
                continue
            candidates.append(template)
        return candidates

    @log_execution_time
    def select(
        self,
        characteristics: LeadCharacteristics,
        templates: Sequence[Template],
        options: Optional[SelectionOptions] = None,
    ) -> List[MatchResult]:
        """
        Return the best matches for a lead, highest first.

        Args:
            characteristics: Scoring input for the lead
            templates: Candidate templates
            options: Filters, threshold and result limit

        Returns:
            Up to ``max_results`` matches at or above ``min_score``. When
            nothing clears the threshold and ``include_fallbacks`` is set,
            the top few candidates are returned regardless.
        """
        options = options or SelectionOptions()
        min_score = (
            self.default_min_score if options.min_score is None else options.min_score
        )
        max_results = (
            self.default_max_results
            if options.max_results is None
            else options.max_results
        )

        with MetricsTimer(SELECTION_DURATION), LogContext(
            self.logger,
            lead_stage=characteristics.lead_stage,
            candidates=len(templates),
        ):
            candidates = self.filter_candidates(templates, options)
            matches = sorted(
                (self.scorer.score(characteristics, t) for t in candidates),
                key=_ranking_key,
            )

            selected = [match for match in matches if match.score >= min_score]
            if not selected and options.include_fallbacks and matches:
                self.logger.info(
                    f"No template reached score {min_score}; "
                    f"returning top {self.fallback_limit} candidates"
                )
                selected = matches[: self.fallback_limit]

            self.logger.info(
                f"Selected {len(selected[:max_results])} of {len(candidates)} candidates"
            )
            return selected[:max_results]

    def select_best(
        self,
        characteristics: LeadCharacteristics,
        templates: Sequence[Template],
        options: Optional[SelectionOptions] = None,
    ) -> Optional[MatchResult]:
        options = options or SelectionOptions()
        matches = self.select(
            characteristics,
            templates,
            replace(options, max_results=1),
        )
        return matches[0] if matches else None

    def get_fallback_template(
        self,
        category: TemplateCategory,
        channel: Channel,
        templates: Optional[Sequence[Template]] = None,
    ) -> Optional[Template]:
        """Return the active default template for ``(category, channel)``, if any."""
        if templates is None:
            if self.catalog is None:
                return None
            templates = self.catalog.list(
                TemplateFilter(
                    status=TemplateStatus.ACTIVE,
                    category=category,
                    channel=channel,
                    is_default=True,
                )
            )

        return next(
            (
                t
                for t in templates
                if t.is_default
                and t.status is TemplateStatus.ACTIVE
                and t.category == category
                and t.channel == channel
            ),
            None,
        )

    def recommend(
        self,
        characteristics: LeadCharacteristics,
        templates: Sequence[Template],
        options: Optional[SelectionOptions] = None,
    ) -> Recommendation:
        """Best match, alternatives, and hints about gaps in the template set."""
        options = options or SelectionOptions()
        matches = self.select(
            characteristics,
            templates,
            replace(options, max_results=RECOMMENDATION_LIMIT),
        )

        suggestions = []
        if not matches:
            suggestions.append(
                "No suitable templates found. Consider creating templates for this lead profile."
            )
        elif matches[0].score < WEAK_MATCH_SCORE:
            suggestions.append(
                "Best match has low confidence. Consider improving lead data or template conditions."
            )

        categories = {match.template.category for match in matches}
        if (
            characteristics.urgency_level == "high"
            and TemplateCategory.INITIAL_CONTACT not in categories
        ):
            suggestions.append(
                "Consider creating immediate response templates for high-urgency leads."
            )
        if (
            characteristics.engagement_level == "low"
            and TemplateCategory.RE_ENGAGEMENT not in categories
        ):
            suggestions.append("Consider re-engagement templates for low-engagement leads.")

        return Recommendation(
            primary=matches[0] if matches else None,
            alternatives=matches[1:],
            suggestions=suggestions,
        )
