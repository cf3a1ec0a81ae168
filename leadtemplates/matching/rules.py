"""
Built-in matching rules.

Each rule is a pair of pure functions over ``(lead, template, config)``: a
gate deciding whether the rule applies, and a contribution giving its points.
``build_default_rules`` binds them to a ``RuleCatalogConfig`` so the scorer
only ever sees ``MatchingRule`` objects, built-in or custom alike.
"""

from dataclasses import dataclass
from enum import Enum
from functools import partial
from typing import Callable, Dict, List, Optional, Tuple

from leadtemplates.matching.condition_evaluator import ConditionEvaluator
from leadtemplates.matching.models import (
    LeadCharacteristics,
    Template,
    TemplateCategory,
)
from leadtemplates.matching.rule_config import RuleCatalogConfig, Tier

Gate = Callable[[LeadCharacteristics, Template], bool]
Contribution = Callable[[LeadCharacteristics, Template], float]


class RuleId(str, Enum):
    URGENCY = "urgency_match"
    TIMELINE = "timeline_match"
    ENGAGEMENT = "engagement_match"
    LEAD_SCORE = "lead_score_match"
    PROPERTY_TYPE = "property_type_match"
    BUDGET = "budget_match"
    CHANNEL_PREFERENCE = "channel_preference_match"
    STAGE = "stage_match"
    CONTENT_PREFERENCE = "content_preference_match"
    PERFORMANCE = "performance_match"
    RECENCY = "recency_match"
    TEMPLATE_CONDITIONS = "template_conditions_match"


@dataclass
class MatchingRule:
    """A weighted rule: points from ``score`` count only when ``gate`` holds."""

    id: str
    name: str
    priority: int
    gate: Gate
    score: Contribution
    reasoning: str


def _first_tier_above(value: float, tiers: List[Tier]) -> int:
    return next((tier.points for tier in tiers if value > tier.threshold), 0)


def _content(template: Template) -> str:
    return (template.content or "").lower()


# urgency_match


def urgency_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    if lead.urgency_level == "high":
        return template.category in cfg.urgency_categories
    return True


def urgency_score(lead, template, cfg: RuleCatalogConfig) -> float:
    if lead.urgency_level == "high" and template.category is TemplateCategory.INITIAL_CONTACT:
        return cfg.urgency_points
    return 0


# timeline_match, engagement_match and stage_match share one shape: the lead
# attribute selects allowed categories and a point value.


def category_map_gate(lead, template, cfg: RuleCatalogConfig, section: str, attribute: str) -> bool:
    table = getattr(cfg, section)
    return template.category in table.categories.get(getattr(lead, attribute) or "", [])


def category_map_score(lead, template, cfg: RuleCatalogConfig, section: str, attribute: str) -> float:
    table = getattr(cfg, section)
    return table.points.get(getattr(lead, attribute) or "", 0)


# lead_score_match


def lead_score_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    if lead.lead_score is None:
        return True
    if lead.lead_score >= cfg.lead_score.high_threshold:
        return template.category is not TemplateCategory.NURTURING
    if lead.lead_score <= cfg.lead_score.low_threshold:
        return template.category in (
            TemplateCategory.NURTURING,
            TemplateCategory.INITIAL_CONTACT,
        )
    return True


def lead_score_score(lead, template, cfg: RuleCatalogConfig) -> float:
    score = lead.lead_score
    if score is None:
        return 0
    if score >= cfg.lead_score.high_threshold and template.category is TemplateCategory.PROPOSAL:
        return cfg.lead_score.high_proposal_points
    if score <= cfg.lead_score.low_threshold and template.category is TemplateCategory.NURTURING:
        return cfg.lead_score.low_nurturing_points
    return int(score // 10)


# property_type_match


def property_type_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    if not lead.property_type:
        return True
    content = _content(template)
    keywords = [lead.property_type.lower()] + cfg.property_type.generic_keywords
    return any(keyword in content for keyword in keywords)


def property_type_score(lead, template, cfg: RuleCatalogConfig) -> float:
    if not lead.property_type:
        return 0
    content = _content(template)
    if lead.property_type.lower() in content:
        return cfg.property_type.exact_points
    if any(keyword in content for keyword in cfg.property_type.generic_keywords):
        return cfg.property_type.generic_points
    return 0


# budget_match: never excludes, only scores


def budget_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    return True


def budget_score(lead, template, cfg: RuleCatalogConfig) -> float:
    if not lead.budget_range:
        return 0
    content = _content(template)
    budget = cfg.budget
    high = lead.budget_range.max
    if high >= budget.luxury_min and "luxury" in content:
        return budget.luxury_points
    if high <= budget.affordable_max and "affordable" in content:
        return budget.affordable_points
    if high >= budget.premium_min and "premium" in content:
        return budget.premium_points
    return budget.generic_points


# channel_preference_match


def channel_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    return lead.preferred_channel is not None and template.channel == lead.preferred_channel


def channel_score(lead, template, cfg: RuleCatalogConfig) -> float:
    return cfg.channel_points if channel_gate(lead, template, cfg) else 0


# content_preference_match


def _content_keyword_hits(lead, template, cfg: RuleCatalogConfig) -> int:
    keywords = cfg.content_preference.keywords.get(lead.preferred_content_type or "", [])
    content = _content(template)
    return sum(1 for keyword in keywords if keyword in content)


def content_preference_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    return _content_keyword_hits(lead, template, cfg) > 0


def content_preference_score(lead, template, cfg: RuleCatalogConfig) -> float:
    return _content_keyword_hits(lead, template, cfg) * cfg.content_preference.points_per_keyword


# performance_match


def performance_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    performance = template.performance
    if performance is None:
        return True
    return (
        performance.conversion_rate > cfg.performance.min_conversion_rate
        or performance.open_rate > cfg.performance.min_open_rate
    )


def performance_score(lead, template, cfg: RuleCatalogConfig) -> float:
    performance = template.performance
    if performance is None:
        return 0
    return (
        _first_tier_above(performance.conversion_rate, cfg.performance.conversion_tiers)
        + _first_tier_above(performance.open_rate, cfg.performance.open_tiers)
        + _first_tier_above(performance.response_rate, cfg.performance.response_tiers)
    )


# recency_match


def recency_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    days = lead.days_since_last_contact
    if days is None:
        return True
    if days > cfg.recency.stale_days:
        return template.category in cfg.recency.stale_categories
    if days > cfg.recency.cooling_days:
        return template.category is not TemplateCategory.INITIAL_CONTACT
    return True


def recency_score(lead, template, cfg: RuleCatalogConfig) -> float:
    days = lead.days_since_last_contact
    if days is None:
        return 0
    return next((tier.points for tier in cfg.recency.tiers if days <= tier.threshold), 0)


# template_conditions_match


def template_conditions_gate(lead, template, cfg: RuleCatalogConfig) -> bool:
    return sum(max(float(c.weight), 0.0) for c in template.conditions) > 0


def template_conditions_score(
    lead, template, cfg: RuleCatalogConfig, evaluator: ConditionEvaluator
) -> float:
    report = evaluator.evaluate_all(template.conditions, lead)
    return report.fraction * cfg.condition_points


# id -> (name, priority, gate, contribution, reasoning)
RULE_TABLE: Dict[RuleId, Tuple[str, int, Callable, Callable, str]] = {
    RuleId.URGENCY: (
        "Urgency Level Match",
        100,
        urgency_gate,
        urgency_score,
        "High urgency leads get immediate, direct communication",
    ),
    RuleId.TIMELINE: (
        "Timeline Match",
        90,
        partial(category_map_gate, section="timeline", attribute="timeline"),
        partial(category_map_score, section="timeline", attribute="timeline"),
        "Template category matches lead's purchase timeline",
    ),
    RuleId.ENGAGEMENT: (
        "Engagement Level Match",
        85,
        partial(category_map_gate, section="engagement", attribute="engagement_level"),
        partial(category_map_score, section="engagement", attribute="engagement_level"),
        "Template matches lead's engagement level",
    ),
    RuleId.LEAD_SCORE: (
        "Lead Score Match",
        80,
        lead_score_gate,
        lead_score_score,
        "Template quality matches lead score",
    ),
    RuleId.PROPERTY_TYPE: (
        "Property Type Match",
        75,
        property_type_gate,
        property_type_score,
        "Template content matches preferred property type",
    ),
    RuleId.BUDGET: (
        "Budget Range Match",
        70,
        budget_gate,
        budget_score,
        "Template tone matches budget expectations",
    ),
    RuleId.CHANNEL_PREFERENCE: (
        "Channel Preference Match",
        65,
        channel_gate,
        channel_score,
        "Template uses lead's preferred communication channel",
    ),
    RuleId.STAGE: (
        "Lead Stage Match",
        60,
        partial(category_map_gate, section="stage", attribute="lead_stage"),
        partial(category_map_score, section="stage", attribute="lead_stage"),
        "Template matches current lead stage in sales funnel",
    ),
    RuleId.CONTENT_PREFERENCE: (
        "Content Preference Match",
        55,
        content_preference_gate,
        content_preference_score,
        "Template content matches lead's content preferences",
    ),
    RuleId.PERFORMANCE: (
        "Performance-Based Match",
        50,
        performance_gate,
        performance_score,
        "Template has proven performance metrics",
    ),
    RuleId.RECENCY: (
        "Recency Match",
        45,
        recency_gate,
        recency_score,
        "Template appropriate for contact recency",
    ),
    RuleId.TEMPLATE_CONDITIONS: (
        "Template Conditions Match",
        40,
        template_conditions_gate,
        template_conditions_score,
        "Template conditions match lead characteristics",
    ),
}


def build_default_rules(
    config: Optional[RuleCatalogConfig] = None,
    evaluator: Optional[ConditionEvaluator] = None,
) -> List[MatchingRule]:
    """
    Bind the built-in rules to ``config``, skipping its ``disabled_rules``.

    ``evaluator`` scores the template conditions rule; the scorer passes its
    own so the rule and the match report agree.
    """
    config = config or RuleCatalogConfig()
    evaluator = evaluator or ConditionEvaluator()
    disabled = set(config.disabled_rules)
    rules = []
    for rule_id, (name, priority, gate, score, reasoning) in RULE_TABLE.items():
        if rule_id.value in disabled:
            continue
        if rule_id is RuleId.TEMPLATE_CONDITIONS:
            score = partial(score, evaluator=evaluator)
        rules.append(
            MatchingRule(
                id=rule_id.value,
                name=name,
                priority=priority,
                gate=partial(gate, cfg=config),
                score=partial(score, cfg=config),
                reasoning=reasoning,
            )
        )
    rules.sort(key=lambda rule: rule.priority, reverse=True)
    return rules
