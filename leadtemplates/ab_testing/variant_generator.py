"""
Template variations for A/B experiments.

Builds variations of a base template from declared field changes, proposes
rule-based changes for a target metric, and turns suggestions into a control
plus test variants with traffic weights.
"""

import copy
import re
import uuid
from dataclasses import dataclass, field, fields
from datetime import datetime, timedelta
from enum import Enum
from threading import Lock
from typing import Any, Dict, List, Optional

from leadtemplates.exceptions import TemplateValidationError
from leadtemplates.matching.models import (
    Template,
    TemplateCondition,
    TemplateVariable,
    to_snake_case,
)
from leadtemplates.utils.clock import Clock, utc_now
from leadtemplates.utils.logging import get_logger

logger = get_logger(__name__)

CONTROL_WEIGHT = 50
# Variants must convert above this rate to be named best performer
BEST_PERFORMER_MIN_RATE = 0.01

URGENCY_WORDS = ["Limited Time", "Act Now", "Don't Miss", "Urgent", "Breaking"]
PERSONALIZATION_TOKENS = ("{{leadName}}", "{{firstName}}")

CTA_PATTERNS = [
    re.compile(r"call\s+us|contact\s+us|schedule\s+a\s+showing|get\s+in\s+touch", re.I),
    re.compile(r"learn\s+more|find\s+out\s+more|see\s+details", re.I),
    re.compile(r"view\s+properties|browse\s+homes|search\s+listings", re.I),
]

BENEFIT_PATTERNS = [
    re.compile(r"amazing|great|excellent|wonderful|fantastic", re.I),
    re.compile(r"save\s+time|save\s+money|convenient|easy", re.I),
    re.compile(r"professional|experienced|trusted|reliable", re.I),
]

SOCIAL_PROOF_BLOCK = """
<div style="background-color: #f8f9fa; padding: 15px; margin: 20px 0; border-radius: 5px;">
  <p style="margin: 0; color: #6c757d; font-size: 14px;">
    <strong>Trusted by 500+ Happy Homebuyers</strong><br>
    "Found my dream home in just 2 weeks!"
  </p>
</div>
"""


class ChangeType(str, Enum):
    CONTENT = "content"
    SUBJECT = "subject"
    VARIABLE = "variable"
    CONDITION = "condition"


class TargetMetric(str, Enum):
    OPEN_RATE = "open_rate"
    CLICK_RATE = "click_rate"
    RESPONSE_RATE = "response_rate"
    CONVERSION_RATE = "conversion_rate"


class ExpectedImpact(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


IMPACT_ORDER = {ExpectedImpact.HIGH: 3, ExpectedImpact.MEDIUM: 2, ExpectedImpact.LOW: 1}


class SuggestionType(str, Enum):
    CONTENT = "content"
    SUBJECT = "subject"
    STRUCTURE = "structure"
    CALL_TO_ACTION = "call_to_action"


@dataclass
class VariationChange:
    """
    One field-level edit.

    ``field`` names the edited field for content and subject changes, the
    variable name for variable changes and the condition id for condition
    changes. Variable and condition changes merge ``new_value`` (a mapping of
    properties) into the existing declaration.
    """

    type: ChangeType
    field: str
    new_value: Any
    old_value: Any = None
    description: str = ""


@dataclass
class VariationSuggestion:
    type: SuggestionType
    description: str
    confidence: float
    expected_impact: ExpectedImpact
    changes: List[VariationChange]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "description": self.description,
            "confidence": self.confidence,
            "expected_impact": self.expected_impact.value,
            "changes": [
                {
                    "type": change.type.value,
                    "field": change.field,
                    "old_value": change.old_value,
                    "new_value": change.new_value,
                    "description": change.description,
                }
                for change in self.changes
            ],
        }


@dataclass
class VariationPerformance:
    impressions: int
    conversions: int
    conversion_rate: float
    last_updated: datetime


@dataclass
class TemplateVariation:
    id: str
    base_template_id: str
    name: str
    description: str
    changes: List[VariationChange]
    content: str
    subject: Optional[str]
    variables: List[TemplateVariable]
    conditions: List[TemplateCondition]
    created_at: datetime
    updated_at: datetime
    is_active: bool = True
    performance: Optional[VariationPerformance] = None


@dataclass
class ExperimentVariant:
    """An arm of an experiment with its share of traffic."""

    id: str
    name: str
    template_id: str
    content: str
    subject: Optional[str]
    variables: List[TemplateVariable]
    weight: int
    is_control: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "template_id": self.template_id,
            "subject": self.subject,
            "content": self.content,
            "weight": self.weight,
            "is_control": self.is_control,
        }


@dataclass
class ComparisonMetric:
    field: str
    base_value: Any
    variations: Dict[str, Any]
    best_performer: Optional[str] = None


@dataclass
class VariationComparison:
    base_template: Template
    variations: List[TemplateVariation]
    metrics: List[ComparisonMetric] = field(default_factory=list)


def _merge(declaration, new_value: Any, kind: str):
    """Return a copy of a variable/condition declaration with ``new_value`` merged in."""
    if not isinstance(new_value, dict):
        raise TemplateValidationError(f"A {kind} change needs a mapping of properties")

    allowed = {f.name for f in fields(declaration)}
    updates = {to_snake_case(key): value for key, value in new_value.items()}
    unknown = sorted(set(updates) - allowed)
    if unknown:
        raise TemplateValidationError(f"Unknown {kind} properties: {unknown}")

    merged = {f.name: getattr(declaration, f.name) for f in fields(declaration)}
    merged.update(updates)
    return type(declaration).from_dict(merged)


def apply_changes(template: Template, changes: List[VariationChange]) -> Dict[str, Any]:
    """
    Apply ``changes`` in order to a deep copy of the template's editable fields.

    Returns:
        Mapping with the resulting ``content``, ``subject``, ``variables`` and
        ``conditions``; ``template`` itself is never modified.

    Raises:
        TemplateValidationError: if a change targets an undeclared variable or
            condition, or carries a value of the wrong shape
    """
    content = template.content
    subject = template.subject
    variables = copy.deepcopy(template.variables)
    conditions = copy.deepcopy(template.conditions)

    for change in changes:
        change_type = ChangeType(change.type)
        if change_type is ChangeType.CONTENT:
            if not isinstance(change.new_value, str):
                raise TemplateValidationError("Content changes must be strings")
            content = change.new_value
        elif change_type is ChangeType.SUBJECT:
            subject = change.new_value
        elif change_type is ChangeType.VARIABLE:
            index = next(
                (i for i, v in enumerate(variables) if v.name == change.field), None
            )
            if index is None:
                raise TemplateValidationError(
                    f"Template {template.id} declares no variable '{change.field}'"
                )
            variables[index] = _merge(variables[index], change.new_value, "variable")
        elif change_type is ChangeType.CONDITION:
            index = next(
                (i for i, c in enumerate(conditions) if c.id == change.field), None
            )
            if index is None:
                raise TemplateValidationError(
                    f"Template {template.id} declares no condition '{change.field}'"
                )
            conditions[index] = _merge(conditions[index], change.new_value, "condition")

    return {
        "content": content,
        "subject": subject,
        "variables": variables,
        "conditions": conditions,
    }


def add_urgency_to_subject(subject: str) -> str:
    cleaned = subject
    for word in URGENCY_WORDS:
        cleaned = re.sub(re.escape(word), "", cleaned, flags=re.I).strip()
    return f"{URGENCY_WORDS[0]}: {cleaned}"


def personalize_subject(subject: str) -> str:
    if any(token in subject for token in PERSONALIZATION_TOKENS):
        return subject
    return f"{{{{leadName}}}}, {subject}"


def enhance_call_to_action(content: str) -> str:
    for pattern in CTA_PATTERNS:
        content = pattern.sub(
            lambda match: f'<strong style="color: #007bff;">{match.group(0).upper()}</strong>',
            content,
        )
    return content


def add_social_proof(content: str) -> str:
    """Insert the testimonial block just before the first call to action."""
    index = content.lower().find("call")
    if index == -1:
        index = len(content)
    return content[:index] + SOCIAL_PROOF_BLOCK + content[index:]


def reorder_content(content: str) -> str:
    """Move paragraphs that talk about benefits ahead of the rest."""
    paragraphs = re.split(r"\n\s*\n", content)
    if len(paragraphs) < 2:
        return content

    benefits = [p for p in paragraphs if any(rx.search(p) for rx in BENEFIT_PATTERNS)]
    others = [p for p in paragraphs if not any(rx.search(p) for rx in BENEFIT_PATTERNS)]
    return "\n\n".join(benefits + others)


class VariantGenerator:
    """Creates and keeps template variations, keyed by base template id."""

    def __init__(self, clock: Clock = utc_now):
        self.clock = clock
        self._variations: Dict[str, List[TemplateVariation]] = {}
        self._lock = Lock()
        self.logger = get_logger(f"{__name__}.VariantGenerator")

    def create_variation(
        self,
        base_template: Template,
        changes: List[VariationChange],
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> TemplateVariation:
        applied = apply_changes(base_template, changes)
        now = self.clock()
        variation = TemplateVariation(
            id=f"variation_{uuid.uuid4().hex[:12]}",
            base_template_id=base_template.id,
            name=name or f"Variation of {base_template.name}",
            description=description
            or f"A/B test variation with {len(changes)} modifications",
            changes=list(changes),
            content=applied["content"],
            subject=applied["subject"],
            variables=applied["variables"],
            conditions=applied["conditions"],
            created_at=now,
            updated_at=now,
        )

        with self._lock:
            self._variations.setdefault(base_template.id, []).append(variation)

        self.logger.info(
            f"Created variation {variation.id} of template {base_template.id}",
            extra={"template_id": base_template.id, "changes": len(changes)},
        )
        return variation

    def generate_suggestions(
        self, template: Template, target_metric: TargetMetric, count: int = 3
    ) -> List[VariationSuggestion]:
        """
        Propose changes likely to move ``target_metric``.

        Subject-line edits for open rate, call-to-action and social proof for
        click and conversion rate, and a benefits-first reordering always.
        Sorted by expected impact, then confidence.
        """
        target_metric = TargetMetric(target_metric)
        subject = template.subject or ""
        suggestions = []

        if target_metric is TargetMetric.OPEN_RATE:
            suggestions.append(
                VariationSuggestion(
                    type=SuggestionType.SUBJECT,
                    description="Add urgency words to subject line",
                    confidence=0.8,
                    expected_impact=ExpectedImpact.HIGH,
                    changes=[
                        VariationChange(
                            type=ChangeType.SUBJECT,
                            field="subject",
                            old_value=template.subject,
                            new_value=add_urgency_to_subject(subject),
                            description='Added urgency words like "Limited Time" or "Act Now"',
                        )
                    ],
                )
            )
            suggestions.append(
                VariationSuggestion(
                    type=SuggestionType.SUBJECT,
                    description="Personalize subject line with lead name",
                    confidence=0.7,
                    expected_impact=ExpectedImpact.MEDIUM,
                    changes=[
                        VariationChange(
                            type=ChangeType.SUBJECT,
                            field="subject",
                            old_value=template.subject,
                            new_value=personalize_subject(subject),
                            description="Added lead name personalization to subject",
                        )
                    ],
                )
            )

        if target_metric in (TargetMetric.CLICK_RATE, TargetMetric.CONVERSION_RATE):
            suggestions.append(
                VariationSuggestion(
                    type=SuggestionType.CALL_TO_ACTION,
                    description="Make call-to-action more prominent",
                    confidence=0.75,
                    expected_impact=ExpectedImpact.HIGH,
                    changes=[
                        VariationChange(
                            type=ChangeType.CONTENT,
                            field="content",
                            old_value=template.content,
                            new_value=enhance_call_to_action(template.content),
                            description="Enhanced call-to-action with stronger language and visual prominence",
                        )
                    ],
                )
            )
            suggestions.append(
                VariationSuggestion(
                    type=SuggestionType.CONTENT,
                    description="Add social proof elements",
                    confidence=0.6,
                    expected_impact=ExpectedImpact.MEDIUM,
                    changes=[
                        VariationChange(
                            type=ChangeType.CONTENT,
                            field="content",
                            old_value=template.content,
                            new_value=add_social_proof(template.content),
                            description="Added testimonials or success statistics",
                        )
                    ],
                )
            )

        suggestions.append(
            VariationSuggestion(
                type=SuggestionType.STRUCTURE,
                description="Reorder content sections for better flow",
                confidence=0.65,
                expected_impact=ExpectedImpact.MEDIUM,
                changes=[
                    VariationChange(
                        type=ChangeType.CONTENT,
                        field="content",
                        old_value=template.content,
                        new_value=reorder_content(template.content),
                        description="Reordered content to lead with benefits first",
                    )
                ],
            )
        )

        suggestions.sort(
            key=lambda s: (IMPACT_ORDER[s.expected_impact], s.confidence), reverse=True
        )
        return suggestions[:count]

    def generate_test_variants(
        self, template: Template, suggestions: List[VariationSuggestion]
    ) -> List[ExperimentVariant]:
        """
        Control at half the traffic plus one variant per suggestion.

        The other half is split by integer division, so weights only sum to
        100 when the suggestion count divides 50.
        """
        variants = [
            ExperimentVariant(
                id=f"{template.id}-control",
                name="Control",
                template_id=template.id,
                content=template.content,
                subject=template.subject,
                variables=copy.deepcopy(template.variables),
                weight=CONTROL_WEIGHT,
                is_control=True,
            )
        ]

        for index, suggestion in enumerate(suggestions, start=1):
            variation = self.create_variation(
                template,
                suggestion.changes,
                name=f"Variant {index}: {suggestion.description}",
                description=suggestion.description,
            )
            variants.append(
                ExperimentVariant(
                    id=variation.id,
                    name=variation.name,
                    template_id=template.id,
                    content=variation.content,
                    subject=variation.subject,
                    variables=variation.variables,
                    weight=(100 - CONTROL_WEIGHT) // len(suggestions),
                )
            )

        return variants

    def get_variations(self, template_id: str) -> List[TemplateVariation]:
        return list(self._variations.get(template_id, []))

    def get_variation(
        self, template_id: str, variation_id: str
    ) -> Optional[TemplateVariation]:
        return next(
            (v for v in self._variations.get(template_id, []) if v.id == variation_id),
            None,
        )

    def update_variation_performance(
        self, template_id: str, variation_id: str, impressions: int, conversions: int
    ) -> bool:
        if impressions < 0 or conversions < 0:
            raise ValueError("Impressions and conversions must not be negative")

        variation = self.get_variation(template_id, variation_id)
        if variation is None:
            return False

        now = self.clock()
        variation.performance = VariationPerformance(
            impressions=impressions,
            conversions=conversions,
            conversion_rate=conversions / impressions if impressions > 0 else 0.0,
            last_updated=now,
        )
        variation.updated_at = now
        return True

    def compare_variations(
        self, base_template: Template, variations: List[TemplateVariation]
    ) -> VariationComparison:
        """Side-by-side subject, content length and variable count."""
        metrics = []
        if base_template.subject or any(v.subject for v in variations):
            metrics.append(
                ComparisonMetric(
                    field="subject",
                    base_value=base_template.subject,
                    variations={v.id: v.subject for v in variations},
                )
            )
        metrics.append(
            ComparisonMetric(
                field="content_length",
                base_value=len(base_template.content),
                variations={v.id: len(v.content) for v in variations},
            )
        )
        metrics.append(
            ComparisonMetric(
                field="variable_count",
                base_value=len(base_template.variables),
                variations={v.id: len(v.variables) for v in variations},
            )
        )

        performers = [
            v
            for v in variations
            if v.performance and v.performance.conversion_rate > BEST_PERFORMER_MIN_RATE
        ]
        if performers:
            best = max(performers, key=lambda v: v.performance.conversion_rate)
            for metric in metrics:
                metric.best_performer = best.id

        return VariationComparison(
            base_template=base_template, variations=list(variations), metrics=metrics
        )

    def cleanup_old_variations(self, max_age_days: int = 90) -> int:
        """Deactivate variations not updated within ``max_age_days``; returns the count."""
        cutoff = self.clock() - timedelta(days=max_age_days)
        deactivated = 0
        with self._lock:
            for variations in self._variations.values():
                for variation in variations:
                    if variation.is_active and variation.updated_at <= cutoff:
                        variation.is_active = False
                        deactivated += 1

        logger.info(
            f"Deactivated {deactivated} variations older than {max_age_days} days",
            extra={"deactivated": deactivated},
        )
        return deactivated

    def statistics(self) -> Dict[str, Any]:
        all_variations = [v for vs in self._variations.values() for v in vs]
        total = len(all_variations)
        total_changes = sum(len(v.changes) for v in all_variations)
        return {
            "total_variations": total,
            "active_variations": sum(1 for v in all_variations if v.is_active),
            "templates_with_variations": len(self._variations),
            "average_changes_per_variation": total_changes / total if total else 0.0,
        }
