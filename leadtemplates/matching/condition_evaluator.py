"""
Evaluation of template-declared conditions against lead characteristics.

Operators are dispatched through a lookup table keyed by ``ConditionOperator``;
anything that cannot be evaluated fails closed and is logged.
"""

import operator as op
from collections.abc import Set
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Optional, Sequence

from leadtemplates.matching.models import (
    ConditionOperator,
    LeadCharacteristics,
    TemplateCondition,
)
from leadtemplates.utils.logging import get_logger

logger = get_logger(__name__)


def _budget_max(lead: LeadCharacteristics):
    return lead.budget_range.max if lead.budget_range else None


def _budget_min(lead: LeadCharacteristics):
    return lead.budget_range.min if lead.budget_range else None


def _field(name: str) -> Callable[[LeadCharacteristics], Any]:
    return lambda lead: getattr(lead, name)


# Variable names a condition may reference, including the camelCase names
# used by template authors in the CRM.
VARIABLE_RESOLVERS: Dict[str, Callable[[LeadCharacteristics], Any]] = {
    "urgency_level": _field("urgency_level"),
    "urgencyLevel": _field("urgency_level"),
    "timeline": _field("timeline"),
    "engagement_level": _field("engagement_level"),
    "engagementLevel": _field("engagement_level"),
    "lead_score": _field("lead_score"),
    "leadScore": _field("lead_score"),
    "property_type": _field("property_type"),
    "propertyType": _field("property_type"),
    "budget": _budget_max,
    "budget_max": _budget_max,
    "budgetMax": _budget_max,
    "budget_min": _budget_min,
    "budgetMin": _budget_min,
    "preferred_channel": _field("preferred_channel"),
    "preferredChannel": _field("preferred_channel"),
    "lead_stage": _field("lead_stage"),
    "leadStage": _field("lead_stage"),
    "days_since_last_contact": _field("days_since_last_contact"),
    "daysSinceLastContact": _field("days_since_last_contact"),
    "preferred_content_type": _field("preferred_content_type"),
    "preferredContentType": _field("preferred_content_type"),
}

KNOWN_VARIABLES = frozenset(VARIABLE_RESOLVERS)


def resolve_variable(name: str, lead: LeadCharacteristics) -> Any:
    """Return the lead attribute a condition refers to, or ``None`` if unresolved."""
    resolver = VARIABLE_RESOLVERS.get(name)
    if resolver is None:
        return None
    return resolver(lead)


def _strict_equals(left: Any, right: Any) -> bool:
    # True == 1 in Python; keep booleans and numbers apart
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    return left == right


def _as_number(value: Any) -> float:
    if isinstance(value, bool):
        raise TypeError(f"Boolean {value!r} is not a numeric operand")
    return float(value)


def _is_collection(value: Any) -> bool:
    return isinstance(value, (list, tuple, Set))


def _contains(actual: Any, expected: Any) -> bool:
    return str(expected).lower() in str(actual).lower()


def _between(actual: Any, expected: Sequence) -> bool:
    low, high = expected
    return _as_number(low) <= _as_number(actual) <= _as_number(high)


def _member(actual: Any, expected: Sequence) -> bool:
    return any(_strict_equals(actual, item) for item in expected)


OPERATORS: Dict[ConditionOperator, Callable[[Any, Any], bool]] = {
    ConditionOperator.EQUALS: _strict_equals,
    ConditionOperator.NOT_EQUALS: lambda a, e: not _strict_equals(a, e),
    ConditionOperator.CONTAINS: _contains,
    ConditionOperator.NOT_CONTAINS: lambda a, e: not _contains(a, e),
    ConditionOperator.GREATER_THAN: lambda a, e: op.gt(_as_number(a), _as_number(e)),
    ConditionOperator.LESS_THAN: lambda a, e: op.lt(_as_number(a), _as_number(e)),
    ConditionOperator.BETWEEN: _between,
    ConditionOperator.IN: _member,
    ConditionOperator.NOT_IN: lambda a, e: not _member(a, e),
    ConditionOperator.EXISTS: lambda a, e: True,
    ConditionOperator.NOT_EXISTS: lambda a, e: False,
}


def operand_error(condition: TemplateCondition) -> Optional[str]:
    """Describe what is wrong with a condition's operand, or ``None`` if it is usable."""
    if condition.operator is ConditionOperator.BETWEEN:
        if not (isinstance(condition.value, (list, tuple)) and len(condition.value) == 2):
            return "'between' expects a [min, max] pair"
    elif condition.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
        if not _is_collection(condition.value):
            return f"'{condition.operator.value}' expects a list of values"
    return None


@dataclass(frozen=True)
class ConditionReport:
    """Which of a template's conditions held, weighted."""

    matched: tuple
    missing: tuple
    satisfied_weight: float
    total_weight: float

    @property
    def fraction(self) -> float:
        if self.total_weight <= 0:
            return 0.0
        return self.satisfied_weight / self.total_weight


class ConditionEvaluator:
    """Evaluates template conditions; never raises on bad data."""

    def __init__(self):
        self.logger = get_logger(f"{__name__}.ConditionEvaluator")

    def evaluate(
        self, condition: TemplateCondition, characteristics: LeadCharacteristics
    ) -> bool:
        value = resolve_variable(condition.variable, characteristics)
        if value is None:
            return condition.operator is ConditionOperator.NOT_EXISTS

        handler = OPERATORS.get(condition.operator)
        if handler is None:
            self.logger.warning(
                f"Unknown condition operator '{condition.operator}'",
                extra={"condition_id": condition.id},
            )
            return False

        problem = operand_error(condition)
        if problem:
            self.logger.warning(
                f"Malformed operand for condition {condition.id}: {problem}",
                extra={"condition_id": condition.id, "operand": condition.value},
            )
            return False

        try:
            return bool(handler(value, condition.value))
        except (TypeError, ValueError) as e:
            self.logger.warning(
                f"Could not evaluate condition {condition.id}: {e}",
                extra={"condition_id": condition.id, "error": str(e)},
            )
            return False

    def evaluate_all(
        self,
        conditions: List[TemplateCondition],
        characteristics: LeadCharacteristics,
    ) -> ConditionReport:
        """Evaluate every condition and sum the weights of those that hold."""
        matched, missing = [], []
        satisfied_weight = total_weight = 0.0
        for condition in conditions:
            weight = max(float(condition.weight), 0.0)
            total_weight += weight
            if self.evaluate(condition, characteristics):
                matched.append(condition.label)
                satisfied_weight += weight
            else:
                missing.append(condition.label)

        return ConditionReport(
            matched=tuple(matched),
            missing=tuple(missing),
            satisfied_weight=satisfied_weight,
            total_weight=total_weight,
        )
