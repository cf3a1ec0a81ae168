"""
Domain model for template matching.

Templates, their declared conditions and variables, the read-only lead
snapshot used as scoring input, and the ``MatchResult`` value produced by
the scorer.
"""

import re
from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from leadtemplates.exceptions import TemplateValidationError


class TemplateCategory(str, Enum):
    """Purpose of a template in the sales funnel."""

    INITIAL_CONTACT = "initial_contact"
    FOLLOW_UP = "follow_up"
    PROPERTY_SHOWING = "property_showing"
    PROPOSAL = "proposal"
    NEGOTIATION = "negotiation"
    CLOSING = "closing"
    THANK_YOU = "thank_you"
    NURTURING = "nurturing"
    RE_ENGAGEMENT = "re_engagement"


class Channel(str, Enum):
    """Delivery channel of a template."""

    EMAIL = "email"
    SMS = "sms"
    IN_APP = "in_app"
    PUSH = "push"


class TemplateStatus(str, Enum):
    """Template lifecycle status."""

    DRAFT = "draft"
    ACTIVE = "active"
    ARCHIVED = "archived"
    TESTING = "testing"


class ConditionOperator(str, Enum):
    """Closed set of condition operators."""

    EQUALS = "equals"
    NOT_EQUALS = "not_equals"
    CONTAINS = "contains"
    NOT_CONTAINS = "not_contains"
    GREATER_THAN = "greater_than"
    LESS_THAN = "less_than"
    BETWEEN = "between"
    IN = "in"
    NOT_IN = "not_in"
    EXISTS = "exists"
    NOT_EXISTS = "not_exists"


class Confidence(str, Enum):
    """Confidence bucket derived from a match score."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @classmethod
    def from_score(cls, score: float) -> "Confidence":
        if score >= 80:
            return cls.HIGH
        if score >= 60:
            return cls.MEDIUM
        return cls.LOW


_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")


def to_snake_case(key: str) -> str:
    """Convert ``camelCase`` keys (as sent by the CRM front end) to snake_case."""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def _normalize_keys(data: Any, owner: str = "Record") -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise TemplateValidationError(f"{owner} must be an object, got {type(data).__name__}")
    return {to_snake_case(key): value for key, value in data.items()}


def _require(data: Dict[str, Any], key: str, owner: str) -> Any:
    if data.get(key) is None:
        raise TemplateValidationError(f"{owner} is missing required field '{key}'")
    return data[key]


def _parse_list(data: Dict[str, Any], key: str, owner: str) -> List[Any]:
    value = data.get(key)
    if value is None:
        return []
    if not isinstance(value, list):
        raise TemplateValidationError(f"{owner} field '{key}' must be a list")
    return value


def _parse_number(value: Any, field_name: str):
    # JSON booleans are ints in Python; they are never valid numbers here
    if isinstance(value, bool):
        raise TemplateValidationError(f"Invalid {field_name} {value!r}; expected a number")
    if isinstance(value, (int, float)):
        return value
    try:
        return float(value)
    except (TypeError, ValueError):
        raise TemplateValidationError(f"Invalid {field_name} {value!r}; expected a number")


def _parse_int(value: Any, field_name: str) -> int:
    number = _parse_number(value, field_name)
    if not float(number).is_integer():
        raise TemplateValidationError(f"Invalid {field_name} {value!r}; expected an integer")
    return int(number)


def _parse_datetime(value: Any) -> Optional[datetime]:
    if value is None or isinstance(value, datetime):
        return value
    try:
        return datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        raise TemplateValidationError(f"Invalid timestamp {value!r}")


def _parse_enum(enum_cls, value: Any, field_name: str):
    try:
        return enum_cls(value)
    except ValueError:
        raise TemplateValidationError(
            f"Invalid {field_name} '{value}'; expected one of "
            f"{[member.value for member in enum_cls]}"
        )


@dataclass
class TemplateVariable:
    """A placeholder declared by a template."""

    name: str
    type: str = "text"
    required: bool = False
    fallback: Optional[str] = None
    description: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplateVariable":
        data = _normalize_keys(data, "Template variable")
        return cls(
            name=str(_require(data, "name", "Template variable")),
            type=data.get("type", "text"),
            required=bool(data.get("required", False)),
            fallback=data.get("fallback"),
            description=data.get("description", ""),
        )


@dataclass
class TemplateCondition:
    """A weighted predicate over one lead characteristic."""

    id: str
    variable: str
    operator: ConditionOperator
    value: Any = None
    weight: float = 50
    description: Optional[str] = None

    @property
    def label(self) -> str:
        operator = getattr(self.operator, "value", self.operator)
        return f"{self.variable} {operator} {self.value}"

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplateCondition":
        data = _normalize_keys(data, "Template condition")
        variable = str(_require(data, "variable", "Template condition"))
        condition_id = str(data.get("id") or variable)
        operator = _require(data, "operator", f"Condition {condition_id}")
        return cls(
            id=condition_id,
            variable=variable,
            operator=_parse_enum(ConditionOperator, operator, "operator"),
            value=data.get("value"),
            weight=_parse_number(
                data.get("weight", 50), f"weight of condition {condition_id}"
            ),
            description=data.get("description"),
        )


@dataclass
class TemplatePerformance:
    """Historical performance aggregate of a template."""

    usage_count: int = 0
    open_rate: float = 0.0
    click_rate: float = 0.0
    response_rate: float = 0.0
    conversion_rate: float = 0.0
    last_used: Optional[datetime] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "TemplatePerformance":
        data = _normalize_keys(data, "Template performance")
        return cls(
            usage_count=_parse_int(data.get("usage_count", 0), "usage_count"),
            open_rate=float(_parse_number(data.get("open_rate", 0.0), "open_rate")),
            click_rate=float(_parse_number(data.get("click_rate", 0.0), "click_rate")),
            response_rate=float(
                _parse_number(data.get("response_rate", 0.0), "response_rate")
            ),
            conversion_rate=float(
                _parse_number(data.get("conversion_rate", 0.0), "conversion_rate")
            ),
            last_used=_parse_datetime(data.get("last_used")),
        )


@dataclass
class Template:
    """A communication template competing for selection."""

    id: str
    name: str
    category: TemplateCategory
    channel: Channel
    content: str
    status: TemplateStatus = TemplateStatus.ACTIVE
    subject: Optional[str] = None
    variables: List[TemplateVariable] = field(default_factory=list)
    conditions: List[TemplateCondition] = field(default_factory=list)
    priority: int = 5
    is_default: bool = False
    tags: List[str] = field(default_factory=list)
    performance: Optional[TemplatePerformance] = None

    @property
    def last_used(self) -> Optional[datetime]:
        return self.performance.last_used if self.performance else None

    def get_variable(self, name: str) -> Optional[TemplateVariable]:
        return next((v for v in self.variables if v.name == name), None)

    def get_condition(self, condition_id: str) -> Optional[TemplateCondition]:
        return next((c for c in self.conditions if c.id == condition_id), None)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Template":
        """Build a template from a JSON-style mapping (snake or camel case keys)."""
        data = _normalize_keys(data, "Template")
        missing = [key for key in ("id", "name", "category", "channel") if key not in data]
        if missing:
            raise TemplateValidationError(f"Template is missing fields: {missing}")

        owner = f"Template {data['id']}"
        performance = data.get("performance")
        return cls(
            id=str(data["id"]),
            name=data["name"],
            category=_parse_enum(TemplateCategory, data["category"], "category"),
            channel=_parse_enum(Channel, data["channel"], "channel"),
            content=data.get("content", ""),
            status=_parse_enum(
                TemplateStatus, data.get("status", TemplateStatus.ACTIVE.value), "status"
            ),
            subject=data.get("subject"),
            variables=[
                TemplateVariable.from_dict(v) for v in _parse_list(data, "variables", owner)
            ],
            conditions=[
                TemplateCondition.from_dict(c) for c in _parse_list(data, "conditions", owner)
            ],
            priority=_parse_int(data.get("priority", 5), f"priority of {owner}"),
            is_default=bool(data.get("is_default", False)),
            tags=list(_parse_list(data, "tags", owner)),
            performance=TemplatePerformance.from_dict(performance) if performance else None,
        )

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["category"] = self.category.value
        data["channel"] = self.channel.value
        data["status"] = self.status.value
        for condition in data["conditions"]:
            condition["operator"] = condition["operator"].value
        if self.performance and self.performance.last_used:
            data["performance"]["last_used"] = self.performance.last_used.isoformat()
        return data


@dataclass(frozen=True)
class BudgetRange:
    min: float = 0
    max: float = 0


@dataclass(frozen=True)
class LeadCharacteristics:
    """
    Read-only snapshot of a lead used as scoring input.

    Produced by an external lead analyzer; nothing in this package mutates it.
    Unknown or missing attributes stay ``None`` and count as unresolved.
    """

    urgency_level: Optional[str] = None
    timeline: Optional[str] = None
    engagement_level: Optional[str] = None
    lead_score: Optional[float] = None
    property_type: Optional[str] = None
    budget_range: Optional[BudgetRange] = None
    preferred_channel: Optional[str] = None
    lead_stage: Optional[str] = None
    days_since_last_contact: Optional[int] = None
    preferred_content_type: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "LeadCharacteristics":
        data = _normalize_keys(data, "Lead characteristics")
        budget = data.get("budget_range")
        if isinstance(budget, dict):
            budget = BudgetRange(min=budget.get("min", 0), max=budget.get("max", 0))
        return cls(
            urgency_level=data.get("urgency_level"),
            timeline=data.get("timeline"),
            engagement_level=data.get("engagement_level"),
            lead_score=data.get("lead_score"),
            property_type=data.get("property_type"),
            budget_range=budget,
            preferred_channel=data.get("preferred_channel"),
            lead_stage=data.get("lead_stage"),
            days_since_last_contact=data.get("days_since_last_contact"),
            preferred_content_type=data.get("preferred_content_type"),
        )


@dataclass(frozen=True)
class EstimatedPerformance:
    open_rate: float
    response_rate: float
    conversion_rate: float


@dataclass(frozen=True)
class MatchResult:
    """Outcome of scoring one template against one lead."""

    template: Template
    score: float
    confidence: Confidence
    matched_conditions: Tuple[str, ...] = ()
    missing_conditions: Tuple[str, ...] = ()
    reasoning: Tuple[str, ...] = ()
    estimated_performance: Optional[EstimatedPerformance] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": self.template.id,
            "template_name": self.template.name,
            "category": self.template.category.value,
            "channel": self.template.channel.value,
            "score": self.score,
            "confidence": self.confidence.value,
            "matched_conditions": list(self.matched_conditions),
            "missing_conditions": list(self.missing_conditions),
            "reasoning": list(self.reasoning),
            "estimated_performance": (
                asdict(self.estimated_performance)
                if self.estimated_performance
                else None
            ),
        }
