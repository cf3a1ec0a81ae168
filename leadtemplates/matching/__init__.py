"""
Template matching: condition evaluation, rule-based scoring and selection.
"""

from leadtemplates.matching.catalog import (
    InMemoryTemplateCatalog,
    TemplateCatalog,
    TemplateFilter,
    validate_template,
)
from leadtemplates.matching.condition_evaluator import ConditionEvaluator
from leadtemplates.matching.models import (
    BudgetRange,
    Channel,
    ConditionOperator,
    Confidence,
    LeadCharacteristics,
    MatchResult,
    Template,
    TemplateCategory,
    TemplateCondition,
    TemplatePerformance,
    TemplateStatus,
    TemplateVariable,
)
from leadtemplates.matching.rule_config import (
    RuleCatalogConfig,
    RuleCatalogParser,
    load_rule_config,
)
from leadtemplates.matching.rules import MatchingRule, RuleId
from leadtemplates.matching.scorer import TemplateScorer
from leadtemplates.matching.selector import (
    Recommendation,
    SelectionOptions,
    TemplateSelector,
)

__all__ = [
    "BudgetRange",
    "Channel",
    "ConditionEvaluator",
    "ConditionOperator",
    "Confidence",
    "InMemoryTemplateCatalog",
    "LeadCharacteristics",
    "MatchResult",
    "MatchingRule",
    "Recommendation",
    "RuleCatalogConfig",
    "RuleCatalogParser",
    "RuleId",
    "SelectionOptions",
    "Template",
    "TemplateCatalog",
    "TemplateCategory",
    "TemplateCondition",
    "TemplateFilter",
    "TemplatePerformance",
    "TemplateScorer",
    "TemplateSelector",
    "TemplateStatus",
    "TemplateVariable",
    "load_rule_config",
    "validate_template",
]
