"""
Tests for condition evaluation against lead characteristics.
"""

import logging

import pytest

from leadtemplates.matching.condition_evaluator import (
    ConditionEvaluator,
    operand_error,
    resolve_variable,
)
from leadtemplates.matching.models import (
    BudgetRange,
    ConditionOperator,
    LeadCharacteristics,
    TemplateCondition,
)

OP = ConditionOperator


@pytest.fixture
def evaluator():
    return ConditionEvaluator()


@pytest.fixture
def lead():
    return LeadCharacteristics(
        urgency_level="high",
        engagement_level="medium",
        lead_score=85,
        property_type="Luxury Condo",
        budget_range=BudgetRange(min=300_000, max=650_000),
        lead_stage="qualified",
    )


def condition(variable, operator, value=None, weight=50, condition_id=None):
    return TemplateCondition(
        id=condition_id or variable,
        variable=variable,
        operator=operator,
        value=value,
        weight=weight,
    )


@pytest.mark.parametrize(
    "variable,operator,value,expected",
    [
        ("urgency_level", OP.EQUALS, "high", True),
        ("urgency_level", OP.EQUALS, "High", False),
        ("urgency_level", OP.NOT_EQUALS, "low", True),
        ("property_type", OP.CONTAINS, "condo", True),
        ("property_type", OP.NOT_CONTAINS, "ranch", True),
        ("lead_score", OP.GREATER_THAN, 80, True),
        ("lead_score", OP.GREATER_THAN, "90", False),
        ("lead_score", OP.LESS_THAN, 90, True),
        ("lead_score", OP.BETWEEN, [80, 90], True),
        ("lead_score", OP.BETWEEN, [85, 85], True),
        ("lead_score", OP.BETWEEN, [90, 100], False),
        ("engagement_level", OP.IN, ["medium", "high"], True),
        ("engagement_level", OP.NOT_IN, ["medium", "high"], False),
        ("lead_stage", OP.EXISTS, None, True),
        ("lead_stage", OP.NOT_EXISTS, None, False),
    ],
)
def test_operators(evaluator, lead, variable, operator, value, expected):
    assert evaluator.evaluate(condition(variable, operator, value), lead) is expected


def test_unresolved_variable_only_satisfies_not_exists(evaluator, lead):
    for operator in OP:
        result = evaluator.evaluate(condition("timeline", operator, "immediate"), lead)
        assert result is (operator is OP.NOT_EXISTS)


def test_unknown_variable_is_unresolved(evaluator, lead):
    assert resolve_variable("favorite_color", lead) is None
    assert evaluator.evaluate(condition("favorite_color", OP.EXISTS), lead) is False
    assert evaluator.evaluate(condition("favorite_color", OP.NOT_EXISTS), lead) is True


def test_camel_case_and_budget_variables(lead):
    assert resolve_variable("leadScore", lead) == 85
    assert resolve_variable("budget", lead) == 650_000
    assert resolve_variable("budgetMin", lead) == 300_000
    assert resolve_variable("budget_max", LeadCharacteristics()) is None


def test_equality_keeps_booleans_and_numbers_apart(evaluator):
    lead = LeadCharacteristics(lead_score=1)
    assert evaluator.evaluate(condition("lead_score", OP.EQUALS, True), lead) is False
    assert evaluator.evaluate(condition("lead_score", OP.EQUALS, 1), lead) is True
    assert evaluator.evaluate(condition("lead_score", OP.IN, [True]), lead) is False


def test_non_numeric_comparison_fails_closed(evaluator, lead, caplog):
    with caplog.at_level(logging.WARNING):
        result = evaluator.evaluate(
            condition("urgency_level", OP.GREATER_THAN, 10), lead
        )
    assert result is False
    assert any("Could not evaluate" in r.getMessage() for r in caplog.records)


@pytest.mark.parametrize(
    "operator,value",
    [
        (OP.BETWEEN, [80]),
        (OP.BETWEEN, "80-90"),
        (OP.IN, "medium"),
        (OP.NOT_IN, None),
    ],
)
def test_malformed_operand_fails_closed(evaluator, lead, operator, value, caplog):
    cond = condition("lead_score", operator, value)
    assert operand_error(cond) is not None
    with caplog.at_level(logging.WARNING):
        assert evaluator.evaluate(cond, lead) is False
    assert any("Malformed operand" in r.getMessage() for r in caplog.records)


def test_unknown_operator_fails_closed(evaluator, lead, caplog):
    cond = condition("lead_score", "roughly", 85)
    with caplog.at_level(logging.WARNING):
        assert evaluator.evaluate(cond, lead) is False
    assert any("Unknown condition operator" in r.getMessage() for r in caplog.records)


def test_evaluate_all_weights(evaluator, lead):
    conditions = [
        condition("lead_score", OP.GREATER_THAN, 70, weight=60),
        condition("timeline", OP.EQUALS, "immediate", weight=40),
    ]
    report = evaluator.evaluate_all(conditions, lead)

    assert report.matched == ("lead_score greater_than 70",)
    assert report.missing == ("timeline equals immediate",)
    assert report.satisfied_weight == 60
    assert report.total_weight == 100
    assert report.fraction == pytest.approx(0.6)


def test_evaluate_all_ignores_negative_weights(evaluator, lead):
    conditions = [
        condition("lead_score", OP.GREATER_THAN, 70, weight=-10),
        condition("urgency_level", OP.EQUALS, "high", weight=30),
    ]
    report = evaluator.evaluate_all(conditions, lead)
    assert report.total_weight == 30
    assert report.fraction == 1.0


def test_evaluate_all_without_conditions(evaluator, lead):
    report = evaluator.evaluate_all([], lead)
    assert report.matched == ()
    assert report.fraction == 0.0
