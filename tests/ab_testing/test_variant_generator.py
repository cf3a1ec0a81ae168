"""
Tests for template variations and experiment variant generation.
"""

import pytest

from leadtemplates.ab_testing.variant_generator import (
    SOCIAL_PROOF_BLOCK,
    ChangeType,
    ExpectedImpact,
    SuggestionType,
    TargetMetric,
    VariantGenerator,
    VariationChange,
    add_social_proof,
    add_urgency_to_subject,
    apply_changes,
    enhance_call_to_action,
    personalize_subject,
    reorder_content,
)
from leadtemplates.exceptions import TemplateValidationError
from leadtemplates.matching.models import (
    ConditionOperator,
    TemplateCondition,
    TemplateVariable,
)


@pytest.fixture
def generator(clock):
    return VariantGenerator(clock=clock)


@pytest.fixture
def base_template(make_template):
    return make_template(
        "listing",
        subject="New listings near you",
        content="Hello there.\n\nWe found amazing homes for you.\n\nCall us today.",
        variables=[TemplateVariable(name="leadName", required=False)],
        conditions=[
            TemplateCondition(
                id="engaged",
                variable="engagement_level",
                operator=ConditionOperator.EQUALS,
                value="high",
                weight=40,
            )
        ],
    )


class TestTextTransforms:
    def test_urgency_prefix(self):
        assert add_urgency_to_subject("New listings near you") == (
            "Limited Time: New listings near you"
        )
        assert add_urgency_to_subject("Urgent new listings") == "Limited Time: new listings"

    def test_personalize_subject(self):
        assert personalize_subject("Your tour") == "{{leadName}}, Your tour"
        assert personalize_subject("Hi {{firstName}}") == "Hi {{firstName}}"

    def test_enhance_call_to_action(self):
        assert enhance_call_to_action("Please call us today") == (
            'Please <strong style="color: #007bff;">CALL US</strong> today'
        )
        assert enhance_call_to_action("Nothing to do") == "Nothing to do"

    def test_social_proof_goes_before_first_call(self):
        content = "Great homes.\nCall us today."
        assert add_social_proof(content) == "Great homes.\n" + SOCIAL_PROOF_BLOCK + "Call us today."
        assert add_social_proof("No action") == "No action" + SOCIAL_PROOF_BLOCK

    def test_reorder_puts_benefits_first(self):
        assert reorder_content("Hello there.\n\nWe offer amazing homes.") == (
            "We offer amazing homes.\n\nHello there."
        )
        assert reorder_content("Single paragraph") == "Single paragraph"


def test_apply_changes_leaves_template_untouched(base_template):
    applied = apply_changes(
        base_template,
        [
            VariationChange(type=ChangeType.SUBJECT, field="subject", new_value="Hi"),
            VariationChange(
                type=ChangeType.VARIABLE, field="leadName", new_value={"required": True}
            ),
            VariationChange(
                type=ChangeType.CONDITION, field="engaged", new_value={"weight": 80}
            ),
        ],
    )

    assert applied["subject"] == "Hi"
    assert applied["variables"][0].required is True
    assert applied["conditions"][0].weight == 80
    assert applied["conditions"][0].operator is ConditionOperator.EQUALS
    assert base_template.subject == "New listings near you"
    assert base_template.variables[0].required is False
    assert base_template.conditions[0].weight == 40


@pytest.mark.parametrize(
    "change",
    [
        VariationChange(type=ChangeType.VARIABLE, field="agentName", new_value={"required": True}),
        VariationChange(type=ChangeType.CONDITION, field="missing", new_value={"weight": 1}),
        VariationChange(type=ChangeType.VARIABLE, field="leadName", new_value={"colour": "red"}),
        VariationChange(type=ChangeType.VARIABLE, field="leadName", new_value="required"),
        VariationChange(type=ChangeType.CONTENT, field="content", new_value=42),
    ],
)
def test_apply_changes_rejects_bad_changes(base_template, change):
    with pytest.raises(TemplateValidationError):
        apply_changes(base_template, [change])


def test_create_variation(generator, base_template, clock):
    variation = generator.create_variation(
        base_template,
        [VariationChange(type=ChangeType.CONTENT, field="content", new_value="Short")],
    )

    assert variation.id.startswith("variation_")
    assert variation.base_template_id == "listing"
    assert variation.name == "Variation of Template listing"
    assert variation.description == "A/B test variation with 1 modifications"
    assert variation.content == "Short"
    assert variation.subject == base_template.subject
    assert variation.created_at == clock.now
    assert variation.is_active is True
    assert generator.get_variations("listing") == [variation]
    assert generator.get_variation("listing", variation.id) is variation
    assert generator.get_variation("listing", "nope") is None


def test_open_rate_suggestions(generator, base_template):
    suggestions = generator.generate_suggestions(base_template, TargetMetric.OPEN_RATE)

    assert [s.description for s in suggestions] == [
        "Add urgency words to subject line",
        "Personalize subject line with lead name",
        "Reorder content sections for better flow",
    ]
    assert suggestions[0].expected_impact is ExpectedImpact.HIGH
    assert suggestions[0].changes[0].new_value == "Limited Time: New listings near you"
    assert suggestions[1].changes[0].new_value == "{{leadName}}, New listings near you"


def test_conversion_rate_suggestions(generator, base_template):
    suggestions = generator.generate_suggestions(
        base_template, TargetMetric.CONVERSION_RATE, count=2
    )

    assert [s.type for s in suggestions] == [
        SuggestionType.CALL_TO_ACTION,
        SuggestionType.STRUCTURE,
    ]
    assert "CALL US" in suggestions[0].changes[0].new_value
    assert suggestions[1].changes[0].new_value.startswith("We found amazing homes")


def test_response_rate_only_gets_reordering(generator, base_template):
    suggestions = generator.generate_suggestions(base_template, "response_rate")
    assert [s.type for s in suggestions] == [SuggestionType.STRUCTURE]
    assert suggestions[0].to_dict()["expected_impact"] == "medium"


def test_generate_test_variants(generator, base_template):
    suggestions = generator.generate_suggestions(base_template, TargetMetric.CLICK_RATE)
    variants = generator.generate_test_variants(base_template, suggestions)

    control = variants[0]
    assert control.id == "listing-control"
    assert control.is_control is True
    assert control.weight == 50
    assert control.content == base_template.content
    assert [v.weight for v in variants[1:]] == [16, 16, 16]
    assert variants[1].name == "Variant 1: Make call-to-action more prominent"
    assert len(generator.get_variations("listing")) == 3


def test_variant_weights_with_two_suggestions(generator, base_template):
    suggestions = generator.generate_suggestions(base_template, TargetMetric.OPEN_RATE, 2)
    variants = generator.generate_test_variants(base_template, suggestions)
    assert sum(v.weight for v in variants) == 100


def test_update_performance_and_compare(generator, base_template):
    short = generator.create_variation(
        base_template,
        [VariationChange(type=ChangeType.CONTENT, field="content", new_value="Short")],
    )
    subject = generator.create_variation(
        base_template,
        [VariationChange(type=ChangeType.SUBJECT, field="subject", new_value="Hi")],
    )

    assert generator.update_variation_performance("listing", short.id, 1000, 30) is True
    assert generator.update_variation_performance("listing", subject.id, 1000, 50) is True
    assert generator.update_variation_performance("listing", "nope", 1, 1) is False
    assert short.performance.conversion_rate == pytest.approx(0.03)

    comparison = generator.compare_variations(base_template, [short, subject])
    by_field = {m.field: m for m in comparison.metrics}

    assert set(by_field) == {"subject", "content_length", "variable_count"}
    assert by_field["content_length"].variations[short.id] == 5
    assert by_field["subject"].variations[subject.id] == "Hi"
    assert all(m.best_performer == subject.id for m in comparison.metrics)


def test_no_best_performer_below_one_percent(generator, base_template):
    variation = generator.create_variation(base_template, [])
    generator.update_variation_performance("listing", variation.id, 1000, 5)

    comparison = generator.compare_variations(base_template, [variation])
    assert all(m.best_performer is None for m in comparison.metrics)


def test_negative_performance_rejected(generator, base_template):
    variation = generator.create_variation(base_template, [])
    with pytest.raises(ValueError):
        generator.update_variation_performance("listing", variation.id, -1, 0)


def test_cleanup_deactivates_stale_variations(generator, base_template, clock):
    old = generator.create_variation(base_template, [])
    clock.advance(days=60)
    fresh = generator.create_variation(base_template, [])
    clock.advance(days=31)

    assert generator.cleanup_old_variations(max_age_days=90) == 1
    assert old.is_active is False
    assert fresh.is_active is True
    # kept for reporting
    assert len(generator.get_variations("listing")) == 2

    stats = generator.statistics()
    assert stats["total_variations"] == 2
    assert stats["active_variations"] == 1
    assert stats["templates_with_variations"] == 1
