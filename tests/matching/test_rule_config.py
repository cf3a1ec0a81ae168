"""
Tests for loading the matching rule catalog from YAML.
"""

import pytest
import yaml
from pydantic import ValidationError

from leadtemplates.matching.models import TemplateCategory
from leadtemplates.matching.rule_config import (
    DEFAULT_RULES_PATH,
    RuleCatalogConfig,
    RuleCatalogParser,
    load_rule_config,
)


def test_packaged_file_matches_defaults():
    config = RuleCatalogParser(DEFAULT_RULES_PATH).load_and_validate()
    assert config == RuleCatalogConfig()


def test_no_path_returns_defaults():
    assert load_rule_config(None) == RuleCatalogConfig()


def test_partial_override(tmp_path):
    path = tmp_path / "rules.yml"
    path.write_text(
        "channel_points: 12\n"
        "timeline:\n"
        "  categories:\n"
        "    immediate: [initial_contact]\n"
        "  points:\n"
        "    immediate: 30\n"
        "disabled_rules: [budget_match]\n"
    )

    config = load_rule_config(path)

    assert config.channel_points == 12
    assert config.timeline.categories == {"immediate": [TemplateCategory.INITIAL_CONTACT]}
    assert config.timeline.points == {"immediate": 30}
    assert config.disabled_rules == ["budget_match"]
    # untouched sections keep their defaults
    assert config.engagement == RuleCatalogConfig().engagement


def test_empty_file_gives_defaults(tmp_path):
    path = tmp_path / "rules.yml"
    path.write_text("")
    assert load_rule_config(path) == RuleCatalogConfig()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        load_rule_config(tmp_path / "nope.yml")


def test_invalid_yaml(tmp_path):
    path = tmp_path / "rules.yml"
    path.write_text("timeline: [unclosed\n")
    with pytest.raises(yaml.YAMLError):
        load_rule_config(path)


@pytest.mark.parametrize(
    "content",
    [
        "lead_score:\n  low_threshold: 80\n  high_threshold: 30\n",
        "engagement:\n  points:\n    high: 150\n",
        "urgency_categories: [cold_call]\n",
        "condition_points: -5\n",
    ],
)
def test_invalid_values_are_rejected(tmp_path, content):
    path = tmp_path / "rules.yml"
    path.write_text(content)
    with pytest.raises(ValidationError):
        load_rule_config(path)
