"""
Tests for the leadtemplates command line interface.
"""

import json

import pytest
from click.testing import CliRunner

from leadtemplates import __version__
from leadtemplates.cli.main import cli

TEMPLATES = [
    {
        "id": "follow-up",
        "name": "Follow up",
        "category": "follow_up",
        "channel": "email",
        "subject": "Checking in",
        "content": "Hi {{leadName}}, checking in about your search.",
    },
    {
        "id": "intro",
        "name": "Intro",
        "category": "initial_contact",
        "channel": "email",
        "subject": "Welcome",
        "content": "Thanks for reaching out. Call us any time.",
    },
]

LEAD = {
    "urgencyLevel": "high",
    "timeline": "1-3 months",
    "engagementLevel": "high",
    "leadScore": 85,
    "preferredChannel": "email",
    "leadStage": "new",
    "daysSinceLastContact": 3,
}


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def files(tmp_path):
    def _write(name, data):
        path = tmp_path / name
        path.write_text(json.dumps(data))
        return str(path)

    return _write


def test_help_and_version(runner):
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    for command in ("select", "suggest", "analyze", "serve-metrics"):
        assert command in result.output

    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert __version__ in result.output


def test_select(runner, files):
    result = runner.invoke(
        cli,
        ["select", "--lead", files("lead.json", LEAD), "--templates", files("t.json", TEMPLATES)],
    )

    assert result.exit_code == 0, result.output
    matches = json.loads(result.stdout)["matches"]
    assert [m["template_id"] for m in matches] == ["follow-up", "intro"]
    assert matches[0]["score"] == 68
    assert matches[0]["confidence"] == "medium"


def test_select_with_filters(runner, files):
    result = runner.invoke(
        cli,
        [
            "select",
            "--lead", files("lead.json", LEAD),
            "--templates", files("t.json", TEMPLATES),
            "--category", "initial_contact",
            "--channel", "email",
            "--min-score", "90",
        ],
    )

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["matches"] == []
    assert data["fallback_template_id"] is None


def test_select_include_fallbacks(runner, files):
    result = runner.invoke(
        cli,
        [
            "select",
            "--lead", files("lead.json", LEAD),
            "--templates", files("t.json", TEMPLATES),
            "--min-score", "90",
            "--include-fallbacks",
            "--max-results", "1",
        ],
    )

    assert result.exit_code == 0, result.output
    assert [m["template_id"] for m in json.loads(result.stdout)["matches"]] == ["follow-up"]


def test_select_rejects_invalid_templates(runner, files):
    bad = [dict(TEMPLATES[0], priority=0)]
    result = runner.invoke(
        cli, ["select", "--lead", files("lead.json", LEAD), "--templates", files("t.json", bad)]
    )
    assert result.exit_code == 1
    assert "number in 1-10" in result.output


def test_select_rejects_invalid_json(runner, files, tmp_path):
    broken = tmp_path / "broken.json"
    broken.write_text("{not json")
    result = runner.invoke(
        cli, ["select", "--lead", str(broken), "--templates", files("t.json", TEMPLATES)]
    )
    assert result.exit_code == 1
    assert "not valid JSON" in result.output


def test_suggest(runner, files):
    result = runner.invoke(
        cli,
        ["suggest", "--template", files("tpl.json", TEMPLATES[1]), "--metric", "open_rate", "--count", "2"],
    )

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["template_id"] == "intro"
    assert data["target_metric"] == "open_rate"
    assert [s["description"] for s in data["suggestions"]] == [
        "Add urgency words to subject line",
        "Personalize subject line with lead name",
    ]
    assert data["variants"][0]["id"] == "intro-control"
    assert [v["weight"] for v in data["variants"]] == [50, 25, 25]
    assert data["variants"][1]["subject"] == "Limited Time: Welcome"


def test_analyze(runner, files):
    events = [
        {"variant_id": "A", "metric": "impressions", "count": 1000},
        {"variant_id": "A", "metric": "conversions", "count": 50},
        {"variant_id": "B", "metric": "impressions", "count": 1000},
        {"variant_id": "B", "metric": "conversions", "count": 100},
    ]
    result = runner.invoke(
        cli,
        ["analyze", "--events", files("events.json", events), "--test-id", "exp-1", "--control", "A"],
    )

    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    analysis = {a["variant_id"]: a for a in data["analysis"]}
    assert analysis["A"]["is_control"] is True
    assert analysis["B"]["relative_improvement"] == pytest.approx(100.0)
    assert data["snapshot"]["overall"]["total_impressions"] == 2000
    assert data["winner"] == "B"
    assert data["recommendation"] == "conclude"
    assert [a["type"] for a in data["alerts"]] == ["early_winner"]


def test_analyze_rejects_unknown_metric(runner, files):
    events = [{"variant_id": "A", "metric": "likes", "count": 1}]
    result = runner.invoke(
        cli, ["analyze", "--events", files("events.json", events), "--test-id", "exp-1"]
    )
    assert result.exit_code == 1
    assert "Invalid event record" in result.output


def test_analyze_rejects_fractional_counts(runner, files):
    events = [{"variant_id": "A", "metric": "impressions", "count": 2.5}]
    result = runner.invoke(
        cli, ["analyze", "--events", files("events.json", events), "--test-id", "exp-1"]
    )
    assert result.exit_code == 1
    assert "must be an integer" in result.output


def test_analyze_rejects_unknown_control(runner, files):
    events = [{"variant_id": "A", "metric": "impressions"}]
    result = runner.invoke(
        cli,
        ["analyze", "--events", files("events.json", events), "--test-id", "exp-1", "--control", "Z"],
    )
    assert result.exit_code == 1
    assert "Control variant 'Z' has no events" in result.output


def test_serve_metrics_reports_bind_failure(runner, mocker):
    start = mocker.patch(
        "leadtemplates.cli.commands.experiment_commands.start_metrics_server",
        return_value=False,
    )
    result = runner.invoke(cli, ["serve-metrics", "--port", "9999"])

    start.assert_called_once_with(9999)
    assert result.exit_code == 1
    assert "Could not start metrics server on port 9999" in result.output


def test_select_reports_malformed_conditions(runner, files):
    bad = [dict(TEMPLATES[0], conditions=[{"variable": "lead_score", "value": 70}])]
    result = runner.invoke(
        cli, ["select", "--lead", files("lead.json", LEAD), "--templates", files("t.json", bad)]
    )
    assert result.exit_code == 1
    assert "missing required field 'operator'" in result.output
