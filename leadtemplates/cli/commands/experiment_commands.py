"""
CLI commands for template experiments.
"""

import time

import click

from leadtemplates.ab_testing.variant_generator import TargetMetric
from leadtemplates.config import get_config
from leadtemplates.engine import TemplateEngine
from leadtemplates.exceptions import TemplateValidationError
from leadtemplates.matching.models import Template
from leadtemplates.utils.logging import get_logger
from leadtemplates.utils.metrics import start_metrics_server

from .common import echo_json, load_json_file

logger = get_logger(__name__)


@click.command()
@click.option(
    "--template",
    "template_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with the base template",
)
@click.option(
    "--metric",
    type=click.Choice([m.value for m in TargetMetric]),
    default=TargetMetric.CONVERSION_RATE.value,
    show_default=True,
    help="Metric the variations should improve",
)
@click.option("--count", default=3, show_default=True, type=int, help="Number of suggestions")
def suggest(template_path, metric, count):
    """Suggest variations of a template and the resulting test variants."""
    try:
        template = Template.from_dict(load_json_file(template_path))
        experiment = TemplateEngine().start_experiment(template, TargetMetric(metric), count)
    except TemplateValidationError as e:
        raise click.ClickException(str(e))

    echo_json(
        {
            "test_id": experiment.test_id,
            "template_id": experiment.template_id,
            "target_metric": experiment.target_metric.value,
            "suggestions": [s.to_dict() for s in experiment.suggestions],
            "variants": [v.to_dict() for v in experiment.variants],
        }
    )


@click.command()
@click.option(
    "--events",
    "events_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON list of {variant_id, metric, count} records",
)
@click.option("--test-id", required=True, help="Experiment id to analyze")
@click.option("--control", help="Variant id of the control")
def analyze(events_path, test_id, control):
    """Replay recorded events and print statistics, the verdict and alerts as JSON."""
    events = load_json_file(events_path)
    if not isinstance(events, list):
        raise click.ClickException("--events must contain a JSON list")

    # Alerts are evaluated once after the replay, not once per event
    engine = TemplateEngine(alert_on_track=False)
    variant_ids = []
    try:
        for event in events:
            variant_id = event["variant_id"]
            engine.track_batch(test_id, variant_id, {event["metric"]: event.get("count", 1)})
            if variant_id not in variant_ids:
                variant_ids.append(variant_id)
    except (KeyError, TypeError, ValueError) as e:
        raise click.ClickException(f"Invalid event record: {e}")

    if control and control not in variant_ids:
        raise click.ClickException(f"Control variant '{control}' has no events")

    conclusion = engine.analyzer.conclude(test_id, variant_ids, control_id=control)
    engine.check_alerts(test_id)
    snapshot = engine.tracker.current_snapshot(test_id)

    echo_json(
        {
            "test_id": test_id,
            "snapshot": snapshot.to_dict() if snapshot else None,
            "analysis": [a.to_dict() for a in conclusion.variants],
            "winner": conclusion.winner,
            "recommendation": conclusion.recommendation.value,
            "alerts": [a.to_dict() for a in engine.active_alerts(test_id)],
        }
    )


@click.command(name="serve-metrics")
@click.option("--port", type=int, help="Port to expose metrics on (default: METRICS_PORT)")
def serve_metrics(port):
    """Expose Prometheus metrics until interrupted."""
    port = port or get_config()["METRICS_PORT"]
    if not start_metrics_server(port):
        raise click.ClickException(f"Could not start metrics server on port {port}")

    click.echo(f"Serving metrics on port {port}; press Ctrl+C to stop")
    try:
        while True:
            time.sleep(1)
    except KeyboardInterrupt:
        logger.info("Metrics server stopped")
