"""
CLI command for template selection.
"""

import click

from leadtemplates.engine import TemplateEngine
from leadtemplates.exceptions import TemplateValidationError
from leadtemplates.matching.models import (
    Channel,
    LeadCharacteristics,
    Template,
    TemplateCategory,
)
from leadtemplates.matching.selector import SelectionOptions
from leadtemplates.utils.logging import get_logger

from .common import echo_json, load_json_file

logger = get_logger(__name__)


@click.command()
@click.option(
    "--lead",
    "lead_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with the lead characteristics",
)
@click.option(
    "--templates",
    "templates_path",
    required=True,
    type=click.Path(exists=True, dir_okay=False),
    help="JSON file with a list of templates",
)
@click.option("--category", type=click.Choice([c.value for c in TemplateCategory]))
@click.option("--channel", type=click.Choice([c.value for c in Channel]))
@click.option("--min-score", type=float, help="Minimum match score (default: 0)")
@click.option("--max-results", type=int, help="Maximum matches to return (default: 5)")
@click.option(
    "--include-fallbacks",
    is_flag=True,
    help="Return the top candidates when none reaches the minimum score",
)
def select(
    lead_path,
    templates_path,
    category,
    channel,
    min_score,
    max_results,
    include_fallbacks,
):
    """Rank templates for a lead and print the matches as JSON."""
    raw_templates = load_json_file(templates_path)
    if not isinstance(raw_templates, list):
        raise click.ClickException("--templates must contain a JSON list")

    try:
        characteristics = LeadCharacteristics.from_dict(load_json_file(lead_path))
        engine = TemplateEngine()
        for raw in raw_templates:
            engine.add_template(Template.from_dict(raw))
    except TemplateValidationError as e:
        raise click.ClickException(str(e))

    options = SelectionOptions(
        category=TemplateCategory(category) if category else None,
        channel=Channel(channel) if channel else None,
        min_score=min_score,
        max_results=max_results,
        include_fallbacks=include_fallbacks,
    )
    matches = engine.select(characteristics, options)

    result = {"matches": [match.to_dict() for match in matches]}
    if not matches and category and channel:
        fallback = engine.fallback_template(options.category, options.channel)
        result["fallback_template_id"] = fallback.id if fallback else None

    logger.info(f"Selected {len(matches)} templates")
    echo_json(result)
