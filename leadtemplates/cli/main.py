#!/usr/bin/env python3
"""
leadtemplates CLI
Entry point for template selection and experiment analysis.
"""

import logging
import os

import click
from dotenv import load_dotenv

from leadtemplates import __version__

# Load environment variables
load_dotenv()


@click.group()
@click.version_option(version=__version__, prog_name="leadtemplates")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose logging")
@click.pass_context
def cli(ctx, verbose):
    """
    leadtemplates CLI

    Match communication templates to leads and analyze template experiments.
    """
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    if verbose:
        os.environ["LOG_LEVEL"] = "DEBUG"
        for name in list(logging.root.manager.loggerDict):
            if name.startswith("leadtemplates"):
                logging.getLogger(name).setLevel(logging.DEBUG)


# Import command modules
from .commands import experiment_commands, selection_commands  # noqa: E402

cli.add_command(selection_commands.select)
cli.add_command(experiment_commands.suggest)
cli.add_command(experiment_commands.analyze)
cli.add_command(experiment_commands.serve_metrics)


if __name__ == "__main__":
    cli()
