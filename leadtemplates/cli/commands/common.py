"""
Helpers shared by the CLI commands.
"""

import json
from typing import Any

import click


def load_json_file(path: str) -> Any:
    """Read a JSON document, turning parse errors into a clean CLI error."""
    try:
        with open(path) as f:
            return json.load(f)
    except json.JSONDecodeError as e:
        raise click.ClickException(f"{path} is not valid JSON: {e}")


def echo_json(data: Any) -> None:
    click.echo(json.dumps(data, indent=2, default=str))
