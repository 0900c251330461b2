"""toolwire call: invoke one tool and print its text result."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import click

from toolwire.blocking import BlockingClient
from toolwire.commands._common import config_option, connect_or_exit, load_or_exit
from toolwire.errors import ToolError


def _parse_arguments(raw: str | None) -> dict[str, Any]:
    if raw is None:
        return {}
    try:
        value = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise click.BadParameter(f"not valid JSON: {exc.msg}") from exc
    if not isinstance(value, dict):
        raise click.BadParameter("must be a JSON object")
    return value


@click.command()
@click.argument("name")
@click.argument("arguments", required=False)
@config_option
@click.option(
    "--timeout",
    type=float,
    default=None,
    help="Seconds to wait for the result (default: timeouts.call).",
)
def call(
    name: str,
    arguments: str | None,
    config_path: Path | None,
    timeout: float | None,
) -> None:
    """Call tool NAME with ARGUMENTS (a JSON object) and print the result."""
    try:
        args = _parse_arguments(arguments)
    except click.BadParameter as exc:
        exc.param_hint = "'ARGUMENTS'"
        raise

    config = load_or_exit(config_path)

    with BlockingClient(config) as client:
        connect_or_exit(client)
        try:
            text = client.call_tool(name, args, timeout=timeout)
        except ToolError as exc:
            raise click.ClickException(f"{name} failed ({exc.kind.value}): {exc}") from exc

    click.echo(text)
