"""toolwire tools: connect and print the server's tool catalog."""

from __future__ import annotations

import json
from pathlib import Path

import click

from toolwire.blocking import BlockingClient
from toolwire.commands._common import config_option, connect_or_exit, load_or_exit


@click.command()
@config_option
@click.option("--json", "as_json", is_flag=True, help="Print the catalog as JSON.")
def tools(config_path: Path | None, as_json: bool) -> None:
    """List the tools advertised by the configured server."""
    config = load_or_exit(config_path)

    with BlockingClient(config) as client:
        connect_or_exit(client)
        catalog = client.list_tools()
        info = client.client.server_info

    if as_json:
        payload = [t.model_dump(by_alias=True) for t in catalog]
        click.echo(json.dumps(payload, indent=2))
        return

    server_label = config.server.name
    if info is not None and info.server_name:
        server_label = f"{info.server_name} {info.server_version or ''}".strip()
    click.echo(f"{server_label}: {len(catalog)} tool(s)")
    for tool in catalog:
        summary = tool.description.splitlines()[0] if tool.description else ""
        click.echo(f"  {tool.name}" + (f"  {summary}" if summary else ""))
