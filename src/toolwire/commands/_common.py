"""Helpers shared by the commands that talk to a server."""

from __future__ import annotations

from pathlib import Path

import click

from toolwire.blocking import BlockingClient
from toolwire.config.models import ToolwireConfig
from toolwire.config.parser import ConfigError, load_config
from toolwire.errors import SpawnError, ToolwireError
from toolwire.process.helpers import format_stderr_preview

config_option = click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Path to toolwire.yaml (default: ./toolwire.yaml).",
)


def load_or_exit(config_path: Path | None) -> ToolwireConfig:
    try:
        return load_config(config_path)
    except ConfigError as exc:
        raise click.ClickException(str(exc)) from exc


def connect_or_exit(client: BlockingClient) -> None:
    """Connect, turning any failure into one actionable CLI error."""
    try:
        client.connect()
    except SpawnError as exc:
        client.close()
        msg = f"Could not start tool server: {exc}"
        if exc.exit_code is None and "PATH" not in msg:
            command = client.client.session.config.server.command
            msg += f"\nCheck that '{command}' is installed and the server is configured correctly."
        raise click.ClickException(msg) from exc
    except ToolwireError as exc:
        client.close()
        msg = f"Could not connect to tool server: {exc}"
        stderr = getattr(exc, "stderr", "")
        if stderr and "Stderr" not in msg:
            msg += f"\n  {format_stderr_preview(stderr)}"
        raise click.ClickException(msg) from exc
