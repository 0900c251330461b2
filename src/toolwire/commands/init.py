"""toolwire init: scaffold a toolwire.yaml in the current directory."""

from __future__ import annotations

from pathlib import Path

import click

CONFIG_FILENAME = "toolwire.yaml"
ENV_EXAMPLE_FILENAME = ".env.example"

TEMPLATE_YAML = """\
# toolwire configuration
version: "1"

# The tool server to launch.  Arguments are passed verbatim (no shell);
# ${VAR} references are expanded from the environment and ./.env.
server:
  name: unity-mcp
  command: npx
  args: ["-y", "@spark-apps/unity-mcp"]
  # cwd: .             # relative to this file
  # env:
  #   UNITY_PORT: "${UNITY_PORT}"

# Identity sent in the initialize handshake
# client:
#   name: toolwire
#   protocol_version: "2024-11-05"
#   send_initialized: true

# Deadlines in seconds
timeouts:
  startup_grace: 0.5   # detect a crash on launch
  handshake: 10        # initialize + first tools/list
  call: 10             # default per tools/call
  stop_grace: 2        # after closing stdin, before SIGTERM

# limits:
#   max_pending: 32

# Record every JSON-RPC message to ./transcripts/*.jsonl
transcript:
  enabled: false
"""

TEMPLATE_ENV_EXAMPLE = """\
# Environment for the tool server.
# Copy this file to .env; toolwire loads it before expanding ${VAR}
# references in toolwire.yaml.

UNITY_PORT=
"""


@click.command()
@click.option(
    "--force",
    is_flag=True,
    help="Overwrite existing toolwire.yaml if it exists.",
)
def init(force: bool) -> None:
    """Scaffold a toolwire.yaml in the current directory."""
    cwd = Path.cwd()
    config_path = cwd / CONFIG_FILENAME
    env_example_path = cwd / ENV_EXAMPLE_FILENAME

    if config_path.exists() and not force:
        raise click.ClickException(
            f"{CONFIG_FILENAME} already exists. Use --force to overwrite."
        )

    try:
        config_path.write_text(TEMPLATE_YAML, encoding="utf-8")
    except OSError as exc:
        raise click.ClickException(f"Cannot write {CONFIG_FILENAME}: {exc}") from exc
    click.echo(f"  Created {CONFIG_FILENAME}")

    if not env_example_path.exists() or force:
        try:
            env_example_path.write_text(TEMPLATE_ENV_EXAMPLE, encoding="utf-8")
        except OSError as exc:
            raise click.ClickException(
                f"Cannot write {ENV_EXAMPLE_FILENAME}: {exc}"
            ) from exc
        click.echo(f"  Created {ENV_EXAMPLE_FILENAME}")
    else:
        click.echo(f"  Skipped {ENV_EXAMPLE_FILENAME} (already exists)")

    click.echo()
    click.echo("Next steps:")
    click.echo(f"  1. Edit {CONFIG_FILENAME} to point at your tool server")
    click.echo("  2. Run `toolwire tools` to check the connection")
    click.echo("  3. Run `toolwire call <tool> '<json args>'` to invoke a tool")
