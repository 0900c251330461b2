"""Root CLI group and version flag."""

import logging

import click

from toolwire import __version__
from toolwire.commands.call import call
from toolwire.commands.init import init
from toolwire.commands.tools import tools


@click.group()
@click.version_option(version=__version__, prog_name="toolwire")
@click.option(
    "-v",
    "--verbose",
    is_flag=True,
    help="Log protocol traffic and peer stderr at debug level.",
)
def cli(verbose: bool) -> None:
    """toolwire — talk to a stdio tool server from the command line."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )


cli.add_command(init)
cli.add_command(tools)
cli.add_command(call)
