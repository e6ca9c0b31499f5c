"""CLI entry point for hud.

Usage:
    hud daemon                # Run the state/routing daemon
    hud status [PATH]         # Show session state
    hud route PATH            # Resolve a project's terminal
    hud watch                 # Follow state changes
    hud replay FILE           # Replay a hook transcript
    hud setup                 # Install Claude Code hooks
"""

import logging

import click

from hud.commands.config import config
from hud.commands.daemon import daemon
from hud.commands.replay import replay
from hud.commands.route import route
from hud.commands.setup import setup
from hud.commands.status import status
from hud.commands.watch import watch

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


@click.group()
@click.option("-v", "--verbose", is_flag=True, envvar="HUD_VERBOSE", help="Debug logging")
@click.version_option(package_name="hud-daemon")
@click.pass_context
def main(ctx: click.Context, verbose: bool) -> None:
    """hud - agent session state and terminal routing.

    Tracks Claude Code sessions per project from lifecycle hooks and works
    out which terminal hosts each one.
    """
    if verbose:
        level = logging.DEBUG
    elif ctx.invoked_subcommand == "daemon":
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format=LOG_FORMAT)


# Register commands
main.add_command(daemon)
main.add_command(status)
main.add_command(route)
main.add_command(watch)
main.add_command(replay)
main.add_command(setup)
main.add_command(config)
