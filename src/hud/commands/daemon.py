"""Daemon command for hud.

Runs the session state machine and routing resolver in the foreground.
"""

import logging
import signal

import click

from hud.core.config import load_config
from hud.core.daemon import Daemon, DaemonContext

logger = logging.getLogger(__name__)


@click.command()
@click.pass_context
def daemon(ctx: click.Context) -> None:
    """Run the hud daemon in the foreground.

    Tails hook events and shell heartbeats from the hud home, keeps
    sessions.json current, and republishes routing.json every poll
    interval. Stops on SIGINT or SIGTERM.

    Examples:

        hud daemon

        HUD_POLL_INTERVAL=1 hud -v daemon
    """
    config = load_config()
    context = DaemonContext.create(config)
    runner = Daemon(context)

    signal.signal(signal.SIGTERM, lambda _signum, _frame: runner.stop())
    click.echo(f"hud daemon started (home: {config.home})", err=True)
    try:
        runner.run()
    except KeyboardInterrupt:
        runner.stop()
