"""Setup command for hud.

Installs hooks and prints shell integration.
"""

import os
import platform

import click

from hud.core.tmux import is_installed as tmux_is_installed
from hud.hooks.install import SHELL_SNIPPETS, install_hooks, uninstall_hooks


@click.command()
@click.option("--remove", is_flag=True, help="Remove hud hooks instead of installing them")
@click.option(
    "--shell",
    "shell_name",
    type=click.Choice(sorted(SHELL_SNIPPETS)),
    default=None,
    help="Shell to print the heartbeat snippet for (default: $SHELL)",
)
def setup(remove: bool, shell_name: str | None) -> None:
    """Set up hud integration with Claude Code.

    This command:

    \b
    1. Installs `hud-hook event` into Claude Code's settings for every
       lifecycle hook the daemon tracks
    2. Prints the prompt hook that sends shell heartbeats, used to
       route to terminals outside tmux
    3. Warns when tmux is missing (routing falls back to shells)

    Examples:

        hud setup

        hud setup --shell bash

        hud setup --remove
    """
    if remove:
        uninstall_hooks()
        click.echo("hud hooks removed from ~/.claude/settings.json")
        return

    added = install_hooks()
    if added:
        click.echo(f"Installed hooks for: {', '.join(added)}")
    else:
        click.echo("hud hooks already installed.")

    if not tmux_is_installed():
        click.echo("tmux not found; routing will rely on shell heartbeats.", err=True)
        if platform.system() == "Darwin":
            click.echo("Install with: brew install tmux", err=True)

    shell_name = shell_name or os.path.basename(os.environ.get("SHELL", ""))
    snippet = SHELL_SNIPPETS.get(shell_name)
    if snippet is None:
        click.echo("Unknown shell; see `hud setup --shell zsh` for the heartbeat hook.")
        return
    click.echo()
    click.echo(f"Add to your {shell_name} rc file:")
    click.echo()
    click.echo(snippet, nl=False)
