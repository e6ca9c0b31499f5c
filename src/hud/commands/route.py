"""Route command for hud.

Resolves which terminal hosts a project's agent session.
"""

import os

import click
import orjson

from hud.core.config import load_config
from hud.core.daemon import DaemonContext, LogTailer
from hud.core.models import normalize_project_path
from hud.core.store import RoutingFeed


@click.command()
@click.argument("project_path")
@click.option("--cached", is_flag=True, help="Read the daemon's published snapshot instead of resolving")
@click.option("--evidence", is_flag=True, help="Include the shell heartbeats considered")
def route(project_path: str, cached: bool, evidence: bool) -> None:
    """Show the routing snapshot for a project as JSON.

    By default the snapshot is resolved now from tmux and the recorded shell
    heartbeats. With --cached, the last snapshot published by the daemon is
    printed instead. Resolving reads the shell heartbeat log only and never
    rewrites sessions.json.

    Examples:

        hud route ~/code/api

        hud route --cached ~/code/api

        hud route --evidence ~/code/api
    """
    config = load_config()
    key = normalize_project_path(os.path.abspath(os.path.expanduser(project_path)))

    if cached:
        published = RoutingFeed(config.routing_path).load().get(key)
        if published is None:
            click.echo(f"No routing snapshot for {key}", err=True)
            raise SystemExit(1)
        click.echo(orjson.dumps(published).decode())
        return

    context = DaemonContext.create(config)
    LogTailer(config.shells_path, context.ingest_shell).poll()
    snapshot = context.resolver.snapshot(key)
    result = snapshot.to_dict()
    if evidence:
        result["shells"] = [shell.to_dict() for shell in context.evidence.shells_for(key)]
    click.echo(orjson.dumps(result).decode())
