"""Status command for hud.

Prints persisted session state with the derived staleness flag.
"""

import os

import click
import orjson

from hud.core.config import load_config
from hud.core.models import normalize_project_path, utcnow
from hud.core.staleness import with_staleness
from hud.core.store import StateStore


@click.command()
@click.argument("project_path", required=False)
@click.option("--stale-only", is_flag=True, help="Only show records flagged stale")
def status(project_path: str | None, stale_only: bool) -> None:
    """Show session state per project as JSON.

    PROJECT_PATH limits output to one project.

    Examples:

        hud status

        hud status ~/code/api

        hud status --stale-only
    """
    config = load_config()
    records = StateStore(config.sessions_path).load()
    now = utcnow()

    if project_path:
        key = normalize_project_path(os.path.abspath(os.path.expanduser(project_path)))
        record = records.get(key)
        if record is None:
            click.echo(f"Project {key} not found", err=True)
            raise SystemExit(1)
        click.echo(orjson.dumps(with_staleness(record, now, config)).decode())
        return

    rows = [with_staleness(r, now, config) for _, r in sorted(records.items())]
    if stale_only:
        rows = [row for row in rows if row["stale"]]
    click.echo(orjson.dumps(rows, option=orjson.OPT_INDENT_2).decode())
