"""Watch command for hud.

Follows the session store as the daemon rewrites it.
"""

import os
from pathlib import Path

import click
import orjson
from watchfiles import watch as watch_paths

from hud.core.config import load_config
from hud.core.models import SessionState, normalize_project_path, utcnow
from hud.core.staleness import with_staleness
from hud.core.store import StateStore


def _emit(store: StateStore, config, key: str | None = None) -> dict:
    """Re-read the whole store and print one JSON line per project."""
    records = store.load()
    now = utcnow()
    for path, record in sorted(records.items()):
        if key and path != key:
            continue
        click.echo(orjson.dumps(with_staleness(record, now, config)).decode())
    return records


@click.command()
@click.option("--project", "project_path", default=None, help="Project to wait on")
@click.option(
    "--until",
    "until_state",
    type=click.Choice([s.value for s in SessionState]),
    default=None,
    help="Exit once the project reaches this state",
)
def watch(project_path: str | None, until_state: str | None) -> None:
    """Print session state every time the store changes.

    The store is re-read wholesale on each change. --project limits output
    to one project; with --until as well, blocks until that project
    reaches the given state.

    Examples:

        hud watch

        hud watch --project ~/code/api --until ready
    """
    if until_state and not project_path:
        click.echo("--until requires --project", err=True)
        raise SystemExit(1)

    config = load_config()
    store = StateStore(config.sessions_path)
    key = None
    if project_path:
        key = normalize_project_path(os.path.abspath(os.path.expanduser(project_path)))

    def reached(records: dict) -> bool:
        record = records.get(key) if key else None
        return bool(until_state and record and record.state.value == until_state)

    if reached(_emit(store, config, key)):
        return

    config.home.mkdir(parents=True, exist_ok=True)
    for changes in watch_paths(config.home):
        if not any(Path(path).name == config.sessions_path.name for _, path in changes):
            continue
        if reached(_emit(store, config, key)):
            return
