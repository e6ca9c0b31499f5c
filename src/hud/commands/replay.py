"""Replay command for hud.

Runs a transcript of hook events through a fresh state machine.
"""

import click
import orjson

from hud.core.evidence import MalformedEventError, parse_hook_event
from hud.core.state import replay as replay_events


@click.command()
@click.argument("transcript", type=click.Path(exists=True, dir_okay=False))
def replay(transcript: str) -> None:
    """Replay hook events from a JSON-lines file.

    Every project starts at idle. Prints the final state per project and
    the number of state changes. Malformed lines are reported and skipped.

    Examples:

        hud replay ~/.hud/events.jsonl
    """
    events = []
    with open(transcript, "rb") as f:
        for lineno, line in enumerate(f, start=1):
            if not line.strip():
                continue
            try:
                events.append(parse_hook_event(orjson.loads(line)))
            except (orjson.JSONDecodeError, MalformedEventError) as e:
                click.echo(f"line {lineno}: skipped ({e})", err=True)

    records, changes = replay_events(events)
    result = {
        "events": len(events),
        "stateChanges": changes,
        "projects": {path: record.to_dict() for path, record in sorted(records.items())},
    }
    click.echo(orjson.dumps(result, option=orjson.OPT_INDENT_2).decode())
