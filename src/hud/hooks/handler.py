"""Hook handler for Claude Code and shell integration.

This module provides the `hud-hook` CLI command. Claude Code calls
``hud-hook event`` for every lifecycle hook; the user's shell prompt calls
``hud-hook shell``. Both append one JSON line to a log in the hud home that
the daemon tails.

Hooks must never break the agent or the prompt, so both commands exit 0
even when they cannot record anything.

Entry point defined in pyproject.toml:
    hud-hook = "hud.hooks.handler:main"
"""

import fcntl
import os
import sys
from pathlib import Path

import click
import orjson

from hud.core.config import get_hud_home, load_config
from hud.core.models import format_timestamp, utcnow
from hud.core.project import resolve_project_path
from hud.core.tmux import get_current_session

DEBUG_ENV = "HUD_DEBUG"

# Claude Code hook input key -> hud wire key
EVENT_FIELDS = {
    "hook_event_name": "hookEventType",
    "session_id": "sessionId",
    "cwd": "cwd",
    "tool_name": "toolName",
    "notification_type": "notificationType",
    "message": "message",
    "stop_hook_active": "stop_hook_active",
    "source": "source",
    "reason": "reason",
}


def read_stdin_json() -> dict:
    """Read and parse JSON from stdin."""
    try:
        data = sys.stdin.read()
        if not data:
            return {}
        parsed = orjson.loads(data)
    except (orjson.JSONDecodeError, ValueError):
        return {}
    return parsed if isinstance(parsed, dict) else {}


def to_wire_event(data: dict, cwd: str) -> dict:
    """Reduce Claude Code hook input to the fields the daemon reads.

    Tool inputs and prompts can be large and are never needed for state, so
    only whitelisted keys are kept.
    """
    event = {wire: data[key] for key, wire in EVENT_FIELDS.items() if key in data}
    for key in ("hookEventType", "sessionId", "projectPath", "notificationType", "timestamp"):
        if key in data:
            event[key] = data[key]
    event.setdefault("cwd", cwd)
    if "projectPath" not in event:
        project = resolve_project_path(event.get("cwd"))
        if project:
            event["projectPath"] = project
    event.setdefault("timestamp", format_timestamp(utcnow()))
    return event


def append_line(path: Path, record: dict) -> None:
    """Append one JSON line under an exclusive lock."""
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("ab") as f:
        fcntl.flock(f, fcntl.LOCK_EX)
        try:
            f.write(orjson.dumps(record) + b"\n")
        finally:
            fcntl.flock(f, fcntl.LOCK_UN)


def _report(message: str) -> None:
    if os.environ.get(DEBUG_ENV):
        click.echo(f"hud-hook: {message}", err=True)


@click.group()
def main() -> None:
    """Hook handler for Claude Code and shell integration."""
    pass


@main.command()
def event() -> None:
    """Record a Claude Code hook event read from stdin."""
    data = read_stdin_json()
    if not data:
        _report("no hook input on stdin")
        return

    record = to_wire_event(data, os.getcwd())
    config = load_config(get_hud_home())
    try:
        append_line(config.events_path, record)
    except OSError as e:
        _report(f"could not record event: {e}")


def _current_tty() -> str | None:
    for fd in (0, 1, 2):
        try:
            return os.ttyname(fd)
        except OSError:
            continue
    return None


@main.command()
@click.option("--pid", type=int, default=None, help="Shell pid (default: parent pid)")
@click.option("--tty", "tty", default=None, help="Shell tty (default: from stdio)")
@click.option("--parent-app", default=None, envvar="TERM_PROGRAM", help="Hosting terminal app")
@click.option("--cwd", default=None, help="Shell working directory (default: current)")
def shell(pid: int | None, tty: str | None, parent_app: str | None, cwd: str | None) -> None:
    """Record a shell heartbeat (call from the prompt hook)."""
    tty = tty or _current_tty()
    if not tty:
        _report("no tty; skipping heartbeat")
        return
    cwd = cwd or os.getcwd()
    config = load_config(get_hud_home())

    record = {
        "pid": pid or os.getppid(),
        "tty": tty,
        "parentApp": parent_app,
        "tmuxSession": get_current_session(config.tmux_timeout),
        "cwd": cwd,
        "projectPath": resolve_project_path(cwd),
        "lastSeenAt": format_timestamp(utcnow()),
    }
    try:
        append_line(config.shells_path, record)
    except OSError as e:
        _report(f"could not record heartbeat: {e}")


if __name__ == "__main__":
    main()
