"""Shared pytest fixtures for hud tests."""

import subprocess
from datetime import datetime, timedelta, timezone

import pytest

from hud.core.config import HudConfig
from hud.core.models import HookEvent, HookEventType, ShellTelemetryRecord, TmuxSessionInfo

NOW = datetime(2026, 2, 14, 15, 0, 0, tzinfo=timezone.utc)
PROJECT = "/Users/ada/code/capacitor"


def tmux_works() -> bool:
    """Check if tmux can actually start a server on an isolated socket."""
    try:
        result = subprocess.run(
            ["tmux", "-L", "hud-tmux-check", "new-session", "-d", "-s", "check"],
            capture_output=True,
            timeout=5,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        return False
    subprocess.run(["tmux", "-L", "hud-tmux-check", "kill-server"], capture_output=True)
    return result.returncode == 0


# Skip marker for tests requiring a working tmux environment
requires_tmux = pytest.mark.skipif(
    not tmux_works(),
    reason="tmux not available or cannot start sessions in this environment",
)


@pytest.fixture
def hud_home(tmp_path, monkeypatch):
    """Point HUD_HOME at a temp dir and clear other HUD_* overrides."""
    home = tmp_path / "hud"
    monkeypatch.setenv("HUD_HOME", str(home))
    for var in (
        "HUD_READY_STALE_SECONDS",
        "HUD_SHELL_FRESH_SECONDS",
        "HUD_SHELL_RETENTION_SECONDS",
        "HUD_TMUX_TIMEOUT",
        "HUD_POLL_INTERVAL",
        "HUD_TMUX_SOCKET",
        "HUD_DEBUG",
    ):
        monkeypatch.delenv(var, raising=False)
    return home


@pytest.fixture
def config(tmp_path):
    """Default configuration rooted in a temp dir."""
    return HudConfig(home=tmp_path / "hud")


def make_event(event_type, project=PROJECT, at=None, subtype=None, session_id="s-1", **payload):
    """Build a HookEvent; ``at`` is seconds after NOW."""
    if isinstance(event_type, str):
        event_type = HookEventType(event_type)
    return HookEvent(
        type=event_type,
        project_path=project,
        timestamp=NOW + timedelta(seconds=at) if at is not None else None,
        subtype=subtype,
        session_id=session_id,
        payload=payload,
    )


def make_shell(age=0, pid=4242, tty="/dev/ttys004", app="iTerm.app", project=PROJECT, cwd=None):
    """Build shell telemetry last seen ``age`` seconds before NOW."""
    return ShellTelemetryRecord(
        tty=tty,
        pid=pid,
        last_seen_at=NOW - timedelta(seconds=age),
        parent_app_name=app,
        project_path=project,
        cwd=cwd or project,
    )


def make_tmux(name, attached_tty=None, activity=0, project=PROJECT, socket=None):
    """Build a bound tmux session; ``activity`` is seconds before NOW."""
    return TmuxSessionInfo(
        session_name=name,
        last_activity_at=NOW - timedelta(seconds=activity),
        attached_client_tty=attached_tty,
        matched_project_path=project,
        pane_paths=(project,) if project else (),
        socket=socket,
    )
