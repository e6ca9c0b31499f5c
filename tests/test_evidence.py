"""Tests for evidence intake."""

import logging
from datetime import timedelta

import pytest

from conftest import NOW, PROJECT
from hud.core.evidence import (
    EvidenceStore,
    MalformedEventError,
    parse_hook_event,
    parse_shell_telemetry,
)
from hud.core.models import HookEventType


def test_parse_wire_event():
    """Test the hud wire schema."""
    event = parse_hook_event(
        {
            "hookEventType": "Stop",
            "projectPath": PROJECT + "/",
            "sessionId": "abc",
            "timestamp": "2026-02-14T15:00:00Z",
        }
    )

    assert event.type is HookEventType.STOP
    assert event.project_path == PROJECT
    assert event.session_id == "abc"
    assert event.timestamp == NOW
    assert event.subtype is None


def test_parse_native_claude_input():
    """Test Claude Code's own hook input keys are accepted."""
    event = parse_hook_event(
        {
            "hook_event_name": "Notification",
            "cwd": PROJECT,
            "session_id": "abc",
            "notification_type": "permission_prompt",
            "message": "Claude needs your permission to use Bash",
        }
    )

    assert event.type is HookEventType.NOTIFICATION
    assert event.subtype == "permission_request"
    assert event.timestamp is None
    assert event.payload["message"].startswith("Claude needs")


def test_permission_request_event_maps_to_notification():
    """Test the PermissionRequest hook becomes a permission notification."""
    event = parse_hook_event({"hookEventType": "PermissionRequest", "projectPath": PROJECT})

    assert event.type is HookEventType.NOTIFICATION
    assert event.subtype == "permission_request"


def test_idle_prompt_alias():
    """Test idle_prompt normalizes to the idle subtype."""
    event = parse_hook_event(
        {"hookEventType": "Notification", "projectPath": PROJECT, "notificationType": "idle_prompt"}
    )

    assert event.subtype == "idle"


def test_epoch_timestamp():
    """Test numeric timestamps are epoch seconds."""
    event = parse_hook_event(
        {"hookEventType": "Stop", "projectPath": PROJECT, "timestamp": NOW.timestamp()}
    )

    assert event.timestamp == NOW


@pytest.mark.parametrize(
    "data",
    [
        None,
        [],
        "Stop",
        {"projectPath": PROJECT},
        {"hookEventType": "Explode", "projectPath": PROJECT},
        {"hookEventType": "Stop"},
        {"hookEventType": "Stop", "projectPath": "relative/path"},
        {"hookEventType": "Stop", "projectPath": PROJECT, "timestamp": "not a time"},
        {"hookEventType": "Stop", "projectPath": PROJECT, "timestamp": True},
        {"hookEventType": "Stop", "projectPath": PROJECT, "sessionId": 7},
    ],
)
def test_malformed_hook_events(data):
    """Test malformed hook records are rejected."""
    with pytest.raises(MalformedEventError):
        parse_hook_event(data)


def test_parse_shell_telemetry():
    """Test a full heartbeat."""
    record = parse_shell_telemetry(
        {
            "pid": 4242,
            "tty": "/dev/ttys004",
            "parentApp": "iTerm.app",
            "cwd": PROJECT + "/src",
            "projectPath": PROJECT,
            "lastSeenAt": "2026-02-14T15:00:00Z",
        }
    )

    assert record.key == (4242, "/dev/ttys004")
    assert record.parent_app_name == "iTerm.app"
    assert record.project_path == PROJECT
    assert record.cwd == PROJECT + "/src"
    assert record.last_seen_at == NOW


def test_shell_telemetry_defaults():
    """Test a heartbeat without time or project uses receipt time and cwd."""
    record = parse_shell_telemetry({"pid": 1, "tty": "/dev/ttys001", "cwd": PROJECT}, received_at=NOW)

    assert record.last_seen_at == NOW
    assert record.project_path == PROJECT


@pytest.mark.parametrize(
    "data",
    [
        {"tty": "/dev/ttys001"},
        {"pid": "12", "tty": "/dev/ttys001"},
        {"pid": True, "tty": "/dev/ttys001"},
        {"pid": 0, "tty": "/dev/ttys001"},
        {"pid": 12},
        {"pid": 12, "tty": ""},
        {"pid": 12, "tty": "/dev/ttys001", "cwd": "relative"},
        ["pid", 12],
    ],
)
def test_malformed_shell_telemetry(data):
    """Test malformed heartbeats are rejected."""
    with pytest.raises(MalformedEventError):
        parse_shell_telemetry(data)


def test_store_rejects_and_logs(config, caplog):
    """Test the store drops malformed input with a warning."""
    store = EvidenceStore(config)

    with caplog.at_level(logging.WARNING, logger="hud.core.evidence"):
        assert store.accept_hook({"hookEventType": "Nope"}) is None
        assert store.accept_shell({"pid": -1}) is None

    assert "Rejected hook event" in caplog.text
    assert "Rejected shell telemetry" in caplog.text
    assert store.known_projects() == []
    assert store.shells() == []


def test_store_tracks_projects(config):
    """Test projects are learned from hooks and explicit adds only."""
    store = EvidenceStore(config)
    store.accept_hook({"hookEventType": "Stop", "projectPath": "/b"})
    store.accept_shell({"pid": 1, "tty": "/dev/ttys001", "cwd": "/tmp"})
    store.add_project("/a/")

    assert store.known_projects() == ["/a", "/b"]
    assert len(store.shells()) == 1


def test_newer_heartbeat_wins(config):
    """Test an older heartbeat never replaces a newer one."""
    store = EvidenceStore(config)
    base = {"pid": 1, "tty": "/dev/ttys001", "cwd": PROJECT}
    store.accept_shell({**base, "lastSeenAt": NOW.isoformat(), "parentApp": "new"})
    store.accept_shell({**base, "lastSeenAt": (NOW - timedelta(seconds=5)).isoformat(), "parentApp": "old"})

    [shell] = store.shells()
    assert shell.parent_app_name == "new"


def test_shells_for_matches_project_and_subdirs(config):
    """Test telemetry matches by project path or a cwd inside the project."""
    store = EvidenceStore(config)
    store.accept_shell({"pid": 1, "tty": "/dev/ttys001", "projectPath": PROJECT, "cwd": "/tmp"})
    store.accept_shell({"pid": 2, "tty": "/dev/ttys002", "cwd": PROJECT + "/src"})
    store.accept_shell({"pid": 3, "tty": "/dev/ttys003", "cwd": PROJECT + "-other"})

    assert sorted(s.pid for s in store.shells_for(PROJECT)) == [1, 2]


def test_prune_drops_expired(config):
    """Test telemetry past retention is pruned."""
    store = EvidenceStore(config)
    store.accept_shell({"pid": 1, "tty": "/dev/ttys001", "cwd": PROJECT, "lastSeenAt": NOW.isoformat()})
    old = NOW - timedelta(seconds=config.shell_retention + 1)
    store.accept_shell({"pid": 2, "tty": "/dev/ttys002", "cwd": PROJECT, "lastSeenAt": old.isoformat()})

    assert store.prune(NOW) == 1
    assert [s.pid for s in store.shells()] == [1]
