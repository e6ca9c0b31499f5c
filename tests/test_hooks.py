"""Tests for the hook handler and hook installation."""

import orjson
import pytest
from click.testing import CliRunner

from conftest import PROJECT
from hud.hooks.handler import main, to_wire_event
from hud.hooks.install import HOOK_COMMAND, HOOK_EVENTS, SHELL_SNIPPETS, install_hooks, uninstall_hooks


@pytest.fixture
def runner():
    """Click CLI test runner."""
    return CliRunner()


@pytest.fixture
def no_git(monkeypatch):
    """Treat every cwd as its own project root."""
    monkeypatch.setattr("hud.hooks.handler.resolve_project_path", lambda cwd: cwd)


def _lines(path):
    return [orjson.loads(line) for line in path.read_bytes().splitlines()]


def test_to_wire_event_whitelists_fields(no_git):
    """Test large hook fields are dropped and the wire keys are filled in."""
    data = {
        "hook_event_name": "PreToolUse",
        "session_id": "abc",
        "cwd": PROJECT,
        "tool_name": "Bash",
        "tool_input": {"command": "x" * 10000},
        "transcript_path": "/tmp/t.jsonl",
    }

    event = to_wire_event(data, "/ignored")

    assert event["hookEventType"] == "PreToolUse"
    assert event["sessionId"] == "abc"
    assert event["projectPath"] == PROJECT
    assert event["toolName"] == "Bash"
    assert "tool_input" not in event
    assert "transcript_path" not in event
    assert "timestamp" in event


def test_to_wire_event_falls_back_to_process_cwd(no_git):
    """Test the handler's cwd is used when the input has none."""
    event = to_wire_event({"hook_event_name": "Stop"}, PROJECT)

    assert event["projectPath"] == PROJECT


def test_event_command_appends_line(runner, hud_home, no_git):
    """Test `hud-hook event` appends one JSON line per call."""
    payload = {"hook_event_name": "Notification", "cwd": PROJECT, "notification_type": "permission_prompt", "message": "Allow?"}

    for _ in range(2):
        result = runner.invoke(main, ["event"], input=orjson.dumps(payload).decode())
        assert result.exit_code == 0

    lines = _lines(hud_home / "events.jsonl")
    assert len(lines) == 2
    assert lines[0]["notificationType"] == "permission_prompt"
    assert lines[0]["message"] == "Allow?"


def test_event_command_tolerates_bad_input(runner, hud_home):
    """Test bad stdin exits 0 without writing anything."""
    result = runner.invoke(main, ["event"], input="not json")

    assert result.exit_code == 0
    assert not (hud_home / "events.jsonl").exists()


def test_event_command_debug_report(runner, hud_home, monkeypatch):
    """Test HUD_DEBUG explains why nothing was recorded."""
    monkeypatch.setenv("HUD_DEBUG", "1")

    result = runner.invoke(main, ["event"], input="")

    assert result.exit_code == 0
    assert "no hook input" in result.output


def test_shell_command_records_heartbeat(runner, hud_home, no_git, monkeypatch):
    """Test `hud-hook shell` records pid, tty, app and project."""
    monkeypatch.setattr("hud.hooks.handler.get_current_session", lambda timeout=2.0: "cap")

    result = runner.invoke(
        main,
        ["shell", "--pid", "4242", "--tty", "/dev/ttys004", "--parent-app", "iTerm.app", "--cwd", PROJECT],
    )

    assert result.exit_code == 0
    [line] = _lines(hud_home / "shells.jsonl")
    assert line["pid"] == 4242
    assert line["tty"] == "/dev/ttys004"
    assert line["parentApp"] == "iTerm.app"
    assert line["tmuxSession"] == "cap"
    assert line["projectPath"] == PROJECT
    assert line["lastSeenAt"]


def test_shell_command_without_tty(runner, hud_home, monkeypatch):
    """Test a heartbeat with no tty is skipped."""
    monkeypatch.setattr("hud.hooks.handler._current_tty", lambda: None)

    result = runner.invoke(main, ["shell", "--pid", "1"])

    assert result.exit_code == 0
    assert not (hud_home / "shells.jsonl").exists()


def test_install_hooks(tmp_path):
    """Test every tracked event gets the hud hook."""
    settings_path = tmp_path / ".claude" / "settings.json"

    added = install_hooks(settings_path)

    settings = orjson.loads(settings_path.read_bytes())
    assert added == list(HOOK_EVENTS)
    for event in HOOK_EVENTS:
        assert settings["hooks"][event][0]["hooks"][0]["command"] == HOOK_COMMAND


def test_install_hooks_idempotent_and_preserving(tmp_path):
    """Test reinstalling adds nothing and other hooks survive."""
    settings_path = tmp_path / "settings.json"
    other = {"matcher": "*", "hooks": [{"type": "command", "command": "other-tool"}]}
    settings_path.write_bytes(orjson.dumps({"model": "opus", "hooks": {"Stop": [other]}}))

    install_hooks(settings_path)
    assert install_hooks(settings_path) == []

    settings = orjson.loads(settings_path.read_bytes())
    assert settings["model"] == "opus"
    assert settings["hooks"]["Stop"][0] == other
    assert len(settings["hooks"]["Stop"]) == 2


def test_uninstall_hooks(tmp_path):
    """Test uninstall removes only hud hooks."""
    settings_path = tmp_path / "settings.json"
    other = {"matcher": "*", "hooks": [{"type": "command", "command": "other-tool"}]}
    settings_path.write_bytes(orjson.dumps({"hooks": {"Stop": [other]}}))
    install_hooks(settings_path)

    uninstall_hooks(settings_path)

    assert orjson.loads(settings_path.read_bytes()) == {"hooks": {"Stop": [other]}}


def test_uninstall_missing_settings(tmp_path):
    """Test uninstall with no settings file is a no-op."""
    uninstall_hooks(tmp_path / "missing.json")

    assert not (tmp_path / "missing.json").exists()


def test_shell_snippets_call_hook():
    """Test each shell snippet invokes the heartbeat command."""
    for snippet in SHELL_SNIPPETS.values():
        assert "hud-hook shell" in snippet
