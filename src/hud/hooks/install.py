"""Hook installation for Claude Code integration.

This module installs ``hud-hook event`` into Claude Code's settings.json for
every lifecycle event the state machine consumes, and provides the shell
snippet that sends heartbeats.
"""

from pathlib import Path

import orjson

HOOK_COMMAND = "hud-hook event"

HOOK_EVENTS = (
    "SessionStart",
    "UserPromptSubmit",
    "PreToolUse",
    "PostToolUse",
    "PermissionRequest",
    "Notification",
    "PreCompact",
    "Stop",
    "SessionEnd",
)

# Hook configuration to install
HOOK_CONFIG = {
    event: [
        {
            "matcher": "*",
            "hooks": [{"type": "command", "command": HOOK_COMMAND}],
        }
    ]
    for event in HOOK_EVENTS
}

SHELL_SNIPPETS = {
    "zsh": (
        "# hud shell telemetry\n"
        "_hud_precmd() { hud-hook shell --pid $$ --tty \"$TTY\" &>/dev/null &! }\n"
        "autoload -Uz add-zsh-hook && add-zsh-hook precmd _hud_precmd\n"
    ),
    "bash": (
        "# hud shell telemetry\n"
        "_hud_prompt() { (hud-hook shell --pid $$ --tty \"$(tty)\" &>/dev/null &) }\n"
        "PROMPT_COMMAND=\"_hud_prompt${PROMPT_COMMAND:+;$PROMPT_COMMAND}\"\n"
    ),
}


def get_claude_settings_path() -> Path:
    """Get the path to Claude Code's settings.json."""
    return Path.home() / ".claude" / "settings.json"


def _read_settings(settings_path: Path) -> dict:
    if not settings_path.exists():
        return {}
    content = settings_path.read_bytes()
    return orjson.loads(content) if content else {}


def _entry_commands(entry: object) -> set[str]:
    if not isinstance(entry, dict):
        return set()
    return {
        hook.get("command", "")
        for hook in entry.get("hooks", [])
        if isinstance(hook, dict)
    }


def install_hooks(settings_path: Path | None = None) -> list[str]:
    """Install hud hooks into Claude Code settings.

    Existing hooks are preserved; hud hooks are added alongside them once.

    Returns:
        The hook events that were newly added.
    """
    settings_path = settings_path or get_claude_settings_path()
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings = _read_settings(settings_path)
    hooks = settings.get("hooks", {})

    added = []
    for event, event_hooks in HOOK_CONFIG.items():
        entries = hooks.setdefault(event, [])
        if any(HOOK_COMMAND in _entry_commands(entry) for entry in entries):
            continue
        entries.extend(event_hooks)
        added.append(event)

    settings["hooks"] = hooks
    settings_path.write_bytes(orjson.dumps(settings, option=orjson.OPT_INDENT_2))
    return added


def uninstall_hooks(settings_path: Path | None = None) -> None:
    """Remove hud hooks from Claude Code settings, keeping all others."""
    settings_path = settings_path or get_claude_settings_path()
    if not settings_path.exists():
        return
    settings = _read_settings(settings_path)
    hooks = settings.get("hooks", {})

    for event in list(hooks):
        kept = [e for e in hooks[event] if HOOK_COMMAND not in _entry_commands(e)]
        if kept:
            hooks[event] = kept
        else:
            del hooks[event]

    if hooks:
        settings["hooks"] = hooks
    elif "hooks" in settings:
        del settings["hooks"]

    settings_path.write_bytes(orjson.dumps(settings, option=orjson.OPT_INDENT_2))
