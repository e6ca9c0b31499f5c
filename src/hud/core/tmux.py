"""tmux queries for the routing resolver.

Every call is bounded by a timeout. A missing binary, a server that is not
running, or a hung tmux all degrade to "no tmux evidence" rather than an
error for the caller.
"""

import logging
import os
import shutil
import subprocess
from collections.abc import Iterable, Sequence
from datetime import datetime, timezone

from hud.core.models import TmuxSessionInfo, normalize_project_path, path_within

logger = logging.getLogger(__name__)

FIELD_DELIMITER = "__HUD_DELIM__"

# Checked after PATH; launchd agents often run without Homebrew on PATH
FALLBACK_BINARIES = (
    "/opt/homebrew/bin/tmux",
    "/usr/local/bin/tmux",
    "/opt/local/bin/tmux",
    "/usr/bin/tmux",
)

SESSIONS_FORMAT = FIELD_DELIMITER.join(
    ["#{session_name}", "#{session_activity}", "#{session_path}"]
)
CLIENTS_FORMAT = FIELD_DELIMITER.join(["#{client_tty}", "#{session_name}"])
PANES_FORMAT = FIELD_DELIMITER.join(["#{session_name}", "#{pane_current_path}"])


class TmuxError(Exception):
    """Raised when tmux cannot be queried."""

    pass


def tmux_binary() -> str | None:
    """Locate the tmux binary, or None if it is not installed."""
    found = shutil.which("tmux")
    if found:
        return found
    for candidate in FALLBACK_BINARIES:
        if os.access(candidate, os.X_OK):
            return candidate
    return None


def _tmux_cmd(binary: str, args: list[str], socket: str | None = None) -> list[str]:
    """Build a tmux command, optionally against a named server socket."""
    if socket:
        return [binary, "-L", socket] + args
    return [binary] + args


def run_tmux(args: list[str], socket: str | None = None, timeout: float = 2.0) -> str:
    """Run a tmux command and return stdout.

    Args:
        args: tmux arguments.
        socket: Named server socket (``tmux -L``), or None for the default.
        timeout: Seconds before the call is abandoned.

    Returns:
        Command stdout. Empty when no server is running.

    Raises:
        TmuxError: If tmux is missing or the call times out.
    """
    binary = tmux_binary()
    if binary is None:
        raise TmuxError("tmux is not installed")
    try:
        result = subprocess.run(
            _tmux_cmd(binary, args, socket),
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except subprocess.TimeoutExpired:
        raise TmuxError(f"tmux {args[0]} timed out after {timeout}s") from None
    except OSError as e:
        raise TmuxError(f"tmux {args[0]} failed: {e}") from None
    if result.returncode != 0:
        # "no server running" and friends: nothing to report
        logger.debug("tmux %s exited %d: %s", args[0], result.returncode, result.stderr.strip())
        return ""
    return result.stdout


def is_installed() -> bool:
    return tmux_binary() is not None


def in_tmux() -> bool:
    """Check if we're running inside a tmux session."""
    return os.environ.get("TMUX") is not None


def get_current_session(timeout: float = 2.0) -> str | None:
    """Name of the tmux session the calling process runs in, if any."""
    if not in_tmux():
        return None
    try:
        name = run_tmux(["display-message", "-p", "#{session_name}"], timeout=timeout).strip()
    except TmuxError:
        return None
    return name or None


def _split(line: str, expected: int) -> list[str] | None:
    parts = line.split(FIELD_DELIMITER)
    if len(parts) != expected:
        return None
    return parts


def parse_sessions(output: str) -> dict[str, tuple[datetime, str]]:
    """Parse ``list-sessions`` output into name -> (last activity, session path)."""
    sessions: dict[str, tuple[datetime, str]] = {}
    for line in output.splitlines():
        parts = _split(line, 3)
        if parts is None or not parts[0]:
            continue
        name, activity, path = parts
        try:
            last_activity = datetime.fromtimestamp(int(activity), tz=timezone.utc)
        except ValueError:
            continue
        sessions[name] = (last_activity, path)
    return sessions


def parse_clients(output: str) -> dict[str, str]:
    """Parse ``list-clients`` output into session name -> client tty.

    When several clients view one session the lexically first tty is kept.
    """
    clients: dict[str, str] = {}
    for line in output.splitlines():
        parts = _split(line, 2)
        if parts is None or not all(parts):
            continue
        tty, name = parts
        if name not in clients or tty < clients[name]:
            clients[name] = tty
    return clients


def parse_panes(output: str) -> dict[str, list[str]]:
    """Parse ``list-panes -a`` output into session name -> pane paths."""
    panes: dict[str, list[str]] = {}
    for line in output.splitlines():
        parts = _split(line, 2)
        if parts is None or not all(parts):
            continue
        name, path = parts
        path = normalize_project_path(path)
        paths = panes.setdefault(name, [])
        if path not in paths:
            paths.append(path)
    return panes


def query_server(socket: str | None = None, timeout: float = 2.0) -> list[TmuxSessionInfo]:
    """Snapshot every session on one tmux server.

    Raises:
        TmuxError: If tmux is missing or a query times out.
    """
    sessions = parse_sessions(run_tmux(["list-sessions", "-F", SESSIONS_FORMAT], socket, timeout))
    if not sessions:
        return []
    clients = parse_clients(run_tmux(["list-clients", "-F", CLIENTS_FORMAT], socket, timeout))
    panes = parse_panes(run_tmux(["list-panes", "-a", "-F", PANES_FORMAT], socket, timeout))

    infos = []
    for name in sorted(sessions):
        last_activity, session_path = sessions[name]
        pane_paths = panes.get(name) or ([normalize_project_path(session_path)] if session_path else [])
        infos.append(
            TmuxSessionInfo(
                session_name=name,
                last_activity_at=last_activity,
                attached_client_tty=clients.get(name),
                pane_paths=tuple(pane_paths),
                socket=socket,
            )
        )
    return infos


def list_sessions(sockets: Sequence[str] = (), timeout: float = 2.0) -> list[TmuxSessionInfo]:
    """Snapshot sessions on the default server and any extra sockets.

    Servers that cannot be queried contribute nothing.
    """
    infos: list[TmuxSessionInfo] = []
    for socket in [None, *sockets]:
        try:
            infos.extend(query_server(socket, timeout))
        except TmuxError as e:
            logger.debug("tmux evidence unavailable (socket=%s): %s", socket or "default", e)
    return infos


def bind_projects(sessions: Iterable[TmuxSessionInfo], project_paths: Iterable[str]) -> list[TmuxSessionInfo]:
    """Fill ``matched_project_path`` for each session.

    The first pane whose path lies inside a known project decides; when
    projects nest, the deepest one wins.
    """
    projects = sorted({normalize_project_path(p) for p in project_paths}, key=len, reverse=True)
    bound = []
    for info in sessions:
        matched = None
        for pane_path in info.pane_paths:
            matched = next((p for p in projects if path_within(pane_path, p)), None)
            if matched:
                break
        bound.append(
            TmuxSessionInfo(
                session_name=info.session_name,
                last_activity_at=info.last_activity_at,
                attached_client_tty=info.attached_client_tty,
                matched_project_path=matched,
                pane_paths=info.pane_paths,
                socket=info.socket,
            )
        )
    return bound
