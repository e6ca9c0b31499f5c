"""Evidence store: validated intake of hook events and shell telemetry.

This module makes no decisions. It turns raw JSON objects into typed
records, rejects what it cannot trust, and keeps the latest heartbeat per
shell process for the routing resolver.
"""

import logging
import threading
from datetime import datetime

from hud.core.config import HudConfig
from hud.core.models import (
    IDLE_NOTIFICATION,
    PERMISSION_REQUEST,
    HookEvent,
    HookEventType,
    ShellTelemetryRecord,
    normalize_project_path,
    parse_timestamp,
    path_within,
    utcnow,
)
from hud.core.staleness import is_shell_retained

logger = logging.getLogger(__name__)

# Claude Code's notification_type values and aliases
NOTIFICATION_SUBTYPES = {
    "permission_request": PERMISSION_REQUEST,
    "permission_prompt": PERMISSION_REQUEST,
    "idle": IDLE_NOTIFICATION,
    "idle_prompt": IDLE_NOTIFICATION,
}


class MalformedEventError(ValueError):
    """Raised when an incoming record cannot be turned into evidence."""


def _first(data: dict, *keys: str) -> object:
    for key in keys:
        value = data.get(key)
        if value is not None and value != "":
            return value
    return None


def _project_path(value: object) -> str:
    if not isinstance(value, str) or not value.startswith("/"):
        raise MalformedEventError(f"project path must be absolute, got {value!r}")
    return normalize_project_path(value)


def _timestamp(value: object) -> datetime | None:
    try:
        return parse_timestamp(value)
    except (ValueError, TypeError, OverflowError, OSError) as e:
        raise MalformedEventError(f"bad timestamp {value!r}: {e}") from None


def parse_hook_event(data: object) -> HookEvent:
    """Validate a raw hook record.

    Accepts both the hud wire schema (``hookEventType``, ``projectPath``,
    ``sessionId``, ``notificationType``) and Claude Code's native hook input
    (``hook_event_name``, ``cwd``, ``session_id``, ``notification_type``).

    Args:
        data: Decoded JSON value.

    Returns:
        The parsed HookEvent.

    Raises:
        MalformedEventError: If the record is unusable.
    """
    if not isinstance(data, dict):
        raise MalformedEventError("hook event must be a JSON object")

    type_name = _first(data, "hookEventType", "hook_event_name")
    subtype = _first(data, "notificationType", "notification_type", "subtype")
    if type_name == "PermissionRequest":
        type_name = HookEventType.NOTIFICATION.value
        subtype = PERMISSION_REQUEST
    try:
        event_type = HookEventType(type_name)
    except ValueError:
        raise MalformedEventError(f"unknown hook event type {type_name!r}") from None

    if event_type is HookEventType.NOTIFICATION and subtype is not None:
        subtype = NOTIFICATION_SUBTYPES.get(str(subtype), str(subtype))
    elif event_type is not HookEventType.NOTIFICATION:
        subtype = None

    session_id = _first(data, "sessionId", "session_id")
    if session_id is not None and not isinstance(session_id, str):
        raise MalformedEventError(f"session id must be a string, got {session_id!r}")

    return HookEvent(
        type=event_type,
        project_path=_project_path(_first(data, "projectPath", "project_path", "cwd")),
        timestamp=_timestamp(data.get("timestamp")),
        subtype=subtype,
        session_id=session_id,
        payload=data,
    )


def parse_shell_telemetry(data: object, received_at: datetime | None = None) -> ShellTelemetryRecord:
    """Validate a raw shell heartbeat.

    Args:
        data: Decoded JSON value with at least ``pid`` and ``tty``.
        received_at: Used as ``last_seen_at`` when the record has no time.

    Returns:
        The parsed ShellTelemetryRecord.

    Raises:
        MalformedEventError: If the record is unusable.
    """
    if not isinstance(data, dict):
        raise MalformedEventError("shell telemetry must be a JSON object")

    pid = data.get("pid")
    if isinstance(pid, bool) or not isinstance(pid, int) or pid <= 0:
        raise MalformedEventError(f"pid must be a positive integer, got {pid!r}")
    tty = data.get("tty")
    if not isinstance(tty, str) or not tty:
        raise MalformedEventError(f"tty must be a non-empty string, got {tty!r}")

    cwd = _first(data, "cwd")
    if cwd is not None:
        cwd = _project_path(cwd)
    project = _first(data, "projectPath", "project_path")
    project_path = _project_path(project) if project is not None else cwd

    last_seen = _timestamp(_first(data, "lastSeenAt", "timestamp"))
    parent_app = _first(data, "parentApp", "parent_app")
    tmux_session = _first(data, "tmuxSession", "tmux_session")

    return ShellTelemetryRecord(
        tty=tty,
        pid=pid,
        last_seen_at=last_seen or received_at or utcnow(),
        parent_app_name=str(parent_app) if parent_app is not None else None,
        tmux_session_name=str(tmux_session) if tmux_session is not None else None,
        project_path=project_path,
        cwd=cwd,
    )


class EvidenceStore:
    """Holds shell telemetry and the set of projects seen so far.

    Hook events pass straight through after validation; telemetry is kept
    as the last heartbeat per ``(pid, tty)``. Only hook events and
    ``add_project`` make a project known; a shell prompt in some directory
    does not.
    """

    def __init__(self, config: HudConfig) -> None:
        self._config = config
        self._lock = threading.Lock()
        self._shells: dict[tuple[int, str], ShellTelemetryRecord] = {}
        self._projects: set[str] = set()

    def accept_hook(self, data: object) -> HookEvent | None:
        """Validate a hook record; malformed input is logged and dropped."""
        try:
            event = parse_hook_event(data)
        except MalformedEventError as e:
            logger.warning("Rejected hook event: %s", e)
            return None
        with self._lock:
            self._projects.add(event.project_path)
        return event

    def accept_shell(self, data: object, received_at: datetime | None = None) -> ShellTelemetryRecord | None:
        """Validate and store a shell heartbeat; older heartbeats never win."""
        try:
            record = parse_shell_telemetry(data, received_at)
        except MalformedEventError as e:
            logger.warning("Rejected shell telemetry: %s", e)
            return None
        with self._lock:
            existing = self._shells.get(record.key)
            if existing is None or record.last_seen_at >= existing.last_seen_at:
                self._shells[record.key] = record
        return record

    def add_project(self, project_path: str) -> None:
        with self._lock:
            self._projects.add(normalize_project_path(project_path))

    def known_projects(self) -> list[str]:
        with self._lock:
            return sorted(self._projects)

    def shells(self) -> list[ShellTelemetryRecord]:
        with self._lock:
            return list(self._shells.values())

    def shells_for(self, project_path: str) -> list[ShellTelemetryRecord]:
        """Telemetry that points at the project (by project path or cwd)."""
        project_path = normalize_project_path(project_path)
        return [
            shell
            for shell in self.shells()
            if shell.project_path == project_path
            or (shell.cwd is not None and path_within(shell.cwd, project_path))
        ]

    def prune(self, now: datetime | None = None) -> int:
        """Drop telemetry older than the retention window.

        Returns:
            Number of records removed.
        """
        now = now or utcnow()
        with self._lock:
            expired = [
                key
                for key, shell in self._shells.items()
                if not is_shell_retained(shell, now, self._config)
            ]
            for key in expired:
                del self._shells[key]
        if expired:
            logger.debug("Pruned %d expired shell records", len(expired))
        return len(expired)
