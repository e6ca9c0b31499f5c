"""Shared record types for hud.

Every record has a camelCase wire form (``to_dict``/``from_dict``) used by the
state store, the routing feed and the CLI. Timestamps are timezone-aware UTC
datetimes in memory and ISO-8601 strings on the wire.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum


class SessionState(str, Enum):
    """Authoritative per-project agent state."""

    IDLE = "idle"
    WORKING = "working"
    READY = "ready"
    WAITING = "waiting"
    COMPACTING = "compacting"


class HookEventType(str, Enum):
    """Lifecycle hook events emitted by the coding-agent CLI."""

    SESSION_START = "SessionStart"
    USER_PROMPT_SUBMIT = "UserPromptSubmit"
    PRE_TOOL_USE = "PreToolUse"
    POST_TOOL_USE = "PostToolUse"
    NOTIFICATION = "Notification"
    PRE_COMPACT = "PreCompact"
    STOP = "Stop"
    SESSION_END = "SessionEnd"


PERMISSION_REQUEST = "permission_request"
IDLE_NOTIFICATION = "idle"


class TargetKind(str, Enum):
    TMUX_SESSION = "tmux_session"
    TERMINAL_APP = "terminal_app"
    UNKNOWN = "unknown"


class RoutingStatus(str, Enum):
    ATTACHED = "attached"
    DETACHED = "detached"
    UNAVAILABLE = "unavailable"


class ReasonCode(str, Enum):
    """Why the resolver reached its answer, roughly ordered by confidence."""

    TMUX_CLIENT_ATTACHED = "TMUX_CLIENT_ATTACHED"
    TMUX_SESSION_DETACHED = "TMUX_SESSION_DETACHED"
    ROUTING_CONFLICT_DETECTED = "ROUTING_CONFLICT_DETECTED"
    ROUTING_SCOPE_AMBIGUOUS = "ROUTING_SCOPE_AMBIGUOUS"
    SHELL_FALLBACK_ACTIVE = "SHELL_FALLBACK_ACTIVE"
    SHELL_FALLBACK_STALE = "SHELL_FALLBACK_STALE"
    PROCESS_IDENTITY_MISMATCH = "PROCESS_IDENTITY_MISMATCH"
    NO_TRUSTED_EVIDENCE = "NO_TRUSTED_EVIDENCE"


def utcnow() -> datetime:
    """Current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_timestamp(value: object) -> datetime | None:
    """Parse an ISO-8601 string or epoch seconds into an aware UTC datetime.

    Args:
        value: ISO string (``Z`` suffix accepted), int/float epoch seconds,
            or None.

    Returns:
        The parsed datetime, or None when value is None or empty.

    Raises:
        ValueError: If value is present but cannot be parsed.
    """
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        raise ValueError(f"Invalid timestamp: {value!r}")
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        if parsed.tzinfo is None:
            parsed = parsed.replace(tzinfo=timezone.utc)
        return parsed.astimezone(timezone.utc)
    raise ValueError(f"Invalid timestamp: {value!r}")


def format_timestamp(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat()


def normalize_project_path(path: str) -> str:
    """Strip trailing slashes so equal directories compare equal."""
    if path == "/":
        return path
    return path.rstrip("/")


def path_within(candidate: str, project_path: str) -> bool:
    """True if candidate is project_path or a directory below it."""
    candidate = normalize_project_path(candidate)
    project_path = normalize_project_path(project_path)
    if candidate == project_path:
        return True
    prefix = project_path if project_path.endswith("/") else project_path + "/"
    return candidate.startswith(prefix)


@dataclass
class ProjectSessionRecord:
    """Durable session state for one project.

    Attributes:
        project_path: Absolute project path (unique key).
        state: Current state.
        state_changed_at: Time of the last state-changing transition.
        last_hook_event_at: Time of the last event received, changed or not.
        blocker: Human-readable reason while Waiting.
        session_id: Opaque id of the underlying agent session.
    """

    project_path: str
    state: SessionState = SessionState.IDLE
    state_changed_at: datetime | None = None
    last_hook_event_at: datetime | None = None
    blocker: str | None = None
    session_id: str | None = None

    def to_dict(self) -> dict:
        return {
            "state": self.state.value,
            "stateChangedAt": format_timestamp(self.state_changed_at),
            "lastHookEventAt": format_timestamp(self.last_hook_event_at),
            "sessionId": self.session_id,
            "blocker": self.blocker,
        }

    @classmethod
    def from_dict(cls, project_path: str, data: dict) -> "ProjectSessionRecord":
        return cls(
            project_path=project_path,
            state=SessionState(data.get("state", SessionState.IDLE.value)),
            state_changed_at=parse_timestamp(data.get("stateChangedAt")),
            last_hook_event_at=parse_timestamp(data.get("lastHookEventAt")),
            blocker=data.get("blocker"),
            session_id=data.get("sessionId"),
        )


@dataclass(frozen=True)
class HookEvent:
    """A single lifecycle notification. Never persisted as-is."""

    type: HookEventType
    project_path: str
    timestamp: datetime | None = None
    subtype: str | None = None
    session_id: str | None = None
    payload: dict = field(default_factory=dict, compare=False)


@dataclass
class ShellTelemetryRecord:
    """Last-seen heartbeat for one shell process."""

    tty: str
    pid: int
    last_seen_at: datetime
    parent_app_name: str | None = None
    tmux_session_name: str | None = None
    project_path: str | None = None
    cwd: str | None = None

    @property
    def key(self) -> tuple[int, str]:
        return (self.pid, self.tty)

    def to_dict(self) -> dict:
        return {
            "tty": self.tty,
            "pid": self.pid,
            "parentApp": self.parent_app_name,
            "tmuxSession": self.tmux_session_name,
            "projectPath": self.project_path,
            "cwd": self.cwd,
            "lastSeenAt": format_timestamp(self.last_seen_at),
        }


@dataclass(frozen=True)
class TmuxSessionInfo:
    """One tmux session as observed on a tmux server."""

    session_name: str
    last_activity_at: datetime
    attached_client_tty: str | None = None
    matched_project_path: str | None = None
    pane_paths: tuple[str, ...] = ()
    socket: str | None = None

    @property
    def attached(self) -> bool:
        return bool(self.attached_client_tty)


@dataclass(frozen=True)
class RoutingTarget:
    kind: TargetKind
    value: str | None = None

    def to_dict(self) -> dict:
        return {"kind": self.kind.value, "value": self.value}


UNKNOWN_TARGET = RoutingTarget(TargetKind.UNKNOWN)


@dataclass(frozen=True)
class RoutingSnapshot:
    """Resolver output for one project. Always replaced wholesale."""

    project_path: str
    target: RoutingTarget
    status: RoutingStatus
    reason_code: ReasonCode
    computed_at: datetime
    reason: str = ""
    last_known: bool = False

    def decision(self) -> tuple[RoutingTarget, RoutingStatus, ReasonCode]:
        """The deterministic part of the snapshot (excludes timing and text)."""
        return (self.target, self.status, self.reason_code)

    def to_dict(self) -> dict:
        return {
            "projectPath": self.project_path,
            "target": self.target.to_dict(),
            "status": self.status.value,
            "reasonCode": self.reason_code.value,
            "reason": self.reason,
            "lastKnown": self.last_known,
            "computedAt": format_timestamp(self.computed_at),
        }
