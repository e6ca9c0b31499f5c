"""Session state transition table.

The whole lifecycle lives in ``TRANSITIONS``. A (state, event) pair with no
row is a no-op for state. Rows keyed on ``ANY`` apply from every state;
a row for a concrete state takes precedence over an ``ANY`` row.
"""

from hud.core.models import (
    PERMISSION_REQUEST,
    HookEvent,
    HookEventType,
    SessionState,
)

ANY = None

Idle = SessionState.IDLE
Working = SessionState.WORKING
Ready = SessionState.READY
Waiting = SessionState.WAITING
Compacting = SessionState.COMPACTING

# (current state or ANY, event type, notification subtype) -> next state
TRANSITIONS: dict[tuple[SessionState | None, HookEventType, str | None], SessionState] = {
    (ANY, HookEventType.SESSION_START, None): Idle,
    (ANY, HookEventType.USER_PROMPT_SUBMIT, None): Working,
    (Working, HookEventType.PRE_TOOL_USE, None): Working,
    (Working, HookEventType.POST_TOOL_USE, None): Working,
    (Working, HookEventType.STOP, None): Ready,
    (Waiting, HookEventType.USER_PROMPT_SUBMIT, None): Working,
    (ANY, HookEventType.NOTIFICATION, PERMISSION_REQUEST): Waiting,
    (ANY, HookEventType.PRE_COMPACT, None): Compacting,
    (Compacting, HookEventType.STOP, None): Working,
    (ANY, HookEventType.SESSION_END, None): Idle,
}


def next_state(
    current: SessionState, event: HookEvent, *, first_sight: bool = True
) -> SessionState | None:
    """Look up the state an event moves a project to.

    Args:
        current: The project's current state.
        event: The incoming hook event.
        first_sight: Whether the event's session id is new for the project.
            SessionStart only resets state on first sight.

    Returns:
        The next state (possibly equal to current), or None if the table has
        no row for this pair.
    """
    if event.type is HookEventType.SESSION_START and not first_sight:
        return None
    # Stop fired while a stop hook keeps the agent running
    if event.type is HookEventType.STOP and event.payload.get("stop_hook_active") is True:
        return None

    subtype = event.subtype if event.type is HookEventType.NOTIFICATION else None
    specific = TRANSITIONS.get((current, event.type, subtype))
    if specific is not None:
        return specific
    return TRANSITIONS.get((ANY, event.type, subtype))
