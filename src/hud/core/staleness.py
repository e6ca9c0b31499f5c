"""Read-time staleness classification.

Nothing here mutates a record. Staleness only changes how consumers render
or trust a record; the stored state stays authoritative.
"""

from datetime import datetime

from hud.core.config import HudConfig
from hud.core.models import ProjectSessionRecord, SessionState, ShellTelemetryRecord


def age_seconds(then: datetime, now: datetime) -> float:
    """Seconds elapsed since ``then``, never negative."""
    return max(0.0, (now - then).total_seconds())


def is_ready_stale(record: ProjectSessionRecord, now: datetime, config: HudConfig) -> bool:
    """True if a Ready record has sat unchanged longer than the threshold."""
    if record.state is not SessionState.READY or record.state_changed_at is None:
        return False
    return age_seconds(record.state_changed_at, now) > config.ready_stale_after


def is_shell_fresh(record: ShellTelemetryRecord, now: datetime, config: HudConfig) -> bool:
    return age_seconds(record.last_seen_at, now) <= config.shell_fresh_within


def is_shell_retained(record: ShellTelemetryRecord, now: datetime, config: HudConfig) -> bool:
    """True while telemetry is still worth keeping, fresh or not."""
    return age_seconds(record.last_seen_at, now) <= config.shell_retention


def with_staleness(record: ProjectSessionRecord, now: datetime, config: HudConfig) -> dict:
    """Wire form of a record plus the derived ``stale`` flag."""
    data = record.to_dict()
    data["projectPath"] = record.project_path
    data["stale"] = is_ready_stale(record, now, config)
    return data
