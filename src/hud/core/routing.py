"""Terminal routing resolver.

Decides which terminal hosts a project's live agent session. Evidence is
tried in a fixed order of trust and the first tier that matches wins:

1. one attached tmux session            TMUX_CLIENT_ATTACHED
2. one detached tmux session            TMUX_SESSION_DETACHED
3. several tmux sessions                ROUTING_CONFLICT_DETECTED / ROUTING_SCOPE_AMBIGUOUS
4. fresh, verified shell telemetry      SHELL_FALLBACK_ACTIVE
5. stale telemetry or last-known target SHELL_FALLBACK_STALE
6. a lone shell failing verification    PROCESS_IDENTITY_MISMATCH
7. nothing                              NO_TRUSTED_EVIDENCE

``resolve`` is a pure function of its inputs. ``RoutingResolver`` adds the
only mutable state: the last non-Unknown target per project and the
published snapshot per project.
"""

import logging
import threading
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime

from hud.core.config import HudConfig
from hud.core.evidence import EvidenceStore
from hud.core.models import (
    UNKNOWN_TARGET,
    ReasonCode,
    RoutingSnapshot,
    RoutingStatus,
    RoutingTarget,
    ShellTelemetryRecord,
    TargetKind,
    TmuxSessionInfo,
    normalize_project_path,
    utcnow,
)
from hud.core.process import verify_shell
from hud.core.staleness import age_seconds, is_shell_fresh, is_shell_retained
from hud.core.tmux import bind_projects, list_sessions

logger = logging.getLogger(__name__)

ShellVerifier = Callable[[ShellTelemetryRecord, str], bool]


@dataclass(frozen=True)
class CachedTarget:
    """Last non-Unknown target resolved for a project."""

    target: RoutingTarget
    resolved_at: datetime


def _tmux_rank(info: TmuxSessionInfo) -> tuple[bool, float, str]:
    # attached first, then most recent activity, then name
    return (not info.attached, -info.last_activity_at.timestamp(), info.session_name)


def _shell_rank(shell: ShellTelemetryRecord) -> tuple[float, str]:
    return (-shell.last_seen_at.timestamp(), shell.tty)


def shell_target(shell: ShellTelemetryRecord) -> RoutingTarget:
    """Terminal app hosting a shell; falls back to the tty when unknown."""
    app = (shell.parent_app_name or "").strip()
    if not app or app.lower() == "unknown":
        app = shell.tty
    return RoutingTarget(TargetKind.TERMINAL_APP, app)


def _tmux_target(info: TmuxSessionInfo) -> RoutingTarget:
    return RoutingTarget(TargetKind.TMUX_SESSION, info.session_name)


def resolve(
    project_path: str,
    tmux_sessions: list[TmuxSessionInfo],
    shells: list[ShellTelemetryRecord],
    now: datetime,
    config: HudConfig,
    verify: ShellVerifier,
    cached: CachedTarget | None = None,
) -> RoutingSnapshot:
    """Compute the routing snapshot for one project.

    Args:
        project_path: Absolute project path.
        tmux_sessions: Sessions with ``matched_project_path`` already bound.
        shells: Shell telemetry pointing at this project.
        now: Evaluation time.
        config: Freshness and retention thresholds.
        verify: Process identity check for fresh shell candidates.
        cached: Last-known target for the project, if any.

    Returns:
        A complete RoutingSnapshot.
    """
    project_path = normalize_project_path(project_path)

    def snapshot(
        target: RoutingTarget,
        status: RoutingStatus,
        code: ReasonCode,
        reason: str,
        last_known: bool = False,
    ) -> RoutingSnapshot:
        return RoutingSnapshot(
            project_path=project_path,
            target=target,
            status=status,
            reason_code=code,
            computed_at=now,
            reason=reason,
            last_known=last_known,
        )

    matches = [s for s in tmux_sessions if s.matched_project_path == project_path]
    attached = [s for s in matches if s.attached]

    if len(attached) == 1:
        winner = attached[0]
        return snapshot(
            _tmux_target(winner),
            RoutingStatus.ATTACHED,
            ReasonCode.TMUX_CLIENT_ATTACHED,
            f"tmux client {winner.attached_client_tty} attached to {winner.session_name}",
        )

    if len(matches) == 1:
        winner = matches[0]
        return snapshot(
            _tmux_target(winner),
            RoutingStatus.DETACHED,
            ReasonCode.TMUX_SESSION_DETACHED,
            f"detached tmux session {winner.session_name}",
        )

    if matches:
        ranked = sorted(matches, key=_tmux_rank)
        if _tmux_rank(ranked[0]) == _tmux_rank(ranked[1]):
            return snapshot(
                UNKNOWN_TARGET,
                RoutingStatus.UNAVAILABLE,
                ReasonCode.ROUTING_SCOPE_AMBIGUOUS,
                f"{len(matches)} tmux sessions named {ranked[0].session_name} are indistinguishable",
            )
        winner = ranked[0]
        return snapshot(
            _tmux_target(winner),
            RoutingStatus.ATTACHED if winner.attached else RoutingStatus.DETACHED,
            ReasonCode.ROUTING_CONFLICT_DETECTED,
            f"{len(matches)} tmux sessions match; chose {winner.session_name}",
        )

    retained = [s for s in shells if is_shell_retained(s, now, config)]
    fresh = [s for s in retained if is_shell_fresh(s, now, config)]
    stale = [s for s in retained if not is_shell_fresh(s, now, config)]
    verified = [s for s in fresh if verify(s, project_path)]

    if verified:
        best = min(verified, key=_shell_rank)
        return snapshot(
            shell_target(best),
            RoutingStatus.DETACHED,
            ReasonCode.SHELL_FALLBACK_ACTIVE,
            f"shell {best.tty} (pid {best.pid}) seen {age_seconds(best.last_seen_at, now):.0f}s ago",
        )

    if stale:
        best = min(stale, key=_shell_rank)
        return snapshot(
            shell_target(best),
            RoutingStatus.UNAVAILABLE,
            ReasonCode.SHELL_FALLBACK_STALE,
            f"last known shell {best.tty} seen {age_seconds(best.last_seen_at, now):.0f}s ago",
            last_known=True,
        )

    if len(fresh) == 1:
        lone = fresh[0]
        return snapshot(
            UNKNOWN_TARGET,
            RoutingStatus.UNAVAILABLE,
            ReasonCode.PROCESS_IDENTITY_MISMATCH,
            f"shell pid {lone.pid} on {lone.tty} is gone or left the project",
        )

    if not fresh and cached is not None and age_seconds(cached.resolved_at, now) <= config.shell_retention:
        return snapshot(
            cached.target,
            RoutingStatus.UNAVAILABLE,
            ReasonCode.SHELL_FALLBACK_STALE,
            "telemetry expired; using last known target",
            last_known=True,
        )

    return snapshot(
        UNKNOWN_TARGET,
        RoutingStatus.UNAVAILABLE,
        ReasonCode.NO_TRUSTED_EVIDENCE,
        "no trusted routing evidence",
    )


class RoutingResolver:
    """Owns the last-known-target cache and the published snapshots.

    The timer-driven poller and on-demand callers share one instance; one
    lock guards the cache and snapshot map, nothing else.

    Args:
        config: Thresholds and tmux settings.
        evidence: Source of shell telemetry and known projects.
        tmux_query: Returns raw tmux sessions. Defaults to querying tmux.
        verify: Process identity check. Defaults to ``verify_shell``.
        clock: Source of ``now``.
        shutdown: Once set, results are no longer published.
    """

    def __init__(
        self,
        config: HudConfig,
        evidence: EvidenceStore,
        tmux_query: Callable[[], list[TmuxSessionInfo]] | None = None,
        verify: ShellVerifier | None = None,
        clock: Callable[[], datetime] = utcnow,
        shutdown: threading.Event | None = None,
    ) -> None:
        self._config = config
        self._evidence = evidence
        self._tmux_query = tmux_query or (
            lambda: list_sessions(config.tmux_sockets, config.tmux_timeout)
        )
        self._verify = verify or (
            lambda shell, project: verify_shell(shell, project, config.tmux_timeout)
        )
        self._clock = clock
        self._shutdown = shutdown or threading.Event()
        self._lock = threading.Lock()
        self._cache: dict[str, CachedTarget] = {}
        self._snapshots: dict[str, RoutingSnapshot] = {}
        self._published_seq: dict[str, int] = {}
        self._next_seq = 0

    def snapshot(self, project_path: str, tmux_sessions: list[TmuxSessionInfo] | None = None) -> RoutingSnapshot:
        """Compute, publish and return the snapshot for one project.

        Args:
            project_path: Absolute project path.
            tmux_sessions: Pre-fetched raw tmux sessions; queried when None.
        """
        project_path = normalize_project_path(project_path)
        if tmux_sessions is None:
            tmux_sessions = self._tmux_query()
        projects = set(self._evidence.known_projects()) | {project_path}
        bound = bind_projects(tmux_sessions, projects)

        with self._lock:
            seq = self._next_seq
            self._next_seq += 1
            cached = self._cache.get(project_path)

        result = resolve(
            project_path,
            bound,
            self._evidence.shells_for(project_path),
            self._clock(),
            self._config,
            self._verify,
            cached,
        )
        self._publish(seq, result)
        return result

    def snapshot_all(self) -> dict[str, RoutingSnapshot]:
        """Recompute every known project against a single tmux query.

        Projects resolved on demand but never seen by the evidence store
        are forgotten here.
        """
        known = self._evidence.known_projects()
        self.retain(known)
        tmux_sessions = self._tmux_query()
        results = {}
        for project_path in known:
            if self._shutdown.is_set():
                break
            results[project_path] = self.snapshot(project_path, tmux_sessions)
        return results

    def retain(self, project_paths: Iterable[str]) -> None:
        """Drop cached targets and snapshots for every other project."""
        keep = set(project_paths)
        with self._lock:
            for table in (self._cache, self._snapshots, self._published_seq):
                for path in [p for p in table if p not in keep]:
                    del table[path]

    def current(self, project_path: str) -> RoutingSnapshot | None:
        with self._lock:
            return self._snapshots.get(normalize_project_path(project_path))

    def snapshots(self) -> dict[str, RoutingSnapshot]:
        with self._lock:
            return dict(self._snapshots)

    def _publish(self, seq: int, result: RoutingSnapshot) -> None:
        path = result.project_path
        with self._lock:
            if self._shutdown.is_set():
                logger.debug("Dropping snapshot for %s computed during shutdown", path)
                return
            if seq < self._published_seq.get(path, -1):
                return
            self._published_seq[path] = seq
            self._snapshots[path] = result
            if result.target.kind is not TargetKind.UNKNOWN:
                previous = self._cache.get(path)
                if previous is None or previous.target != result.target or not result.last_known:
                    self._cache[path] = CachedTarget(result.target, result.computed_at)
        logger.debug("%s -> %s (%s)", path, result.reason_code.value, result.target.value)
