"""Session state machine.

Turns hook events into one authoritative ``ProjectSessionRecord`` per project
and persists every change through a ``StateStore``. Events for the same
project are applied one at a time; different projects may be processed
concurrently.
"""

import copy
import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from datetime import datetime

from hud.core.models import (
    HookEvent,
    ProjectSessionRecord,
    SessionState,
    utcnow,
)
from hud.core.store import StateStore
from hud.core.transitions import next_state

logger = logging.getLogger(__name__)


class KeyedLock:
    """A lazily created ``threading.Lock`` per key."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: dict[str, threading.Lock] = {}

    @contextmanager
    def hold(self, key: str) -> Iterator[None]:
        with self._guard:
            lock = self._locks.setdefault(key, threading.Lock())
        with lock:
            yield


class SessionStateMachine:
    """Applies the transition table to incoming hook events.

    Args:
        store: Where records are persisted. None keeps state in memory only
            (used by replay).
        clock: Source of ingestion time.
    """

    def __init__(
        self,
        store: StateStore | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._clock = clock
        self._records: dict[str, ProjectSessionRecord] = store.load() if store else {}
        self._records_lock = threading.Lock()
        self._persist_lock = threading.Lock()
        self._project_locks = KeyedLock()

    def record_event(self, event: HookEvent) -> tuple[SessionState, bool]:
        """Apply one hook event.

        The updated record is built aside, persisted, and only then swapped
        in, so a failed save leaves both memory and disk unchanged.

        Args:
            event: A validated hook event.

        Returns:
            Tuple of (state after the event, whether the state changed).

        Raises:
            OSError: If the store cannot be written; the event is not applied.
        """
        with self._project_locks.hold(event.project_path):
            ingested_at = self._clock()
            with self._records_lock:
                current = self._records.get(event.project_path)
            if current is None:
                current = ProjectSessionRecord(project_path=event.project_path)

            first_sight = event.session_id is None or event.session_id != current.session_id
            target = next_state(current.state, event, first_sight=first_sight)
            updated = replace(current)

            event_time = event.timestamp or ingested_at
            if updated.last_hook_event_at is None or event_time > updated.last_hook_event_at:
                updated.last_hook_event_at = event_time
            if event.session_id:
                updated.session_id = event.session_id

            transitioned = target is not None and target is not current.state
            if transitioned:
                logger.debug(
                    "%s: %s -> %s on %s",
                    event.project_path,
                    current.state.value,
                    target.value,
                    event.type.value,
                )
                updated.state = target
                updated.state_changed_at = self._transition_time(
                    current, event.timestamp, ingested_at
                )
            if updated.state is SessionState.WAITING:
                message = event.payload.get("message")
                if target is SessionState.WAITING and isinstance(message, str) and message:
                    updated.blocker = message
            else:
                updated.blocker = None

            self._commit(updated)
            return updated.state, transitioned

    def get(self, project_path: str) -> ProjectSessionRecord | None:
        """Return a copy of one record, or None if the project is unknown."""
        with self._records_lock:
            record = self._records.get(project_path)
            return copy.copy(record) if record else None

    def records(self) -> dict[str, ProjectSessionRecord]:
        """Return copies of all records."""
        with self._records_lock:
            return {path: copy.copy(r) for path, r in self._records.items()}

    @staticmethod
    def _transition_time(
        record: ProjectSessionRecord,
        event_time: datetime | None,
        ingested_at: datetime,
    ) -> datetime:
        """Pick a state_changed_at that never moves backwards."""
        previous = record.state_changed_at
        if event_time is not None and (previous is None or event_time >= previous):
            return event_time
        if previous is not None and ingested_at < previous:
            return previous
        return ingested_at

    def _commit(self, record: ProjectSessionRecord) -> None:
        """Persist the records with ``record`` in place, then publish it in memory.

        Saves are serialized so each one includes every record committed
        before it. Readers never see a half-updated record.
        """
        with self._persist_lock:
            if self._store is not None:
                pending = self.records()
                pending[record.project_path] = record
                self._store.save(pending)
            with self._records_lock:
                self._records[record.project_path] = record


def replay(events: Iterable[HookEvent]) -> tuple[dict[str, ProjectSessionRecord], int]:
    """Run an ordered transcript through a fresh in-memory machine.

    Args:
        events: Hook events in order.

    Returns:
        Tuple of (final records by project, number of state changes).
    """
    machine = SessionStateMachine()
    changes = 0
    for event in events:
        _, transitioned = machine.record_event(event)
        if transitioned:
            changes += 1
    return machine.records(), changes
