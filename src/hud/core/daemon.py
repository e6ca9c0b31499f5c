"""The hud daemon: context, log ingestion and the routing poller.

Hook events and shell heartbeats arrive as JSON lines appended to
``events.jsonl`` and ``shells.jsonl`` in the hud home. The daemon tails both
files into the evidence store, applies hook events to the state machine,
and on a fixed interval recomputes and publishes routing snapshots.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path

import orjson
from watchfiles import watch

from hud.core.config import HudConfig
from hud.core.evidence import EvidenceStore
from hud.core.models import RoutingSnapshot, TmuxSessionInfo, utcnow
from hud.core.routing import RoutingResolver, ShellVerifier
from hud.core.state import SessionStateMachine
from hud.core.store import RoutingFeed, StateStore, TailCheckpoint

logger = logging.getLogger(__name__)


@dataclass
class DaemonContext:
    """Everything the daemon owns, built once at startup.

    Passed explicitly to whatever needs it; there is no module-level state.
    """

    config: HudConfig
    evidence: EvidenceStore
    machine: SessionStateMachine
    resolver: RoutingResolver
    feed: RoutingFeed
    shutdown: threading.Event = field(default_factory=threading.Event)
    clock: Callable[[], datetime] = utcnow

    @classmethod
    def create(
        cls,
        config: HudConfig,
        tmux_query: Callable[[], list[TmuxSessionInfo]] | None = None,
        verify: ShellVerifier | None = None,
        clock: Callable[[], datetime] = utcnow,
    ) -> "DaemonContext":
        """Load persisted state and wire up the components.

        Args:
            config: Effective configuration.
            tmux_query: Override for the tmux query (tests).
            verify: Override for process verification (tests).
            clock: Source of ``now``.
        """
        shutdown = threading.Event()
        evidence = EvidenceStore(config)
        machine = SessionStateMachine(StateStore(config.sessions_path), clock=clock)
        for project_path in machine.records():
            evidence.add_project(project_path)
        resolver = RoutingResolver(
            config,
            evidence,
            tmux_query=tmux_query,
            verify=verify,
            clock=clock,
            shutdown=shutdown,
        )
        return cls(
            config=config,
            evidence=evidence,
            machine=machine,
            resolver=resolver,
            feed=RoutingFeed(config.routing_path),
            shutdown=shutdown,
            clock=clock,
        )

    def ingest_hook(self, data: object) -> bool:
        """Validate and apply one hook record. Returns False if rejected."""
        event = self.evidence.accept_hook(data)
        if event is None:
            return False
        self.machine.record_event(event)
        return True

    def ingest_shell(self, data: object) -> bool:
        return self.evidence.accept_shell(data, received_at=self.clock()) is not None


class LogTailer:
    """Feeds complete JSON lines appended to a file into a handler.

    The read offset advances one line at a time, and only once the handler
    has returned, so a handler error leaves the failing line to be retried.
    With a checkpoint the offset also survives restarts; a file that shrank
    or was replaced is read again from the start. A trailing partial line is
    left for the next poll.
    """

    def __init__(
        self,
        path: Path,
        handler: Callable[[object], object],
        checkpoint: TailCheckpoint | None = None,
    ) -> None:
        self.path = path
        self._handler = handler
        self._checkpoint = checkpoint
        self._offset, self._inode = checkpoint.load() if checkpoint else (0, None)

    @property
    def offset(self) -> int:
        return self._offset

    def _save(self) -> None:
        if self._checkpoint is not None:
            self._checkpoint.save(self._offset, self._inode)

    def poll(self) -> int:
        """Process new lines.

        Returns:
            Number of decoded lines handed to the handler.

        Raises:
            Exception: Whatever the handler raised; earlier lines stay applied.
        """
        try:
            stat = self.path.stat()
        except FileNotFoundError:
            self._offset, self._inode = 0, None
            return 0
        if self._inode is not None and stat.st_ino != self._inode:
            logger.info("%s was replaced; reading from the start", self.path.name)
            self._offset = 0
        elif stat.st_size < self._offset:
            logger.info("%s was truncated; reading from the start", self.path.name)
            self._offset = 0
        self._inode = stat.st_ino
        if stat.st_size == self._offset:
            return 0

        with self.path.open("rb") as f:
            f.seek(self._offset)
            data = f.read(stat.st_size - self._offset)
        end = data.rfind(b"\n")
        if end == -1:
            return 0

        count = 0
        for line in data[:end].split(b"\n"):
            if line.strip():
                try:
                    record = orjson.loads(line)
                except orjson.JSONDecodeError as e:
                    logger.warning("Skipping undecodable line in %s: %s", self.path.name, e)
                else:
                    self._handler(record)
                    count += 1
            self._offset += len(line) + 1
            self._save()
        return count


class Daemon:
    """Runs ingestion and the scheduled routing poll until shutdown."""

    def __init__(self, context: DaemonContext) -> None:
        self.context = context
        config = context.config
        self._ingest_lock = threading.Lock()
        self._tailers = [
            LogTailer(
                config.events_path,
                context.ingest_hook,
                TailCheckpoint(config.events_offset_path),
            ),
            # heartbeats are replayed from the start to rebuild telemetry
            LogTailer(config.shells_path, context.ingest_shell),
        ]
        self._poller: threading.Thread | None = None

    def ingest(self) -> int:
        """Drain both logs. Returns the number of lines read."""
        with self._ingest_lock:
            return sum(tailer.poll() for tailer in self._tailers)

    def poll_routing(self) -> dict[str, RoutingSnapshot]:
        """Prune telemetry, recompute all snapshots, publish the feed."""
        ctx = self.context
        ctx.evidence.prune(ctx.clock())
        results = ctx.resolver.snapshot_all()
        if ctx.shutdown.is_set():
            return results
        ctx.feed.publish(ctx.resolver.snapshots())
        return results

    def tick(self) -> None:
        """One scheduled cycle: catch up on logs, then route."""
        self.ingest()
        self.poll_routing()

    def _poll_loop(self) -> None:
        interval = self.context.config.poll_interval
        while not self.context.shutdown.wait(interval):
            try:
                self.tick()
            except Exception:
                logger.exception("Routing poll failed")

    def start(self) -> None:
        """Catch up once, then start the routing poll thread."""
        self.context.config.home.mkdir(parents=True, exist_ok=True)
        self.tick()
        self._poller = threading.Thread(target=self._poll_loop, name="hud-routing-poll", daemon=True)
        self._poller.start()

    def run(self) -> None:
        """Start and block, ingesting on file changes, until ``stop()``."""
        self.start()
        config = self.context.config
        watched = {config.events_path.name, config.shells_path.name}
        logger.info("hud daemon watching %s", config.home)
        try:
            for changes in watch(config.home, stop_event=self.context.shutdown):
                if not any(Path(path).name in watched for _, path in changes):
                    continue
                try:
                    self.ingest()
                except Exception:
                    logger.exception("Ingestion failed; retrying on the next change or poll")
        finally:
            self.stop()

    def stop(self) -> None:
        """Signal shutdown; in-flight snapshots are not published."""
        self.context.shutdown.set()
        if self._poller is not None and self._poller is not threading.current_thread():
            self._poller.join(timeout=self.context.config.tmux_timeout + 1)
        logger.info("hud daemon stopped")
