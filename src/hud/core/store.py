"""File-backed stores for session state, the routing feed and log offsets.

Every file is rewritten wholesale on every save: the new content goes to a
temporary file in the same directory, is fsynced, then renamed over the old
file. Readers therefore only ever see a complete document. Writers from
different processes are serialized with an ``fcntl`` lock file; the last
writer wins and nothing is merged.
"""

import fcntl
import logging
import os
import tempfile
from pathlib import Path

import orjson

from hud.core.models import ProjectSessionRecord, RoutingSnapshot

logger = logging.getLogger(__name__)


def _fsync_dir(dir_path: Path) -> None:
    """Best-effort directory fsync so the rename itself is durable."""
    try:
        flags = os.O_RDONLY
        if hasattr(os, "O_DIRECTORY"):
            flags |= os.O_DIRECTORY
        fd = os.open(str(dir_path), flags)
        try:
            os.fsync(fd)
        finally:
            os.close(fd)
    except OSError:
        # Not every filesystem supports directory fsync.
        pass


def atomic_write_bytes(path: Path, content: bytes) -> None:
    """Write content to path via temp file + rename, under a lock file."""
    path.parent.mkdir(parents=True, exist_ok=True)
    lock_path = path.with_name(f".{path.name}.lock")

    with open(lock_path, "w") as lock_file:
        fcntl.flock(lock_file, fcntl.LOCK_EX)
        try:
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{path.name}.", suffix=".tmp", dir=str(path.parent)
            )
            tmp_path = Path(tmp_name)
            try:
                with os.fdopen(fd, "wb") as f:
                    f.write(content)
                    f.flush()
                    os.fsync(f.fileno())
                os.replace(tmp_path, path)
                _fsync_dir(path.parent)
            finally:
                if tmp_path.exists():
                    try:
                        tmp_path.unlink()
                    except OSError:
                        pass
        finally:
            fcntl.flock(lock_file, fcntl.LOCK_UN)


def _read_object(path: Path) -> dict:
    """Read a JSON object, treating missing/corrupt files as empty."""
    if not path.exists():
        return {}
    try:
        content = path.read_bytes()
        data = orjson.loads(content) if content else {}
    except (orjson.JSONDecodeError, OSError) as e:
        logger.warning("Treating unreadable store %s as empty: %s", path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Treating store %s as empty: expected an object", path)
        return {}
    return data


class StateStore:
    """Persisted ``{projectPath: record}`` map backing the state machine."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, ProjectSessionRecord]:
        """Load all records.

        Returns:
            Records keyed by project path. Empty if the file is missing or
            corrupt; individual invalid entries are skipped.
        """
        records: dict[str, ProjectSessionRecord] = {}
        for project_path, entry in _read_object(self.path).items():
            if not isinstance(entry, dict):
                logger.warning("Skipping invalid record for %s", project_path)
                continue
            try:
                records[project_path] = ProjectSessionRecord.from_dict(project_path, entry)
            except (ValueError, TypeError) as e:
                logger.warning("Skipping invalid record for %s: %s", project_path, e)
        return records

    def save(self, records: dict[str, ProjectSessionRecord]) -> None:
        payload = {path: record.to_dict() for path, record in sorted(records.items())}
        atomic_write_bytes(self.path, orjson.dumps(payload, option=orjson.OPT_INDENT_2))


class RoutingFeed:
    """Published routing snapshots, one per project."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> dict[str, dict]:
        return _read_object(self.path)

    def publish(self, snapshots: dict[str, RoutingSnapshot]) -> None:
        payload = {path: snap.to_dict() for path, snap in sorted(snapshots.items())}
        atomic_write_bytes(self.path, orjson.dumps(payload, option=orjson.OPT_INDENT_2))


class TailCheckpoint:
    """How far a log file has been applied: ``{"offset": n, "inode": i}``."""

    def __init__(self, path: Path) -> None:
        self.path = path

    def load(self) -> tuple[int, int | None]:
        """Return (offset, inode); (0, None) when absent or invalid."""
        data = _read_object(self.path)
        offset = data.get("offset")
        inode = data.get("inode")
        if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
            return 0, None
        if not isinstance(inode, int) or isinstance(inode, bool):
            return 0, None
        return offset, inode

    def save(self, offset: int, inode: int | None) -> None:
        atomic_write_bytes(self.path, orjson.dumps({"offset": offset, "inode": inode}))
