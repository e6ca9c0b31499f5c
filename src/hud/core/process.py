"""Process identity checks for shell telemetry.

A heartbeat only proves a shell existed when it was sent. Before routing to
it we confirm the pid is still alive and still sitting inside the project.
"""

import errno
import logging
import os
import subprocess

from hud.core.models import ShellTelemetryRecord, path_within

logger = logging.getLogger(__name__)


def pid_alive(pid: int) -> bool:
    """Check whether a process exists (signal 0)."""
    if pid <= 0:
        return False
    try:
        os.kill(pid, 0)
    except OSError as e:
        # EPERM: exists but owned by someone else
        return e.errno == errno.EPERM
    return True


def _proc_cwd(pid: int) -> str | None:
    try:
        return os.readlink(f"/proc/{pid}/cwd")
    except OSError:
        return None


def _lsof_cwd(pid: int, timeout: float) -> str | None:
    try:
        result = subprocess.run(
            ["lsof", "-a", "-p", str(pid), "-d", "cwd", "-Fn"],
            capture_output=True,
            text=True,
            timeout=timeout,
        )
    except (subprocess.TimeoutExpired, FileNotFoundError, OSError):
        return None
    if result.returncode != 0:
        return None
    for line in result.stdout.splitlines():
        if line.startswith("n/"):
            return line[1:]
    return None


def process_cwd(pid: int, timeout: float = 2.0) -> str | None:
    """Resolve a process's working directory.

    Uses ``/proc`` where available and ``lsof`` otherwise (macOS).

    Returns:
        The cwd, or None if it cannot be determined.
    """
    if os.path.isdir("/proc"):
        cwd = _proc_cwd(pid)
        if cwd is not None:
            return cwd
    return _lsof_cwd(pid, timeout)


def verify_shell(record: ShellTelemetryRecord, project_path: str, timeout: float = 2.0) -> bool:
    """Confirm a shell is alive and still inside the project.

    A cwd that cannot be read (permissions, no lsof) does not fail the check;
    only a readable cwd outside the project does.
    """
    if not pid_alive(record.pid):
        logger.debug("shell pid %d on %s is gone", record.pid, record.tty)
        return False
    cwd = process_cwd(record.pid, timeout)
    if cwd is not None and not path_within(cwd, project_path):
        logger.debug("shell pid %d moved to %s, outside %s", record.pid, cwd, project_path)
        return False
    return True
