"""Project identification for hook events and shell heartbeats.

A project is the git repository root containing a directory, or the
directory itself when it is not inside a repository.
"""

import subprocess
from pathlib import Path

from hud.core.models import normalize_project_path


def get_root_path_for(path: Path, timeout: float = 2.0) -> Path:
    """Get the git root for path, or path itself outside a repository."""
    try:
        result = subprocess.run(
            ["git", "-C", str(path), "rev-parse", "--show-toplevel"],
            capture_output=True,
            text=True,
            check=True,
            timeout=timeout,
        )
    except (subprocess.CalledProcessError, subprocess.TimeoutExpired, FileNotFoundError):
        return path
    root = result.stdout.strip()
    return Path(root) if root else path


def resolve_project_path(cwd: str | None) -> str | None:
    """Normalized absolute project path for a working directory.

    Returns:
        The project path, or None when cwd is missing or relative.
    """
    if not cwd or not cwd.startswith("/"):
        return None
    return normalize_project_path(str(get_root_path_for(Path(cwd))))
