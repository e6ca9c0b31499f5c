"""hud configuration management.

Settings are resolved in order: built-in defaults, then ``{home}/config.json``,
then environment variables. The resolved ``HudConfig`` is immutable and is
handed explicitly to every component that needs it.
"""

import logging
import os
from dataclasses import asdict, dataclass, field, replace
from pathlib import Path

import orjson

logger = logging.getLogger(__name__)

HOME_ENV = "HUD_HOME"

DEFAULT_READY_STALE_AFTER = 24 * 60 * 60
DEFAULT_SHELL_FRESH_WITHIN = 90
DEFAULT_SHELL_RETENTION = 24 * 60 * 60
DEFAULT_TMUX_TIMEOUT = 2.0
DEFAULT_POLL_INTERVAL = 3.0

# config.json key -> environment variable
ENV_OVERRIDES = {
    "ready_stale_after": "HUD_READY_STALE_SECONDS",
    "shell_fresh_within": "HUD_SHELL_FRESH_SECONDS",
    "shell_retention": "HUD_SHELL_RETENTION_SECONDS",
    "tmux_timeout": "HUD_TMUX_TIMEOUT",
    "poll_interval": "HUD_POLL_INTERVAL",
}
TMUX_SOCKET_ENV = "HUD_TMUX_SOCKET"

NUMERIC_FIELDS = tuple(ENV_OVERRIDES)


@dataclass(frozen=True)
class HudConfig:
    """Effective daemon configuration. All durations are in seconds."""

    home: Path
    ready_stale_after: float = DEFAULT_READY_STALE_AFTER
    shell_fresh_within: float = DEFAULT_SHELL_FRESH_WITHIN
    shell_retention: float = DEFAULT_SHELL_RETENTION
    tmux_timeout: float = DEFAULT_TMUX_TIMEOUT
    poll_interval: float = DEFAULT_POLL_INTERVAL
    tmux_sockets: tuple[str, ...] = field(default_factory=tuple)

    @property
    def sessions_path(self) -> Path:
        return self.home / "sessions.json"

    @property
    def routing_path(self) -> Path:
        return self.home / "routing.json"

    @property
    def events_path(self) -> Path:
        return self.home / "events.jsonl"

    @property
    def shells_path(self) -> Path:
        return self.home / "shells.jsonl"

    @property
    def events_offset_path(self) -> Path:
        return self.home / "events.offset"

    def to_dict(self) -> dict:
        data = asdict(self)
        data["home"] = str(self.home)
        data["tmux_sockets"] = list(self.tmux_sockets)
        return data


def get_hud_home() -> Path:
    """Get the hud home directory (``$HUD_HOME`` or ``~/.hud``)."""
    if env_home := os.environ.get(HOME_ENV):
        return Path(env_home).expanduser()
    return Path.home() / ".hud"


def get_config_path(home: Path | None = None) -> Path:
    return (home or get_hud_home()) / "config.json"


def read_config(home: Path | None = None) -> dict:
    """Read config.json, returning empty dict if missing or unreadable."""
    config_path = get_config_path(home)
    if not config_path.exists():
        return {}
    try:
        content = config_path.read_bytes()
        data = orjson.loads(content) if content else {}
    except (orjson.JSONDecodeError, OSError) as e:
        logger.warning("Ignoring unreadable config %s: %s", config_path, e)
        return {}
    if not isinstance(data, dict):
        logger.warning("Ignoring config %s: expected an object", config_path)
        return {}
    return data


def write_config(config: dict, home: Path | None = None) -> None:
    config_path = get_config_path(home)
    config_path.parent.mkdir(parents=True, exist_ok=True)
    config_path.write_bytes(orjson.dumps(config, option=orjson.OPT_INDENT_2))


def _positive_number(key: str, value: object, default: float) -> float:
    try:
        number = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        logger.warning("Invalid %s=%r, using default %s", key, value, default)
        return default
    if number <= 0:
        logger.warning("Invalid %s=%r, using default %s", key, value, default)
        return default
    return number


def load_config(home: Path | None = None) -> HudConfig:
    """Resolve the effective configuration.

    Args:
        home: hud home directory. Defaults to ``get_hud_home()``.

    Returns:
        The resolved HudConfig.
    """
    home = home or get_hud_home()
    config = HudConfig(home=home)
    stored = read_config(home)

    overrides: dict = {}
    for key in NUMERIC_FIELDS:
        default = getattr(config, key)
        if key in stored:
            overrides[key] = _positive_number(key, stored[key], default)
        env_value = os.environ.get(ENV_OVERRIDES[key])
        if env_value:
            overrides[key] = _positive_number(key, env_value, default)

    sockets = stored.get("tmux_sockets", [])
    if not isinstance(sockets, list):
        logger.warning("Invalid tmux_sockets=%r, ignoring", sockets)
        sockets = []
    if env_sockets := os.environ.get(TMUX_SOCKET_ENV):
        sockets = [s.strip() for s in env_sockets.split(",")]
    overrides["tmux_sockets"] = tuple(str(s) for s in sockets if s)

    return replace(config, **overrides)


def set_config_value(key: str, value: str, home: Path | None = None) -> None:
    """Persist a single setting to config.json.

    Args:
        key: One of the numeric settings or ``tmux_sockets``.
        value: Raw string value; sockets are comma separated.

    Raises:
        ValueError: If key is unknown or value is not a positive number.
    """
    stored = read_config(home)
    if key == "tmux_sockets":
        stored[key] = [s.strip() for s in value.split(",") if s.strip()]
    elif key in NUMERIC_FIELDS:
        try:
            number = float(value)
        except ValueError:
            raise ValueError(f"{key} must be a number") from None
        if number <= 0:
            raise ValueError(f"{key} must be > 0")
        stored[key] = number
    else:
        raise ValueError(f"Unknown setting: {key}")
    write_config(stored, home)
