import logging as _logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(Path.home() / ".litebar" / ".env")

_log = _logging.getLogger(__name__)


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def _env_int(name: str, default: int, *, minimum: int | None = None) -> int:
    """Parse an integer env var with safe fallback on invalid input."""
    raw = os.getenv(name)
    if raw is None:
        value = default
    else:
        try:
            value = int(raw.strip())
        except ValueError:
            value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _env_float(name: str, default: float, *, minimum: float | None = None) -> float:
    """Parse a float env var with safe fallback on invalid input."""
    raw = os.getenv(name)
    if raw is None:
        value = default
    else:
        try:
            value = float(raw.strip())
        except ValueError:
            value = default
    if minimum is not None:
        value = max(minimum, value)
    return value


def _env_path(name: str, default: Path) -> Path:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    return Path(raw).expanduser()


def _legacy_config_dir() -> Path:
    if sys.platform == "darwin":
        return Path.home() / "Library" / "Application Support" / "Litebar"
    return Path.home() / ".config" / "litebar"


# Identity
APP_NAME = "Litebar"

# Paths
PROJECT_ROOT = Path(__file__).parent
CONFIG_DIR = _env_path("LITEBAR_CONFIG_DIR", Path.home() / ".litebar")
LEGACY_CONFIG_DIR = _legacy_config_dir()
LOG_DIR = _env_path("LITEBAR_LOG_DIR", CONFIG_DIR / "logs")

# Files (relative to CONFIG_DIR, resolved at call time so tests can patch CONFIG_DIR)
CONFIG_FILE_NAME = "config.yaml"
AGENT_GUIDE_FILE_NAME = "AGENTS.md"
BACKUPS_DIR_NAME = "backups"

# Configuration document defaults and floors
DEFAULT_REFRESH_INTERVAL = 60  # seconds
MIN_REFRESH_INTERVAL = 10  # seconds
DEFAULT_ACTIVITY_TIMEOUT_MINUTES = 30
MIN_ACTIVITY_TIMEOUT_MINUTES = 1

# Change-source watchers
CONFIG_WATCH_DEBOUNCE = _env_float("LITEBAR_CONFIG_WATCH_DEBOUNCE", 0.3, minimum=0.0)  # seconds
DATABASE_WATCH_DEBOUNCE = _env_float("LITEBAR_DATABASE_WATCH_DEBOUNCE", 0.5, minimum=0.0)  # seconds
WATCH_POLL_INTERVAL = _env_float("LITEBAR_WATCH_POLL_INTERVAL", 0.25, minimum=0.01)  # seconds

# SQLite access
SQLITE_BUSY_TIMEOUT_MS = _env_int("LITEBAR_SQLITE_BUSY_TIMEOUT_MS", 1000, minimum=0)

# Health thresholds
HEALTH_FRAGMENTATION_RATIO = _env_float("LITEBAR_HEALTH_FRAGMENTATION_RATIO", 0.5, minimum=0.0)
HEALTH_WAL_WARN_BYTES = _env_int("LITEBAR_HEALTH_WAL_WARN_MB", 100, minimum=1) * 1024 * 1024

# Scanner
SCAN_MAX_DEPTH = _env_int("LITEBAR_SCAN_MAX_DEPTH", 6, minimum=1)

# Notifications
NOTIFICATIONS_ENABLED = _env_bool("LITEBAR_NOTIFICATIONS_ENABLED", True)
NOTIFY_COMMAND = os.getenv("LITEBAR_NOTIFY_COMMAND", "").strip()

# Logging
LOG_LEVEL = os.getenv("LITEBAR_LOG_LEVEL", "INFO").strip().upper() or "INFO"

if not NOTIFICATIONS_ENABLED:
    _log.info("LITEBAR_NOTIFICATIONS_ENABLED is off: watch alerts will only be logged")
