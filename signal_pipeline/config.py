"""
Runtime configuration for the prospecting signal pipeline.

Values come from the environment (optionally a project-level .env file).
Every policy constant that callers may want to tune lives here so the
modules that use it only import a name.
"""

import os

from dotenv import load_dotenv

_PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
load_dotenv(os.path.join(_PROJECT_ROOT, ".env"))


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in ("true", "1", "yes")


# Remote API and portal
API_BASE = os.getenv("SIGNAL_API_BASE", "http://localhost:3002").rstrip("/")
PORTAL_URL = os.getenv("SIGNAL_PORTAL_URL", "http://localhost:5173").rstrip("/")
HTTP_TIMEOUT = _env_float("SIGNAL_HTTP_TIMEOUT", 30.0)

# Session verification endpoint; a 401 here means the session itself is gone
VERIFY_ENDPOINT = os.getenv("SIGNAL_VERIFY_ENDPOINT", "/auth/me")

# Local persistent storage
DEFAULT_DB_DIR = "data"
DEFAULT_DB_NAME = "signal_pipeline.db"

# Audit polling (one policy for every call site)
AUDIT_POLL_INTERVAL = _env_float("AUDIT_POLL_INTERVAL", 2.0)  # seconds
AUDIT_MAX_ATTEMPTS = _env_int("AUDIT_MAX_ATTEMPTS", 30)       # ~60s at 2s

# Message bridge
BRIDGE_MAX_ATTEMPTS = _env_int("BRIDGE_MAX_ATTEMPTS", 3)
BRIDGE_RETRY_DELAY = _env_float("BRIDGE_RETRY_DELAY", 0.2)    # seconds
BRIDGE_TIMEOUT = _env_float("BRIDGE_TIMEOUT", 10.0)           # per delivery
READINESS_DELAY = _env_float("PAGE_READINESS_DELAY", 0.05)    # before first detection

# Page fetching
WEBSITE_TIMEOUT = _env_int("WEBSITE_TIMEOUT", 10)
HEADLESS_ENABLED = _env_bool("HEADLESS_ENABLED", False)
HEADLESS_TIMEOUT_MS = _env_int("HEADLESS_TIMEOUT_MS", 15000)


def get_db_path() -> str:
    """Return path to the SQLite file backing local storage."""
    path = os.getenv("SIGNAL_DB_PATH")
    if path:
        return path
    os.makedirs(DEFAULT_DB_DIR, exist_ok=True)
    return os.path.join(DEFAULT_DB_DIR, DEFAULT_DB_NAME)
