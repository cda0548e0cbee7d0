"""
Centralized configuration: environment variables, paths, and tuning constants.
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

_log = logging.getLogger(__name__)

WORLD_API_BASE = os.getenv("WORLD_API_BASE", "http://localhost:3000").rstrip("/")
HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "10"))

DATA_DIR = Path(os.getenv("DATA_DIR", "./data")).resolve()
AGENTS_PATH = DATA_DIR / "agents.json"
CUSTODIAL_KEYS_PATH = os.getenv("CUSTODIAL_KEYS_PATH", "").strip()

ADMIN_TOKEN = os.getenv("ADMIN_TOKEN", "").strip()

# Tick loop
TICK_SECONDS = float(os.getenv("AGENT_TICK_SECONDS", "1.2"))
RETRY_BASE_SECONDS = float(os.getenv("RETRY_BASE_SECONDS", str(TICK_SECONDS * 2)))
RETRY_MULTIPLIER = float(os.getenv("RETRY_MULTIPLIER", "2.0"))
RETRY_MAX_SECONDS = float(os.getenv("RETRY_MAX_SECONDS", "30"))

# Session tokens live 24h on the world side; we cache for 23h and refresh 1h early.
TOKEN_TTL_SECONDS = 23 * 3600
TOKEN_REFRESH_MARGIN_SECONDS = 3600

# Activity history kept per agent config
MAX_CHAT_HISTORY = int(os.getenv("MAX_CHAT_HISTORY", "50"))

DEFAULT_ZONE = "village-square"


def validate_config() -> None:
    """Log warnings for missing/insecure configuration. Called once at startup."""
    if not ADMIN_TOKEN:
        _log.warning(
            "ADMIN_TOKEN is empty: agent control endpoints are UNPROTECTED. "
            "Set ADMIN_TOKEN env var in production."
        )
    if not CUSTODIAL_KEYS_PATH:
        _log.warning(
            "CUSTODIAL_KEYS_PATH is empty: no custodial keys loaded. "
            "Agents will fail authentication until keys are registered."
        )
    elif not Path(CUSTODIAL_KEYS_PATH).exists():
        _log.warning(
            "CUSTODIAL_KEYS_PATH is set to '%s' but file does not exist.",
            CUSTODIAL_KEYS_PATH,
        )
    if TICK_SECONDS <= 0:
        _log.warning("AGENT_TICK_SECONDS=%s is not positive; agents will spin.", TICK_SECONDS)
    _log.info("World API: %s (data dir %s)", WORLD_API_BASE, DATA_DIR)
