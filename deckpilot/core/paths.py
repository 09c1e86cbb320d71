"""Centralized path constants for DeckPilot."""

from __future__ import annotations

import os
from pathlib import Path

# Project/package roots
PROJECT_ROOT = Path(__file__).resolve().parents[2]
PACKAGE_ROOT = PROJECT_ROOT / "deckpilot"

# Service configuration (key = value text file)
CONFIG_PATH = PROJECT_ROOT / "config.txt"

# User-specific state (allows running from read-only project directories)
_USER_STATE_ENV = os.environ.get("DECKPILOT_STATE_DIR")
USER_STATE_DIR = Path(_USER_STATE_ENV).expanduser() if _USER_STATE_ENV else (Path.home() / ".deckpilot")

# Persisted show state (recorders, takes, history, settings)
STATE_FILE = USER_STATE_DIR / "state.json"

# Logging
LOGS_DIR = USER_STATE_DIR / "logs"
MASTER_LOG_FILE = LOGS_DIR / "deckpilot.log"


def ensure_directories() -> None:
    """Create necessary directories if they don't exist."""

    USER_STATE_DIR.mkdir(parents=True, exist_ok=True)
    LOGS_DIR.mkdir(parents=True, exist_ok=True)


__all__ = [
    'PROJECT_ROOT',
    'PACKAGE_ROOT',
    'CONFIG_PATH',
    'USER_STATE_DIR',
    'STATE_FILE',
    'LOGS_DIR',
    'MASTER_LOG_FILE',
    'ensure_directories',
]
