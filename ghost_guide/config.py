from __future__ import annotations

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()

PROJECT_ROOT = Path(__file__).resolve().parent.parent

DEFAULT_DB_PATH = str(PROJECT_ROOT / "ghost_guide.db")
DEFAULT_METRICS_DB_PATH = str(PROJECT_ROOT / "sync_metrics.db")
DEFAULT_ADMIN_EMAILS = "admin@example.com"
PLUTO_API_BASE = "https://api.pluto.tv/v2"
OMDB_BASE_URL = "https://www.omdbapi.com/"
WATCHMODE_BASE_URL = "https://api.watchmode.com/v1"


def _split_emails(raw: str) -> set[str]:
    return {e.strip().lower() for e in raw.split(",") if e.strip()}


def load_config() -> dict:
    """Read runtime settings from the environment (and `.env` if present)."""
    return {
        "DATABASE_PATH": os.getenv("DATABASE_PATH", DEFAULT_DB_PATH),
        "ADMIN_EMAILS": _split_emails(os.getenv("ADMIN_EMAILS", DEFAULT_ADMIN_EMAILS)),
        "OMDB_API_KEY": os.getenv("OMDB_API_KEY"),
        "WATCHMODE_API_KEY": os.getenv("WATCHMODE_API_KEY"),
        "PLUTO_API_BASE": os.getenv("PLUTO_API_BASE", PLUTO_API_BASE),
        "SYNC_METRICS_DB": resolve_project_path(os.getenv("SYNC_METRICS_DB", DEFAULT_METRICS_DB_PATH)),
        "LOG_LEVEL": os.getenv("LOG_LEVEL", "INFO").upper(),
    }


def resolve_project_path(path: str) -> str:
    """Relative paths from config files are taken from the project root, not the cwd."""
    if os.path.isabs(path):
        return path
    return str(PROJECT_ROOT / path)
