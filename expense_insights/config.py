import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

MEMORY_BACKEND = "memory"
SHEETS_BACKEND = "sheets"


def clean_env(value):
    if not value:
        return None
    cleaned = value.strip().strip("'\"")
    return cleaned or None


def _int_env(name, default):
    raw = clean_env(os.getenv(name))
    if raw is None:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise RuntimeError(f"{name} must be an integer (found: {raw!r})") from exc


@dataclass(frozen=True)
class Settings:
    ledger_backend: str = MEMORY_BACKEND
    spreadsheet_id: Optional[str] = None
    api_key: Optional[str] = None
    log_level: str = "INFO"
    port: int = 8080
    recent_limit: int = 50
    trend_window_days: int = 365


def load_settings():
    load_dotenv()
    backend = (clean_env(os.getenv("LEDGER_BACKEND")) or MEMORY_BACKEND).lower()
    if backend not in (MEMORY_BACKEND, SHEETS_BACKEND):
        raise RuntimeError(f"LEDGER_BACKEND must be 'memory' or 'sheets' (found: {backend!r})")
    return Settings(
        ledger_backend=backend,
        spreadsheet_id=clean_env(os.getenv("LEDGER_SPREADSHEET_ID")),
        api_key=clean_env(os.getenv("EXPENSE_API_KEY")),
        log_level=(clean_env(os.getenv("LOG_LEVEL")) or "INFO").upper(),
        port=_int_env("PORT", 8080),
        recent_limit=_int_env("RECENT_LIMIT", 50),
        trend_window_days=_int_env("TREND_WINDOW_DAYS", 365),
    )


@lru_cache(maxsize=1)
def get_settings():
    return load_settings()
