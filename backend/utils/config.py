"""Application settings loaded from environment variables."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path


PROJECT_ROOT = Path(__file__).resolve().parents[2]


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return float(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {raw!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    database_path: Path
    log_level: str
    admin_token: str
    admin_session_ttl_seconds: float
    default_timezone: str
    slot_step_minutes: int
    availability_cache_ttl_seconds: float
    availability_cache_max_entries: int
    sqlite_busy_timeout_seconds: float
    seed_demo_data: bool


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests override with dataclasses.replace."""
    return Settings(
        app_name=_env_str("APP_NAME", "Booking Availability Engine"),
        app_version=_env_str("APP_VERSION", "0.1.0"),
        database_path=Path(
            _env_str("DATABASE_PATH", str(PROJECT_ROOT / "data" / "booking.db"))
        ),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        admin_token=_env_str("ADMIN_TOKEN", ""),
        admin_session_ttl_seconds=_env_float("ADMIN_SESSION_TTL_SECONDS", 8 * 3600.0),
        default_timezone=_env_str("DEFAULT_TIMEZONE", "America/Caracas"),
        slot_step_minutes=_env_int("SLOT_STEP_MINUTES", 0),
        availability_cache_ttl_seconds=_env_float("AVAILABILITY_CACHE_TTL_SECONDS", 300.0),
        availability_cache_max_entries=_env_int("AVAILABILITY_CACHE_MAX_ENTRIES", 2048),
        sqlite_busy_timeout_seconds=_env_float("SQLITE_BUSY_TIMEOUT_SECONDS", 5.0),
        seed_demo_data=_env_bool("SEED_DEMO_DATA", True),
    )
