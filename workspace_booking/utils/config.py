"""Environment-driven application settings."""

from __future__ import annotations

import os
from dataclasses import dataclass
from functools import lru_cache
from pathlib import Path
from typing import Optional


_TRUE_VALUES = {"1", "true", "yes", "on"}
_FALSE_VALUES = {"0", "false", "no", "off"}


def _env_str(name: str, default: str) -> str:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return value.strip()


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return int(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {value!r}") from exc


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    try:
        return float(value)
    except ValueError as exc:
        raise ValueError(f"{name} must be a number, got {value!r}") from exc


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    normalized = value.strip().lower()
    if normalized in _TRUE_VALUES:
        return True
    if normalized in _FALSE_VALUES:
        return False
    raise ValueError(f"{name} must be a boolean flag, got {value!r}")


def _env_days(name: str, default: tuple[str, ...]) -> tuple[str, ...]:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return tuple(item.strip().upper() for item in value.split(",") if item.strip())


@dataclass(frozen=True)
class Settings:
    app_name: str
    app_version: str
    log_level: str
    log_format: str
    database_path: Path
    local_timezone: str
    operator_token: Optional[str]
    seed_default_areas: bool
    enforce_exclusive_slot_uniqueness: bool
    reservation_id_max_attempts: int

    default_office_days: tuple[str, ...]
    default_office_hours_start: str
    default_office_hours_end: str
    default_business_hours_start: str
    default_business_hours_end: str
    default_max_reservation_days_ahead: int
    default_allow_same_day_reservations: bool
    default_require_approval: bool

    default_min_reservation_minutes: int
    default_max_reservation_minutes: int
    availability_slot_step_minutes: int

    utilization_busy_threshold: float
    utilization_critical_threshold: float


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Build settings once per process; tests clear the cache to rebuild."""
    operator_token = os.getenv("OPERATOR_TOKEN")
    return Settings(
        app_name=_env_str("APP_NAME", "Workspace Booking Core"),
        app_version=_env_str("APP_VERSION", "1.0.0"),
        log_level=_env_str("LOG_LEVEL", "INFO"),
        log_format=_env_str(
            "LOG_FORMAT",
            "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        ),
        database_path=Path(_env_str("DATABASE_PATH", "data/workspace_booking.db")),
        local_timezone=_env_str("LOCAL_TIMEZONE", "America/Bogota"),
        operator_token=operator_token.strip() if operator_token and operator_token.strip() else None,
        seed_default_areas=_env_bool("SEED_DEFAULT_AREAS", True),
        enforce_exclusive_slot_uniqueness=_env_bool("ENFORCE_EXCLUSIVE_SLOT_UNIQUENESS", False),
        reservation_id_max_attempts=_env_int("RESERVATION_ID_MAX_ATTEMPTS", 3),
        default_office_days=_env_days(
            "OFFICE_DAYS",
            ("MON", "TUE", "WED", "THU", "FRI"),
        ),
        default_office_hours_start=_env_str("OFFICE_HOURS_START", "07:00"),
        default_office_hours_end=_env_str("OFFICE_HOURS_END", "18:00"),
        default_business_hours_start=_env_str("BUSINESS_HOURS_START", "07:00"),
        default_business_hours_end=_env_str("BUSINESS_HOURS_END", "18:00"),
        default_max_reservation_days_ahead=_env_int("MAX_RESERVATION_DAYS_AHEAD", 30),
        default_allow_same_day_reservations=_env_bool("ALLOW_SAME_DAY_RESERVATIONS", True),
        default_require_approval=_env_bool("REQUIRE_APPROVAL", False),
        default_min_reservation_minutes=_env_int("MIN_RESERVATION_MINUTES", 30),
        default_max_reservation_minutes=_env_int("MAX_RESERVATION_MINUTES", 480),
        availability_slot_step_minutes=_env_int("AVAILABILITY_SLOT_STEP_MINUTES", 60),
        utilization_busy_threshold=_env_float("UTILIZATION_BUSY_THRESHOLD", 70.0),
        utilization_critical_threshold=_env_float("UTILIZATION_CRITICAL_THRESHOLD", 90.0),
    )
