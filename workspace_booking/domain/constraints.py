"""Domain-level validation rules for configuration and area definitions."""

from __future__ import annotations

from workspace_booking.domain.clock import ClockFormatError, minutes_of_day
from workspace_booking.domain.models import Area
from workspace_booking.domain.office_policy import OfficePolicy, TimeWindow


def _validate_window(label: str, window: TimeWindow) -> None:
    try:
        start = minutes_of_day(window.start)
        end = minutes_of_day(window.end)
    except ClockFormatError as exc:
        raise ValueError(f"{label} must use HH:MM boundaries") from exc
    if start >= end:
        raise ValueError(f"{label} start must be before end")


def validate_office_policy(policy: OfficePolicy) -> None:
    _validate_window("office_hours", policy.office_hours)
    _validate_window("business_hours", policy.business_hours)
    if policy.max_reservation_days_ahead < 0:
        raise ValueError("max_reservation_days_ahead must be >= 0")


def validate_area(area: Area) -> None:
    if not area.name.strip():
        raise ValueError("area name must be non-empty")
    if area.capacity < 1:
        raise ValueError("capacity must be >= 1")
    if area.min_reservation_minutes <= 0:
        raise ValueError("min_reservation_minutes must be > 0")
    if area.max_reservation_minutes < area.min_reservation_minutes:
        raise ValueError("max_reservation_minutes must be >= min_reservation_minutes")
