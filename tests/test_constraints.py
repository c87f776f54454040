"""Tests for office policy and area validation rules.

Covers every branch in validate_office_policy() and validate_area().
"""

from __future__ import annotations

import pytest

from workspace_booking.domain.clock import Weekday
from workspace_booking.domain.constraints import validate_area, validate_office_policy
from workspace_booking.domain.models import Area, AreaCategory
from workspace_booking.domain.office_policy import OfficePolicy, TimeWindow


def valid_policy(**overrides) -> OfficePolicy:
    """Return a valid baseline OfficePolicy, optionally overriding fields."""
    defaults = {
        "office_days": frozenset({Weekday.MON, Weekday.TUE, Weekday.WED, Weekday.THU, Weekday.FRI}),
        "office_hours": TimeWindow("07:00", "18:00"),
        "business_hours": TimeWindow("07:00", "18:00"),
        "max_reservation_days_ahead": 30,
        "allow_same_day_reservations": True,
        "require_approval": False,
    }
    defaults.update(overrides)
    return OfficePolicy(**defaults)


def valid_area(**overrides) -> Area:
    defaults = {
        "area_id": 1,
        "name": "Sala Neon",
        "capacity": 10,
        "category": AreaCategory.MEETING_ROOM,
        "min_reservation_minutes": 30,
        "max_reservation_minutes": 240,
    }
    defaults.update(overrides)
    return Area(**defaults)


# --- Baseline pass ---

def test_valid_policy_passes() -> None:
    validate_office_policy(valid_policy())


def test_valid_area_passes() -> None:
    validate_area(valid_area())


# --- office policy windows ---

def test_business_hours_start_after_end_raises() -> None:
    with pytest.raises(ValueError):
        validate_office_policy(valid_policy(business_hours=TimeWindow("18:00", "07:00")))


def test_empty_office_hours_window_raises() -> None:
    with pytest.raises(ValueError):
        validate_office_policy(valid_policy(office_hours=TimeWindow("09:00", "09:00")))


def test_malformed_window_boundary_raises() -> None:
    with pytest.raises(ValueError):
        validate_office_policy(valid_policy(business_hours=TimeWindow("7am", "18:00")))


def test_negative_days_ahead_raises() -> None:
    with pytest.raises(ValueError):
        validate_office_policy(valid_policy(max_reservation_days_ahead=-1))


def test_zero_days_ahead_is_allowed() -> None:
    validate_office_policy(valid_policy(max_reservation_days_ahead=0))


# --- areas ---

def test_blank_area_name_raises() -> None:
    with pytest.raises(ValueError):
        validate_area(valid_area(name="   "))


def test_zero_capacity_raises() -> None:
    with pytest.raises(ValueError):
        validate_area(valid_area(capacity=0))


def test_non_positive_min_duration_raises() -> None:
    with pytest.raises(ValueError):
        validate_area(valid_area(min_reservation_minutes=0))


def test_max_duration_below_min_raises() -> None:
    with pytest.raises(ValueError):
        validate_area(valid_area(min_reservation_minutes=60, max_reservation_minutes=30))
