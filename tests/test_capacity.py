from __future__ import annotations

from datetime import datetime, timedelta, timezone
from itertools import product

import pytest

from workspace_booking.domain.capacity import (
    FULL_DAY,
    ExclusiveIntervalModel,
    Interval,
    SharedPoolModel,
    capacity_model_for,
    occupied_minutes,
    peak_concurrent_seats,
)
from workspace_booking.domain.models import (
    Area,
    AreaCategory,
    ReasonCode,
    Reservation,
    ReservationStatus,
)


BASE_CREATED_AT = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)

MEETING_ROOM = Area(1, "Sala Neon", 10, AreaCategory.MEETING_ROOM, False, 30, 240)
HOT_DESK = Area(3, "Hot Desk", 20, AreaCategory.HOT_DESK, True, 30, 480)
PARTIAL_DESKS = Area(4, "Flex Desks", 6, AreaCategory.HOT_DESK, False, 30, 480)


def _reservation(
    reservation_id: str,
    area: Area,
    start_time: str | None = None,
    end_time: str | None = None,
    seats: int = 1,
    status: ReservationStatus = ReservationStatus.CONFIRMED,
    order: int = 0,
) -> Reservation:
    return Reservation(
        reservation_id=reservation_id,
        area_id=area.area_id,
        area_name=area.name,
        date="2025-10-01",
        start_time=start_time,
        end_time=end_time,
        requested_seats=seats,
        status=status,
        created_at=BASE_CREATED_AT + timedelta(minutes=order),
        creator_id=f"user-{reservation_id}",
    )


def test_overlap_is_symmetric() -> None:
    points = [0, 30, 60, 90, 120]
    intervals = [Interval(a, b) for a, b in product(points, points) if a < b]
    for first, second in product(intervals, intervals):
        assert first.overlaps(second) == second.overlaps(first)


def test_touching_intervals_do_not_overlap() -> None:
    assert not Interval(600, 630).overlaps(Interval(630, 660))
    assert not Interval(630, 660).overlaps(Interval(600, 630))


def test_identical_intervals_overlap() -> None:
    assert Interval(600, 660).overlaps(Interval(600, 660))


def test_contained_interval_overlaps() -> None:
    assert Interval(600, 720).overlaps(Interval(630, 660))


def test_peak_concurrent_seats_does_not_stack_touching_reservations() -> None:
    reservations = [
        _reservation("a", PARTIAL_DESKS, "10:00", "11:00", seats=4),
        _reservation("b", PARTIAL_DESKS, "11:00", "12:00", seats=4),
        _reservation("c", PARTIAL_DESKS, "10:30", "11:30", seats=1),
    ]
    assert peak_concurrent_seats(reservations) == 5
    assert peak_concurrent_seats(reservations, Interval(720, 780)) == 0


def test_occupied_minutes_counts_the_union() -> None:
    reservations = [
        _reservation("a", MEETING_ROOM, "10:00", "11:00"),
        _reservation("b", MEETING_ROOM, "10:30", "11:30"),
        _reservation("c", MEETING_ROOM, "13:00", "13:30"),
    ]
    assert occupied_minutes(reservations) == 120
    assert occupied_minutes(reservations, Interval(660, 1440)) == 60


def test_capacity_model_selected_by_category() -> None:
    assert isinstance(capacity_model_for(MEETING_ROOM), ExclusiveIntervalModel)
    assert isinstance(capacity_model_for(HOT_DESK), SharedPoolModel)


def test_meeting_room_forces_whole_room_seats() -> None:
    model = capacity_model_for(MEETING_ROOM)
    assert model.requested_seats(None) == 10
    assert model.requested_seats(2) == 10


def test_meeting_room_rejects_overlap_with_time_conflict() -> None:
    model = capacity_model_for(MEETING_ROOM)
    existing = [_reservation("a", MEETING_ROOM, "10:00", "11:00")]
    check = model.check(Interval(630, 690), 10, existing)
    assert check.fits is False
    assert check.reason == ReasonCode.TIME_CONFLICT
    assert check.conflicting_ids == ("a",)


def test_meeting_room_accepts_touching_interval() -> None:
    model = capacity_model_for(MEETING_ROOM)
    existing = [_reservation("a", MEETING_ROOM, "10:00", "10:30")]
    assert model.check(Interval(630, 660), 10, existing).fits is True


def test_cancelled_reservations_occupy_nothing() -> None:
    model = capacity_model_for(MEETING_ROOM)
    existing = [
        _reservation("a", MEETING_ROOM, "10:00", "11:00", status=ReservationStatus.CANCELLED)
    ]
    assert model.check(Interval(600, 660), 10, existing).fits is True


def test_candidate_is_not_counted_against_itself() -> None:
    model = capacity_model_for(MEETING_ROOM)
    existing = [_reservation("a", MEETING_ROOM, "10:00", "11:00")]
    assert model.check(Interval(600, 660), 10, existing, exclude_id="a").fits is True


def test_shared_pool_requires_positive_seats() -> None:
    model = capacity_model_for(HOT_DESK)
    with pytest.raises(ValueError):
        model.requested_seats(None)
    with pytest.raises(ValueError):
        model.requested_seats(0)
    assert model.requested_seats(3) == 3


def test_full_day_pool_counts_every_reservation_on_the_date() -> None:
    model = capacity_model_for(HOT_DESK)
    existing = [_reservation(f"r{i}", HOT_DESK, seats=5, order=i) for i in range(4)]
    check = model.check(FULL_DAY, 1, existing)
    assert check.fits is False
    assert check.reason == ReasonCode.CAPACITY_EXCEEDED
    assert check.occupied_seats == 20
    assert model.check(FULL_DAY, 1, existing[:3]).fits is True


def test_partial_day_pool_only_counts_concurrent_seats() -> None:
    model = capacity_model_for(PARTIAL_DESKS)
    existing = [
        _reservation("morning", PARTIAL_DESKS, "08:00", "12:00", seats=6),
    ]
    assert model.check(Interval(720, 840), 6, existing).fits is True
    assert model.check(Interval(660, 780), 1, existing).fits is False


def test_shared_pool_never_reports_pairwise_conflicts() -> None:
    model = capacity_model_for(HOT_DESK)
    first = _reservation("a", HOT_DESK, seats=2)
    second = _reservation("b", HOT_DESK, seats=2)
    assert model.conflicts(first, second) is False


def test_occupancy_snapshot_caps_at_capacity() -> None:
    model = capacity_model_for(HOT_DESK)
    existing = [_reservation(f"r{i}", HOT_DESK, seats=5, order=i) for i in range(3)]
    occupancy = model.occupancy("2025-10-01", existing)
    assert occupancy.reserved_seats == 15
    assert occupancy.available_seats == 5
    assert [item.reservation_id for item in occupancy.reservations] == ["r0", "r1", "r2"]


def test_full_day_pool_ignores_times_stored_before_the_area_switched() -> None:
    # bookings taken while the desks were still bookable by the hour
    existing = [
        _reservation("morning", HOT_DESK, "09:00", "10:00", seats=10, order=0),
        _reservation("afternoon", HOT_DESK, "14:00", "15:00", seats=10, order=1),
    ]
    model = capacity_model_for(HOT_DESK)

    check = model.check(FULL_DAY, 10, existing)

    assert check.fits is False
    assert check.reason == ReasonCode.CAPACITY_EXCEEDED
    assert check.occupied_seats == 20
    assert model.occupancy("2025-10-01", existing).available_seats == 0
