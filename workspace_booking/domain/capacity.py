"""Capacity accounting for exclusive-interval and shared-pool areas.

This module is the only place that decides how much of an area a set of
reservations occupies. The availability checker, the conflict auditor and the
utilization report all go through it so enforcement and display agree.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Iterable, Optional, Sequence

from workspace_booking.domain.clock import MINUTES_PER_DAY, minutes_of_day
from workspace_booking.domain.models import Area, AreaCategory, ReasonCode, Reservation


@dataclass(frozen=True)
class Interval:
    """Half-open ``[start, end)`` interval in minutes since local midnight."""

    start: int
    end: int

    def overlaps(self, other: "Interval") -> bool:
        return self.start < other.end and other.start < self.end

    @property
    def length(self) -> int:
        return max(self.end - self.start, 0)

    def clip(self, lower: int, upper: int) -> "Interval":
        return Interval(max(self.start, lower), min(self.end, upper))


FULL_DAY = Interval(0, MINUTES_PER_DAY)


def _boundary_minutes(value: str) -> int:
    if value == "24:00":
        return MINUTES_PER_DAY
    return minutes_of_day(value)


def reservation_interval(reservation: Reservation) -> Interval:
    """Interval a reservation occupies; reservations without times occupy the whole day."""
    if reservation.start_time is None or reservation.end_time is None:
        return FULL_DAY
    return Interval(
        _boundary_minutes(reservation.start_time),
        _boundary_minutes(reservation.end_time),
    )


def peak_concurrent_seats(
    reservations: Iterable[Reservation],
    window: Interval = FULL_DAY,
    interval_of: Callable[[Reservation], Interval] = reservation_interval,
) -> int:
    """Highest simultaneous seat count inside ``window`` (sweep over start/end events)."""
    events: list[tuple[int, int]] = []
    for reservation in reservations:
        interval = interval_of(reservation).clip(window.start, window.end)
        if interval.length <= 0:
            continue
        events.append((interval.start, reservation.requested_seats))
        events.append((interval.end, -reservation.requested_seats))
    # ends sort before starts at the same minute: touching intervals never stack
    events.sort(key=lambda event: (event[0], event[1]))
    running = 0
    peak = 0
    for _, delta in events:
        running += delta
        peak = max(peak, running)
    return peak


def occupied_minutes(
    reservations: Iterable[Reservation],
    window: Interval = FULL_DAY,
    interval_of: Callable[[Reservation], Interval] = reservation_interval,
) -> int:
    """Length of the union of reservation intervals inside ``window``."""
    intervals = sorted(
        (
            interval_of(reservation).clip(window.start, window.end)
            for reservation in reservations
        ),
        key=lambda interval: interval.start,
    )
    total = 0
    current: Optional[Interval] = None
    for interval in intervals:
        if interval.length <= 0:
            continue
        if current is None or interval.start > current.end:
            if current is not None:
                total += current.length
            current = interval
        else:
            current = Interval(current.start, max(current.end, interval.end))
    if current is not None:
        total += current.length
    return total


@dataclass(frozen=True)
class CapacityCheck:
    fits: bool
    reason: Optional[ReasonCode]
    occupied_seats: int
    conflicting_ids: tuple[str, ...] = ()
    detail: str = ""


@dataclass(frozen=True)
class Occupancy:
    area_id: int
    date: str
    capacity: int
    reserved_seats: int
    available_seats: int
    reserved_minutes: int
    reservations: tuple[Reservation, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            "area_id": self.area_id,
            "date": self.date,
            "capacity": self.capacity,
            "reserved_seats": self.reserved_seats,
            "available_seats": self.available_seats,
            "reserved_minutes": self.reserved_minutes,
            "reservations": [reservation.to_dict() for reservation in self.reservations],
        }


class CapacityModel(ABC):
    """Occupancy rules for one area."""

    def __init__(self, area: Area) -> None:
        self._area = area

    @property
    def area(self) -> Area:
        return self._area

    def candidate_interval(self, start_time: Optional[str], end_time: Optional[str]) -> Interval:
        if self._area.is_full_day_reservation or start_time is None or end_time is None:
            return FULL_DAY
        return Interval(_boundary_minutes(start_time), _boundary_minutes(end_time))

    def interval_of(self, reservation: Reservation) -> Interval:
        """Stored times are ignored once the area books whole days."""
        if self._area.is_full_day_reservation:
            return FULL_DAY
        return reservation_interval(reservation)

    def active(
        self,
        reservations: Iterable[Reservation],
        exclude_id: Optional[str] = None,
    ) -> list[Reservation]:
        """Reservations that occupy capacity: same area, not cancelled, not the candidate."""
        return [
            reservation
            for reservation in reservations
            if reservation.area_id == self._area.area_id
            and not reservation.is_cancelled
            and reservation.reservation_id != exclude_id
        ]

    def occupancy(self, local_date: str, reservations: Iterable[Reservation]) -> Occupancy:
        active = [
            reservation
            for reservation in self.active(reservations)
            if reservation.date == local_date
        ]
        reserved = min(peak_concurrent_seats(active, interval_of=self.interval_of), self._area.capacity)
        return Occupancy(
            area_id=self._area.area_id,
            date=local_date,
            capacity=self._area.capacity,
            reserved_seats=reserved,
            available_seats=self._area.capacity - reserved,
            reserved_minutes=occupied_minutes(active, interval_of=self.interval_of),
            reservations=tuple(
                sorted(active, key=lambda reservation: (reservation.start_time or "", reservation.created_at))
            ),
        )

    @abstractmethod
    def requested_seats(self, seats: Optional[int]) -> int:
        """Seats a proposal occupies once accepted."""

    @abstractmethod
    def check(
        self,
        interval: Interval,
        seats: int,
        existing: Sequence[Reservation],
        exclude_id: Optional[str] = None,
    ) -> CapacityCheck:
        """Whether a proposal occupying ``interval`` with ``seats`` fits beside ``existing``."""

    @abstractmethod
    def conflicts(self, first: Reservation, second: Reservation) -> bool:
        """Whether two reservations can never coexist regardless of other bookings."""


class ExclusiveIntervalModel(CapacityModel):
    """Meeting rooms: one reservation holds the whole room for its time range."""

    def requested_seats(self, seats: Optional[int]) -> int:
        return self._area.capacity

    def check(
        self,
        interval: Interval,
        seats: int,
        existing: Sequence[Reservation],
        exclude_id: Optional[str] = None,
    ) -> CapacityCheck:
        conflicting = [
            reservation.reservation_id
            for reservation in self.active(existing, exclude_id=exclude_id)
            if self.interval_of(reservation).overlaps(interval)
        ]
        if conflicting:
            return CapacityCheck(
                fits=False,
                reason=ReasonCode.TIME_CONFLICT,
                occupied_seats=self._area.capacity,
                conflicting_ids=tuple(conflicting),
                detail=f"{self._area.name} is already booked by {', '.join(conflicting)}",
            )
        return CapacityCheck(fits=True, reason=None, occupied_seats=0)

    def conflicts(self, first: Reservation, second: Reservation) -> bool:
        return self.interval_of(first).overlaps(self.interval_of(second))


class SharedPoolModel(CapacityModel):
    """Hot desks: many reservations share a seat pool.

    Full-day areas count every reservation on the date. Partial-day areas count
    the peak of simultaneously held seats over the proposal's interval.
    """

    def requested_seats(self, seats: Optional[int]) -> int:
        if seats is None or seats <= 0:
            raise ValueError("shared-pool reservations require a positive seat count")
        return seats

    def check(
        self,
        interval: Interval,
        seats: int,
        existing: Sequence[Reservation],
        exclude_id: Optional[str] = None,
    ) -> CapacityCheck:
        active = self.active(existing, exclude_id=exclude_id)
        window = FULL_DAY if self._area.is_full_day_reservation else interval
        occupied = peak_concurrent_seats(active, window, interval_of=self.interval_of)
        if occupied + seats > self._area.capacity:
            return CapacityCheck(
                fits=False,
                reason=ReasonCode.CAPACITY_EXCEEDED,
                occupied_seats=occupied,
                detail=(
                    f"{self._area.name} has {self._area.capacity - occupied} of "
                    f"{self._area.capacity} seats left, {seats} requested"
                ),
            )
        return CapacityCheck(fits=True, reason=None, occupied_seats=occupied)

    def conflicts(self, first: Reservation, second: Reservation) -> bool:
        return False


def capacity_model_for(area: Area) -> CapacityModel:
    if area.category == AreaCategory.MEETING_ROOM:
        return ExclusiveIntervalModel(area)
    return SharedPoolModel(area)
