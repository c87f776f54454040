"""Availability checker: turns a raw reservation request into a decision.

Checks run in a fixed order and stop at the first failure; later checks rely
on the invariants established by earlier ones (the capacity check, for
example, assumes a well-formed date and time).
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Optional, Sequence, Union

from workspace_booking.domain.capacity import (
    CapacityCheck,
    Interval,
    Occupancy,
    capacity_model_for,
)
from workspace_booking.domain.clock import (
    ClockFormatError,
    LocalClock,
    format_minutes,
    minutes_of_day,
    parse_local_date,
    parse_local_time,
)
from workspace_booking.domain.models import (
    Accepted,
    Area,
    AreaCategory,
    Decision,
    ReasonCode,
    Rejected,
    Reservation,
    ReservationRequest,
    ReservationStatus,
)
from workspace_booking.domain.office_policy import OfficePolicy
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.services.policy_service import OfficePolicyService
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


class AvailabilityError(Exception):
    """Base exception for availability lookups."""


class AreaNotFoundError(AvailabilityError):
    """Raised when the requested area does not exist."""


class SlotQueryError(AvailabilityError):
    """Raised when an availability query carries invalid parameters."""


@dataclass(frozen=True)
class NormalizedRequest:
    """Request fields after format validation."""

    area: Area
    date: str
    start_time: Optional[str]
    duration_minutes: Optional[int]
    seats: int
    creator_id: str
    collaborator_ids: frozenset[str]

    @property
    def end_time(self) -> Optional[str]:
        if self.start_time is None or self.duration_minutes is None:
            return None
        return format_minutes(minutes_of_day(self.start_time) + self.duration_minutes)


@dataclass(frozen=True)
class TimeSlot:
    start_time: Optional[str]
    end_time: Optional[str]

    def to_dict(self) -> dict[str, Optional[str]]:
        return {"start_time": self.start_time, "end_time": self.end_time}


def _is_positive_int(value: object) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and value > 0


def generate_reservation_id(clock: LocalClock) -> str:
    """``RES-<yyyymmdd>-<hhmmss>-<NNNN>`` from the local creation time."""
    local_now = clock.to_local_datetime(clock.now())
    return f"RES-{local_now:%Y%m%d}-{local_now:%H%M%S}-{secrets.randbelow(10000):04d}"


class AvailabilityChecker:
    """Single entry point deciding whether a reservation request can be accepted."""

    def __init__(
        self,
        repository: DataRepository,
        clock: LocalClock,
        policy_service: OfficePolicyService,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repository = repository
        self._clock = clock
        self._policy_service = policy_service
        self._settings = settings or get_settings()

    @property
    def clock(self) -> LocalClock:
        return self._clock

    def get_area(self, area_id: int) -> Area:
        area = self._repository.get_area(area_id)
        if area is None:
            raise AreaNotFoundError(f"area_id {area_id} not found")
        return area

    def evaluate(
        self,
        request: ReservationRequest,
        policy: Optional[OfficePolicy] = None,
    ) -> Decision:
        """Decide a request without persisting anything.

        Storage failures propagate as ``RepositoryUnavailableError``; they are
        never turned into a rejection.
        """
        policy = policy or self._policy_service.snapshot()
        area = self.get_area(request.area_id)

        normalized = self.normalize(area, request)
        if isinstance(normalized, Rejected):
            return self._reject(request, normalized)

        rejection = self.check_policy(normalized, policy)
        if rejection is not None:
            return self._reject(request, rejection)

        existing = self._repository.list_active_reservations(area.area_id, normalized.date)
        check = self.check_capacity(normalized, existing)
        if not check.fits:
            return self._reject(
                request,
                Rejected(reason=check.reason or ReasonCode.CAPACITY_EXCEEDED, detail=check.detail),
            )

        reservation = self.build_reservation(normalized, policy)
        logger.info(
            "Accepted reservation %s area=%s date=%s start=%s seats=%s",
            reservation.reservation_id,
            area.area_id,
            reservation.date,
            reservation.start_time or "full-day",
            reservation.requested_seats,
        )
        return Accepted(reservation=reservation)

    def normalize(
        self,
        area: Area,
        request: ReservationRequest,
    ) -> Union[NormalizedRequest, Rejected]:
        """Format checks; every failure here is ``InvalidFormat``."""
        try:
            local_date = parse_local_date(request.date).isoformat()
        except ClockFormatError as exc:
            return Rejected(ReasonCode.INVALID_FORMAT, str(exc))

        start_time: Optional[str] = None
        duration: Optional[int] = None
        if not area.is_full_day_reservation:
            try:
                parse_local_time(request.start_time)
            except ClockFormatError as exc:
                return Rejected(ReasonCode.INVALID_FORMAT, str(exc))
            if not _is_positive_int(request.duration_minutes):
                return Rejected(
                    ReasonCode.INVALID_FORMAT,
                    "duration_minutes must be a positive integer",
                )
            start_time = str(request.start_time)
            duration = int(request.duration_minutes)

        if area.category == AreaCategory.HOT_DESK and not _is_positive_int(request.seats):
            return Rejected(ReasonCode.INVALID_FORMAT, "seats must be a positive integer")

        if not isinstance(request.creator_id, str) or not request.creator_id.strip():
            return Rejected(ReasonCode.INVALID_FORMAT, "creator_id must be a non-empty string")
        if any(not isinstance(item, str) or not item.strip() for item in request.collaborator_ids):
            return Rejected(ReasonCode.INVALID_FORMAT, "collaborator_ids must be non-empty strings")

        model = capacity_model_for(area)
        return NormalizedRequest(
            area=area,
            date=local_date,
            start_time=start_time,
            duration_minutes=duration,
            seats=model.requested_seats(request.seats if area.category == AreaCategory.HOT_DESK else None),
            creator_id=request.creator_id.strip(),
            collaborator_ids=frozenset(item.strip() for item in request.collaborator_ids),
        )

    def check_policy(
        self,
        normalized: NormalizedRequest,
        policy: OfficePolicy,
    ) -> Optional[Rejected]:
        area = normalized.area
        if self._clock.is_in_past(normalized.date, normalized.start_time):
            return Rejected(ReasonCode.IN_PAST, f"{normalized.date} {normalized.start_time or ''}".strip())
        if not policy.is_reservation_window_valid(self._clock, normalized.date):
            return Rejected(
                ReasonCode.WINDOW_EXCEEDED,
                f"reservations are accepted up to {policy.max_reservation_days_ahead} days ahead",
            )
        if not policy.is_office_day(self._clock, normalized.date):
            return Rejected(
                ReasonCode.NOT_OFFICE_DAY,
                f"{normalized.date} is a {self._clock.day_of_week(normalized.date).value}",
            )
        if area.is_full_day_reservation:
            return None
        if not policy.is_within_business_hours(normalized.start_time, normalized.duration_minutes):
            return Rejected(
                ReasonCode.OUTSIDE_BUSINESS_HOURS,
                f"business hours are {policy.business_hours.start}-{policy.business_hours.end}",
            )
        duration = normalized.duration_minutes or 0
        if not area.min_reservation_minutes <= duration <= area.max_reservation_minutes:
            return Rejected(
                ReasonCode.DURATION_OUT_OF_BOUNDS,
                f"duration must be between {area.min_reservation_minutes} and "
                f"{area.max_reservation_minutes} minutes",
            )
        return None

    def check_capacity(
        self,
        normalized: NormalizedRequest,
        existing: Sequence[Reservation],
        exclude_id: Optional[str] = None,
    ) -> CapacityCheck:
        model = capacity_model_for(normalized.area)
        interval = model.candidate_interval(normalized.start_time, normalized.end_time)
        return model.check(interval, normalized.seats, existing, exclude_id=exclude_id)

    def build_reservation(
        self,
        normalized: NormalizedRequest,
        policy: OfficePolicy,
    ) -> Reservation:
        status = ReservationStatus.PENDING if policy.require_approval else ReservationStatus.CONFIRMED
        return Reservation(
            reservation_id=generate_reservation_id(self._clock),
            area_id=normalized.area.area_id,
            area_name=normalized.area.name,
            date=normalized.date,
            start_time=normalized.start_time,
            end_time=normalized.end_time,
            requested_seats=normalized.seats,
            status=status,
            created_at=self._clock.now(),
            creator_id=normalized.creator_id,
            collaborator_ids=normalized.collaborator_ids,
        )

    def occupancy(self, area_id: int, local_date: object) -> Occupancy:
        area = self.get_area(area_id)
        try:
            normalized_date = self._clock.normalize_local_date(local_date)
        except ClockFormatError as exc:
            raise SlotQueryError(str(exc)) from exc
        reservations = self._repository.list_active_reservations(area.area_id, normalized_date)
        return capacity_model_for(area).occupancy(normalized_date, reservations)

    def available_slots(
        self,
        area_id: int,
        local_date: object,
        duration_minutes: Optional[int] = None,
        seats: Optional[int] = None,
        policy: Optional[OfficePolicy] = None,
    ) -> list[TimeSlot]:
        """Candidate start times on a date that would currently pass every check.

        Candidates step through business hours every
        ``availability_slot_step_minutes``. Full-day areas yield a single
        open-ended slot when the day still has room.
        """
        policy = policy or self._policy_service.snapshot()
        area = self.get_area(area_id)
        try:
            normalized_date = parse_local_date(local_date).isoformat()
        except ClockFormatError as exc:
            raise SlotQueryError(str(exc)) from exc

        model = capacity_model_for(area)
        try:
            requested_seats = model.requested_seats(seats)
        except ValueError as exc:
            raise SlotQueryError(str(exc)) from exc

        if (
            self._clock.is_in_past(normalized_date)
            or not policy.is_reservation_window_valid(self._clock, normalized_date)
            or not policy.is_office_day(self._clock, normalized_date)
        ):
            return []

        existing = self._repository.list_active_reservations(area.area_id, normalized_date)
        if area.is_full_day_reservation:
            check = model.check(model.candidate_interval(None, None), requested_seats, existing)
            return [TimeSlot(None, None)] if check.fits else []

        duration = duration_minutes if duration_minutes is not None else area.min_reservation_minutes
        if not area.min_reservation_minutes <= duration <= area.max_reservation_minutes:
            raise SlotQueryError(
                f"duration must be between {area.min_reservation_minutes} and "
                f"{area.max_reservation_minutes} minutes"
            )

        step = max(self._settings.availability_slot_step_minutes, 1)
        window_end = policy.business_hours.end_minutes
        slots: list[TimeSlot] = []
        start = policy.business_hours.start_minutes
        while start + duration <= window_end:
            start_time = format_minutes(start)
            if not self._clock.is_in_past(normalized_date, start_time):
                interval = Interval(start, start + duration)
                if model.check(interval, requested_seats, existing).fits:
                    slots.append(TimeSlot(start_time, format_minutes(start + duration)))
            start += step
        return slots

    def _reject(self, request: ReservationRequest, rejection: Rejected) -> Rejected:
        logger.info(
            "Rejected reservation request area=%s date=%r reason=%s detail=%s",
            request.area_id,
            request.date,
            rejection.reason.value,
            rejection.detail,
        )
        return rejection
