"""Reservation creation, listing and status lifecycle."""

from __future__ import annotations

from dataclasses import replace
from typing import Optional

from workspace_booking.domain.clock import ClockFormatError
from workspace_booking.domain.models import (
    Accepted,
    Area,
    Decision,
    ReasonCode,
    Rejected,
    Reservation,
    ReservationRequest,
    ReservationStatus,
    STATUS_ORDER,
)
from workspace_booking.repository.data_repository import (
    DataRepository,
    DuplicateReservationError,
)
from workspace_booking.services.availability_service import (
    AvailabilityChecker,
    SlotQueryError,
    generate_reservation_id,
)
from workspace_booking.services.policy_service import OfficePolicyService
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


class ReservationServiceError(Exception):
    """Base exception for reservation lifecycle operations."""


class ReservationNotFoundError(ReservationServiceError):
    """Raised when a reservation id does not exist."""


class InvalidStatusTransitionError(ReservationServiceError):
    """Raised when a status change would move backwards or leave a terminal state."""


def is_transition_allowed(current: ReservationStatus, target: ReservationStatus) -> bool:
    if current == ReservationStatus.CANCELLED:
        return False
    if target == ReservationStatus.CANCELLED:
        return True
    return STATUS_ORDER.index(target) > STATUS_ORDER.index(current)


class ReservationService:
    """Evaluates requests, persists accepted ones and manages their status."""

    def __init__(
        self,
        repository: DataRepository,
        checker: AvailabilityChecker,
        policy_service: OfficePolicyService,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repository = repository
        self._checker = checker
        self._policy_service = policy_service
        self._settings = settings or get_settings()

    def evaluate(self, request: ReservationRequest) -> Decision:
        return self._checker.evaluate(request, self._policy_service.snapshot())

    def create_reservation(self, request: ReservationRequest) -> Decision:
        """Evaluate and persist.

        A duplicate-key failure from storage is re-derived into a decision: the
        capacity check runs again against fresh data and, when it still passes,
        the insert is retried under a new reservation id.
        """
        policy = self._policy_service.snapshot()
        decision = self._checker.evaluate(request, policy)
        if isinstance(decision, Rejected):
            return decision

        reservation = decision.reservation
        area = self._checker.get_area(reservation.area_id)
        attempts = max(self._settings.reservation_id_max_attempts, 1)
        for attempt in range(1, attempts + 1):
            try:
                self._repository.insert_reservation(reservation, exclusive=area.is_exclusive)
            except DuplicateReservationError:
                logger.warning(
                    "Duplicate key persisting %s (attempt %s/%s)",
                    reservation.reservation_id,
                    attempt,
                    attempts,
                )
                rejection = self._rederive(area, request)
                if rejection is not None:
                    return rejection
                reservation = replace(
                    reservation,
                    reservation_id=generate_reservation_id(self._checker.clock),
                )
                continue
            logger.info(
                "Persisted reservation %s status=%s",
                reservation.reservation_id,
                reservation.status.value,
            )
            return Accepted(reservation=reservation)

        reason = ReasonCode.TIME_CONFLICT if area.is_exclusive else ReasonCode.CAPACITY_EXCEEDED
        logger.error(
            "Giving up on reservation for area=%s date=%s after %s duplicate-key failures",
            area.area_id,
            reservation.date,
            attempts,
        )
        return Rejected(reason, "reservation could not be stored without conflicting")

    def _rederive(self, area: Area, request: ReservationRequest) -> Optional[Rejected]:
        normalized = self._checker.normalize(area, request)
        if isinstance(normalized, Rejected):
            return normalized
        existing = self._repository.list_active_reservations(area.area_id, normalized.date)
        check = self._checker.check_capacity(normalized, existing)
        if check.fits:
            return None
        return Rejected(check.reason or ReasonCode.CAPACITY_EXCEEDED, check.detail)

    def get_reservation(self, reservation_id: str) -> Reservation:
        reservation = self._repository.get_reservation(reservation_id)
        if reservation is None:
            raise ReservationNotFoundError(f"reservation {reservation_id} not found")
        return reservation

    def list_reservations(
        self,
        area_id: Optional[int] = None,
        local_date: Optional[str] = None,
    ) -> list[Reservation]:
        normalized_date = None
        if local_date is not None:
            try:
                normalized_date = self._checker.clock.normalize_local_date(local_date)
            except ClockFormatError as exc:
                raise SlotQueryError(str(exc)) from exc
        return self._repository.list_reservations(area_id=area_id, date=normalized_date)

    def transition_status(
        self,
        reservation_id: str,
        target: ReservationStatus,
    ) -> Reservation:
        reservation = self.get_reservation(reservation_id)
        if not is_transition_allowed(reservation.status, target):
            raise InvalidStatusTransitionError(
                f"cannot move {reservation_id} from {reservation.status.value} to {target.value}"
            )
        updated = self._repository.update_reservation_status(
            reservation_id,
            expected_status=reservation.status,
            new_status=target,
        )
        if not updated:
            raise InvalidStatusTransitionError(
                f"{reservation_id} changed status concurrently; reload and retry"
            )
        logger.info(
            "Reservation %s moved %s -> %s",
            reservation_id,
            reservation.status.value,
            target.value,
        )
        return replace(reservation, status=target)

    def cancel(self, reservation_id: str) -> Reservation:
        return self.transition_status(reservation_id, ReservationStatus.CANCELLED)
