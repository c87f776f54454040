"""Conflict auditor: offline reconciliation of persisted reservations.

Concurrent requests can both pass the availability check against the same
snapshot and both be stored. This pass finds the resulting violations and
resolves them deterministically by keeping the oldest reservation.

Three passes run per ``(area, local date)`` group, over reservations in
``confirmed``, ``active`` or ``completed`` status:

1. exact duplicates, bucketed by time range (exclusive areas) or by
   ``(creator, time range, seats)`` (shared-pool areas);
2. time overlaps for exclusive areas;
3. seat overflow for shared-pool areas, replaying survivors oldest first
   through the capacity model.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Hashable, Optional, Sequence
from uuid import uuid4

from workspace_booking.domain.capacity import CapacityModel, capacity_model_for
from workspace_booking.domain.clock import ClockFormatError, LocalClock
from workspace_booking.domain.models import AUDITED_STATUSES, Area, Reservation
from workspace_booking.repository.data_repository import (
    AuditLogRecord,
    DataRepository,
    RepositoryError,
)
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


class AuditError(Exception):
    """Base exception for the conflict auditor."""


class AuditPostconditionError(AuditError):
    """Raised when conflicts remain after resolution; carries the full report."""

    def __init__(self, report: "AuditReport") -> None:
        super().__init__(
            f"{len(report.remaining_conflicts)} conflict(s) remain after audit run {report.run_id}"
        )
        self.report = report


class RemovalReason(str, Enum):
    DUPLICATE = "duplicate"
    OVERLAP = "overlap"
    CAPACITY_OVERFLOW = "capacity_overflow"


@dataclass(frozen=True)
class PlannedRemoval:
    reservation_id: str
    retained_id: Optional[str]
    reason: RemovalReason
    area_id: int
    date: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "retained_id": self.retained_id,
            "reason": self.reason.value,
            "area_id": self.area_id,
            "date": self.date,
        }


@dataclass(frozen=True)
class RemovalFailure:
    reservation_id: str
    reason: RemovalReason
    error: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "reservation_id": self.reservation_id,
            "reason": self.reason.value,
            "error": self.error,
        }


@dataclass
class AuditReport:
    """Machine-readable summary of one audit run.

    In a dry run the ``*_resolved`` counters and ``removals`` describe what
    would be removed; nothing is attempted.
    """

    run_id: str
    dry_run: bool
    duplicates_resolved: int = 0
    overlaps_resolved: int = 0
    capacity_overflows_resolved: int = 0
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0
    removals: list[PlannedRemoval] = field(default_factory=list)
    failures: list[RemovalFailure] = field(default_factory=list)
    remaining_conflicts: list[PlannedRemoval] = field(default_factory=list)
    unreadable_reservation_ids: list[str] = field(default_factory=list)
    audit_log_persisted: bool = True

    @property
    def partial_failure(self) -> bool:
        return self.failed > 0

    def count(self, reason: RemovalReason) -> None:
        if reason == RemovalReason.DUPLICATE:
            self.duplicates_resolved += 1
        elif reason == RemovalReason.OVERLAP:
            self.overlaps_resolved += 1
        else:
            self.capacity_overflows_resolved += 1

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "dry_run": self.dry_run,
            "duplicates_resolved": self.duplicates_resolved,
            "overlaps_resolved": self.overlaps_resolved,
            "capacity_overflows_resolved": self.capacity_overflows_resolved,
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "removals": [item.to_dict() for item in self.removals],
            "failures": [item.to_dict() for item in self.failures],
            "remaining_conflicts": [item.to_dict() for item in self.remaining_conflicts],
            "unreadable_reservation_ids": list(self.unreadable_reservation_ids),
            "audit_log_persisted": self.audit_log_persisted,
        }


def _age_key(reservation: Reservation) -> tuple:
    return (reservation.created_at, reservation.reservation_id)


def _duplicate_key(area: Area, reservation: Reservation) -> Hashable:
    """Bucket key for exact duplicates.

    Exclusive areas bucket on the time range alone. Shared pools also key on
    creator and seat count, since many people legitimately hold identical
    full-day desk bookings; only a repeat of the same booking is a duplicate.
    """
    if area.is_exclusive:
        if area.is_full_day_reservation:
            return "full-day"
        return (reservation.start_time, reservation.end_time)
    return (
        reservation.creator_id,
        reservation.start_time,
        reservation.end_time,
        reservation.requested_seats,
    )


def _duplicate_pass(
    area: Area,
    local_date: str,
    reservations: Sequence[Reservation],
) -> tuple[list[Reservation], list[PlannedRemoval]]:
    buckets: dict[Hashable, list[Reservation]] = defaultdict(list)
    for reservation in reservations:
        buckets[_duplicate_key(area, reservation)].append(reservation)

    removed_ids: set[str] = set()
    removals: list[PlannedRemoval] = []
    for bucket in buckets.values():
        if len(bucket) < 2:
            continue
        retained, *duplicates = sorted(bucket, key=_age_key)
        for duplicate in duplicates:
            removed_ids.add(duplicate.reservation_id)
            removals.append(
                PlannedRemoval(
                    reservation_id=duplicate.reservation_id,
                    retained_id=retained.reservation_id,
                    reason=RemovalReason.DUPLICATE,
                    area_id=area.area_id,
                    date=local_date,
                )
            )
    survivors = [item for item in reservations if item.reservation_id not in removed_ids]
    return survivors, removals


def _overlap_pass(
    model: CapacityModel,
    local_date: str,
    reservations: Sequence[Reservation],
) -> list[PlannedRemoval]:
    retained: list[Reservation] = []
    removals: list[PlannedRemoval] = []
    for candidate in sorted(reservations, key=_age_key):
        conflicting = [item for item in retained if model.conflicts(item, candidate)]
        if not conflicting:
            retained.append(candidate)
            continue
        removals.append(
            PlannedRemoval(
                reservation_id=candidate.reservation_id,
                retained_id=conflicting[0].reservation_id,
                reason=RemovalReason.OVERLAP,
                area_id=model.area.area_id,
                date=local_date,
            )
        )
    return removals


def _capacity_overflow_pass(
    model: CapacityModel,
    local_date: str,
    reservations: Sequence[Reservation],
) -> list[PlannedRemoval]:
    accepted: list[Reservation] = []
    removals: list[PlannedRemoval] = []
    for candidate in sorted(reservations, key=_age_key):
        interval = model.candidate_interval(candidate.start_time, candidate.end_time)
        check = model.check(interval, candidate.requested_seats, accepted)
        if check.fits:
            accepted.append(candidate)
            continue
        holders = [
            item
            for item in accepted
            if model.interval_of(item).overlaps(interval)
        ]
        removals.append(
            PlannedRemoval(
                reservation_id=candidate.reservation_id,
                retained_id=holders[0].reservation_id if holders else None,
                reason=RemovalReason.CAPACITY_OVERFLOW,
                area_id=model.area.area_id,
                date=local_date,
            )
        )
    return removals


def plan_group(
    area: Area,
    local_date: str,
    reservations: Sequence[Reservation],
) -> list[PlannedRemoval]:
    """Removals needed for one ``(area, date)`` group; pure and deterministic."""
    model = capacity_model_for(area)
    survivors, removals = _duplicate_pass(area, local_date, reservations)
    if area.is_exclusive:
        removals.extend(_overlap_pass(model, local_date, survivors))
    else:
        removals.extend(_capacity_overflow_pass(model, local_date, survivors))
    return removals


class ConflictAuditService:
    def __init__(self, repository: DataRepository, clock: LocalClock) -> None:
        self._repository = repository
        self._clock = clock

    def plan(self, report: Optional[AuditReport] = None) -> list[PlannedRemoval]:
        """Load audited reservations and compute every removal the run would make."""
        areas = {area.area_id: area for area in self._repository.list_areas()}
        groups: dict[tuple[int, str], list[Reservation]] = defaultdict(list)
        for reservation in self._repository.list_reservations_by_status(AUDITED_STATUSES):
            try:
                local_date = self._clock.normalize_local_date(reservation.date)
            except ClockFormatError:
                logger.warning(
                    "Skipping reservation %s with unreadable date %r",
                    reservation.reservation_id,
                    reservation.date,
                )
                if report is not None:
                    report.unreadable_reservation_ids.append(reservation.reservation_id)
                continue
            groups[(reservation.area_id, local_date)].append(reservation)

        removals: list[PlannedRemoval] = []
        for (area_id, local_date) in sorted(groups):
            area = areas.get(area_id)
            if area is None:
                logger.warning("Skipping reservations for unknown area_id=%s", area_id)
                continue
            removals.extend(plan_group(area, local_date, groups[(area_id, local_date)]))
        return removals

    def run_conflict_audit(self, dry_run: bool = False) -> AuditReport:
        """Detect and resolve conflicts; raises ``AuditPostconditionError`` if any survive."""
        report = AuditReport(run_id=uuid4().hex, dry_run=dry_run)
        planned = self.plan(report)
        logger.info(
            "Audit %s planned %s removal(s) dry_run=%s",
            report.run_id,
            len(planned),
            dry_run,
        )

        if dry_run:
            for removal in planned:
                report.count(removal.reason)
            report.removals = list(planned)
            report.remaining_conflicts = list(planned)
            return report

        log_records: list[AuditLogRecord] = []
        failed_ids: set[str] = set()
        for removal in planned:
            report.attempted += 1
            try:
                deleted = self._repository.delete_reservation(removal.reservation_id)
            except RepositoryError as exc:
                report.failed += 1
                failed_ids.add(removal.reservation_id)
                report.failures.append(
                    RemovalFailure(
                        reservation_id=removal.reservation_id,
                        reason=removal.reason,
                        error=str(exc),
                    )
                )
                logger.error(
                    "Audit failed to remove %s (%s): %s",
                    removal.reservation_id,
                    removal.reason.value,
                    exc,
                )
                continue

            if not deleted:
                report.skipped += 1
                logger.info(
                    "Audit skip %s: already cancelled or deleted",
                    removal.reservation_id,
                )
                continue

            report.succeeded += 1
            report.count(removal.reason)
            report.removals.append(removal)
            log_records.append(
                AuditLogRecord(
                    run_id=report.run_id,
                    removed_reservation_id=removal.reservation_id,
                    retained_reservation_id=removal.retained_id,
                    reason=removal.reason.value,
                    area_id=removal.area_id,
                    date=removal.date,
                )
            )
            logger.warning(
                "Audit removed %s retained=%s reason=%s area=%s date=%s",
                removal.reservation_id,
                removal.retained_id,
                removal.reason.value,
                removal.area_id,
                removal.date,
            )

        try:
            self._repository.save_audit_logs(log_records)
        except RepositoryError as exc:
            report.audit_log_persisted = False
            logger.error("Audit %s could not persist audit logs: %s", report.run_id, exc)

        logger.info(
            "Audit %s summary attempted=%s succeeded=%s failed=%s skipped=%s",
            report.run_id,
            report.attempted,
            report.succeeded,
            report.failed,
            report.skipped,
        )

        report.remaining_conflicts = self.plan()
        remaining = [
            item for item in report.remaining_conflicts if item.reservation_id not in failed_ids
        ]
        if remaining:
            logger.error(
                "Audit %s postcondition failed: %s conflict(s) remain",
                report.run_id,
                len(remaining),
            )
            raise AuditPostconditionError(report)
        return report
