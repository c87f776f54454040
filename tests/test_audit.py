from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timedelta, timezone

import pytest

from workspace_booking.domain.clock import LocalClock
from workspace_booking.domain.models import Reservation, ReservationStatus
from workspace_booking.repository.data_repository import (
    DataRepository,
    RepositoryUnavailableError,
)
from workspace_booking.services.audit_service import (
    AuditPostconditionError,
    ConflictAuditService,
    RemovalReason,
)
from workspace_booking.utils.config import get_settings


FIXED_NOW = datetime(2025, 9, 20, 14, 0, tzinfo=timezone.utc)
BASE_CREATED_AT = datetime(2025, 9, 1, 12, 0, tzinfo=timezone.utc)

SALA_NEON = (1, "Sala Neon")
SALA_CAPACITACION = (2, "Sala de Capacitación")
HOT_DESK = (3, "Hot Desk")


def _build_test_settings(tmp_path, filename: str):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        enforce_exclusive_slot_uniqueness=False,
    )


def _build_audit(tmp_path, filename: str) -> tuple[DataRepository, ConflictAuditService]:
    repository = DataRepository(_build_test_settings(tmp_path, filename))
    repository.initialize_database()
    repository.seed_default_areas()
    clock = LocalClock("America/Bogota", now_provider=lambda: FIXED_NOW)
    return repository, ConflictAuditService(repository, clock)


def _store(
    repository: DataRepository,
    reservation_id: str,
    area: tuple[int, str],
    start_time: str | None = "10:00",
    end_time: str | None = "11:00",
    order: int = 0,
    seats: int = 10,
    status: ReservationStatus = ReservationStatus.CONFIRMED,
    creator_id: str | None = None,
    date: str = "2025-10-01",
) -> Reservation:
    reservation = Reservation(
        reservation_id=reservation_id,
        area_id=area[0],
        area_name=area[1],
        date=date,
        start_time=start_time,
        end_time=end_time,
        requested_seats=seats,
        status=status,
        created_at=BASE_CREATED_AT + timedelta(minutes=order),
        creator_id=creator_id or f"user-{reservation_id}",
    )
    repository.insert_reservation(reservation)
    return reservation


def test_scenario_e_exact_duplicate_keeps_the_oldest(tmp_path):
    repository, audit = _build_audit(tmp_path, "scenario_e.db")
    # inserted newest first so storage order cannot decide the winner
    _store(repository, "RES-LATER", SALA_NEON, order=5)
    _store(repository, "RES-EARLIER", SALA_NEON, order=1)

    report = audit.run_conflict_audit()

    assert report.duplicates_resolved == 1
    assert report.overlaps_resolved == 0
    assert [item.reservation_id for item in report.removals] == ["RES-LATER"]
    assert report.removals[0].retained_id == "RES-EARLIER"
    assert report.removals[0].reason == RemovalReason.DUPLICATE
    assert repository.get_reservation("RES-LATER") is None
    assert repository.get_reservation("RES-EARLIER") is not None
    assert repository.count_audit_logs() == 1


def test_second_run_without_writes_removes_nothing(tmp_path):
    repository, audit = _build_audit(tmp_path, "idempotent.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "B", SALA_NEON, order=1)
    _store(repository, "C", SALA_NEON, "10:30", "11:30", order=2)

    first = audit.run_conflict_audit()
    second = audit.run_conflict_audit()

    assert first.succeeded == 2
    assert second.attempted == 0
    assert second.removals == []
    assert second.remaining_conflicts == []


def test_overlap_pass_keeps_oldest_and_non_conflicting_survivors(tmp_path):
    repository, audit = _build_audit(tmp_path, "overlap.db")
    _store(repository, "A", SALA_NEON, "10:00", "11:00", order=0)
    _store(repository, "B", SALA_NEON, "10:30", "11:30", order=1)
    _store(repository, "C", SALA_NEON, "11:00", "12:00", order=2)

    report = audit.run_conflict_audit()

    assert report.overlaps_resolved == 1
    assert report.removals[0].reservation_id == "B"
    assert report.removals[0].retained_id == "A"
    assert repository.get_reservation("C") is not None


def test_touching_meetings_are_not_conflicts(tmp_path):
    repository, audit = _build_audit(tmp_path, "touching.db")
    _store(repository, "A", SALA_NEON, "10:00", "10:30", order=0)
    _store(repository, "B", SALA_NEON, "10:30", "11:00", order=1)

    report = audit.run_conflict_audit()

    assert report.attempted == 0


def test_groups_are_per_area_and_normalized_date(tmp_path):
    repository, audit = _build_audit(tmp_path, "grouping.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "B", SALA_NEON, order=1, date="2025-10-01T00:00:00")
    _store(repository, "C", SALA_CAPACITACION, order=2)
    _store(repository, "D", SALA_NEON, order=3, date="2025-10-02")

    report = audit.run_conflict_audit()

    assert [item.reservation_id for item in report.removals] == ["B"]
    assert report.removals[0].date == "2025-10-01"


def test_only_confirmed_active_and_completed_are_audited(tmp_path):
    repository, audit = _build_audit(tmp_path, "statuses.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "PENDING", SALA_NEON, order=1, status=ReservationStatus.PENDING)
    _store(repository, "CANCELLED", SALA_NEON, order=2, status=ReservationStatus.CANCELLED)
    _store(repository, "COMPLETED", SALA_NEON, "10:30", "11:30", order=3, status=ReservationStatus.COMPLETED)

    report = audit.run_conflict_audit()

    assert [item.reservation_id for item in report.removals] == ["COMPLETED"]
    assert repository.get_reservation("PENDING") is not None
    assert repository.get_reservation("CANCELLED") is not None


def test_hot_desk_duplicates_use_creator_and_seats(tmp_path):
    repository, audit = _build_audit(tmp_path, "desk_duplicates.db")
    _store(repository, "A", HOT_DESK, None, None, order=0, seats=2, creator_id="ana")
    _store(repository, "B", HOT_DESK, None, None, order=1, seats=2, creator_id="ana")
    _store(repository, "C", HOT_DESK, None, None, order=2, seats=2, creator_id="luis")

    report = audit.run_conflict_audit()

    assert report.duplicates_resolved == 1
    assert report.removals[0].reservation_id == "B"
    assert repository.get_reservation("C") is not None


def test_hot_desk_capacity_overflow_removes_newest(tmp_path):
    repository, audit = _build_audit(tmp_path, "desk_overflow.db")
    for index in range(4):
        _store(repository, f"D{index}", HOT_DESK, None, None, order=index, seats=6)

    report = audit.run_conflict_audit()

    assert report.capacity_overflows_resolved == 1
    assert report.removals[0].reservation_id == "D3"
    assert report.removals[0].reason == RemovalReason.CAPACITY_OVERFLOW
    assert report.removals[0].retained_id == "D0"


def test_dry_run_reports_without_deleting(tmp_path):
    repository, audit = _build_audit(tmp_path, "dry_run.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "B", SALA_NEON, order=1)

    report = audit.run_conflict_audit(dry_run=True)

    assert report.dry_run is True
    assert report.duplicates_resolved == 1
    assert report.attempted == 0
    assert [item.reservation_id for item in report.removals] == ["B"]
    assert repository.count_reservations() == 2
    assert repository.count_audit_logs() == 0


def test_removal_failure_is_reported_and_the_pass_continues(tmp_path, monkeypatch):
    repository, audit = _build_audit(tmp_path, "partial_failure.db")
    _store(repository, "A1", SALA_NEON, order=0)
    _store(repository, "A2", SALA_NEON, order=1)
    _store(repository, "B1", SALA_CAPACITACION, order=2, seats=25)
    _store(repository, "B2", SALA_CAPACITACION, order=3, seats=25)

    original = repository.delete_reservation

    def _flaky_delete(reservation_id):
        if reservation_id == "A2":
            raise RepositoryUnavailableError("database is locked")
        return original(reservation_id)

    monkeypatch.setattr(repository, "delete_reservation", _flaky_delete)

    report = audit.run_conflict_audit()

    assert report.attempted == 2
    assert report.succeeded == 1
    assert report.failed == 1
    assert report.partial_failure is True
    assert [item.reservation_id for item in report.failures] == ["A2"]
    assert repository.get_reservation("B2") is None
    assert repository.get_reservation("A2") is not None
    assert [item.reservation_id for item in report.remaining_conflicts] == ["A2"]


def test_record_cancelled_during_the_run_is_a_no_op(tmp_path, monkeypatch):
    repository, audit = _build_audit(tmp_path, "concurrent_cancel.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "B", SALA_NEON, order=1)

    original = repository.delete_reservation

    def _cancel_first(reservation_id):
        repository.update_reservation_status(
            reservation_id,
            expected_status=ReservationStatus.CONFIRMED,
            new_status=ReservationStatus.CANCELLED,
        )
        return original(reservation_id)

    monkeypatch.setattr(repository, "delete_reservation", _cancel_first)

    report = audit.run_conflict_audit()

    assert report.skipped == 1
    assert report.failed == 0
    assert report.removals == []


def test_conflicts_surviving_resolution_raise(tmp_path, monkeypatch):
    repository, audit = _build_audit(tmp_path, "postcondition.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "B", SALA_NEON, order=1)

    monkeypatch.setattr(repository, "delete_reservation", lambda reservation_id: True)

    with pytest.raises(AuditPostconditionError) as exc_info:
        audit.run_conflict_audit()

    report = exc_info.value.report
    assert report.succeeded == 1
    assert [item.reservation_id for item in report.remaining_conflicts] == ["B"]


def test_report_is_machine_readable(tmp_path):
    repository, audit = _build_audit(tmp_path, "report.db")
    _store(repository, "A", SALA_NEON, order=0)
    _store(repository, "B", SALA_NEON, order=1)

    payload = audit.run_conflict_audit().to_dict()

    assert payload["duplicates_resolved"] == 1
    assert payload["removals"] == [
        {
            "reservation_id": "B",
            "retained_id": "A",
            "reason": "duplicate",
            "area_id": 1,
            "date": "2025-10-01",
        }
    ]
    assert payload["failures"] == []


def test_full_day_desk_overflow_ignores_stored_times(tmp_path):
    repository, audit = _build_audit(tmp_path, "desk_switched.db")
    _store(repository, "MORNING", HOT_DESK, "09:00", "10:00", order=0, seats=10)
    _store(repository, "AFTERNOON", HOT_DESK, "14:00", "15:00", order=1, seats=10)
    _store(repository, "EVENING", HOT_DESK, "16:00", "17:00", order=2, seats=10)

    report = audit.run_conflict_audit()

    assert report.capacity_overflows_resolved == 1
    assert report.removals[0].reservation_id == "EVENING"
    assert report.removals[0].retained_id == "MORNING"
