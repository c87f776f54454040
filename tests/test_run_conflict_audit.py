from __future__ import annotations

import json
from dataclasses import replace
from datetime import datetime, timezone

from scripts import run_conflict_audit
from workspace_booking.domain.models import Reservation, ReservationStatus
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.utils.config import get_settings


def _printed_report(output: str) -> dict:
    # log lines may share stdout with the report
    return json.loads(output[output.index("{\n  \"run_id\""):])


def _seed_duplicate_pair(db_path) -> DataRepository:
    get_settings.cache_clear()
    repository = DataRepository(replace(get_settings(), database_path=db_path))
    repository.initialize_database()
    repository.seed_default_areas()
    for minute, reservation_id in enumerate(["RES-OLD", "RES-NEW"]):
        repository.insert_reservation(
            Reservation(
                reservation_id=reservation_id,
                area_id=1,
                area_name="Sala Neon",
                date="2025-10-01",
                start_time="10:00",
                end_time="11:00",
                requested_seats=10,
                status=ReservationStatus.CONFIRMED,
                created_at=datetime(2025, 9, 1, 12, minute, tzinfo=timezone.utc),
                creator_id=f"user-{minute}",
            )
        )
    return repository


def test_dry_run_prints_plan_and_keeps_rows(tmp_path, capsys):
    db_path = tmp_path / "cli_dry_run.db"
    repository = _seed_duplicate_pair(db_path)

    exit_code = run_conflict_audit.main(["--dry-run", "--database", str(db_path)])

    assert exit_code == run_conflict_audit.EXIT_OK
    report = _printed_report(capsys.readouterr().out)
    assert report["dry_run"] is True
    assert report["duplicates_resolved"] == 1
    assert repository.count_reservations() == 2


def test_cleanup_run_removes_the_newer_duplicate(tmp_path, capsys):
    db_path = tmp_path / "cli_cleanup.db"
    repository = _seed_duplicate_pair(db_path)

    exit_code = run_conflict_audit.main(["--database", str(db_path)])

    assert exit_code == run_conflict_audit.EXIT_OK
    report = _printed_report(capsys.readouterr().out)
    assert report["removals"][0]["reservation_id"] == "RES-NEW"
    assert repository.get_reservation("RES-NEW") is None
