from __future__ import annotations

from dataclasses import replace
from datetime import datetime, timezone

from fastapi.testclient import TestClient

from app import create_app
from workspace_booking.domain.clock import LocalClock
from workspace_booking.repository.data_repository import RepositoryUnavailableError
from workspace_booking.utils.config import get_settings


FIXED_NOW = datetime(2025, 9, 20, 14, 0, tzinfo=timezone.utc)
OPERATOR_HEADERS = {"X-Operator-Token": "ops-secret"}


def _build_test_settings(tmp_path, filename: str, operator_token: str | None = None):
    get_settings.cache_clear()
    return replace(
        get_settings(),
        database_path=tmp_path / filename,
        local_timezone="America/Bogota",
        operator_token=operator_token,
        seed_default_areas=True,
        default_office_days=("MON", "TUE", "WED", "THU", "FRI"),
        default_business_hours_start="07:00",
        default_business_hours_end="18:00",
        default_office_hours_start="07:00",
        default_office_hours_end="18:00",
        default_max_reservation_days_ahead=30,
        default_allow_same_day_reservations=True,
        default_require_approval=False,
    )


def _build_client(tmp_path, filename: str, operator_token: str | None = None) -> TestClient:
    settings = _build_test_settings(tmp_path, filename, operator_token)
    clock = LocalClock("America/Bogota", now_provider=lambda: FIXED_NOW)
    return TestClient(create_app(settings=settings, clock=clock))


def _meeting_payload(**overrides) -> dict:
    payload = {
        "area_id": 1,
        "date": "2025-10-01",
        "start_time": "10:00",
        "duration_minutes": 60,
        "creator_id": "ana",
        "collaborator_ids": ["luis"],
    }
    payload.update(overrides)
    return payload


def test_health_and_seeded_areas(tmp_path):
    with _build_client(tmp_path, "flow_health.db") as client:
        health = client.get("/health")
        assert health.status_code == 200
        assert health.json()["timezone"] == "America/Bogota"

        areas = client.get("/areas")
        assert areas.status_code == 200
        names = [item["name"] for item in areas.json()]
        assert names == ["Sala Neon", "Sala de Capacitación", "Hot Desk"]


def test_create_list_and_conflict(tmp_path):
    with _build_client(tmp_path, "flow_create.db") as client:
        created = client.post("/reservations", json=_meeting_payload())
        assert created.status_code == 201
        body = created.json()
        assert body["status"] == "created"
        assert body["reservation"]["end_time"] == "11:00"
        assert body["reservation"]["requested_seats"] == 10

        conflict = client.post("/reservations", json=_meeting_payload(creator_id="marta"))
        assert conflict.status_code == 409
        assert conflict.json() == {
            "status": "rejected",
            "reason": "TimeConflict",
            "detail": conflict.json()["detail"],
        }

        listed = client.get("/reservations", params={"area_id": 1, "date": "2025-10-01"})
        assert listed.status_code == 200
        assert [item["reservation_id"] for item in listed.json()] == [
            body["reservation"]["reservation_id"]
        ]


def test_evaluate_does_not_persist(tmp_path):
    with _build_client(tmp_path, "flow_evaluate.db") as client:
        evaluated = client.post("/reservations/evaluate", json=_meeting_payload())
        assert evaluated.status_code == 200
        assert evaluated.json()["status"] == "accepted"

        assert client.get("/reservations").json() == []


def test_rejections_carry_exactly_one_reason(tmp_path):
    with _build_client(tmp_path, "flow_rejections.db") as client:
        invalid = client.post("/reservations", json=_meeting_payload(date="01/10/2025"))
        assert invalid.status_code == 422
        assert invalid.json()["reason"] == "InvalidFormat"

        weekend = client.post("/reservations", json=_meeting_payload(date="2025-09-27"))
        assert weekend.status_code == 422
        assert weekend.json()["reason"] == "NotOfficeDay"

        for index in range(4):
            accepted = client.post(
                "/reservations",
                json={"area_id": 3, "date": "2025-10-01", "creator_id": f"u{index}", "seats": 5},
            )
            assert accepted.status_code == 201
        full = client.post(
            "/reservations",
            json={"area_id": 3, "date": "2025-10-01", "creator_id": "late", "seats": 5},
        )
        assert full.status_code == 409
        assert full.json()["reason"] == "CapacityExceeded"


def test_unknown_area_is_404(tmp_path):
    with _build_client(tmp_path, "flow_unknown.db") as client:
        response = client.post("/reservations", json=_meeting_payload(area_id=42))
        assert response.status_code == 404


def test_status_lifecycle(tmp_path):
    with _build_client(tmp_path, "flow_status.db") as client:
        reservation_id = client.post("/reservations", json=_meeting_payload()).json()[
            "reservation"
        ]["reservation_id"]

        active = client.patch(f"/reservations/{reservation_id}/status", json={"status": "active"})
        assert active.status_code == 200
        assert active.json()["status"] == "active"

        backwards = client.patch(
            f"/reservations/{reservation_id}/status",
            json={"status": "confirmed"},
        )
        assert backwards.status_code == 409

        cancelled = client.patch(
            f"/reservations/{reservation_id}/status",
            json={"status": "cancelled"},
        )
        assert cancelled.status_code == 200

        terminal = client.patch(
            f"/reservations/{reservation_id}/status",
            json={"status": "completed"},
        )
        assert terminal.status_code == 409

        missing = client.patch("/reservations/RES-NOPE/status", json={"status": "cancelled"})
        assert missing.status_code == 404


def test_operator_endpoints_require_token(tmp_path):
    with _build_client(tmp_path, "flow_operator.db", operator_token="ops-secret") as client:
        assert client.post("/audit", json={"dry_run": True}).status_code == 401
        assert (
            client.post(
                "/audit",
                json={"dry_run": True},
                headers={"X-Operator-Token": "wrong"},
            ).status_code
            == 401
        )

        audit = client.post("/audit", json={"dry_run": False}, headers=OPERATOR_HEADERS)
        assert audit.status_code == 200
        assert audit.json()["attempted"] == 0

        # reading stays open
        assert client.get("/office_policy").status_code == 200


def test_policy_update_applies_to_the_next_request(tmp_path):
    with _build_client(tmp_path, "flow_policy.db", operator_token="ops-secret") as client:
        policy = client.get("/office_policy").json()
        policy["office_days"] = ["TUE", "WED", "THU", "FRI"]

        updated = client.put("/office_policy", json=policy, headers=OPERATOR_HEADERS)
        assert updated.status_code == 200
        assert updated.json()["office_days"] == ["TUE", "WED", "THU", "FRI"]

        monday = client.post("/reservations", json=_meeting_payload(date="2025-09-29"))
        assert monday.status_code == 422
        assert monday.json()["reason"] == "NotOfficeDay"

        policy["business_hours"] = {"start": "18:00", "end": "07:00"}
        refused = client.put("/office_policy", json=policy, headers=OPERATOR_HEADERS)
        assert refused.status_code == 400


def test_area_category_locks_once_booked(tmp_path):
    with _build_client(tmp_path, "flow_areas.db") as client:
        created = client.post(
            "/areas",
            json={"name": "Sala Azul", "capacity": 6, "category": "MEETING_ROOM"},
        )
        assert created.status_code == 201
        area_id = created.json()["area_id"]

        recategorized = client.patch(f"/areas/{area_id}", json={"category": "HOT_DESK"})
        assert recategorized.status_code == 200

        client.post("/reservations", json=_meeting_payload())
        locked = client.patch("/areas/1", json={"category": "HOT_DESK"})
        assert locked.status_code == 409

        duplicate = client.post(
            "/areas",
            json={"name": "Sala Neon", "capacity": 4, "category": "MEETING_ROOM"},
        )
        assert duplicate.status_code == 409


def test_occupancy_and_availability_views(tmp_path):
    with _build_client(tmp_path, "flow_views.db") as client:
        client.post("/reservations", json=_meeting_payload())

        occupancy = client.get("/areas/1/occupancy", params={"date": "2025-10-01"})
        assert occupancy.status_code == 200
        assert occupancy.json()["reserved_minutes"] == 60

        availability = client.get(
            "/areas/1/availability",
            params={"date": "2025-10-01", "duration_minutes": 60},
        )
        assert availability.status_code == 200
        starts = [slot["start_time"] for slot in availability.json()["slots"]]
        assert "10:00" not in starts
        assert "11:00" in starts


def test_utilization_endpoint(tmp_path):
    with _build_client(tmp_path, "flow_utilization.db") as client:
        client.post("/reservations", json={"area_id": 3, "date": "2025-10-01", "creator_id": "a", "seats": 19})

        report = client.get(
            "/utilization",
            params={"start_date": "2025-10-01", "end_date": "2025-10-01"},
        )
        assert report.status_code == 200
        desk = next(row for row in report.json()["rows"] if row["area_id"] == 3)
        assert desk["band"] == "critical"

        bad = client.get("/utilization", params={"start_date": "2025-10-02", "end_date": "2025-10-01"})
        assert bad.status_code == 400


def test_storage_failure_is_unavailable_not_a_rejection(tmp_path, monkeypatch):
    with _build_client(tmp_path, "flow_unavailable.db") as client:
        repository = client.app.state.repository

        def _broken(*args, **kwargs):
            raise RepositoryUnavailableError("disk I/O error")

        monkeypatch.setattr(repository, "list_active_reservations", _broken)

        response = client.post("/reservations", json=_meeting_payload())
        assert response.status_code == 503
        assert response.json()["detail"]["reason"] == "Unavailable"


def test_mistyped_reservation_fields_are_invalid_format(tmp_path):
    with _build_client(tmp_path, "flow_mistyped.db") as client:
        fractional_seats = client.post(
            "/reservations",
            json={"area_id": 3, "date": "2025-10-01", "seats": 2.5, "creator_id": "u1"},
        )
        assert fractional_seats.status_code == 422
        assert fractional_seats.json()["status"] == "rejected"
        assert fractional_seats.json()["reason"] == "InvalidFormat"
        assert "seats" in fractional_seats.json()["detail"]

        for path, payload in [
            ("/reservations", _meeting_payload(duration_minutes="an hour")),
            ("/reservations", _meeting_payload(date=20251001)),
            ("/reservations/evaluate", _meeting_payload(creator_id="")),
            ("/reservations/evaluate", _meeting_payload(area_id="one")),
        ]:
            response = client.post(path, json=payload)
            assert response.status_code == 422
            assert response.json()["reason"] == "InvalidFormat"

        assert client.get("/reservations").json() == []

        # other routes keep the framework's validation body
        other = client.get("/areas/1/occupancy")
        assert other.status_code == 422
        assert "reason" not in other.json()


def test_full_day_switch_counts_earlier_timed_desk_bookings(tmp_path):
    with _build_client(tmp_path, "flow_desk_switch.db") as client:
        assert client.patch("/areas/3", json={"is_full_day_reservation": False}).status_code == 200
        for creator_id, start_time in [("early", "09:00"), ("late", "14:00")]:
            booked = client.post(
                "/reservations",
                json={
                    "area_id": 3,
                    "date": "2025-10-01",
                    "start_time": start_time,
                    "duration_minutes": 60,
                    "seats": 10,
                    "creator_id": creator_id,
                },
            )
            assert booked.status_code == 201
        assert client.patch("/areas/3", json={"is_full_day_reservation": True}).status_code == 200

        full_day = client.post(
            "/reservations",
            json={"area_id": 3, "date": "2025-10-01", "seats": 10, "creator_id": "all-day"},
        )
        assert full_day.status_code == 409
        assert full_day.json()["reason"] == "CapacityExceeded"

        occupancy = client.get("/areas/3/occupancy", params={"date": "2025-10-01"}).json()
        assert occupancy["reserved_seats"] == 20
