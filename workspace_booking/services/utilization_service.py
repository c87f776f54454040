"""Utilization reporting over areas and local dates.

Meeting rooms report reserved minutes over business-hours minutes; hot desks
report reserved seats over capacity. Both figures come from the capacity
model so the report always agrees with what the availability checker enforces.
"""

from __future__ import annotations

import json
from collections import defaultdict
from typing import Any, Optional

import pandas as pd

from workspace_booking.domain.capacity import Interval, capacity_model_for, occupied_minutes
from workspace_booking.domain.clock import ClockFormatError, LocalClock, parse_local_date
from workspace_booking.domain.models import Area, Reservation
from workspace_booking.domain.office_policy import OfficePolicy
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.services.policy_service import OfficePolicyService
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)

MAX_REPORT_DAYS = 92

REPORT_COLUMNS = [
    "area_id",
    "area_name",
    "category",
    "date",
    "is_office_day",
    "capacity",
    "reserved_seats",
    "reserved_minutes",
    "available_minutes",
    "utilization_pct",
    "band",
]


def _records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    # round-trip through JSON so numpy scalars become plain Python values
    return json.loads(frame.to_json(orient="records"))


class UtilizationValidationError(Exception):
    """Raised when a report range is malformed or too wide."""


class UtilizationService:
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

    def _validate_range(self, start_date: str, end_date: str) -> tuple[str, str]:
        try:
            start = parse_local_date(start_date)
            end = parse_local_date(end_date)
        except ClockFormatError as exc:
            raise UtilizationValidationError(str(exc)) from exc
        if end < start:
            raise UtilizationValidationError("end_date must not be before start_date")
        if (end - start).days + 1 > MAX_REPORT_DAYS:
            raise UtilizationValidationError(
                f"report range must not exceed {MAX_REPORT_DAYS} days"
            )
        return start.isoformat(), end.isoformat()

    def _row(
        self,
        area: Area,
        local_date: str,
        reservations: list[Reservation],
        policy: OfficePolicy,
    ) -> dict[str, Any]:
        model = capacity_model_for(area)
        occupancy = model.occupancy(local_date, reservations)
        window = Interval(
            policy.business_hours.start_minutes,
            policy.business_hours.end_minutes,
        )
        reserved_minutes = occupied_minutes(
            occupancy.reservations,
            window,
            interval_of=model.interval_of,
        )
        available_minutes = window.length

        if area.is_exclusive:
            utilization = (reserved_minutes / available_minutes * 100.0) if available_minutes else 0.0
        else:
            utilization = occupancy.reserved_seats / area.capacity * 100.0

        return {
            "area_id": area.area_id,
            "area_name": area.name,
            "category": area.category.value,
            "date": local_date,
            "is_office_day": policy.is_office_day(self._clock, local_date),
            "capacity": area.capacity,
            "reserved_seats": occupancy.reserved_seats,
            "reserved_minutes": reserved_minutes,
            "available_minutes": available_minutes,
            "utilization_pct": round(min(utilization, 100.0), 2),
        }

    def build_frame(self, start_date: str, end_date: str) -> pd.DataFrame:
        """One row per area and local date in ``[start_date, end_date]``."""
        start, end = self._validate_range(start_date, end_date)
        policy = self._policy_service.snapshot()
        areas = self._repository.list_areas()

        by_key: dict[tuple[int, str], list[Reservation]] = defaultdict(list)
        for reservation in self._repository.list_reservations_between(start, end):
            by_key[(reservation.area_id, reservation.date)].append(reservation)

        dates = [value.date().isoformat() for value in pd.date_range(start, end, freq="D")]
        rows = [
            self._row(area, local_date, by_key.get((area.area_id, local_date), []), policy)
            for area in areas
            for local_date in dates
        ]
        frame = pd.DataFrame(rows, columns=REPORT_COLUMNS[:-1])
        if frame.empty:
            return pd.DataFrame(columns=REPORT_COLUMNS)

        frame["band"] = pd.cut(
            frame["utilization_pct"],
            bins=[
                float("-inf"),
                self._settings.utilization_busy_threshold,
                self._settings.utilization_critical_threshold,
                float("inf"),
            ],
            labels=["available", "busy", "critical"],
            right=False,
        ).astype(str)
        return frame.sort_values(by=["date", "area_id"]).reset_index(drop=True)

    def build_report(self, start_date: str, end_date: str) -> dict[str, Any]:
        frame = self.build_frame(start_date, end_date)
        if frame.empty:
            return {"start_date": start_date, "end_date": end_date, "rows": [], "summary": []}

        office_rows = frame[frame["is_office_day"]]
        summary_frame = (
            office_rows.groupby(["area_id", "area_name", "category"], sort=True)
            .agg(
                average_utilization_pct=("utilization_pct", "mean"),
                peak_utilization_pct=("utilization_pct", "max"),
                office_days=("date", "count"),
            )
            .reset_index()
        )
        summary_frame["average_utilization_pct"] = summary_frame["average_utilization_pct"].round(2)

        logger.info(
            "Utilization report %s..%s rows=%s",
            start_date,
            end_date,
            len(frame),
        )
        return {
            "start_date": start_date,
            "end_date": end_date,
            "rows": _records(frame),
            "summary": _records(summary_frame),
        }
