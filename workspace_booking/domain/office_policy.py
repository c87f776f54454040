"""Administrator-owned office calendar and reservation window rules."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Mapping, Optional

from workspace_booking.domain.clock import (
    LocalClock,
    MINUTES_PER_DAY,
    Weekday,
    minutes_of_day,
)
from workspace_booking.utils.config import Settings


@dataclass(frozen=True)
class TimeWindow:
    start: str
    end: str

    @property
    def start_minutes(self) -> int:
        return minutes_of_day(self.start)

    @property
    def end_minutes(self) -> int:
        return minutes_of_day(self.end)

    @property
    def length_minutes(self) -> int:
        return max(self.end_minutes - self.start_minutes, 0)

    def to_dict(self) -> dict[str, str]:
        return {"start": self.start, "end": self.end}


@dataclass(frozen=True)
class OfficePolicy:
    """Immutable policy snapshot; updates go through :meth:`with_updates`."""

    office_days: frozenset[Weekday]
    office_hours: TimeWindow
    business_hours: TimeWindow
    max_reservation_days_ahead: int
    allow_same_day_reservations: bool
    require_approval: bool

    @classmethod
    def from_settings(cls, settings: Settings) -> "OfficePolicy":
        return cls(
            office_days=frozenset(Weekday(day) for day in settings.default_office_days),
            office_hours=TimeWindow(
                start=settings.default_office_hours_start,
                end=settings.default_office_hours_end,
            ),
            business_hours=TimeWindow(
                start=settings.default_business_hours_start,
                end=settings.default_business_hours_end,
            ),
            max_reservation_days_ahead=settings.default_max_reservation_days_ahead,
            allow_same_day_reservations=settings.default_allow_same_day_reservations,
            require_approval=settings.default_require_approval,
        )

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "OfficePolicy":
        office_days = payload["office_days"]
        if isinstance(office_days, Mapping):
            # {"monday": true, ...} shape used by the admin settings screen
            selected = {
                Weekday(name[:3].upper())
                for name, is_open in office_days.items()
                if is_open
            }
        else:
            selected = {Weekday(str(day).upper()) for day in office_days}
        return cls(
            office_days=frozenset(selected),
            office_hours=TimeWindow(**payload["office_hours"]),
            business_hours=TimeWindow(**payload["business_hours"]),
            max_reservation_days_ahead=int(payload["max_reservation_days_ahead"]),
            allow_same_day_reservations=bool(payload["allow_same_day_reservations"]),
            require_approval=bool(payload["require_approval"]),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "office_days": [day.value for day in Weekday if day in self.office_days],
            "office_hours": self.office_hours.to_dict(),
            "business_hours": self.business_hours.to_dict(),
            "max_reservation_days_ahead": self.max_reservation_days_ahead,
            "allow_same_day_reservations": self.allow_same_day_reservations,
            "require_approval": self.require_approval,
        }

    def with_updates(self, **changes: Any) -> "OfficePolicy":
        return replace(self, **changes)

    def is_office_day(self, clock: LocalClock, local_date: str) -> bool:
        return clock.day_of_week(local_date) in self.office_days

    def is_office_hour(self, local_time: str) -> bool:
        minute = minutes_of_day(local_time)
        return self.office_hours.start_minutes <= minute < self.office_hours.end_minutes

    def is_within_business_hours(
        self,
        local_time: str,
        duration_minutes: Optional[int] = None,
    ) -> bool:
        start = minutes_of_day(local_time)
        window_start = self.business_hours.start_minutes
        window_end = self.business_hours.end_minutes
        if duration_minutes is None:
            return window_start <= start < window_end
        end = start + duration_minutes
        return window_start <= start and end <= min(window_end, MINUTES_PER_DAY)

    def is_reservation_window_valid(self, clock: LocalClock, local_date: str) -> bool:
        days_ahead = clock.days_from_today(local_date)
        if days_ahead > self.max_reservation_days_ahead:
            return False
        if days_ahead == 0 and not self.allow_same_day_reservations:
            return False
        return True

    def next_office_day(self, clock: LocalClock, local_date: str) -> Optional[str]:
        """First office day strictly after ``local_date``; ``None`` when no day is open."""
        if not self.office_days:
            return None
        candidate = clock.add_days(local_date, 1)
        while not self.is_office_day(clock, candidate):
            candidate = clock.add_days(candidate, 1)
        return candidate
