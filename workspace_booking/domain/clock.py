"""Clock and calendar normalization for the single local operating timezone.

All availability and conflict logic compares *local* calendar dates as
``YYYY-MM-DD`` strings and local times as ``HH:MM`` strings. Conversion to and
from absolute instants happens only here, so a date-only string can never be
shifted by a timezone-aware constructor elsewhere in the code base.
"""

from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta, timezone
from enum import Enum
from typing import Callable, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError


DATE_PATTERN = re.compile(r"^\d{4}-\d{2}-\d{2}$")
TIME_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")
# Accepts date strings carrying a time-of-day suffix, e.g. "2025-10-01T05:00:00.000Z".
_DATE_PREFIX_PATTERN = re.compile(r"^(\d{4}-\d{2}-\d{2})[T ].+$")

MINUTES_PER_DAY = 24 * 60


class ClockFormatError(ValueError):
    """Raised when a local date or time string is malformed."""


class Weekday(str, Enum):
    MON = "MON"
    TUE = "TUE"
    WED = "WED"
    THU = "THU"
    FRI = "FRI"
    SAT = "SAT"
    SUN = "SUN"


_WEEKDAYS_BY_INDEX = tuple(Weekday)


def parse_local_date(value: object) -> date:
    if not isinstance(value, str) or DATE_PATTERN.fullmatch(value) is None:
        raise ClockFormatError(f"date must follow YYYY-MM-DD format, got {value!r}")
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ClockFormatError(f"date {value!r} is not a valid calendar date") from exc


def parse_local_time(value: object) -> time:
    if not isinstance(value, str) or TIME_PATTERN.fullmatch(value) is None:
        raise ClockFormatError(f"time must follow HH:MM format, got {value!r}")
    hours, minutes = (int(part) for part in value.split(":"))
    return time(hours, minutes)


def minutes_of_day(value: str) -> int:
    """Minutes since local midnight for an ``HH:MM`` string."""
    parsed = parse_local_time(value)
    return parsed.hour * 60 + parsed.minute


def format_minutes(total_minutes: int) -> str:
    """Inverse of :func:`minutes_of_day`; ``1440`` renders as ``24:00``."""
    if not 0 <= total_minutes <= MINUTES_PER_DAY:
        raise ClockFormatError(f"minute offset {total_minutes} is outside one day")
    hours, minutes = divmod(total_minutes, 60)
    return f"{hours:02d}:{minutes:02d}"


def resolve_timezone(name: str) -> ZoneInfo:
    try:
        return ZoneInfo(name)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ClockFormatError(f"unknown timezone {name!r}") from exc


class LocalClock:
    """Single source of truth for local dates, local times and instants."""

    def __init__(
        self,
        timezone_name: str,
        now_provider: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._timezone_name = timezone_name
        self._tz = resolve_timezone(timezone_name)
        self._now_provider = now_provider or (lambda: datetime.now(timezone.utc))

    @property
    def timezone_name(self) -> str:
        return self._timezone_name

    def now(self) -> datetime:
        current = self._now_provider()
        if current.tzinfo is None:
            raise ClockFormatError("now_provider must return a timezone-aware datetime")
        return current.astimezone(timezone.utc)

    def today(self) -> str:
        return self.to_local_date(self.now())

    def to_instant(self, local_date: object, local_time: object = None) -> datetime:
        """Return the UTC instant of ``local_date`` at ``local_time`` (midnight if omitted)."""
        parsed_date = parse_local_date(local_date)
        parsed_time = time(0, 0) if local_time is None else parse_local_time(local_time)
        local_dt = datetime.combine(parsed_date, parsed_time, tzinfo=self._tz)
        return local_dt.astimezone(timezone.utc)

    def to_local_date(self, instant: datetime) -> str:
        if instant.tzinfo is None:
            raise ClockFormatError("instant must be timezone-aware")
        return instant.astimezone(self._tz).date().isoformat()

    def to_local_datetime(self, instant: datetime) -> datetime:
        if instant.tzinfo is None:
            raise ClockFormatError("instant must be timezone-aware")
        return instant.astimezone(self._tz)

    def normalize_local_date(self, value: object) -> str:
        """Collapse the many shapes a stored date can take into ``YYYY-MM-DD``.

        Aware datetimes are converted into the local timezone first; naive
        datetimes and date-prefixed strings keep their calendar date as written.
        """
        if isinstance(value, datetime):
            if value.tzinfo is not None:
                return self.to_local_date(value)
            return value.date().isoformat()
        if isinstance(value, date):
            return value.isoformat()
        if isinstance(value, str):
            candidate = value.strip()
            if DATE_PATTERN.fullmatch(candidate):
                return parse_local_date(candidate).isoformat()
            prefixed = _DATE_PREFIX_PATTERN.fullmatch(candidate)
            if prefixed is not None:
                return parse_local_date(prefixed.group(1)).isoformat()
        raise ClockFormatError(f"cannot normalize {value!r} to a local date")

    def is_in_past(self, local_date: object, local_time: object = None) -> bool:
        """Whether the local date/time lies before now.

        Without a time the whole day is considered, so a date is in the past only
        once the following local midnight has passed.
        """
        if local_time is None:
            next_midnight = parse_local_date(local_date) + timedelta(days=1)
            return self.to_instant(next_midnight.isoformat()) <= self.now()
        return self.to_instant(local_date, local_time) < self.now()

    def day_of_week(self, local_date: object) -> Weekday:
        return _WEEKDAYS_BY_INDEX[parse_local_date(local_date).weekday()]

    def days_from_today(self, local_date: object) -> int:
        return (parse_local_date(local_date) - parse_local_date(self.today())).days

    def add_days(self, local_date: object, days: int) -> str:
        return (parse_local_date(local_date) + timedelta(days=days)).isoformat()
