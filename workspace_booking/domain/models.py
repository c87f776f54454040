"""Domain models for areas, reservations and availability decisions."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional, Union


class AreaCategory(str, Enum):
    MEETING_ROOM = "MEETING_ROOM"
    HOT_DESK = "HOT_DESK"


class ReservationStatus(str, Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    ACTIVE = "active"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


# Forward order of the lifecycle; cancelled sits outside it.
STATUS_ORDER = (
    ReservationStatus.PENDING,
    ReservationStatus.CONFIRMED,
    ReservationStatus.ACTIVE,
    ReservationStatus.COMPLETED,
)

AUDITED_STATUSES = frozenset(
    {
        ReservationStatus.CONFIRMED,
        ReservationStatus.ACTIVE,
        ReservationStatus.COMPLETED,
    }
)


class ReasonCode(str, Enum):
    INVALID_FORMAT = "InvalidFormat"
    IN_PAST = "InPast"
    WINDOW_EXCEEDED = "WindowExceeded"
    NOT_OFFICE_DAY = "NotOfficeDay"
    OUTSIDE_BUSINESS_HOURS = "OutsideBusinessHours"
    DURATION_OUT_OF_BOUNDS = "DurationOutOfBounds"
    CAPACITY_EXCEEDED = "CapacityExceeded"
    TIME_CONFLICT = "TimeConflict"


@dataclass(frozen=True)
class Area:
    area_id: int
    name: str
    capacity: int
    category: AreaCategory
    is_full_day_reservation: bool = False
    min_reservation_minutes: int = 30
    max_reservation_minutes: int = 480

    @property
    def is_exclusive(self) -> bool:
        return self.category == AreaCategory.MEETING_ROOM

    def to_dict(self) -> dict[str, object]:
        return {
            "area_id": self.area_id,
            "name": self.name,
            "capacity": self.capacity,
            "category": self.category.value,
            "is_full_day_reservation": self.is_full_day_reservation,
            "min_reservation_minutes": self.min_reservation_minutes,
            "max_reservation_minutes": self.max_reservation_minutes,
        }


@dataclass(frozen=True)
class Reservation:
    """A persisted (or about to be persisted) booking of one area on one local date.

    ``start_time``/``end_time`` are local ``HH:MM`` strings and are ``None`` for
    full-day areas. ``created_at`` is a UTC-aware instant.
    """

    reservation_id: str
    area_id: int
    area_name: str
    date: str
    start_time: Optional[str]
    end_time: Optional[str]
    requested_seats: int
    status: ReservationStatus
    created_at: datetime
    creator_id: str
    collaborator_ids: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_cancelled(self) -> bool:
        return self.status == ReservationStatus.CANCELLED

    def to_dict(self) -> dict[str, object]:
        return {
            "reservation_id": self.reservation_id,
            "area_id": self.area_id,
            "area_name": self.area_name,
            "date": self.date,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "requested_seats": self.requested_seats,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
            "creator_id": self.creator_id,
            "collaborator_ids": sorted(self.collaborator_ids),
        }


@dataclass(frozen=True)
class ReservationRequest:
    """Raw inbound request; fields are validated by the availability checker."""

    area_id: int
    date: object
    creator_id: str
    start_time: object = None
    duration_minutes: object = None
    seats: object = None
    collaborator_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class Accepted:
    reservation: Reservation

    @property
    def accepted(self) -> bool:
        return True


@dataclass(frozen=True)
class Rejected:
    reason: ReasonCode
    detail: str = ""

    @property
    def accepted(self) -> bool:
        return False


Decision = Union[Accepted, Rejected]
