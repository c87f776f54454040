"""Area catalogue management."""

from __future__ import annotations

from dataclasses import replace
from typing import Any, Mapping, Optional

from workspace_booking.domain.constraints import validate_area
from workspace_booking.domain.models import Area, AreaCategory
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.services.availability_service import AreaNotFoundError
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


class AreaValidationError(Exception):
    """Raised when an area definition is invalid."""


_UPDATABLE_FIELDS = {
    "name",
    "capacity",
    "category",
    "is_full_day_reservation",
    "min_reservation_minutes",
    "max_reservation_minutes",
}


class AreaService:
    def __init__(self, repository: DataRepository, settings: Optional[Settings] = None) -> None:
        self._repository = repository
        self._settings = settings or get_settings()

    def list_areas(self) -> list[Area]:
        return self._repository.list_areas()

    def get_area(self, area_id: int) -> Area:
        area = self._repository.get_area(area_id)
        if area is None:
            raise AreaNotFoundError(f"area_id {area_id} not found")
        return area

    def create_area(
        self,
        name: str,
        capacity: int,
        category: AreaCategory,
        is_full_day_reservation: bool = False,
        min_reservation_minutes: Optional[int] = None,
        max_reservation_minutes: Optional[int] = None,
    ) -> Area:
        draft = Area(
            area_id=0,
            name=name.strip(),
            capacity=capacity,
            category=category,
            is_full_day_reservation=is_full_day_reservation,
            min_reservation_minutes=(
                min_reservation_minutes
                if min_reservation_minutes is not None
                else self._settings.default_min_reservation_minutes
            ),
            max_reservation_minutes=(
                max_reservation_minutes
                if max_reservation_minutes is not None
                else self._settings.default_max_reservation_minutes
            ),
        )
        try:
            validate_area(draft)
        except ValueError as exc:
            raise AreaValidationError(str(exc)) from exc

        area = self._repository.create_area(
            name=draft.name,
            capacity=draft.capacity,
            category=draft.category,
            is_full_day_reservation=draft.is_full_day_reservation,
            min_reservation_minutes=draft.min_reservation_minutes,
            max_reservation_minutes=draft.max_reservation_minutes,
        )
        logger.info("Created area %s (%s, capacity=%s)", area.name, area.category.value, area.capacity)
        return area

    def update_area(self, area_id: int, changes: Mapping[str, Any]) -> Area:
        """Apply a partial update; category changes are refused once reservations exist."""
        unknown = set(changes) - _UPDATABLE_FIELDS
        if unknown:
            raise AreaValidationError(f"unknown area fields: {', '.join(sorted(unknown))}")

        current = self.get_area(area_id)
        updates = {key: value for key, value in changes.items() if value is not None}
        if "name" in updates:
            updates["name"] = str(updates["name"]).strip()
        if "category" in updates:
            updates["category"] = AreaCategory(updates["category"])
        updated = replace(current, **updates)
        try:
            validate_area(updated)
        except ValueError as exc:
            raise AreaValidationError(str(exc)) from exc

        self._repository.update_area(updated)
        logger.info("Updated area %s fields=%s", area_id, ",".join(sorted(updates)))
        return updated
