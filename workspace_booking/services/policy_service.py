"""Holder for the current office policy snapshot."""

from __future__ import annotations

import threading
from typing import Any, Mapping, Optional

from workspace_booking.domain.constraints import validate_office_policy
from workspace_booking.domain.office_policy import OfficePolicy
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


class PolicyValidationError(Exception):
    """Raised when a proposed office policy is malformed or inconsistent."""


class OfficePolicyService:
    """Publishes immutable policy snapshots.

    Readers take one snapshot per evaluation; writers build a new snapshot,
    persist it and swap the reference. Concurrent writers race and the last
    one wins.
    """

    def __init__(
        self,
        repository: DataRepository,
        settings: Optional[Settings] = None,
    ) -> None:
        self._repository = repository
        self._settings = settings or get_settings()
        self._lock = threading.RLock()
        self._policy = OfficePolicy.from_settings(self._settings)

    def load(self) -> OfficePolicy:
        """Read the persisted policy, persisting the configured defaults on first run."""
        payload = self._repository.load_office_policy()
        if payload is None:
            policy = OfficePolicy.from_settings(self._settings)
            validate_office_policy(policy)
            self._repository.save_office_policy(policy.to_dict())
            logger.info("Persisted default office policy")
        else:
            try:
                policy = OfficePolicy.from_dict(payload)
                validate_office_policy(policy)
            except (KeyError, TypeError, ValueError) as exc:
                raise PolicyValidationError(f"Stored office policy is invalid: {exc}") from exc
        with self._lock:
            self._policy = policy
        return policy

    def snapshot(self) -> OfficePolicy:
        with self._lock:
            return self._policy

    def replace_policy(self, payload: Mapping[str, Any]) -> OfficePolicy:
        try:
            policy = OfficePolicy.from_dict(payload)
            validate_office_policy(policy)
        except (KeyError, TypeError, ValueError) as exc:
            raise PolicyValidationError(str(exc)) from exc

        self._repository.save_office_policy(policy.to_dict())
        with self._lock:
            self._policy = policy
        logger.info(
            "Office policy replaced days=%s business_hours=%s-%s max_days_ahead=%s",
            ",".join(policy.to_dict()["office_days"]),
            policy.business_hours.start,
            policy.business_hours.end,
            policy.max_reservation_days_ahead,
        )
        return policy
