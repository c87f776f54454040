"""Shared FastAPI dependency providers for controller layer."""

from __future__ import annotations

import secrets
from typing import Any

from fastapi import Header, HTTPException, Request, status

from workspace_booking.services.area_service import AreaService
from workspace_booking.services.audit_service import ConflictAuditService
from workspace_booking.services.availability_service import AvailabilityChecker
from workspace_booking.services.policy_service import OfficePolicyService
from workspace_booking.services.reservation_service import ReservationService
from workspace_booking.services.utilization_service import UtilizationService
from workspace_booking.utils.config import Settings, get_settings


def _state_service(request: Request, attribute: str, label: str) -> Any:
    service = getattr(request.app.state, attribute, None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail=f"{label} is not initialized",
        )
    return service


def get_app_settings(request: Request) -> Settings:
    return getattr(request.app.state, "settings", None) or get_settings()


def get_area_service(request: Request) -> AreaService:
    return _state_service(request, "area_service", "Area service")


def get_availability_checker(request: Request) -> AvailabilityChecker:
    return _state_service(request, "availability_checker", "Availability checker")


def get_reservation_service(request: Request) -> ReservationService:
    return _state_service(request, "reservation_service", "Reservation service")


def get_policy_service(request: Request) -> OfficePolicyService:
    return _state_service(request, "policy_service", "Office policy service")


def get_audit_service(request: Request) -> ConflictAuditService:
    return _state_service(request, "audit_service", "Audit service")


def get_utilization_service(request: Request) -> UtilizationService:
    return _state_service(request, "utilization_service", "Utilization service")


async def require_operator(
    request: Request,
    x_operator_token: str | None = Header(default=None),
) -> None:
    """Guard operator endpoints; open when no operator token is configured."""
    expected = get_app_settings(request).operator_token
    if not expected:
        return
    if x_operator_token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="X-Operator-Token header is required",
        )
    if not secrets.compare_digest(x_operator_token.encode("utf-8"), expected.encode("utf-8")):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid operator token",
        )
