"""Controller layer for areas, office policy, conflict audit and reporting."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field, field_validator

from workspace_booking.controllers.dependencies import (
    get_app_settings,
    get_area_service,
    get_audit_service,
    get_policy_service,
    get_utilization_service,
    require_operator,
)
from workspace_booking.controllers.reservation_controller import unavailable
from workspace_booking.domain.clock import TIME_PATTERN, Weekday
from workspace_booking.domain.models import AreaCategory
from workspace_booking.repository.data_repository import (
    AreaCategoryLockedError,
    DuplicateAreaError,
    RepositoryUnavailableError,
)
from workspace_booking.services.area_service import AreaService, AreaValidationError
from workspace_booking.services.audit_service import AuditPostconditionError, ConflictAuditService
from workspace_booking.services.availability_service import AreaNotFoundError
from workspace_booking.services.policy_service import OfficePolicyService, PolicyValidationError
from workspace_booking.services.utilization_service import (
    UtilizationService,
    UtilizationValidationError,
)
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["admin"])


class HealthResponse(BaseModel):
    status: str
    app: str
    version: str
    timezone: str


class AreaResponse(BaseModel):
    area_id: int = Field(gt=0)
    name: str
    capacity: int = Field(gt=0)
    category: AreaCategory
    is_full_day_reservation: bool
    min_reservation_minutes: int = Field(gt=0)
    max_reservation_minutes: int = Field(gt=0)


class AreaCreateRequest(BaseModel):
    name: str = Field(min_length=1)
    capacity: int = Field(gt=0)
    category: AreaCategory
    is_full_day_reservation: bool = False
    min_reservation_minutes: int | None = Field(default=None, gt=0)
    max_reservation_minutes: int | None = Field(default=None, gt=0)


class AreaUpdateRequest(BaseModel):
    name: str | None = Field(default=None, min_length=1)
    capacity: int | None = Field(default=None, gt=0)
    category: AreaCategory | None = None
    is_full_day_reservation: bool | None = None
    min_reservation_minutes: int | None = Field(default=None, gt=0)
    max_reservation_minutes: int | None = Field(default=None, gt=0)


class TimeWindowPayload(BaseModel):
    start: str = Field(pattern=TIME_PATTERN.pattern)
    end: str = Field(pattern=TIME_PATTERN.pattern)


class OfficePolicyPayload(BaseModel):
    office_days: list[Weekday] | dict[str, bool]
    office_hours: TimeWindowPayload
    business_hours: TimeWindowPayload
    max_reservation_days_ahead: int = Field(ge=0)
    allow_same_day_reservations: bool
    require_approval: bool

    @field_validator("office_days")
    @classmethod
    def validate_day_names(
        cls,
        value: list[Weekday] | dict[str, bool],
    ) -> list[Weekday] | dict[str, bool]:
        if isinstance(value, dict):
            allowed = {"monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"}
            unknown = set(value) - allowed
            if unknown:
                raise ValueError(f"unknown weekday names: {', '.join(sorted(unknown))}")
        return value


class AuditRequest(BaseModel):
    dry_run: bool = False


@router.get("/health", response_model=HealthResponse, status_code=status.HTTP_200_OK)
async def health(request: Request) -> HealthResponse:
    settings = get_app_settings(request)
    return HealthResponse(
        status="ok",
        app=settings.app_name,
        version=settings.app_version,
        timezone=settings.local_timezone,
    )


@router.get("/areas", response_model=list[AreaResponse], status_code=status.HTTP_200_OK)
async def list_areas(service: AreaService = Depends(get_area_service)) -> list[AreaResponse]:
    try:
        return [AreaResponse(**area.to_dict()) for area in service.list_areas()]
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.post(
    "/areas",
    response_model=AreaResponse,
    status_code=status.HTTP_201_CREATED,
    dependencies=[Depends(require_operator)],
)
async def create_area(
    payload: AreaCreateRequest,
    service: AreaService = Depends(get_area_service),
) -> AreaResponse:
    try:
        area = service.create_area(**payload.model_dump())
        return AreaResponse(**area.to_dict())
    except AreaValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except DuplicateAreaError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.patch(
    "/areas/{area_id}",
    response_model=AreaResponse,
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_operator)],
)
async def update_area(
    area_id: int,
    payload: AreaUpdateRequest,
    service: AreaService = Depends(get_area_service),
) -> AreaResponse:
    try:
        area = service.update_area(area_id, payload.model_dump(exclude_unset=True))
        return AreaResponse(**area.to_dict())
    except AreaNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except AreaValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except (AreaCategoryLockedError, DuplicateAreaError) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.get("/office_policy", status_code=status.HTTP_200_OK)
async def get_office_policy(
    service: OfficePolicyService = Depends(get_policy_service),
) -> dict:
    return service.snapshot().to_dict()


@router.put(
    "/office_policy",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_operator)],
)
async def replace_office_policy(
    payload: OfficePolicyPayload,
    service: OfficePolicyService = Depends(get_policy_service),
) -> dict:
    try:
        policy = service.replace_policy(payload.model_dump(mode="json"))
        return policy.to_dict()
    except PolicyValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.post(
    "/audit",
    status_code=status.HTTP_200_OK,
    dependencies=[Depends(require_operator)],
)
async def run_audit(
    payload: AuditRequest | None = None,
    service: ConflictAuditService = Depends(get_audit_service),
) -> dict:
    dry_run = payload.dry_run if payload is not None else False
    try:
        return service.run_conflict_audit(dry_run=dry_run).to_dict()
    except AuditPostconditionError as exc:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail={"error": str(exc), "report": exc.report.to_dict()},
        ) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected audit failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to run conflict audit",
        ) from exc


@router.get("/utilization", status_code=status.HTTP_200_OK)
async def utilization(
    start_date: str = Query(...),
    end_date: str = Query(...),
    service: UtilizationService = Depends(get_utilization_service),
) -> dict:
    try:
        return service.build_report(start_date, end_date)
    except UtilizationValidationError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected utilization failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to build utilization report",
        ) from exc
