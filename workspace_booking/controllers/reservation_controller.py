"""HTTP controller layer for reservation requests and area availability."""

from __future__ import annotations

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from fastapi.exception_handlers import request_validation_exception_handler
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from workspace_booking.controllers.dependencies import (
    get_availability_checker,
    get_reservation_service,
)
from workspace_booking.domain.models import (
    Decision,
    ReasonCode,
    Rejected,
    ReservationRequest,
    ReservationStatus,
)
from workspace_booking.repository.data_repository import RepositoryUnavailableError
from workspace_booking.services.availability_service import (
    AreaNotFoundError,
    AvailabilityChecker,
    SlotQueryError,
)
from workspace_booking.services.reservation_service import (
    InvalidStatusTransitionError,
    ReservationNotFoundError,
    ReservationService,
)
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)

router = APIRouter(tags=["reservations"])

_CONFLICT_REASONS = {ReasonCode.CAPACITY_EXCEEDED, ReasonCode.TIME_CONFLICT}
_DECISION_PATHS = {"/reservations", "/reservations/evaluate"}


class ReservationCreateRequest(BaseModel):
    """Body of a reservation request.

    Payloads that do not fit these types are answered as ``InvalidFormat``
    rejections by :func:`reservation_validation_handler`.
    """

    area_id: int = Field(gt=0)
    date: str
    start_time: str | None = None
    duration_minutes: int | None = None
    seats: int | None = None
    creator_id: str = Field(min_length=1)
    collaborator_ids: list[str] = Field(default_factory=list)

    def to_domain(self) -> ReservationRequest:
        return ReservationRequest(
            area_id=self.area_id,
            date=self.date,
            creator_id=self.creator_id,
            start_time=self.start_time,
            duration_minutes=self.duration_minutes,
            seats=self.seats,
            collaborator_ids=tuple(self.collaborator_ids),
        )


class ReservationResponse(BaseModel):
    reservation_id: str
    area_id: int
    area_name: str
    date: str
    start_time: str | None
    end_time: str | None
    requested_seats: int = Field(gt=0)
    status: ReservationStatus
    created_at: str
    creator_id: str
    collaborator_ids: list[str]


class DecisionResponse(BaseModel):
    status: str
    reservation: ReservationResponse


class StatusUpdateRequest(BaseModel):
    status: ReservationStatus


def unavailable(exc: RepositoryUnavailableError) -> HTTPException:
    """Storage failures are reported apart from every rejection reason."""
    logger.error("Storage unavailable: %s", exc)
    return HTTPException(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        detail={"status": "unavailable", "reason": "Unavailable", "detail": str(exc)},
    )


def rejection_response(rejection: Rejected) -> JSONResponse:
    status_code = (
        status.HTTP_409_CONFLICT
        if rejection.reason in _CONFLICT_REASONS
        else status.HTTP_422_UNPROCESSABLE_ENTITY
    )
    return JSONResponse(
        status_code=status_code,
        content={
            "status": "rejected",
            "reason": rejection.reason.value,
            "detail": rejection.detail,
        },
    )


def _describe_validation_errors(exc: RequestValidationError) -> str:
    parts = []
    for error in exc.errors():
        location = ".".join(str(item) for item in error.get("loc", ()) if item != "body")
        parts.append(f"{location}: {error.get('msg', 'invalid value')}" if location else str(error.get("msg")))
    return "; ".join(parts) or "malformed request body"


async def reservation_validation_handler(request: Request, exc: RequestValidationError):
    """Reservation decisions answer malformed bodies with an ``InvalidFormat`` rejection."""
    if request.method == "POST" and request.url.path in _DECISION_PATHS:
        return rejection_response(
            Rejected(reason=ReasonCode.INVALID_FORMAT, detail=_describe_validation_errors(exc))
        )
    return await request_validation_exception_handler(request, exc)


def _decision_payload(decision: Decision, accepted_status: str) -> DecisionResponse | JSONResponse:
    if isinstance(decision, Rejected):
        return rejection_response(decision)
    return DecisionResponse(
        status=accepted_status,
        reservation=ReservationResponse(**decision.reservation.to_dict()),
    )


@router.post(
    "/reservations/evaluate",
    response_model=DecisionResponse,
    status_code=status.HTTP_200_OK,
)
async def evaluate_reservation(
    payload: ReservationCreateRequest,
    service: ReservationService = Depends(get_reservation_service),
):
    """Decide a request without storing it."""
    try:
        return _decision_payload(service.evaluate(payload.to_domain()), "accepted")
    except AreaNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected evaluation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to evaluate reservation",
        ) from exc


@router.post(
    "/reservations",
    response_model=DecisionResponse,
    status_code=status.HTTP_201_CREATED,
)
async def create_reservation(
    payload: ReservationCreateRequest,
    service: ReservationService = Depends(get_reservation_service),
):
    try:
        return _decision_payload(service.create_reservation(payload.to_domain()), "created")
    except AreaNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc
    except Exception as exc:  # pragma: no cover - defensive fallback
        logger.exception("Unexpected reservation failure")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create reservation",
        ) from exc


@router.get(
    "/reservations",
    response_model=list[ReservationResponse],
    status_code=status.HTTP_200_OK,
)
async def list_reservations(
    area_id: int | None = Query(default=None, gt=0),
    date: str | None = Query(default=None),
    service: ReservationService = Depends(get_reservation_service),
) -> list[ReservationResponse]:
    try:
        reservations = service.list_reservations(area_id=area_id, local_date=date)
        return [ReservationResponse(**reservation.to_dict()) for reservation in reservations]
    except SlotQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.patch(
    "/reservations/{reservation_id}/status",
    response_model=ReservationResponse,
    status_code=status.HTTP_200_OK,
)
async def update_reservation_status(
    reservation_id: str,
    payload: StatusUpdateRequest,
    service: ReservationService = Depends(get_reservation_service),
) -> ReservationResponse:
    try:
        reservation = service.transition_status(reservation_id, payload.status)
        return ReservationResponse(**reservation.to_dict())
    except ReservationNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except InvalidStatusTransitionError as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.get("/areas/{area_id}/occupancy", status_code=status.HTTP_200_OK)
async def area_occupancy(
    area_id: int,
    date: str = Query(...),
    checker: AvailabilityChecker = Depends(get_availability_checker),
) -> dict:
    try:
        return checker.occupancy(area_id, date).to_dict()
    except AreaNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SlotQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc


@router.get("/areas/{area_id}/availability", status_code=status.HTTP_200_OK)
async def area_availability(
    area_id: int,
    date: str = Query(...),
    duration_minutes: int | None = Query(default=None, gt=0),
    seats: int | None = Query(default=None, gt=0),
    checker: AvailabilityChecker = Depends(get_availability_checker),
) -> dict:
    try:
        slots = checker.available_slots(
            area_id,
            date,
            duration_minutes=duration_minutes,
            seats=seats,
        )
        return {
            "area_id": area_id,
            "date": date,
            "slots": [slot.to_dict() for slot in slots],
        }
    except AreaNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except SlotQueryError as exc:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc)) from exc
    except RepositoryUnavailableError as exc:
        raise unavailable(exc) from exc
