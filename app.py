"""
app.py - FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires all services, registers routers, and runs startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError

from workspace_booking.controllers.admin_controller import router as admin_router
from workspace_booking.controllers.reservation_controller import (
    reservation_validation_handler,
    router as reservation_router,
)
from workspace_booking.domain.clock import LocalClock
from workspace_booking.repository.data_repository import DataRepository
from workspace_booking.services.area_service import AreaService
from workspace_booking.services.audit_service import ConflictAuditService
from workspace_booking.services.availability_service import AvailabilityChecker
from workspace_booking.services.policy_service import OfficePolicyService
from workspace_booking.services.reservation_service import ReservationService
from workspace_booking.services.utilization_service import UtilizationService
from workspace_booking.utils.config import Settings, get_settings
from workspace_booking.utils.logger import get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[LocalClock] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Every service is constructed here and published on app.state; controllers
    resolve them through the providers in controllers/dependencies.py.
    """
    settings = settings or get_settings()
    clock = clock or LocalClock(settings.local_timezone)

    # --- Repository (SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services ---
    policy_service = OfficePolicyService(repository=repository, settings=settings)
    availability_checker = AvailabilityChecker(
        repository=repository,
        clock=clock,
        policy_service=policy_service,
        settings=settings,
    )
    reservation_service = ReservationService(
        repository=repository,
        checker=availability_checker,
        policy_service=policy_service,
        settings=settings,
    )
    area_service = AreaService(repository=repository, settings=settings)
    audit_service = ConflictAuditService(repository=repository, clock=clock)
    utilization_service = UtilizationService(
        repository=repository,
        clock=clock,
        policy_service=policy_service,
        settings=settings,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(admin_router)
    app.include_router(reservation_router)
    app.add_exception_handler(RequestValidationError, reservation_validation_handler)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.clock = clock
    app.state.repository = repository
    app.state.policy_service = policy_service
    app.state.availability_checker = availability_checker
    app.state.reservation_service = reservation_service
    app.state.area_service = area_service
    app.state.audit_service = audit_service
    app.state.utilization_service = utilization_service

    return app


def _startup(app: FastAPI) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Order matters:
      1. Schema must exist before seeding.
      2. Default areas are seeded only into an empty Areas table.
      3. The office policy snapshot is loaded last (defaults persisted on first run).
    """
    settings: Settings = app.state.settings
    repository: DataRepository = app.state.repository
    policy_service: OfficePolicyService = app.state.policy_service

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_default_areas:
        logger.info("Startup: seeding default areas (skipped if Areas table not empty)")
        repository.seed_default_areas()

    logger.info("Startup: loading office policy snapshot")
    policy_service.load()

    logger.info("Startup complete, timezone=%s", settings.local_timezone)


# Module-level app object for uvicorn
app = create_app()
