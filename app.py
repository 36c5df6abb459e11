"""
app.py: FastAPI application factory and startup lifecycle.

This is the ASGI application object imported by uvicorn.
It wires the repository and booking services, registers routers, and runs
startup initialization.

Usage (via launcher):
    python main.py

Usage (direct uvicorn):
    uvicorn app:app --reload
"""

from __future__ import annotations

from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI

from booking_engine.controllers.availability_controller import router as availability_router
from booking_engine.controllers.booking_controller import router as booking_router
from booking_engine.repository.data_repository import DataRepository
from booking_engine.services.availability_service import AvailabilityService
from booking_engine.services.booking_service import BookingService
from booking_engine.services.policy_service import PolicyService
from booking_engine.utils.clock import Clock, facility_clock
from booking_engine.utils.config import Settings, get_settings
from booking_engine.utils.logger import configure_logging, get_logger


logger = get_logger(__name__)


def create_app(
    settings: Optional[Settings] = None,
    clock: Optional[Clock] = None,
) -> FastAPI:
    """
    Build and wire the FastAPI application.

    Services share one repository and one clock, attached to app.state for
    dependency resolution. Tests pass their own settings and a fixed clock.
    """
    settings = settings or get_settings()
    clock = clock or facility_clock(settings)
    configure_logging(settings)

    # --- Repository (single SQLite connection factory) ---
    repository = DataRepository(settings)

    # --- Services (booking logic, no direct DB access) ---
    policy_service = PolicyService(repository=repository, settings=settings)
    availability_service = AvailabilityService(
        repository=repository,
        settings=settings,
        policy_service=policy_service,
        clock=clock,
    )
    booking_service = BookingService(
        repository=repository,
        settings=settings,
        policy_service=policy_service,
        availability_service=availability_service,
        clock=clock,
    )

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Run startup initialization before accepting requests."""
        _startup(app, settings)
        yield

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        lifespan=lifespan,
    )

    # --- Routers ---
    app.include_router(availability_router)
    app.include_router(booking_router)

    # --- Inject services into app.state for dependency resolution ---
    app.state.settings = settings
    app.state.repository = repository
    app.state.policy_service = policy_service
    app.state.availability_service = availability_service
    app.state.booking_service = booking_service

    return app


def _startup(app: FastAPI, settings: Settings) -> None:
    """
    Idempotent startup sequence. Safe to re-run on server restarts.

    Schema must exist before the catalog and policy defaults are seeded; both
    seeds leave existing rows untouched.
    """
    repository: DataRepository = app.state.repository

    logger.info("Startup: initializing database schema")
    repository.initialize_database()

    if settings.seed_demo_facilities:
        logger.info("Startup: seeding facility catalog (skipped if not empty)")
        repository.seed_facilities()

    logger.info("Startup: seeding default booking policy (skipped if present)")
    repository.seed_default_policy()

    logger.info("Startup complete, booking engine ready")


# Module-level app object for uvicorn
app = create_app()
