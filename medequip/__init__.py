"""Application factory for the medical equipment reservation service.

``create_app`` wires configuration, middleware, error handlers and the API
routers together. Database tables are created (and older schemas upgraded)
when the application starts, not at import time, so tests can swap the
session dependency for an in-memory database before anything touches disk.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from starlette.exceptions import HTTPException as StarletteHTTPException

from .core.config import settings
from .core.errors import (
    ReservationError,
    http_exception_handler,
    reservation_error_handler,
    validation_exception_handler,
)
from .db.migrate import run_migrations
from .db.session import Base, engine
from .middlewares import RequestIdMiddleware, SecurityHeadersMiddleware

# Registering the models populates Base.metadata.
from .models import equipment as _equipment  # noqa: F401
from .models import reservation as _reservation  # noqa: F401

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    Base.metadata.create_all(bind=engine)
    run_migrations(engine)
    logger.info("app.started", extra={"extra_data": {"db": engine.url.render_as_string(hide_password=True)}})
    yield
    engine.dispose()


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    app.add_middleware(SecurityHeadersMiddleware)
    if settings.allowed_origins:
        app.add_middleware(
            CORSMiddleware,
            allow_origins=settings.allowed_origins,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    app.add_middleware(RequestIdMiddleware)

    app.add_exception_handler(ReservationError, reservation_error_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)

    from .routers import api_auth, api_dashboard, api_equipment, api_reservations

    app.include_router(api_auth.router)
    app.include_router(api_equipment.router)
    app.include_router(api_reservations.router)
    app.include_router(api_dashboard.router)
    return app


app = create_app()

__all__ = ["app", "create_app"]
