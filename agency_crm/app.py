"""FastAPI application factory for the agency CRM activity feed."""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from sqlalchemy.exc import SQLAlchemyError

from .config import settings
from .errors import ServiceError, format_validation_errors
from .responses import error_response

log = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging()
    # Auto-create tables for SQLite (local dev); PostgreSQL uses Alembic migrations
    if "sqlite" in settings.database_url:
        from .database import engine
        from .models import Base
        async with engine.begin() as conn:
            await conn.run_sync(Base.metadata.create_all)
    if settings.is_production and not settings.auth_secret.strip():
        raise RuntimeError("AGENCY_CRM_AUTH_SECRET must be set in production")
    yield


app = FastAPI(title=settings.app_title, lifespan=lifespan)


@app.exception_handler(ServiceError)
async def service_error_handler(request: Request, exc: ServiceError):
    return error_response(exc.message, exc.status_code, getattr(exc, "errors", None))


@app.exception_handler(RequestValidationError)
async def request_validation_handler(request: Request, exc: RequestValidationError):
    return error_response("Validation failed", 400, format_validation_errors(exc.errors()))


@app.exception_handler(SQLAlchemyError)
async def store_error_handler(request: Request, exc: SQLAlchemyError):
    log.error("Unhandled store error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response("Internal server error", 500)


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    log.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return error_response("Internal server error", 500)


# Import and register routers
from .routers import activities, health  # noqa: E402

app.include_router(activities.router)
app.include_router(health.router)
