"""taskmate - task management backend with sharing, groups and reminders."""

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse

from taskmate.core import platform_notifier
from taskmate.core.db_client import init_db
from taskmate.core.errors import (
    FetchFailure,
    NotFoundFailure,
    PermissionDenied,
    TaskmateError,
    ValidationFailure,
    WriteFailure,
    classify_error_with_response,
)
from taskmate.core.logging import configure_logfire, instrument_fastapi
from taskmate.interface.api_router import router as api_router


logger = logging.getLogger(__name__)

ERROR_STATUS_CODES: list[tuple[type[TaskmateError], int]] = [
    (ValidationFailure, status.HTTP_422_UNPROCESSABLE_ENTITY),
    (NotFoundFailure, status.HTTP_404_NOT_FOUND),
    (PermissionDenied, status.HTTP_403_FORBIDDEN),
    (FetchFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
    (WriteFailure, status.HTTP_503_SERVICE_UNAVAILABLE),
]


def status_code_for(exc: Exception) -> int:
    """Map a domain error to its HTTP status code."""
    for error_type, status_code in ERROR_STATUS_CODES:
        if isinstance(exc, error_type):
            return status_code
    return status.HTTP_500_INTERNAL_SERVER_ERROR


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncIterator[None]:
    """Application lifespan context manager."""
    # Startup
    configure_logfire()

    await init_db()
    logger.info("Database initialized")

    platform_notifier.start()
    yield
    # Shutdown
    platform_notifier.stop()


app = FastAPI(
    title="taskmate",
    description="Task management with sharing, groups and reminders",
    version="0.1.0",
    lifespan=lifespan,
)

# Instrument FastAPI with Logfire
instrument_fastapi(app)

# Register routers
app.include_router(api_router)


@app.exception_handler(TaskmateError)
async def handle_domain_error(request: Request, exc: TaskmateError) -> JSONResponse:
    """Render domain errors as structured, user-facing advisories."""
    status_code = status_code_for(exc)
    if status_code >= status.HTTP_500_INTERNAL_SERVER_ERROR:
        logger.error("request_failed", extra={"path": request.url.path, "error": str(exc)})
    else:
        logger.info("request_rejected", extra={"path": request.url.path, "error": str(exc)})

    response = classify_error_with_response(exc)
    return JSONResponse(content=response.model_dump(mode="json"), status_code=status_code)


@app.get("/health")
async def health_check() -> JSONResponse:
    """Health check endpoint."""
    return JSONResponse(content={"status": "healthy"}, status_code=200)


@app.get("/health/reminders")
async def reminders_health_check() -> JSONResponse:
    """Platform notifier status with the number of pending alerts."""
    running = platform_notifier.scheduler.running
    return JSONResponse(
        content={
            "status": "healthy" if running else "stopped",
            "pending_alerts": len(platform_notifier.list_scheduled()),
        },
        status_code=200 if running else 503,
    )
