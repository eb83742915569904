# pyright: reportMissingTypeStubs=false
"""
Clinic Scheduling Backend API

A FastAPI application exposing the clinic scheduling core:

Features:
- Appointment booking with per-doctor conflict prevention
- Status workflow, cancellations and in-app notifications
- Two-way Google Calendar synchronization
- Background jobs for reminders and periodic calendar sync
"""

import logging
from contextlib import asynccontextmanager

import httpx
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from api import appointments, calendar, notifications
from core.constants import CORS_ORIGINS
from core.exceptions import InternalError, SchedulingError
from services.scheduler_service import start_scheduler, stop_scheduler

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    handlers=[logging.StreamHandler()],
)

logger = logging.getLogger(__name__)
logger.info("🏥 Clinic Scheduling API starting...")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown events."""
    logger.info("🚀 Starting Clinic Scheduling Backend API")

    # Database sessions are created fresh for each scheduler run
    try:
        await start_scheduler()
        logger.info("✅ Background scheduler started")
    except Exception as e:
        logger.exception(f"❌ Failed to start background scheduler: {e}")

    yield

    try:
        await stop_scheduler()
        logger.info("🛑 Background scheduler stopped")
    except Exception as e:
        logger.exception(f"❌ Error stopping background scheduler: {e}")

    logger.info("🛑 Shutting down Clinic Scheduling Backend API")


# Create FastAPI application
app = FastAPI(
    title="Clinic Scheduling Backend",
    description="Appointment scheduling core for multi-tenant clinics",
    version="1.0.0",
    docs_url="/docs",  # Swagger UI
    redoc_url="/redoc",  # ReDoc
    lifespan=lifespan,
)

# CORS middleware for frontend integration
app.add_middleware(
    CORSMiddleware,
    allow_origins=CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

# Include API routers
app.include_router(
    appointments.router,
    prefix="/api/appointments",
    tags=["appointments"],
    responses={
        400: {"description": "Validation error"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        404: {"description": "Resource not found"},
        409: {"description": "Conflict"},
        500: {"description": "Internal server error"},
    },
)
app.include_router(
    calendar.router,
    prefix="/api/calendar",
    tags=["calendar"],
    responses={
        400: {"description": "Bad request"},
        401: {"description": "Unauthorized"},
        403: {"description": "Forbidden"},
        502: {"description": "Calendar provider error"},
        503: {"description": "Calendar integration not configured"},
    },
)
app.include_router(
    notifications.router,
    prefix="/api/notifications",
    tags=["notifications"],
    responses={
        401: {"description": "Unauthorized"},
        404: {"description": "Resource not found"},
    },
)


@app.get(
    "/",
    summary="Root endpoint",
    description="Returns basic API information",
)
async def root() -> dict[str, str]:
    """Get API information."""
    return {
        "message": "Clinic Scheduling Backend API",
        "version": "1.0.0",
        "status": "running"
    }


@app.get(
    "/health",
    summary="Health check",
    description="Returns the health status of the API",
)
async def health_check() -> dict[str, str]:
    """Check if the API is healthy and responding."""
    return {"status": "healthy"}


def _error_response(status_code: int, code: str, message: str, details=None) -> JSONResponse:
    error = {"code": code, "message": message}
    if details is not None:
        error["details"] = details
    return JSONResponse(status_code=status_code, content={"success": False, "error": error})


# Global exception handlers
@app.exception_handler(SchedulingError)
async def scheduling_error_handler(request: Request, exc: SchedulingError):
    """Render domain errors with their code and HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"success": False, "error": exc.to_dict()})


@app.exception_handler(RequestValidationError)
async def request_validation_error_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies use the same envelope as gate validation failures."""
    errors = [
        f"{'.'.join(str(part) for part in err.get('loc', ()) if part != 'body')}: {err.get('msg')}"
        for err in exc.errors()
    ]
    return _error_response(400, "VALIDATION_ERROR", "Invalid request", {"errors": errors})


@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    """Handle unexpected exceptions globally."""
    logger.exception(f"Unhandled exception: {exc}")
    error = InternalError()
    return JSONResponse(status_code=error.status_code, content={"success": False, "error": error.to_dict()})


@app.exception_handler(ValueError)
async def value_error_handler(request: Request, exc: ValueError):
    """Handle ValueError exceptions."""
    logger.warning(f"ValueError: {exc}")
    return _error_response(400, "VALIDATION_ERROR", str(exc))


@app.exception_handler(httpx.HTTPStatusError)
async def http_status_error_handler(request: Request, exc: httpx.HTTPStatusError):
    """Handle HTTP status errors from external services."""
    logger.exception(f"External service error: {exc}")
    return _error_response(502, "EXTERNAL_SERVICE_ERROR", "External service error")
