"""FastAPI application entry point for the EHR FHIR service.

Routers: history (system/type/instance history, vread) and Organization.
FHIR errors are rendered as OperationOutcome resources.
"""

import logging

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from starlette.exceptions import HTTPException

from ehrfhir.api.history import router as history_router
from ehrfhir.api.organizations import router as organizations_router
from ehrfhir.api.responses import FHIRResponse
from ehrfhir.config.settings import get_settings
from ehrfhir.db.session import get_async_session
from ehrfhir.fhir.bundle import operation_outcome
from ehrfhir.fhir.errors import FHIRError

APP_NAME = "ehr-fhir"
APP_VERSION = "0.1.0"

settings = get_settings()

_LOG_NAME_TO_LEVEL: dict[str, int] = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}

# --- Structured logging ---
structlog.configure(
    processors=[
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.dev.ConsoleRenderer() if settings.ENVIRONMENT == "dev"
        else structlog.processors.JSONRenderer(),
    ],
    wrapper_class=structlog.make_filtering_bound_logger(
        _LOG_NAME_TO_LEVEL[settings.LOG_LEVEL.value],
    ),
    context_class=dict,
    logger_factory=structlog.PrintLoggerFactory(),
    cache_logger_on_first_use=True,
)

logger: structlog.stdlib.BoundLogger = structlog.get_logger()

# --- FastAPI app ---
app = FastAPI(
    title="EHR FHIR API",
    description="FHIR R4 versioning, patch and search services for the EHR.",
    version=APP_VERSION,
)

# --- CORS middleware ---
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"] if settings.ENVIRONMENT == "dev" else [],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# --- Error handling ---


@app.exception_handler(FHIRError)
async def fhir_error_handler(request: Request, exc: FHIRError) -> FHIRResponse:
    """Render FHIR errors as OperationOutcome with the error's status code."""
    logger.warning(
        "fhir_request_failed",
        method=request.method,
        path=request.url.path,
        status=exc.status_code,
        error=exc.message,
    )
    return FHIRResponse(
        status_code=exc.status_code,
        content=operation_outcome("error", exc.issue_code, exc.message),
    )


@app.exception_handler(HTTPException)
async def http_error_handler(request: Request, exc: HTTPException) -> FHIRResponse:
    """Convert HTTPException to a FHIR OperationOutcome."""
    issue_code = "exception"
    if exc.status_code == 404:
        issue_code = "not-found"
    elif exc.status_code == 400:
        issue_code = "invalid"
    elif exc.status_code == 405:
        issue_code = "not-supported"
    return FHIRResponse(
        status_code=exc.status_code,
        content=operation_outcome("error", issue_code, str(exc.detail)),
        headers=getattr(exc, "headers", None),
    )


@app.exception_handler(RequestValidationError)
async def validation_error_handler(
    request: Request, exc: RequestValidationError,
) -> FHIRResponse:
    """Malformed request parameters or bodies are FHIR "invalid" issues (400)."""
    return FHIRResponse(
        status_code=400,
        content=operation_outcome("error", "invalid", str(exc.errors())),
    )


# --- Routers ---
# History first: /fhir/{type}/_history must win over /fhir/Organization/{id}
app.include_router(history_router)
app.include_router(organizations_router)


# --- Infrastructure Endpoints (global) ---


@app.get("/health")
async def health_check(session: AsyncSession = Depends(get_async_session)) -> dict:
    """Liveness check with component health checks.

    Returns 200 always (degraded status if components are down).
    """
    checks: dict[str, bool] = {"api": True}

    try:
        await session.execute(text("SELECT 1"))
        checks["database"] = True
    except (SQLAlchemyError, OSError) as exc:
        logger.warning("health_check_database_unavailable", error=str(exc))
        checks["database"] = False

    all_ok = all(checks.values())

    return {
        "status": "ok" if all_ok else "degraded",
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
        "checks": checks,
    }


@app.get("/api/version")
async def get_version() -> dict[str, str]:
    """Return application name, version, and environment."""
    return {
        "name": APP_NAME,
        "version": APP_VERSION,
        "environment": settings.ENVIRONMENT.value,
    }
