"""FastAPI application entry point for the Assessment Portal.

This module initializes the FastAPI application, sets up logging,
registers routers, and maps service errors to HTTP responses.
"""

import asyncio
import uuid
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from assessment_portal.config import get_settings
from assessment_portal.dependencies import get_portal
from assessment_portal.logging_config import setup_logging, get_logger
from assessment_portal.routes import admin, assessments, auth, health
from assessment_portal.services.api_client import ApiError, SessionExpiredError
from assessment_portal.services.assessment_fetcher import AssessmentLoadError
from assessment_portal.services.assessment_runner import RunnerNotOpenError
from assessment_portal.services.form_engine import (
    FormEngineError,
    FormValidationError,
    SessionClosedError,
    SubmissionError,
)

# Initialize logger (will be configured during startup)
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Startup:
    - Configure logging
    - Restore the signed-in user from the session store
    - Fetch the CSRF cookie (best effort)

    Shutdown:
    - Close every open assessment session (timers, pending autosaves)

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    settings = get_settings()
    setup_logging()

    portal = app.dependency_overrides.get(get_portal, get_portal)()
    user = portal.store.hydrate()
    await asyncio.to_thread(portal.auth.prepare)

    logger.info(
        f"Assessment Portal starting - "
        f"Environment: {settings.environment}, "
        f"Log Level: {settings.log_level}, "
        f"API: {settings.api_base_url}, "
        f"Signed in: {user is not None}"
    )

    yield

    await portal.registry.close_all()
    logger.info("Assessment Portal shutting down")


app = FastAPI(
    title="Assessment Portal",
    description="Take assessments with autosave and resume, and manage them as an admin",
    version="1.0.0",
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=get_settings().get_allowed_origins_list(),
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def assign_request_id(request: Request, call_next):
    """Tag each request with an id for log correlation."""
    request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex[:12]
    response = await call_next(request)
    response.headers["X-Request-ID"] = request_id
    logger.debug(
        f"{request.method} {request.url.path} -> {response.status_code}",
        extra={"request_id": request_id},
    )
    return response


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with basic service information.

    Returns:
        dict: Service information and status
    """
    settings = get_settings()
    return {
        "service": "Assessment Portal",
        "version": "1.0.0",
        "environment": settings.environment,
        "status": "operational"
    }


# Register routers
app.include_router(health.router, tags=["Health"])
app.include_router(auth.router, tags=["Auth"])
app.include_router(assessments.router, tags=["Assessments"])
app.include_router(admin.router, tags=["Admin"])


@app.exception_handler(FormValidationError)
async def form_validation_handler(request: Request, exc: FormValidationError) -> JSONResponse:
    """Unanswered required questions or a bad email block submission."""
    return JSONResponse(
        status_code=422,
        content={"error": "Please correct the highlighted fields", "field_errors": exc.as_field_errors()},
    )


@app.exception_handler(SubmissionError)
async def submission_error_handler(request: Request, exc: SubmissionError) -> JSONResponse:
    return JSONResponse(
        status_code=502,
        content={"error": exc.detail, "field_errors": exc.field_errors},
    )


@app.exception_handler(SessionExpiredError)
async def session_expired_handler(request: Request, exc: SessionExpiredError) -> JSONResponse:
    """The refresh token was rejected; the user has to sign in again."""
    return JSONResponse(
        status_code=401,
        content={"error": exc.detail, "login": get_settings().login_path},
    )


@app.exception_handler(ApiError)
async def api_error_handler(request: Request, exc: ApiError) -> JSONResponse:
    logger.warning(f"Backend call failed for {request.method} {request.url.path}: {exc.detail}")
    return JSONResponse(
        status_code=502,
        content={"error": exc.detail, "field_errors": exc.field_errors},
    )


@app.exception_handler(AssessmentLoadError)
async def assessment_load_handler(request: Request, exc: AssessmentLoadError) -> JSONResponse:
    status_code = 404 if exc.status_code == 404 else 502
    return JSONResponse(status_code=status_code, content={"error": str(exc)})


@app.exception_handler(SessionClosedError)
@app.exception_handler(RunnerNotOpenError)
async def session_closed_handler(request: Request, exc: FormEngineError) -> JSONResponse:
    return JSONResponse(status_code=409, content={"error": str(exc)})


@app.exception_handler(FormEngineError)
async def form_engine_handler(request: Request, exc: FormEngineError) -> JSONResponse:
    """Out-of-range question indexes and values that do not fit the question."""
    return JSONResponse(status_code=400, content={"error": str(exc)})


# Global exception handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    """Global exception handler for unhandled exceptions.

    Logs all unhandled exceptions and returns a generic error response
    to prevent leaking sensitive information.

    Args:
        request: FastAPI request object
        exc: Exception that was raised

    Returns:
        JSONResponse: Generic error response
    """
    logger.error(
        f"Unhandled exception for {request.method} {request.url}: {exc}",
        exc_info=True
    )

    return JSONResponse(
        status_code=500,
        content={
            "error": "Internal server error",
            "message": "An unexpected error occurred. Please try again later."
        }
    )
