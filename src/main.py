"""
Impact Escrow Platform

FastAPI application entry point.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from src.api.middleware.request_id import RequestIdMiddleware
from src.api.v1 import router as api_v1_router
from src.config import get_settings
from src.database import close_db, init_db
from src.kernel.errors import InvalidArgument, PlatformError, Unauthenticated
from src.logging_config import configure_logging, get_logger
from src.schemas.common import HealthResponse, describe_validation_error

settings = get_settings()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator:
    """
    Application lifespan handler.

    Runs startup and shutdown tasks.
    """
    # Configure logging first
    configure_logging(
        log_level=settings.log_level,
        environment=settings.environment,
        debug=settings.debug,
    )

    # Startup
    logger.info("Starting %s v%s", settings.project_name, settings.version)
    await init_db()
    logger.info("Database initialized")

    yield

    # Shutdown
    logger.info("Shutting down...")
    await close_db()
    logger.info("Database connections closed")


# Create FastAPI application
app = FastAPI(
    title=settings.project_name,
    description="""
    Impact Escrow Platform

    Holds crowdfunding contributions in escrow and releases them to project
    creators once milestone and audit conditions hold.

    ## Features

    - **Escrow releases**: milestone, project-completion and admin releases with
      per-contribution transfers and an append-only ledger
    - **Audits**: auditor assignment with eligibility, conflict-of-interest
      checks and compensation; auditor acceptance with timeline validation

    ## Architectural Invariants

    1. No transfer happens before permission and gating checks pass
    2. One transaction per contribution for escrow updates
    3. A schedule entry is released at most once
    4. Append-Only Audit: all mutations logged before commit
    """,
    version=settings.version,
    lifespan=lifespan,
    docs_url="/docs" if settings.debug else None,
    redoc_url="/redoc" if settings.debug else None,
)


# Middleware order: add_middleware stacks innermost-first, so LAST added = OUTERMOST.
_cors_origins = [
    "http://localhost:3000",
    "http://127.0.0.1:3000",
]
if not (settings.debug or settings.environment == "development"):
    _cors_origins = [settings.frontend_url] + _cors_origins

app.add_middleware(RequestIdMiddleware)

# CORS last = outermost = wraps everything; every response gets CORS headers
app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_headers(request: Request) -> dict:
    headers = {}
    req_id = getattr(request.state, "request_id", None)
    if req_id:
        headers["X-Request-ID"] = req_id
    return headers


@app.exception_handler(PlatformError)
async def platform_error_handler(request: Request, exc: PlatformError):
    """Render service errors as ``{"detail", "code"}`` with their HTTP status."""
    headers = _error_headers(request)
    if isinstance(exc, Unauthenticated):
        headers["WWW-Authenticate"] = "Bearer"
    if exc.http_status >= 500:
        logger.error("Request failed: %s", exc.message, extra={"code": exc.code, **exc.context})
    return JSONResponse(status_code=exc.http_status, content=exc.to_dict(), headers=headers)


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
):
    """Malformed request bodies are ``INVALID_ARGUMENT`` like any other bad input."""
    message, field = describe_validation_error(exc)
    error = InvalidArgument(message, field=field)
    return JSONResponse(
        status_code=error.http_status,
        content=error.to_dict(),
        headers=_error_headers(request),
    )


@app.exception_handler(Exception)
async def general_exception_handler(
    request: Request,
    exc: Exception,
):
    """Handle unexpected exceptions."""
    logger.exception("Unhandled exception: %s", exc)
    headers = _error_headers(request)
    if settings.debug:
        content = {"detail": str(exc), "code": "INTERNAL", "type": type(exc).__name__}
    else:
        content = {"detail": "Internal server error", "code": "INTERNAL"}
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=content,
        headers=headers,
    )


# Health check endpoint
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Check application health."""
    return HealthResponse(
        status="ok",
        version=settings.version,
        database="connected",
    )


# Mount API v1 routes
app.include_router(
    api_v1_router,
    prefix=settings.api_v1_prefix,
)


# Main entry point for development
if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=settings.debug,
    )
