"""
OurBookmark Backend: FastAPI Application Factory
=================================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   uvicorn (`uvicorn ourbookmark.main:app`) and the test-suite.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware: RateLimit → RequestID → Logging → GZip → CORS│
    │                                                          │
    │  Routes:                                                 │
    │   /api/tracker  /api/progress  /api/backup  /api/sync    │
    │   /api/isbndb   /api/books     /api/rooms   /api/admin   │
    │   /api/auth     /api/files     /health                   │
    │                                                          │
    │  Exception Handlers:                                     │
    │   Validation→400  Auth→401  Permission→403  NotFound→404 │
    │   Conflict→409    RateLimit→429                          │
    │   Configuration / Upstream / FileStorage / Database→500  │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration warnings, storage directory
    Shutdown: dispose the database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from ourbookmark import __version__
from ourbookmark.config import settings
from ourbookmark.database import dispose_engine
from ourbookmark.exceptions import (
    AuthenticationError,
    ConfigurationError,
    ConflictError,
    DatabaseError,
    FileStorageError,
    NotFoundError,
    OurBookmarkError,
    PermissionDeniedError,
    RateLimitExceededError,
    UpstreamServiceError,
    ValidationError,
)
from ourbookmark.middleware.logging import RequestLoggingMiddleware
from ourbookmark.middleware.rate_limit import RateLimitMiddleware
from ourbookmark.middleware.request_id import RequestIDMiddleware, request_id_var
from ourbookmark.routes import (
    admin,
    auth,
    backup,
    books,
    files,
    health,
    progress,
    proxy,
    reading_room,
    sync,
    tracker,
)

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the whole application.

    Format: %(asctime)s [%(levelname)s] %(name)s: %(message)s
    Request ids are added by the handlers and the access logger, which read
    the request-id ContextVar themselves.
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("OurBookmark Backend %s starting up...", __version__)

    # Missing keys are reported, not fatal: health checks and the tracker
    # keep working, the proxies answer 500 until configured
    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.warning("Configuration warning: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("OurBookmark Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(code: str, message: str, details=None) -> dict:
    return {
        "error": code,
        "message": message,
        "details": details or None,
        "request_id": request_id_var.get(""),
    }


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the OurBookmarkError hierarchy to HTTP responses.

    Handler hierarchy:
        ValidationError         → 400  message shown to the user verbatim
        AuthenticationError     → 401
        PermissionDeniedError   → 403
        NotFoundError           → 404
        ConflictError           → 409
        RateLimitExceededError  → 429  with Retry-After
        ConfigurationError      → 500  e.g. ISBNDB_API_KEY not set
        UpstreamServiceError    → 500  ISBNdb unreachable
        FileStorageError        → 500
        DatabaseError / SQLAlchemyError → 500 generic message
        Exception               → 500 generic message, traceback logged

    Upstream 4xx/5xx answers are not exceptions: the proxy relays them.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=400, content=_error_body("validation_error", exc.message, exc.context)
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return JSONResponse(
            status_code=401,
            content=_error_body("authentication_required", exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(PermissionDeniedError)
    async def handle_permission_denied(request: Request, exc: PermissionDeniedError):
        logger.warning("[%s] Permission denied: %s", request_id_var.get(""), request.url.path)
        return JSONResponse(status_code=403, content=_error_body("forbidden", exc.message))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", exc.message))

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        return JSONResponse(
            status_code=409, content=_error_body("conflict", exc.message, exc.context)
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=_error_body("rate_limit_exceeded", exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(ConfigurationError)
    async def handle_configuration_error(request: Request, exc: ConfigurationError):
        logger.error("[%s] Configuration error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(
            status_code=500, content=_error_body("configuration_error", exc.message)
        )

    @app.exception_handler(UpstreamServiceError)
    async def handle_upstream_error(request: Request, exc: UpstreamServiceError):
        logger.error(
            "[%s] Upstream error (%s): %s", request_id_var.get(""), exc.service, exc.message
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("upstream_error", exc.message, {"service": exc.service}),
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error(
            "[%s] File storage error: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error(
            "[%s] Database error: %s | Context: %s",
            request_id_var.get(""), exc.message, exc.context,
        )
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(SQLAlchemyError)
    async def handle_sqlalchemy_error(request: Request, exc: SQLAlchemyError):
        logger.error("[%s] Database error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(OurBookmarkError)
    async def handle_application_error(request: Request, exc: OurBookmarkError):
        logger.error("[%s] Application error: %s", request_id_var.get(""), exc.message)
        return JSONResponse(status_code=500, content=_error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error(
            "[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True
        )
        return JSONResponse(
            status_code=500,
            content=_error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="OurBookmark API",
        description=(
            "Family reading log: children, reading sessions, goals, challenges and "
            "class groups, device-to-account sync, ISBNdb proxy and public reading rooms."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "Retry-After", "Content-Disposition"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(health.router)
    app.include_router(auth.router)
    app.include_router(tracker.router)
    app.include_router(progress.router)
    app.include_router(backup.router)
    app.include_router(sync.router)
    app.include_router(proxy.router)
    app.include_router(books.router)
    app.include_router(reading_room.router)
    app.include_router(admin.router)
    app.include_router(files.router)

    return app


app = create_app()
