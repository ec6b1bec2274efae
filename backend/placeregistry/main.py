"""
Place Registry Backend — FastAPI Application Factory
======================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers.
Who:   Called by uvicorn to start the server (uvicorn placeregistry.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────────┐
    │                     FastAPI App                         │
    │                                                         │
    │  Middleware Chain:                                      │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────┐ ┌─────────┐  │
    │  │  Rate Limit  │→│ Req ID   │→│ Logging │→│ GZip    │  │
    │  └──────────────┘ └──────────┘ └─────────┘ └─────────┘  │
    │                                                         │
    │  Routes:                                                │
    │  ┌──────────────┐ ┌──────────────┐ ┌─────────────────┐  │
    │  │ /api/places  │ │ /api/uploads │ │ /health         │  │
    │  └──────────────┘ └──────────────┘ └─────────────────┘  │
    │                                                         │
    │  Exception Handlers:                                    │
    │  ┌───────────────────────────────────────────────────┐  │
    │  │ Validation→400 │ Auth→401/403 │ 404 │ 409 │ 429   │  │
    │  │ Storage/Unknown→500 (opaque)                      │  │
    │  └───────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, configuration check, storage directory
    Shutdown: dispose database engine
"""

import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from placeregistry import __version__
from placeregistry.config import settings
from placeregistry.database import dispose_engine
from placeregistry.exceptions import (
    AuthenticationError,
    AuthorizationError,
    ConflictError,
    NotFoundError,
    PlaceRegistryError,
    RateLimitExceededError,
    StorageFault,
    UnknownFault,
    ValidationError,
    fields_from_errors,
)
from placeregistry.middleware.logging import RequestLoggingMiddleware
from placeregistry.middleware.rate_limit import RateLimitMiddleware
from placeregistry.middleware.request_id import RequestIDMiddleware, request_id_var
from placeregistry.routes import health, places, uploads

logger = logging.getLogger(__name__)

GENERIC_ERROR_MESSAGE = "An internal error occurred. Please try again later."


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2025-03-01T10:00:00 [INFO] placeregistry.services.place_service: Place created: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Third-party libraries log every operation at DEBUG/INFO
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("Place Registry Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # The server still starts so health checks can report the problem
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    (storage / settings.places_dir).mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    if not settings.smtp_host:
        logger.info("SMTP_HOST not set; e-mail notifications are disabled")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("Place Registry Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    status_code: int,
    error: str,
    message: str,
    details: Optional[Dict[str, Any]] = None,
    headers: Optional[Dict[str, str]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map exception types to HTTP status codes and the ErrorResponse shape.

    Handler table:
        ValidationError / RequestValidationError → 400 with per-field details
        AuthenticationError                     → 401
        AuthorizationError                      → 403
        NotFoundError                           → 404
        ConflictError                           → 409 + Retry-After
        RateLimitExceededError                  → 429 + Retry-After
        StorageFault                            → 500
        UnknownFault / PlaceRegistryError       → 500, generic message
        Exception (fallback)                    → 500, generic message

    Responses never include stack traces, SQL or file system paths; those
    are logged server-side with the request id.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        return _error_response(400, "validation_error", exc.message, {"fields": exc.fields})

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation_error(request: Request, exc: RequestValidationError):
        """FastAPI body/query parsing failures use the same 400 shape as ours."""
        fields = fields_from_errors(exc.errors())
        names = ", ".join(dict.fromkeys(f["field"] for f in fields))
        logger.warning("[%s] Request validation error: %s", request_id_var.get(""), names)
        return _error_response(
            400, "validation_error", f"Invalid request data: {names}", {"fields": fields}
        )

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return _error_response(401, "authentication_required", exc.message)

    @app.exception_handler(AuthorizationError)
    async def handle_authorization_error(request: Request, exc: AuthorizationError):
        logger.info("[%s] Forbidden: %s", request_id_var.get(""), exc.message)
        return _error_response(403, "forbidden", exc.message)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(404, "not_found", exc.message)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.warning("[%s] Conflict: %s", request_id_var.get(""), exc.context)
        return _error_response(
            409,
            "conflict",
            exc.message,
            {"retry_after": exc.retry_after},
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return _error_response(
            429,
            "rate_limit_exceeded",
            exc.message,
            exc.context,
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(StorageFault)
    async def handle_storage_fault(request: Request, exc: StorageFault):
        logger.error("[%s] Storage fault: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "storage_error", exc.message)

    @app.exception_handler(UnknownFault)
    async def handle_unknown_fault(request: Request, exc: UnknownFault):
        logger.error("[%s] Unknown fault | Context: %s", request_id_var.get(""), exc.context)
        return _error_response(500, "server_error", GENERIC_ERROR_MESSAGE)

    @app.exception_handler(PlaceRegistryError)
    async def handle_registry_error(request: Request, exc: PlaceRegistryError):
        logger.error("[%s] Unhandled application error: %s | Context: %s", request_id_var.get(""), exc.message, exc.context)
        return _error_response(500, "server_error", GENERIC_ERROR_MESSAGE)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("[%s] Unexpected error: %s", request_id_var.get(""), str(exc), exc_info=True)
        return _error_response(500, "internal_server_error", GENERIC_ERROR_MESSAGE)


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="Place Registry API",
        description=(
            "Directory backend for local businesses, associations and events: place "
            "records with moderation, weekly opening hours and image galleries."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Executed in reverse order of addition: RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "X-Total-Count", "Retry-After"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(places.router)
    app.include_router(uploads.router)
    app.include_router(health.router)

    return app


app = create_app()
