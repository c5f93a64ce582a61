"""
NoteKeeper Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() validates configuration, builds the app-wide
       collaborators (TokenService, NoteCache) onto `app.state`, then
       registers middleware, exception handlers and routers.
Who:   uvicorn (`uvicorn notekeeper.main:app`) and the test suite, which
       builds a fresh app per test.

Application Architecture:
    ┌──────────────────────────────────────────────────────────┐
    │                      FastAPI App                         │
    │                                                          │
    │  Middleware:  Request ID → Logging → GZip → CORS         │
    │                                                          │
    │  Routes:  /register /login   /me   /notes   /health      │
    │                                                          │
    │  app.state:  token_service, note_cache                   │
    │                                                          │
    │  Exception Handlers:                                     │
    │   Validation→400 │ Unauthorized→401 │ NotFound→404       │
    │   Conflict→409   │ Database→500     │ Exception→500      │
    └──────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:  logging, create missing tables, log ready
    Shutdown: dispose the database engine

A missing JWT_SECRET_KEY raises ConfigurationError from create_app(), so
importing this module fails and the server never starts.
"""

import logging
import sys
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

from notekeeper import __version__
from notekeeper.config import Settings, settings
from notekeeper.database import async_session_factory, dispose_engine, init_db
from notekeeper.exceptions import (
    ConfigurationError,
    ConflictError,
    DatabaseError,
    NoteKeeperError,
    NotFoundError,
    UnauthorizedError,
    ValidationError,
)
from notekeeper.middleware.logging import RequestLoggingMiddleware
from notekeeper.middleware.request_id import RequestIDMiddleware, request_id_var
from notekeeper.routes import auth, health, notes, users
from notekeeper.services.note_cache import NoteCache
from notekeeper.services.token_service import TokenService

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging(level: str = "INFO") -> None:
    """
    Configure the root logger once, before anything else logs.

    Format: 2024-01-15T12:00:00 [INFO] notekeeper.access: GET /notes 200 ...
    """
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[logging.StreamHandler(sys.stdout)],
        force=True,
    )

    # Per-statement and per-request chatter from libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("aiosqlite").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    app_settings: Settings = app.state.settings

    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging(app_settings.log_level)
    logger.info("=" * 60)
    logger.info("NoteKeeper Backend %s starting up...", __version__)

    await init_db()
    logger.info(
        "Notes cache: ttl=%dh invalidation=%s",
        app_settings.cache_ttl_hours,
        app_settings.cache_invalidation,
    )
    logger.info("Server ready at http://%s:%d", app_settings.backend_host, app_settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("NoteKeeper Backend shutting down...")
    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_body(error: str, message: str, details: Optional[dict] = None) -> dict:
    body = {"error": error, "message": message, "request_id": request_id_var.get("")}
    if details:
        body["details"] = details
    return body


def _validation_details(exc: RequestValidationError) -> dict:
    """Flatten FastAPI's error list into {field: message}."""
    details = {}
    for err in exc.errors():
        if err.get("type") == "json_invalid":
            details["body"] = "Malformed JSON"
            continue
        loc = [str(part) for part in err.get("loc", ())]
        if loc and loc[0] in ("body", "path", "query", "header"):
            loc = loc[1:]
        details[".".join(loc) or "body"] = err.get("msg", "Invalid value")
    return details


def register_exception_handlers(app: FastAPI) -> None:
    """
    Map the exception hierarchy onto HTTP responses.

    Handler hierarchy:
        ValidationError, RequestValidationError → 400
        UnauthorizedError                       → 401 (+ WWW-Authenticate)
        NotFoundError                           → 404
        ConflictError                           → 409
        DatabaseError                           → 500, generic message
        NoteKeeperError (base)                  → 500
        HTTPException (routing: 404/405)        → its own status
        Exception (fallback)                    → 500

    `context` is logged and never returned; it may hold ids and driver
    error types.
    """

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        details = _validation_details(exc)
        logger.info("Request validation failed: %s", ", ".join(sorted(details)))
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", "Request validation failed", details),
        )

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        details = {exc.field: exc.message} if exc.field else None
        return JSONResponse(
            status_code=400,
            content=_error_body("validation_error", exc.message, details),
        )

    @app.exception_handler(UnauthorizedError)
    async def handle_unauthorized(request: Request, exc: UnauthorizedError):
        logger.info("Unauthorized %s %s: %s", request.method, request.url.path, exc.context)
        return JSONResponse(
            status_code=401,
            content=_error_body("unauthorized", exc.message),
            headers={"WWW-Authenticate": "Bearer"},
        )

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=_error_body("not_found", exc.message))

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        details = {exc.field: exc.message} if exc.field else None
        return JSONResponse(status_code=409, content=_error_body("conflict", exc.message, details))

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        logger.error("Database error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(NoteKeeperError)
    async def handle_application_error(request: Request, exc: NoteKeeperError):
        logger.error("%s: %s | Context: %s", type(exc).__name__, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=_error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(StarletteHTTPException)
    async def handle_http_exception(request: Request, exc: StarletteHTTPException):
        return JSONResponse(
            status_code=exc.status_code,
            content=_error_body("http_error", str(exc.detail)),
            headers=getattr(exc, "headers", None),
        )

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
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

def create_app(app_settings: Optional[Settings] = None) -> FastAPI:
    """
    Build a fully wired application.

    Raises:
        ConfigurationError: a required setting (the JWT signing key) is missing
    """
    app_settings = app_settings or settings

    try:
        app_settings.validate_required()
    except ConfigurationError as e:
        logger.critical("Configuration error: %s", e.message)
        logger.critical("Fix the configuration and restart the server.")
        raise

    app = FastAPI(
        title="NoteKeeper API",
        description="Multi-user note keeping: register, log in, and manage your own notes.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── App-wide collaborators ────────────────────────────────────────────
    app.state.settings = app_settings
    app.state.token_service = TokenService.from_settings(app_settings)
    app.state.note_cache = NoteCache(
        async_session_factory,
        ttl=timedelta(hours=app_settings.cache_ttl_hours),
        policy=app_settings.cache_invalidation,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Last added runs first: RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=app_settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID", "WWW-Authenticate"],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(users.router)
    app.include_router(notes.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `notekeeper.main:app`
app = create_app()
