"""
NoteKeep Backend — FastAPI Application Factory
==============================================

What:  Creates and configures the FastAPI application instance.
How:   Factory pattern: create_app() returns a configured FastAPI instance.
Who:   Called by uvicorn to start the server (uvicorn notekeep.main:app).

Application Architecture:
    ┌─────────────────────────────────────────────────────┐
    │                   FastAPI App                       │
    │                                                     │
    │  Middleware Chain:                                  │
    │  ┌──────────────┐ ┌──────────┐ ┌─────────────────┐  │
    │  │  Rate Limit  │→│ Req ID   │→│  Logging        │  │
    │  └──────────────┘ └──────────┘ └─────────────────┘  │
    │                                                     │
    │  Routes:                                            │
    │  /auth  /notes  /templates  /invitations            │
    │  /api-keys  /webhooks  /health  /instance           │
    │                                                     │
    │  app.state:                                         │
    │  quota_gate (instance plan)  notifier (webhooks)    │
    └─────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Configure logging
    2. Validate configuration (logged, not fatal)
    3. Start the periodic invitation expiry sweep

    Shutdown:
    1. Stop the sweep
    2. Dispose database engine (close all connections)
"""

import asyncio
import logging
import sys
from contextlib import asynccontextmanager, suppress
from typing import AsyncGenerator, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from notekeep import __version__
from notekeep.config import settings
from notekeep.database import async_session_factory, dispose_engine
from notekeep.exceptions import (
    AuthenticationError,
    ConflictError,
    DatabaseError,
    FeatureDisabledError,
    InvitationExpiredError,
    NoteKeepError,
    NotAuthorizedError,
    NotFoundError,
    QuotaExceededError,
    ValidationError,
)
from notekeep.middleware.logging import RequestLoggingMiddleware
from notekeep.middleware.rate_limit import RateLimitMiddleware
from notekeep.middleware.request_id import RequestIDMiddleware, request_id_var
from notekeep.routes import api_keys, auth, health, invitations, notes, templates, webhooks
from notekeep.services.invitation_service import invitation_service
from notekeep.services.quota_service import InstanceConfig, QuotaGate, build_instance_config
from notekeep.services.webhook_service import WebhookNotifier

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Configure logging for the entire application.

    Called once during app startup, before anything else logs.
    Format: 2024-01-15T12:00:00 [INFO] notekeep.services.note_service: ...
    """
    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[
            logging.StreamHandler(sys.stdout),  # Docker captures stdout
        ],
        force=True,
    )

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("passlib").setLevel(logging.ERROR)


# ══════════════════════════════════════════════════════════════════════════
# Invitation Expiry Sweep
# ══════════════════════════════════════════════════════════════════════════

async def sweep_expired_invitations() -> int:
    """Runs one PENDING → EXPIRED sweep in its own transaction."""
    async with async_session_factory() as session:
        count = await invitation_service.expire_pending_invitations(session)
        await session.commit()
    return count


async def _sweep_periodically(interval_seconds: float) -> None:
    while True:
        try:
            await sweep_expired_invitations()
        except Exception as e:
            # the next tick retries
            logger.error("Invitation sweep failed: %s", str(e), exc_info=True)
        await asyncio.sleep(interval_seconds)


# ══════════════════════════════════════════════════════════════════════════
# Application Lifespan (Startup & Shutdown)
# ══════════════════════════════════════════════════════════════════════════

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # ── Startup ───────────────────────────────────────────────────────────
    setup_logging()
    logger.info("=" * 60)
    logger.info("NoteKeep Backend starting up...")

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        logger.error("Configuration error: %s", str(e))
        logger.error("Fix the configuration and restart the server.")

    config: InstanceConfig = app.state.quota_gate.config
    logger.info("Instance: %s (plan=%s)", config.instance_name, config.plan)

    sweep_task: Optional[asyncio.Task] = None
    if settings.invitation_sweep_interval_minutes > 0:
        sweep_task = asyncio.create_task(
            _sweep_periodically(settings.invitation_sweep_interval_minutes * 60)
        )

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield  # Application runs here

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("NoteKeep Backend shutting down...")

    if sweep_task is not None:
        sweep_task.cancel()
        with suppress(asyncio.CancelledError):
            await sweep_task

    await dispose_engine()
    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def _error_response(
    exc: NoteKeepError,
    status_code: int,
    details: Optional[dict] = None,
    headers: Optional[dict] = None,
) -> JSONResponse:
    content = {
        "error": exc.code,
        "message": exc.message,
        "request_id": request_id_var.get(""),
    }
    if details:
        content["details"] = details
    return JSONResponse(status_code=status_code, content=content, headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    """
    Register global exception handlers for consistent error responses.

    Handler hierarchy (most specific class wins):
        ValidationError         → 400 Bad Request
        AuthenticationError     → 401 Unauthorized
        NotAuthorizedError      → 403 Forbidden
        NotFoundError           → 404 Not Found
        ConflictError           → 409 Conflict
        InvitationExpiredError  → 410 Gone
        QuotaExceededError      → 423 Locked
        FeatureDisabledError    → 424 Failed Dependency
        DatabaseError           → 500 Internal Server Error
        NoteKeepError (base)    → 500 Internal Server Error
        Exception (fallback)    → 500 Internal Server Error

    `exc.context` (actor, note, invitation ids) is logged and never returned,
    except for the fields a client needs to act on (the invalid field, the
    quota that was hit, the disabled feature).

    Security: Exception handlers NEVER expose internal details (stack traces,
    file paths, SQL queries) in the API response.
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("[%s] Validation error: %s", request_id_var.get(""), exc.message)
        details = {"field": exc.field} if exc.field else None
        return _error_response(exc, 400, details=details)

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        logger.info("[%s] Authentication failed: %s", request_id_var.get(""), exc.message)
        return _error_response(exc, 401, headers={"WWW-Authenticate": "Bearer"})

    @app.exception_handler(NotAuthorizedError)
    async def handle_not_authorized(request: Request, exc: NotAuthorizedError):
        logger.info(
            "[%s] Not authorized (%s): %s", request_id_var.get(""), exc.code, exc.context,
        )
        return _error_response(exc, 403)

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return _error_response(exc, 404)

    @app.exception_handler(ConflictError)
    async def handle_conflict(request: Request, exc: ConflictError):
        logger.info("[%s] Conflict (%s): %s", request_id_var.get(""), exc.code, exc.context)
        return _error_response(exc, 409)

    @app.exception_handler(InvitationExpiredError)
    async def handle_expired(request: Request, exc: InvitationExpiredError):
        return _error_response(exc, 410)

    @app.exception_handler(QuotaExceededError)
    async def handle_quota(request: Request, exc: QuotaExceededError):
        return _error_response(
            exc,
            423,
            details={"resource": exc.resource, "limit": exc.limit, "current": exc.current},
        )

    @app.exception_handler(FeatureDisabledError)
    async def handle_feature_disabled(request: Request, exc: FeatureDisabledError):
        return _error_response(exc, 424, details={"feature": exc.feature})

    @app.exception_handler(DatabaseError)
    async def handle_database_error(request: Request, exc: DatabaseError):
        """Generic message to the user, details logged server-side."""
        rid = request_id_var.get("")
        logger.error("[%s] Database error: %s | Context: %s", rid, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content={
                "error": exc.code,
                "message": "An internal error occurred. Please try again later.",
                "request_id": rid,
            },
        )

    @app.exception_handler(NoteKeepError)
    async def handle_notekeep_error(request: Request, exc: NoteKeepError):
        rid = request_id_var.get("")
        logger.error("[%s] Unhandled application error: %s | Context: %s", rid, exc.message, exc.context)
        return _error_response(exc, 500)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        """
        Catch-all for truly unexpected errors.

        Stack trace is logged server-side ONLY (never in response).
        """
        rid = request_id_var.get("")
        logger.error("[%s] Unexpected error: %s", rid, str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": "An unexpected error occurred. Please try again or contact support.",
                "request_id": rid,
            },
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app(
    instance_config: Optional[InstanceConfig] = None,
    notifier: Optional[WebhookNotifier] = None,
) -> FastAPI:
    """
    Create and configure the FastAPI application.

    Args:
        instance_config: plan limits and features; built from settings when
                         omitted. Tests pass their own.
        notifier: webhook notifier; tests pass one with a mock transport.
    """
    instance_config = instance_config or build_instance_config(settings)
    notifier = notifier or WebhookNotifier(
        async_session_factory,
        timeout=settings.webhook_timeout_seconds,
        min_interval=settings.webhook_min_interval_seconds,
    )

    app = FastAPI(
        title="NoteKeep API",
        description=(
            "Note-taking backend with checklists, templates, API keys, webhooks and "
            "note sharing through email invitations."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.quota_gate = QuotaGate(instance_config)
    app.state.notifier = notifier

    # ── Register Middleware ───────────────────────────────────────────────
    # Middleware executes in REVERSE order of addition:
    # RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "Retry-After",
            "X-RateLimit-Limit",
            "X-RateLimit-Remaining",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(
        RateLimitMiddleware,
        max_requests=instance_config.limits.rate_limit_requests,
        window_seconds=instance_config.limits.rate_limit_window_seconds,
    )

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(auth.router)
    app.include_router(notes.router)
    app.include_router(templates.router)
    app.include_router(invitations.router)
    app.include_router(api_keys.router)
    app.include_router(webhooks.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
# uvicorn expects `notekeep.main:app` to be importable
app = create_app()
