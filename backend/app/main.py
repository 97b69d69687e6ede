"""
CustomTees Backend — FastAPI Application Factory
==================================================

What:  Creates and configures the FastAPI application instance.
How:   create_app() registers middleware, exception handlers and routers;
       lifespan() handles startup/shutdown.
Who:   uvicorn (uvicorn app.main:app).

Application Architecture:
    ┌───────────────────────────────────────────────────────────┐
    │                        FastAPI App                        │
    │                                                           │
    │  Middleware: RateLimit → RequestID → Logging → GZip → CORS│
    │                                                           │
    │  Routers:                                                 │
    │    /api/casual-products  /api/dtf-products  /api/templates│
    │    /api/shipment  /api/tracking  /api/shipping            │
    │    /api/payments  /api/files  /health                     │
    │                                                           │
    │  Exception Handlers:                                      │
    │    Validation/Precondition→400  Auth→401/403  NotFound→404│
    │    RateLimit→429  Integration→500  PaymentGateway→502     │
    │    CircuitOpen→503  Persistence→500 (generic message)     │
    └───────────────────────────────────────────────────────────┘

Lifecycle:
    Startup:
    1. Logging (request id on every line)
    2. Validate configuration (log problems, keep serving)
    3. Create the storage directory
    4. Start the tracking sync loop when TRACKING_SYNC_ENABLED

    Shutdown:
    1. Cancel the tracking sync loop
    2. Close the UPS, Square and SendGrid HTTP clients
    3. Dispose the database engine
"""

import asyncio
import contextlib
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncGenerator, Dict, Optional

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse

from app import __version__
from app.config import settings
from app.database import dispose_engine
from app.exceptions import (
    AuthenticationError,
    AuthorizationError,
    CircuitBreakerOpenError,
    CustomTeesError,
    FileStorageError,
    IntegrationError,
    NotFoundError,
    PaymentGatewayError,
    PersistenceError,
    PreconditionError,
    RateLimitExceededError,
    ValidationError,
)
from app.middleware.logging import RequestLoggingMiddleware
from app.middleware.rate_limit import RateLimitMiddleware
from app.middleware.request_id import RequestIDLogFilter, RequestIDMiddleware, request_id_var
from app.routes import (
    casual_products,
    dtf_products,
    files,
    health,
    payments,
    shipments,
    shipping,
    templates,
    tracking,
)
from app.services.notification_service import notification_service
from app.services.square_service import square_service
from app.services.tracking_service import tracking_service
from app.services.ups_service import ups_service

logger = logging.getLogger(__name__)


# ══════════════════════════════════════════════════════════════════════════
# Logging Configuration
# ══════════════════════════════════════════════════════════════════════════

def setup_logging() -> None:
    """
    Format: 2025-01-01T12:00:00 [INFO] app.services.ups_service [a1b2c3d4] message

    The request id column is "-" for lines logged outside a request
    (startup, background tracking sync).
    """
    handler = logging.StreamHandler(sys.stdout)
    handler.addFilter(RequestIDLogFilter())

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s [%(request_id)s] %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
        handlers=[handler],
        force=True,
    )

    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)
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
    logger.info("CustomTees Backend %s starting up...", __version__)

    try:
        settings.validate_required_for_production()
    except ValueError as e:
        # Keep serving: health checks and public catalog reads still work
        logger.error("Configuration error: %s", str(e))

    storage = Path(settings.storage_root)
    storage.mkdir(parents=True, exist_ok=True)
    logger.info("Storage directory: %s", storage.resolve())
    logger.info("UPS environment: %s", "sandbox" if settings.ups_use_sandbox else "production")

    sync_task: Optional[asyncio.Task] = None
    if settings.tracking_sync_enabled:
        sync_task = asyncio.create_task(tracking_service.run_sync_loop())
    else:
        logger.info("Background tracking sync disabled")

    logger.info("Server ready at http://%s:%d", settings.backend_host, settings.backend_port)
    logger.info("API docs: http://%s:%d/docs", settings.backend_host, settings.backend_port)
    logger.info("=" * 60)

    yield

    # ── Shutdown ──────────────────────────────────────────────────────────
    logger.info("CustomTees Backend shutting down...")

    if sync_task is not None:
        sync_task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await sync_task

    await ups_service.close()
    await square_service.close()
    await notification_service.close()
    await dispose_engine()

    logger.info("Shutdown complete.")


# ══════════════════════════════════════════════════════════════════════════
# Exception Handlers
# ══════════════════════════════════════════════════════════════════════════

def error_body(error: str, message: str, details: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "success": False,
        "error": error,
        "message": message,
        "request_id": request_id_var.get(""),
    }
    if details:
        body["details"] = details
    return body


def register_exception_handlers(app: FastAPI) -> None:
    """
    Handler hierarchy (Starlette picks the most specific class):
        ValidationError         → 400
        PreconditionError       → 400
        AuthenticationError     → 401
        AuthorizationError      → 403
        NotFoundError           → 404
        RateLimitExceededError  → 429
        FileStorageError        → 500 (message surfaced)
        PersistenceError        → 500 (generic message, context logged)
        IntegrationError        → 500 (message surfaced: UPS, email)
        PaymentGatewayError     → 502
        CircuitBreakerOpenError → 503 + Retry-After
        CustomTeesError         → 500
        Exception               → 500 (stack trace logged, never returned)
    """

    @app.exception_handler(ValidationError)
    async def handle_validation_error(request: Request, exc: ValidationError):
        logger.warning("Validation error: %s", exc.message)
        return JSONResponse(
            status_code=400,
            content=error_body("validation_error", exc.message, exc.context),
        )

    @app.exception_handler(PreconditionError)
    async def handle_precondition_error(request: Request, exc: PreconditionError):
        logger.warning("Precondition failed: %s | %s", exc.message, exc.context)
        return JSONResponse(status_code=400, content=error_body("precondition_failed", exc.message))

    @app.exception_handler(AuthenticationError)
    async def handle_authentication_error(request: Request, exc: AuthenticationError):
        return JSONResponse(status_code=401, content=error_body("unauthorized", exc.message))

    @app.exception_handler(AuthorizationError)
    async def handle_authorization_error(request: Request, exc: AuthorizationError):
        logger.warning("Forbidden: %s | %s", exc.message, exc.context)
        return JSONResponse(status_code=403, content=error_body("forbidden", exc.message))

    @app.exception_handler(NotFoundError)
    async def handle_not_found(request: Request, exc: NotFoundError):
        return JSONResponse(status_code=404, content=error_body("not_found", exc.message))

    @app.exception_handler(RateLimitExceededError)
    async def handle_rate_limit(request: Request, exc: RateLimitExceededError):
        return JSONResponse(
            status_code=429,
            content=error_body("rate_limit_exceeded", exc.message, exc.context),
            headers={"Retry-After": str(exc.retry_after)},
        )

    @app.exception_handler(FileStorageError)
    async def handle_file_storage_error(request: Request, exc: FileStorageError):
        logger.error("File storage error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(status_code=500, content=error_body("server_error", exc.message))

    @app.exception_handler(PersistenceError)
    async def handle_persistence_error(request: Request, exc: PersistenceError):
        logger.error("Database error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body("server_error", "An internal error occurred. Please try again later."),
        )

    @app.exception_handler(IntegrationError)
    async def handle_integration_error(request: Request, exc: IntegrationError):
        logger.error("%s integration error: %s | Context: %s", exc.service, exc.message, exc.context)
        return JSONResponse(
            status_code=500,
            content=error_body("integration_error", exc.message, {"service": exc.service}),
        )

    @app.exception_handler(PaymentGatewayError)
    async def handle_payment_gateway_error(request: Request, exc: PaymentGatewayError):
        logger.error("Square error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(status_code=502, content=error_body("payment_gateway_error", exc.message))

    @app.exception_handler(CircuitBreakerOpenError)
    async def handle_circuit_breaker(request: Request, exc: CircuitBreakerOpenError):
        logger.warning("Circuit breaker open: %s", exc.message)
        return JSONResponse(
            status_code=503,
            content=error_body(
                "service_unavailable",
                exc.message,
                {"recovery_time": exc.recovery_time, "service": exc.service},
            ),
            headers={"Retry-After": str(exc.recovery_time)},
        )

    @app.exception_handler(CustomTeesError)
    async def handle_application_error(request: Request, exc: CustomTeesError):
        logger.error("Application error: %s | Context: %s", exc.message, exc.context)
        return JSONResponse(status_code=500, content=error_body("server_error", exc.message))

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.error("Unexpected error: %s", str(exc), exc_info=True)
        return JSONResponse(
            status_code=500,
            content=error_body(
                "internal_server_error",
                "An unexpected error occurred. Please try again or contact support.",
            ),
        )


# ══════════════════════════════════════════════════════════════════════════
# Application Factory
# ══════════════════════════════════════════════════════════════════════════

def create_app() -> FastAPI:
    app = FastAPI(
        title="CustomTees API",
        description=(
            "Storefront and admin backend for CustomTees: product catalogs, garment "
            "templates, UPS labels, tracking and quotes, and Square payment verification."
        ),
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    # ── Register Middleware ───────────────────────────────────────────────
    # Execution order is the reverse of addition:
    # RateLimit → RequestID → Logging → GZip → CORS
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=[
            "X-Request-ID",
            "X-Total-Count",
            "Retry-After",
        ],
    )
    app.add_middleware(GZipMiddleware, minimum_size=500)
    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(RequestIDMiddleware)
    app.add_middleware(RateLimitMiddleware)

    # ── Register Exception Handlers ───────────────────────────────────────
    register_exception_handlers(app)

    # ── Register Routes ───────────────────────────────────────────────────
    app.include_router(casual_products.router)
    app.include_router(dtf_products.router)
    app.include_router(templates.router)
    app.include_router(shipments.router)
    app.include_router(tracking.router)
    app.include_router(shipping.router)
    app.include_router(payments.router)
    app.include_router(files.router)
    app.include_router(health.router)

    return app


# ── Application Instance ─────────────────────────────────────────────────
app = create_app()
