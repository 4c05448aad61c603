"""EventDesk FastAPI application factory + lifespan lifecycle.

This module implements:
  - create_app()        — testable application factory
  - lifespan            — @asynccontextmanager startup/shutdown sequence
  - startup_services()  — builds store, guards and services onto app.state
  - shutdown_services() — reverse of startup_services()
  - app = create_app()  — module-level instance for uvicorn

Startup sequence:
  1. load_config()                → app.state.config
  2. LocalSQLiteStore.initialize  → app.state.store
  3. RateLimiter + sweeper task   → app.state.rate_limiter (disabled in development)
  4. OriginGuard(environment)     → wrapped with the limiter in a RequestGuard
  5. KeyLifecycleManager, EventService, LocalLogoStorage → app.state
  6. shared httpx client + TimezoneService → app.state.timezone_service
  7. app.state.ready = True

Shutdown sequence (reverse):
  app.state.ready = False → stop sweeper → close http client → close store
"""

from __future__ import annotations

import os
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.routing import APIRouter
from fastapi.staticfiles import StaticFiles

from app.api.middleware import RequestIdMiddleware
from app.api.router import router as api_router
from app.config import Config, load_config
from app.events.service import EventService
from app.geo.timezone import TimezoneService, create_timezone_client
from app.health import router as health_router
from app.keys.invalidation import KeyListInvalidator
from app.keys.manager import KeyLifecycleManager
from app.security.guard import RequestGuard
from app.security.origin import OriginGuard
from app.security.rate_limiter import RateLimitClass, RateLimiter
from app.storage.logos import LocalLogoStorage
from app.store.sqlite_backend import LocalSQLiteStore
from app.utils.logger import configure_logging, get_logger, settings_from_env

# ─── Logging Setup ────────────────────────────────────────────────────────────
# Configured at import time so every module logger picks up the final settings.
LOG_LEVEL, JSON_LOGS = settings_from_env()
configure_logging(log_level=LOG_LEVEL, json_output=JSON_LOGS)
logger = get_logger(__name__)


root_router = APIRouter(tags=["root"])


@root_router.get("/")
async def root() -> dict[str, str]:
    """Root endpoint — service identity / discovery."""
    return {
        "service": "EventDesk",
        "api": "/api",
        "health": "/health",
    }


# ─── Service wiring ───────────────────────────────────────────────────────────


def build_rate_limiter(config: Config) -> RateLimiter:
    """Rate limiter from config. Disabled entirely in development."""
    limits_cfg = config.rate_limits
    return RateLimiter(
        {
            RateLimitClass.DEFAULT: limits_cfg.default,
            RateLimitClass.STRICT: limits_cfg.strict,
            RateLimitClass.LENIENT: limits_cfg.lenient,
            RateLimitClass.UPLOAD: limits_cfg.upload,
        },
        enabled=not config.environment.is_development,
        sweep_interval_seconds=limits_cfg.sweep_interval_seconds,
    )


async def startup_services(app: FastAPI, config: Config) -> None:
    """Build every long-lived collaborator and attach it to ``app.state``.

    Raises:
        RuntimeError: Store schema version mismatch (aborts startup).
    """
    app.state.config = config

    store = LocalSQLiteStore(config.store.path)
    await store.initialize()
    app.state.store = store

    rate_limiter = build_rate_limiter(config)
    rate_limiter.start_sweeper()
    app.state.rate_limiter = rate_limiter

    guard = RequestGuard(OriginGuard(config.environment), rate_limiter)
    invalidator = KeyListInvalidator()
    logo_storage = LocalLogoStorage(config.storage.logo_dir, config.storage.public_base_url)

    app.state.key_manager = KeyLifecycleManager(store, store, guard, invalidator)
    app.state.event_service = EventService(store, guard, logo_storage, key_invalidator=invalidator)
    app.state.logo_storage = logo_storage

    http_client = create_timezone_client()
    app.state.http_client = http_client
    app.state.timezone_service = TimezoneService(
        http_client, guard, config.timezone.api_key, config.timezone.api_url
    )

    logger.info(
        "Services initialised",
        environment=config.environment.value,
        rate_limiting=rate_limiter.enabled,
        db_path=store.db_path,
        timezone_lookup=bool(config.timezone.api_key),
    )


async def shutdown_services(app: FastAPI) -> None:
    rate_limiter = getattr(app.state, "rate_limiter", None)
    if rate_limiter is not None:
        await rate_limiter.stop_sweeper()

    http_client = getattr(app.state, "http_client", None)
    if http_client is not None:
        await http_client.aclose()

    store = getattr(app.state, "store", None)
    if store is not None:
        await store.close()


# ─── Lifespan ─────────────────────────────────────────────────────────────────


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan — startup and shutdown sequence."""
    logger.info("EventDesk starting up...")

    # load_config() raises SystemExit on parse error or missing version field,
    # so the process exits non-zero before ready=True is ever set.
    config: Config = load_config()
    await startup_services(app, config)

    # Serve stored logos under their public URL prefix
    base_url = config.storage.public_base_url.rstrip("/")
    if base_url.startswith("/"):
        app.mount(
            base_url,
            StaticFiles(directory=app.state.logo_storage.base_dir, check_dir=False),
            name="storage",
        )

    app.state.ready = True
    logger.info("EventDesk ready", environment=config.environment.value)

    yield

    logger.info("EventDesk shutting down...")
    app.state.ready = False
    await shutdown_services(app)
    logger.info("EventDesk shutdown complete")


# ─── Application Factory ──────────────────────────────────────────────────────


def create_app() -> FastAPI:
    """Create and configure the EventDesk FastAPI application.

    Call this function directly in tests to get an isolated app instance:
        app = create_app()

    The module-level `app` is created at import time for uvicorn:
        uvicorn app.main:app --host 127.0.0.1 --port 8080
    """
    # API schema endpoints only when DEBUG=true
    _debug = os.getenv("DEBUG", "false").lower() == "true"

    application = FastAPI(
        title="EventDesk",
        description="Sports event management backend: events and participant access keys",
        version="1.0.0",
        lifespan=lifespan,
        docs_url="/docs" if _debug else None,
        redoc_url="/redoc" if _debug else None,
        openapi_url="/openapi.json" if _debug else None,
    )

    # /health returns 503 until the lifespan flips this
    application.state.ready = False

    application.add_middleware(RequestIdMiddleware)

    application.include_router(root_router)
    application.include_router(health_router)
    application.include_router(api_router, prefix="/api")

    @application.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        logger.info("Request validation failed", path=str(request.url.path))
        return JSONResponse(
            status_code=400,
            content={"success": False, "error": "Invalid input data."},
        )

    @application.exception_handler(HTTPException)
    async def http_exception_handler(
        request: Request, exc: HTTPException
    ) -> JSONResponse:
        logger.warning(
            "HTTP exception",
            status_code=exc.status_code,
            detail=exc.detail,
            path=str(request.url.path),
        )
        return JSONResponse(status_code=exc.status_code, content={"error": exc.detail})

    @application.exception_handler(Exception)
    async def unhandled_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            error=str(exc),
            error_type=type(exc).__name__,
            path=str(request.url.path),
        )
        return JSONResponse(
            status_code=500, content={"success": False, "error": "Internal server error"}
        )

    return application


# ─── Module-Level App (for uvicorn) ───────────────────────────────────────────

app = create_app()
