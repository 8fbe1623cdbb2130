"""FitSync API: FastAPI application entry point.

Run locally:
    uvicorn fitsync.main:app --reload --port 8000
"""

from __future__ import annotations

import logging
import sys
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from fitsync.config import Settings, get_settings
from fitsync.middleware.identity import TrustedIdentityMiddleware
from fitsync.middleware.rate_limit import FixedWindowLimiter, RateLimitMiddleware
from fitsync.routers import health, storage
from fitsync.services.database import close_db, init_db
from fitsync.storage.exceptions import RecordValidationError, StorageFault

# ---------- Logging ----------

logging.basicConfig(
    level=get_settings().log_level.upper(),
    format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    stream=sys.stdout,
)
logger = logging.getLogger("fitsync")


# ---------- Lifespan ----------

@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup / shutdown hooks."""
    settings: Settings = app.state.settings
    logger.info(
        "Starting FitSync API v%s [%s]",
        settings.app_version,
        settings.environment,
    )
    await init_db(settings)
    yield
    await close_db()
    logger.info("FitSync API shut down")


# ---------- Error mapping ----------

async def _validation_error_handler(request: Request, exc: RecordValidationError) -> JSONResponse:
    return JSONResponse(status_code=400, content={"detail": str(exc)})


async def _storage_fault_handler(request: Request, exc: StorageFault) -> JSONResponse:
    logger.error("Storage fault on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})


# ---------- App factory ----------

def create_app(settings: Settings | None = None) -> FastAPI:
    settings = settings or get_settings()

    app = FastAPI(
        title="FitSync API",
        description=(
            "Wellness record store: meals, activities and sleep per user, "
            "deduplicating client migration, and daily rollups."
        ),
        version=settings.app_version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.limiter = FixedWindowLimiter(
        max_requests=settings.rate_limit_max_requests,
        window_seconds=settings.rate_limit_window_seconds,
        max_identities=settings.rate_limit_max_identities,
    )

    app.add_exception_handler(RecordValidationError, _validation_error_handler)
    app.add_exception_handler(StorageFault, _storage_fault_handler)

    # ---------- Middleware ----------

    # Trusted identity from the upstream gateway
    app.add_middleware(TrustedIdentityMiddleware, settings=settings)

    # Admission guard shared by every storage entry point
    app.add_middleware(RateLimitMiddleware, settings=settings, limiter=app.state.limiter)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-RateLimit-Limit", "X-RateLimit-Remaining", "Retry-After"],
    )

    # ---------- Health check (outside v1 prefix: always at /health) ----------
    app.include_router(health.router)

    # ---------- API v1 routes ----------
    app.include_router(storage.router, prefix="/api/v1")

    return app


app = create_app()
