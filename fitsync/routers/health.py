"""Health check endpoint: public, no identity required."""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from fastapi import APIRouter

from fitsync.dependencies import AppSettings
from fitsync.services.database import get_db
from fitsync.storage.exceptions import StorageFault

router = APIRouter(tags=["system"])
logger = logging.getLogger("fitsync.health")


@router.get("/health")
async def health_check(settings: AppSettings) -> dict:
    """Liveness probe. Returns 200 if the API process is up.

    Also performs a lightweight database check.
    """
    db_ok = False
    try:
        db_ok = await get_db().fetchval("SELECT 1") == 1
    except StorageFault as exc:
        logger.warning("Health check DB probe failed: %s", exc)

    return {
        "status": "healthy" if db_ok else "degraded",
        "version": settings.app_version,
        "environment": settings.environment,
        "database": "connected" if db_ok else "unreachable",
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
