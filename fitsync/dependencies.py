"""Shared FastAPI dependencies injected into route handlers."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Annotated

from fastapi import Depends, HTTPException, Request

from fitsync.config import Settings, get_settings
from fitsync.services.database import get_db
from fitsync.storage.aggregator import DailyAggregator
from fitsync.storage.migration import MigrationEngine
from fitsync.storage.records import RecordRepository


@dataclass(frozen=True)
class AuthContext:
    """Caller identity as vouched for by the upstream gateway."""

    user_id: str


async def get_current_user(request: Request) -> AuthContext:
    """Extract the trusted caller from the request state.

    ``TrustedIdentityMiddleware`` sets ``request.state.auth`` before routes run.
    """
    auth: AuthContext | None = getattr(request.state, "auth", None)
    if auth is None:
        raise HTTPException(status_code=401, detail="Unauthorized: User session required")
    return auth


def get_app_settings(request: Request) -> Settings:
    """Settings the running app was created with (falls back to the environment)."""
    return getattr(request.app.state, "settings", None) or get_settings()


def get_repository() -> RecordRepository:
    return RecordRepository(get_db())


def get_migration_engine(
    repository: Annotated[RecordRepository, Depends(get_repository)],
) -> MigrationEngine:
    return MigrationEngine(repository)


def get_aggregator(
    repository: Annotated[RecordRepository, Depends(get_repository)],
    settings: Annotated[Settings, Depends(get_app_settings)],
) -> DailyAggregator:
    return DailyAggregator(repository, max_range_days=settings.summary_max_range_days)


# Annotated shortcuts for route signatures
CurrentUser = Annotated[AuthContext, Depends(get_current_user)]
AppSettings = Annotated[Settings, Depends(get_app_settings)]
Repository = Annotated[RecordRepository, Depends(get_repository)]
Migrator = Annotated[MigrationEngine, Depends(get_migration_engine)]
Aggregator = Annotated[DailyAggregator, Depends(get_aggregator)]
