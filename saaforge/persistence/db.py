from __future__ import annotations

from typing import Any

from sqlalchemy.ext.asyncio import async_sessionmaker, create_async_engine

from saaforge.core.config import Settings, get_settings


def _engine_options(settings: Settings) -> dict[str, Any]:
    # aiosqlite keeps its own pool; the bounds only apply to asyncpg.
    if settings.database_url.startswith("sqlite"):
        return {}
    return {
        "pool_pre_ping": True,
        "pool_size": max(1, settings.db_pool_size),
        "max_overflow": max(0, settings.db_max_overflow),
        "pool_recycle": 1800,
    }


_settings = get_settings()
engine = create_async_engine(_settings.database_url, **_engine_options(_settings))
# Rows stay readable after commit; audit and notification writes happen post-commit.
SessionLocal = async_sessionmaker(engine, expire_on_commit=False)
