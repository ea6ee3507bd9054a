from __future__ import annotations

import os
from pathlib import Path
import tempfile

# Point the engine at a throwaway SQLite file before saaforge builds it at import time.
_DB_DIR = Path(tempfile.mkdtemp(prefix="saaforge-tests-"))
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{_DB_DIR / 'test.db'}"
os.environ.setdefault("OWNER_EMAILS", "")

import pytest  # noqa: E402

from saaforge.core.config import get_settings  # noqa: E402
from saaforge.domain.models import Base  # noqa: E402
from saaforge.persistence.db import engine  # noqa: E402


@pytest.fixture(autouse=True)
async def database_schema() -> None:
    # Every test starts from an empty schema; the engine is disposed so no connection outlives its loop.
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.create_all)
    yield
    async with engine.begin() as connection:
        await connection.run_sync(Base.metadata.drop_all)
    await engine.dispose()


@pytest.fixture(autouse=True)
def reset_settings_cache() -> None:
    # Tests that monkeypatch env vars must not leak cached settings into the next test.
    yield
    get_settings.cache_clear()
