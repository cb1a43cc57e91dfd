"""Pytest configuration and shared fixtures."""

import os
from collections.abc import AsyncIterator
from pathlib import Path

import pytest


# Keep the daily scheduler out of every test process
os.environ.setdefault("ENVIRONMENT", "test")

from src.core import db_client  # noqa: E402
from src.core.config import settings  # noqa: E402
from src.core.schema import init_db  # noqa: E402


@pytest.fixture
async def sqlite_db(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> AsyncIterator[str]:
    """Fresh SQLite database file with the schema applied.

    Yields:
        Path of the database file
    """
    db_path = str(tmp_path / "care_tasks.db")
    monkeypatch.setattr(settings, "sqlite_db_path", db_path)

    await init_db(db_path=db_path)
    yield db_path
    await db_client.close_connection(db_path=db_path)
