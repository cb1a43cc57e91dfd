"""Pytest configuration and fixtures for integration tests."""

from datetime import UTC, datetime

import pytest

from src.core import db_client
from tests.unit.conftest import FixedClock


OWNER_ID = "owner-1"


@pytest.fixture
def clock():
    """Clock fixed at mid-June 2024."""
    return FixedClock(datetime(2024, 6, 15, 9, 30, tzinfo=UTC))


@pytest.fixture
async def category(sqlite_db):
    """A category owned by OWNER_ID, stored in the SQLite database."""
    return await db_client.create_record(
        collection="categories", data={"owner_id": OWNER_ID, "name": "Pet care"}
    )
