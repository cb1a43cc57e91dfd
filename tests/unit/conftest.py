"""Pytest configuration and fixtures for unit tests."""

from datetime import UTC, date, datetime

import pytest

from src.core import db_client
from tests.unit.mocks import InMemoryDBClient


OWNER_ID = "owner-1"
OTHER_OWNER_ID = "owner-2"


class FixedClock:
    """Clock pinned to a single instant; tests move it by assigning moment."""

    def __init__(self, moment: datetime) -> None:
        self.moment = moment

    def now(self) -> datetime:
        return self.moment

    def today(self) -> date:
        return self.moment.date()


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches the db_client module functions to use the in-memory database.

    Services call db_client.<function>(...) through the module, so patching the
    module attributes is enough.
    """
    monkeypatch.setattr(db_client, "create_record", in_memory_db.create_record)
    monkeypatch.setattr(db_client, "get_record", in_memory_db.get_record)
    monkeypatch.setattr(db_client, "update_record", in_memory_db.update_record)
    monkeypatch.setattr(db_client, "list_records", in_memory_db.list_records)
    monkeypatch.setattr(db_client, "list_all_records", in_memory_db.list_all_records)
    monkeypatch.setattr(db_client, "get_first_record", in_memory_db.get_first_record)
    monkeypatch.setattr(db_client, "run_in_transaction", in_memory_db.run_in_transaction)
    return in_memory_db


@pytest.fixture
def clock():
    """Clock fixed at mid-June 2024."""
    return FixedClock(datetime(2024, 6, 15, 9, 30, tzinfo=UTC))


@pytest.fixture
def category(patched_db):
    """A category owned by OWNER_ID."""
    return patched_db.seed(
        "categories", {"owner_id": OWNER_ID, "name": "Pet care", "created_at": "2024-01-01T00:00:00+00:00"}
    )


@pytest.fixture
def other_category(patched_db):
    """A category owned by OTHER_OWNER_ID."""
    return patched_db.seed(
        "categories", {"owner_id": OTHER_OWNER_ID, "name": "Garden", "created_at": "2024-01-01T00:00:00+00:00"}
    )
