"""Pure Python in-memory database for unit testing."""

import asyncio
import copy
import re
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from src.core.db_client import DatabaseError, RecordNotFoundError, _split_top_level


T = TypeVar("T")

_CONDITION = re.compile(r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])((?:\\.|(?!\3).)*)\3$""")


class InMemoryDBClient:
    """Pure Python in-memory database for unit testing.

    Mirrors the db_client module interface (keyword arguments, string ids,
    filter and sort syntax) without touching SQLite. Transactions are
    serialized by a lock and rolled back from a snapshot on any exception.
    """

    def __init__(self):
        """Initialize empty in-memory database."""
        self._collections: dict[str, dict[str, dict[str, Any]]] = {}
        self._id_counter = 1000
        self._txn_lock = asyncio.Lock()
        self.transactions_started = 0

    def seed(self, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Insert a record synchronously (test setup helper)."""
        record_id = str(self._id_counter)
        self._id_counter += 1
        record = {"id": record_id, **copy.deepcopy(data)}
        self._collections.setdefault(collection, {})[record_id] = record
        return copy.deepcopy(record)

    def all(self, collection: str) -> list[dict[str, Any]]:
        """Every record in a collection, in insertion order."""
        return [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create a new record in the specified collection.

        Raises:
            DatabaseError: If data is not a dictionary
        """
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")
        await asyncio.sleep(0)
        return self.seed(collection, data)

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        """Get a record by ID from the specified collection.

        Raises:
            RecordNotFoundError: If record not found
            DatabaseError: If record_id is not a string
        """
        if not isinstance(record_id, str):
            raise DatabaseError(f"Record ID must be a string, got {type(record_id)}")

        await asyncio.sleep(0)
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
        return copy.deepcopy(records[record_id])

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Update an existing record.

        Raises:
            RecordNotFoundError: If record not found
            DatabaseError: For an invalid payload
        """
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")
        if not isinstance(record_id, str):
            raise DatabaseError(f"Record ID must be a string, got {type(record_id)}")

        await asyncio.sleep(0)
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")

        records[record_id].update(copy.deepcopy(data))
        return copy.deepcopy(records[record_id])

    async def list_records(
        self,
        *,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting and pagination.

        Raises:
            DatabaseError: For invalid filter syntax
        """
        await asyncio.sleep(0)
        records = list(self._collections.get(collection, {}).values())

        if filter_query:
            records = [r for r in records if self._matches(filter_query, r)]

        records = self._apply_sort(records, sort)

        start_idx = (page - 1) * per_page
        return [copy.deepcopy(r) for r in records[start_idx : start_idx + per_page]]

    async def list_all_records(self, *, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
        total = len(self._collections.get(collection, {}))
        return await self.list_records(
            collection=collection, per_page=max(total, 1), filter_query=filter_query, sort=sort
        )

    async def get_first_record(self, *, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
        """Get the first matching record or None."""
        records = await self.list_records(collection=collection, per_page=1, filter_query=filter_query, sort=sort)
        return records[0] if records else None

    async def run_in_transaction(self, fn: Callable[[Any], Awaitable[T]], *, max_attempts: int | None = None) -> T:
        """Run fn with this client as the transaction handle, rolling back on error."""
        async with self._txn_lock:
            self.transactions_started += 1
            snapshot = copy.deepcopy(self._collections)
            counter = self._id_counter
            try:
                return await fn(self)
            except BaseException:
                self._collections = snapshot
                self._id_counter = counter
                raise

    def _matches(self, filter_str: str, record: dict[str, Any]) -> bool:
        """Evaluate a filter expression (&& of conditions or parenthesized || groups)."""
        for raw in _split_top_level(filter_str, "&&"):
            part = raw.strip()
            if part.startswith("(") and part.endswith(")"):
                alternatives = _split_top_level(part[1:-1], "||")
                if not any(self._condition(alt, record) for alt in alternatives):
                    return False
            elif not self._condition(part, record):
                return False
        return True

    def _condition(self, condition: str, record: dict[str, Any]) -> bool:
        match = _CONDITION.match(condition)
        if not match:
            raise DatabaseError(f"Invalid filter syntax: {condition}")

        field, op = match.group(1), match.group(2)
        value = re.sub(r"\\(.)", r"\1", match.group(4))
        actual = record.get(field)

        if op == "~":
            return value.lower() in str(actual or "").lower()

        if isinstance(actual, bool) and value.lower() in ("true", "false"):
            left: Any = actual
            right: Any = value.lower() == "true"
        elif isinstance(actual, int | float) and not isinstance(actual, bool):
            try:
                left, right = float(actual), float(value)
            except ValueError:
                left, right = str(actual), value
        else:
            if actual is None and op not in ("=", "!="):
                return False
            left, right = ("" if actual is None else str(actual)), value

        if op == "=":
            return left == right
        if op == "!=":
            return left != right
        if op == ">=":
            return left >= right
        if op == "<=":
            return left <= right
        if op == ">":
            return left > right
        return left < right

    def _apply_sort(self, records: list[dict], sort: str) -> list[dict]:
        """Sort records by one field (prefix with - for descending), ties by id."""
        reverse = sort.startswith("-")
        field = sort[1:] if reverse else sort

        def key(r: dict) -> tuple:
            value = r.get(field) if field else None
            return ("" if value is None else str(value), int(r["id"]))

        return sorted(records, key=key, reverse=reverse)
