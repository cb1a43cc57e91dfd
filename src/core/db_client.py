"""SQLite database client wrapper with CRUD operations and transactions."""

import asyncio
import json
import logging
import re
import sqlite3
import threading
import weakref
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from datetime import date, datetime
from pathlib import Path
from typing import Any, TypeVar

import aiosqlite

from src.core.config import constants, settings


logger = logging.getLogger(__name__)

T = TypeVar("T")


class DatabaseError(RuntimeError):
    """Raised when a store operation fails."""


class RecordNotFoundError(KeyError):
    """Raised when a record does not exist in a collection."""


class TransactionConflictError(DatabaseError):
    """Raised when a transaction could not acquire the store after all retries."""


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(r"^[a-zA-Z_][a-zA-Z0-9_]*$", collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def _convert_record_ids(record: dict[str, Any]) -> dict[str, Any]:
    """Convert integer ID and foreign key fields to strings for Pydantic compatibility."""
    fk_fields = {
        "id",
        "covered_by_execution_ref",
    }

    converted = record.copy()
    for key, value in converted.items():
        # Convert if it's a known FK field, ends in _id, or is the primary id
        if isinstance(value, int) and (key in fk_fields or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def _encode_value(value: Any) -> Any:
    """Convert a Python value into something SQLite can store."""
    if isinstance(value, datetime | date):
        return value.isoformat()
    if isinstance(value, dict | list):
        return json.dumps(value)
    return value


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | int | float | bool | None:
    """Parse a string value to the appropriate Python type for SQLite."""
    if is_like:
        escaped = value.replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    if value.isdigit():
        return int(value)
    if value.replace(".", "", 1).isdigit():
        return float(value)

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _get_sql_operator(op: str) -> str:
    """Map filter operator to SQL operator."""
    op_map = {
        "=": "=",
        "!=": "!=",
        ">": ">",
        "<": "<",
        ">=": ">=",
        "<=": "<=",
        "~": "LIKE",
    }
    sql_op = op_map.get(op)
    if not sql_op:
        msg = f"Unsupported operator: {op}"
        raise ValueError(msg)
    return sql_op


def _parse_single_comparison(comparison: str) -> tuple[str, str | int | float | None]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""^(\w+)\s*(!=|>=|<=|=|>|<|~)\s*(['"])((?:\\.|(?!\3).)*)\3$""",
        comparison.strip(),
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    # Values embedded via sanitize_param carry backslash escapes
    raw_value = re.sub(r"\\(.)", r"\1", match.group(4))

    sql_op = _get_sql_operator(op)
    is_like = sql_op == "LIKE"
    value = _parse_value(raw_value, is_like=is_like)

    if is_like:
        return f"{field} LIKE ? ESCAPE '\\'", value
    return f"{field} {sql_op} ?", value


def _parse_or_group(or_group: str) -> tuple[str, list[str | int | float | None]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
    or_parts = _split_top_level(inner, "||")
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_top_level(expression: str, separator: str) -> list[str]:
    """Split on separator outside quoted values and parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0
    quote: str | None = None
    escaped = False

    for char in expression:
        current += char
        if quote:
            if escaped:
                escaped = False
            elif char == "\\":
                escaped = True
            elif char == quote:
                quote = None
            continue

        if char in ("'", '"'):
            quote = char
        elif char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1
        elif paren_depth == 0 and current.endswith(separator):
            parts.append(current[: -len(separator)].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    return _split_top_level(filter_query, "&&")


def parse_filter(filter_query: str) -> tuple[str, list[str | int | float | None]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params = []

    for raw_part in parts:
        part = raw_part.strip()

        # Handle parenthesized OR groups
        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def parse_sort(sort: str) -> str:
    """Translate a sort expression ("field" or "-field") into an ORDER BY clause."""
    if not sort:
        return "id ASC"

    sort = sort.strip()
    match = re.match(r"^(-?)([A-Za-z_][A-Za-z0-9_]*)$", sort)
    if not match:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "id ASC"

    direction = "DESC" if match.group(1) else "ASC"
    field = match.group(2)
    return f"{field} {direction}, id {direction}"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
# One lock per running event loop
_db_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = weakref.WeakKeyDictionary()
_store_locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock] = weakref.WeakKeyDictionary()


def _loop_lock(locks: weakref.WeakKeyDictionary[asyncio.AbstractEventLoop, asyncio.Lock]) -> asyncio.Lock:
    loop = asyncio.get_running_loop()
    lock = locks.get(loop)
    if lock is None:
        lock = locks[loop] = asyncio.Lock()
    return lock


def _store_lock() -> asyncio.Lock:
    """Lock serializing every statement on the shared connection.

    Plain reads and writes wait while a transaction is open, so they never see
    or commit its uncommitted writes.
    """
    return _loop_lock(_store_locks)


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _loop_lock(_db_locks):
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        # Autocommit mode: transactions are opened explicitly with BEGIN IMMEDIATE
        conn = await aiosqlite.connect(str(path), isolation_level=None)
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop_id = id(asyncio.get_running_loop())
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key not in _db_connections:
        return

    try:
        async with _loop_lock(_db_locks):
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                await conn.close()
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": str(path)},
                )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from src.core import schema

    await schema.init_db(db_path=db_path)


def _row_to_record(cursor: aiosqlite.Cursor, row: tuple[Any, ...]) -> dict[str, Any]:
    columns = [description[0] for description in cursor.description]
    return _convert_record_ids(dict(zip(columns, row, strict=True)))


async def _insert(conn: aiosqlite.Connection, collection: str, data: dict[str, Any]) -> str:
    _validate_collection_name(collection)
    columns = list(data.keys())
    columns_str = ", ".join(columns)
    placeholders_str = ", ".join("?" for _ in columns)
    values = [_encode_value(data[key]) for key in columns]

    query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, values)
    return str(cursor.lastrowid)


async def _select_by_id(conn: aiosqlite.Connection, collection: str, record_id: str) -> dict[str, Any]:
    _validate_collection_name(collection)
    try:
        numeric_id = int(record_id)
    except (TypeError, ValueError):
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg) from None

    query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (numeric_id,))
    row = await cursor.fetchone()

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)

    return _row_to_record(cursor, row)


async def _update(conn: aiosqlite.Connection, collection: str, record_id: str, data: dict[str, Any]) -> None:
    _validate_collection_name(collection)
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        numeric_id = int(record_id)
    except (TypeError, ValueError):
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg) from None

    set_clause = ", ".join(f"{key} = ?" for key in data)
    values = [_encode_value(val) for val in data.values()]
    values.append(numeric_id)

    query = f"UPDATE {collection} SET {set_clause} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, values)
    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)


async def _select(
    conn: aiosqlite.Connection,
    collection: str,
    *,
    page: int,
    per_page: int,
    filter_query: str,
    sort: str,
) -> list[dict[str, Any]]:
    _validate_collection_name(collection)

    where_clause = ""
    params: list[Any] = []
    if filter_query:
        where_clause, params = parse_filter(filter_query)
        where_clause = f"WHERE {where_clause}"

    offset = (page - 1) * per_page
    query = f"SELECT * FROM {collection} {where_clause} ORDER BY {parse_sort(sort)} LIMIT ? OFFSET ?"  # noqa: S608 - collection is validated
    params.extend([per_page, offset])

    cursor = await conn.execute(query, params)
    rows = await cursor.fetchall()
    return [_row_to_record(cursor, row) for row in rows]


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    try:
        conn = await get_connection()
        async with _store_lock():
            record_id = await _insert(conn, collection, data)
            result = await _select_by_id(conn, collection, record_id)

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result
    except Exception as e:
        if isinstance(e, sqlite3.OperationalError) and "no such table" in str(e):
            msg = f"Table '{collection}' does not exist. Call init_db() first."
            logger.error("Table not found", extra={"collection": collection})
            raise DatabaseError(msg) from e
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to create record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    try:
        conn = await get_connection()
        async with _store_lock():
            record = await _select_by_id(conn, collection, record_id)

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return record
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to get record from {collection}: {e}"
        raise DatabaseError(msg) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        conn = await get_connection()
        async with _store_lock():
            await _update(conn, collection, record_id, data)
            result = await _select_by_id(conn, collection, record_id)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return result
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        msg = f"Failed to update record in {collection}: {e}"
        raise DatabaseError(msg) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting ("field" or "-field"), and pagination."""
    try:
        conn = await get_connection()
        async with _store_lock():
            records = await _select(
                conn, collection, page=page, per_page=per_page, filter_query=filter_query, sort=sort
            )

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        msg = f"Failed to list records from {collection}: {e}"
        raise DatabaseError(msg) from e


async def list_all_records(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """Page through list_records until every matching record has been read."""
    per_page = constants.DEFAULT_PER_PAGE_LIMIT
    records: list[dict[str, Any]] = []
    page = 1
    while True:
        batch = await list_records(
            collection=collection,
            page=page,
            per_page=per_page,
            filter_query=filter_query,
            sort=sort,
        )
        records.extend(batch)
        if len(batch) < per_page:
            return records
        page += 1


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, per_page=1, filter_query=filter_query, sort=sort)
    return records[0] if records else None


class Transaction:
    """Read and write access scoped to one open store transaction.

    Writes issued here become visible to other callers only when the
    surrounding run_in_transaction() commits.
    """

    def __init__(self, conn: aiosqlite.Connection) -> None:
        self._conn = conn

    async def get_record(self, *, collection: str, record_id: str) -> dict[str, Any]:
        return await _select_by_id(self._conn, collection, record_id)

    async def list_records(
        self,
        *,
        collection: str,
        filter_query: str = "",
        sort: str = "",
        page: int = 1,
        per_page: int = 500,
    ) -> list[dict[str, Any]]:
        return await _select(
            self._conn, collection, page=page, per_page=per_page, filter_query=filter_query, sort=sort
        )

    async def list_all_records(self, *, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
        per_page = constants.DEFAULT_PER_PAGE_LIMIT
        records: list[dict[str, Any]] = []
        page = 1
        while True:
            batch = await self.list_records(
                collection=collection, filter_query=filter_query, sort=sort, page=page, per_page=per_page
            )
            records.extend(batch)
            if len(batch) < per_page:
                return records
            page += 1

    async def get_first_record(self, *, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
        records = await self.list_records(collection=collection, filter_query=filter_query, sort=sort, per_page=1)
        return records[0] if records else None

    async def create_record(self, *, collection: str, data: dict[str, Any]) -> dict[str, Any]:
        record_id = await _insert(self._conn, collection, data)
        return await _select_by_id(self._conn, collection, record_id)

    async def update_record(self, *, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        await _update(self._conn, collection, record_id, data)
        return await _select_by_id(self._conn, collection, record_id)


@asynccontextmanager
async def transaction() -> AsyncIterator[Transaction]:
    """Open a write transaction; commit on success, roll back on any exception."""
    conn = await get_connection()
    async with _store_lock():
        await conn.execute("BEGIN IMMEDIATE")
        try:
            yield Transaction(conn)
        except BaseException:
            await conn.rollback()
            raise
        await conn.commit()


def _is_busy_error(error: BaseException) -> bool:
    message = str(error).lower()
    return isinstance(error, sqlite3.OperationalError) and ("locked" in message or "busy" in message)


async def run_in_transaction(fn: Callable[[Transaction], Awaitable[T]], *, max_attempts: int | None = None) -> T:
    """Run fn inside a store transaction, retrying while the database is locked.

    Exceptions raised by fn roll the transaction back and propagate unchanged.

    Raises:
        TransactionConflictError: If the store stayed locked for every attempt
        DatabaseError: For other store failures
    """
    attempts = max_attempts or settings.store_transaction_max_attempts
    for attempt in range(1, attempts + 1):
        try:
            async with transaction() as txn:
                return await fn(txn)
        except sqlite3.Error as e:
            if not _is_busy_error(e):
                logger.error("transaction_failed", extra={"error": str(e)})
                raise DatabaseError(f"Transaction failed: {e}") from e
            if attempt == attempts:
                raise TransactionConflictError(f"Store stayed locked after {attempts} attempts: {e}") from e
            delay = constants.STORE_RETRY_BASE_DELAY_SECONDS * 2 ** (attempt - 1)
            logger.warning(
                "Store busy, retrying transaction",
                extra={"attempt": attempt, "max_attempts": attempts, "delay": delay},
            )
            await asyncio.sleep(delay)

    msg = "Transaction attempts must be at least 1"
    raise ValueError(msg)
