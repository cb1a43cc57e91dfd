"""SQLite schema management (code-first approach)."""

import logging

from src.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    "categories",
    "care_tasks",
    "task_executions",
    "budget_transfers",
]


_TABLES: dict[str, str] = {
    "categories": """
        CREATE TABLE IF NOT EXISTS categories (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            name TEXT NOT NULL,
            created_at TEXT NOT NULL DEFAULT (datetime('now'))
        )
    """,
    "care_tasks": """
        CREATE TABLE IF NOT EXISTS care_tasks (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            name TEXT NOT NULL,
            description TEXT,
            task_type TEXT NOT NULL CHECK (task_type IN ('PURCHASE', 'GENERAL')),
            category_id TEXT,
            recurrence_interval_days INTEGER NOT NULL DEFAULT 0 CHECK (recurrence_interval_days >= 0),
            start_date TEXT NOT NULL,
            end_date TEXT,
            estimated_unit_cost REAL,
            quantity_per_purchase INTEGER,
            quantity_unit TEXT,
            yearly_budget REAL,
            is_active INTEGER NOT NULL DEFAULT 1,
            deactivated_at TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "task_executions": """
        CREATE TABLE IF NOT EXISTS task_executions (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            care_task_id TEXT NOT NULL,
            status TEXT NOT NULL CHECK (
                status IN ('TODO', 'DONE', 'COVERED', 'CANCELLED', 'REFUNDED', 'PARTIALLY_REFUNDED')
            ),
            scheduled_date TEXT,
            execution_date TEXT,
            actual_cost REAL,
            quantity INTEGER NOT NULL DEFAULT 1 CHECK (quantity >= 1),
            quantity_purchased INTEGER,
            quantity_unit TEXT,
            evidence_url TEXT,
            notes TEXT,
            executed_by TEXT,
            covered_by_execution_ref TEXT,
            refund TEXT,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )
    """,
    "budget_transfers": """
        CREATE TABLE IF NOT EXISTS budget_transfers (
            id INTEGER PRIMARY KEY AUTOINCREMENT,
            owner_id TEXT NOT NULL,
            year INTEGER NOT NULL,
            amount REAL NOT NULL CHECK (amount > 0),
            from_care_task_id TEXT NOT NULL,
            to_care_task_id TEXT NOT NULL,
            note TEXT,
            performed_by TEXT NOT NULL,
            source_snapshot TEXT NOT NULL,
            created_at TEXT NOT NULL
        )
    """,
}


_INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_care_tasks_owner ON care_tasks (owner_id)",
    "CREATE INDEX IF NOT EXISTS idx_care_tasks_active ON care_tasks (is_active)",
    "CREATE INDEX IF NOT EXISTS idx_executions_task_date ON task_executions (care_task_id, scheduled_date)",
    "CREATE INDEX IF NOT EXISTS idx_executions_owner_status ON task_executions (owner_id, status)",
    "CREATE INDEX IF NOT EXISTS idx_executions_covered_by ON task_executions (covered_by_execution_ref)",
    "CREATE INDEX IF NOT EXISTS idx_transfers_owner_year ON budget_transfers (owner_id, year)",
]


async def init_db(*, db_path: str | None = None) -> None:
    """Create all tables and indexes if they do not already exist.

    Safe to call on every startup.
    """
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_TABLES[collection])
        logger.debug("Ensured collection", extra={"collection": collection})

    for statement in _INDEXES:
        await conn.execute(statement)

    logger.info("Schema initialized", extra={"collections": COLLECTIONS})
