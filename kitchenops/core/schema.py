"""SQLite schema management (code-first approach)."""

import logging

from kitchenops.core import db_client


logger = logging.getLogger(__name__)


# Central list of all collections in the schema, in creation order
COLLECTIONS = [
    "staff",
    "events",
    "stock",
    "stock_updates",
    "indents",
    "indent_items",
    "cooking_tasks",
    "leftovers",
]


TABLE_SCHEMAS: dict[str, str] = {
    "staff": """CREATE TABLE IF NOT EXISTS staff (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        actor_id TEXT NOT NULL UNIQUE,
        name TEXT NOT NULL,
        role TEXT NOT NULL CHECK (role IN ('CHEF', 'MANAGER', 'ADMIN')),
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
    "events": """CREATE TABLE IF NOT EXISTS events (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        name TEXT NOT NULL,
        date TEXT NOT NULL,
        guest_count INTEGER NOT NULL CHECK (guest_count BETWEEN 1 AND 1000),
        event_type TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'PLANNED'
            CHECK (status IN ('PLANNED', 'IN_PROGRESS', 'COMPLETED', 'CANCELLED')),
        menu_items TEXT NOT NULL DEFAULT '[]',
        assigned_chef TEXT,
        created_by TEXT NOT NULL
    )""",
    "stock": """CREATE TABLE IF NOT EXISTS stock (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        item_name TEXT NOT NULL,
        category TEXT NOT NULL,
        item_name_key TEXT NOT NULL,
        category_key TEXT NOT NULL,
        quantity REAL NOT NULL DEFAULT 0 CHECK (quantity >= 0),
        unit TEXT NOT NULL,
        min_stock REAL,
        expiry_date TEXT,
        batch_number TEXT,
        supplier TEXT,
        cost_per_unit REAL,
        is_active INTEGER NOT NULL DEFAULT 1
    )""",
    "stock_updates": """CREATE TABLE IF NOT EXISTS stock_updates (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        stock_id INTEGER NOT NULL REFERENCES stock(id),
        type TEXT NOT NULL CHECK (type IN ('ADDED', 'USED', 'EXPIRED', 'RETURNED', 'ADJUSTED')),
        quantity REAL NOT NULL CHECK (quantity > 0),
        delta REAL NOT NULL,
        reason TEXT NOT NULL DEFAULT '',
        actor TEXT NOT NULL,
        timestamp TEXT NOT NULL
    )""",
    "indents": """CREATE TABLE IF NOT EXISTS indents (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        event_id INTEGER NOT NULL REFERENCES events(id),
        status TEXT NOT NULL DEFAULT 'DRAFT'
            CHECK (status IN ('DRAFT', 'SUBMITTED', 'APPROVED', 'REJECTED')),
        total_items INTEGER NOT NULL DEFAULT 0,
        created_by TEXT NOT NULL,
        created_at TEXT NOT NULL,
        rejection_reason TEXT
    )""",
    "indent_items": """CREATE TABLE IF NOT EXISTS indent_items (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        indent_id INTEGER NOT NULL REFERENCES indents(id) ON DELETE CASCADE,
        item_name TEXT NOT NULL,
        category TEXT NOT NULL,
        quantity REAL NOT NULL CHECK (quantity > 0),
        unit TEXT NOT NULL,
        is_in_stock INTEGER NOT NULL DEFAULT 0,
        stock_id INTEGER REFERENCES stock(id),
        is_received INTEGER NOT NULL DEFAULT 0,
        received_at TEXT,
        notes TEXT
    )""",
    "cooking_tasks": """CREATE TABLE IF NOT EXISTS cooking_tasks (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        event_id INTEGER NOT NULL REFERENCES events(id),
        dish_name TEXT NOT NULL,
        category TEXT NOT NULL,
        servings INTEGER NOT NULL CHECK (servings > 0),
        status TEXT NOT NULL DEFAULT 'NOT_STARTED'
            CHECK (status IN ('NOT_STARTED', 'IN_PROGRESS', 'COMPLETED', 'ON_HOLD', 'CANCELLED')),
        assigned_to TEXT,
        priority TEXT NOT NULL DEFAULT 'NORMAL' CHECK (priority IN ('LOW', 'NORMAL', 'HIGH', 'URGENT')),
        started_at TEXT,
        completed_at TEXT,
        estimated_time INTEGER,
        notes TEXT
    )""",
    "leftovers": """CREATE TABLE IF NOT EXISTS leftovers (
        id INTEGER PRIMARY KEY AUTOINCREMENT,
        created TEXT NOT NULL DEFAULT (datetime('now')),
        updated TEXT NOT NULL DEFAULT (datetime('now')),
        event_id INTEGER NOT NULL REFERENCES events(id),
        item_name TEXT NOT NULL,
        quantity REAL NOT NULL CHECK (quantity >= 0),
        unit TEXT NOT NULL,
        estimated_cost REAL,
        stock_id INTEGER REFERENCES stock(id),
        is_returned INTEGER NOT NULL DEFAULT 0,
        returned_at TEXT,
        notes TEXT
    )""",
}


INDEXES: list[str] = [
    "CREATE INDEX IF NOT EXISTS idx_events_assigned_chef ON events (assigned_chef)",
    "CREATE INDEX IF NOT EXISTS idx_events_status ON events (status)",
    "CREATE INDEX IF NOT EXISTS idx_stock_item_name_key ON stock (item_name_key)",
    "CREATE INDEX IF NOT EXISTS idx_stock_category_key ON stock (category_key)",
    "CREATE INDEX IF NOT EXISTS idx_stock_updates_stock_id ON stock_updates (stock_id)",
    "CREATE INDEX IF NOT EXISTS idx_indents_event_id ON indents (event_id)",
    # At most one DRAFT indent per event
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_indents_one_draft_per_event ON indents (event_id) WHERE status = 'DRAFT'",
    "CREATE INDEX IF NOT EXISTS idx_indent_items_indent_id ON indent_items (indent_id)",
    "CREATE INDEX IF NOT EXISTS idx_cooking_tasks_event_id ON cooking_tasks (event_id)",
    "CREATE INDEX IF NOT EXISTS idx_cooking_tasks_assigned_to ON cooking_tasks (assigned_to)",
    "CREATE INDEX IF NOT EXISTS idx_leftovers_event_id ON leftovers (event_id)",
]


# SQLite names the indexed column rather than the index when a unique index rejects a row
DRAFT_INDENT_CONFLICT = "UNIQUE constraint failed: indents.event_id"


async def init_db() -> None:
    """Create every table and index if they do not exist yet."""
    statements = [TABLE_SCHEMAS[name] for name in COLLECTIONS] + INDEXES
    await db_client.execute_script(statements)
    logger.info("Database schema initialized", extra={"tables": len(COLLECTIONS), "indexes": len(INDEXES)})
