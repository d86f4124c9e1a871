"""SQLite database client wrapper with CRUD operations.

All work on a cached connection is serialized through a per-connection lock.
``transaction()`` holds that lock for its whole body and runs as
``BEGIN IMMEDIATE``; CRUD calls made inside it reuse its connection and leave
commit/rollback to it.
"""

import asyncio
import json
import logging
import re
import sqlite3
import threading
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any

import aiosqlite

from kitchenops.core.config import constants, settings


logger = logging.getLogger(__name__)


class DatabaseError(RuntimeError):
    """Store operation failed."""


class IntegrityViolationError(DatabaseError):
    """A uniqueness or foreign key constraint rejected the write."""


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
    converted = record.copy()
    for key, value in converted.items():
        if isinstance(value, int) and (key == "id" or key.endswith("_id")):
            converted[key] = str(value)
    return converted


def _to_sql_value(val: Any) -> Any:
    """Adapt a Python value for binding as an SQLite parameter."""
    if isinstance(val, datetime):
        return val.isoformat()
    if isinstance(val, dict | list):
        return json.dumps(val)
    return val


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str:
    """Prepare a filter value for binding.

    Values are always bound as text. SQLite applies the column's affinity on
    comparison, so ``"5"`` still matches an INTEGER column while ``"007"``
    only matches the text ``007``. Boolean columns are stored as 0/1.
    """
    if is_like:
        return value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
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


def _parse_single_comparison(comparison: str) -> tuple[str, str]:
    """Parse a single comparison expression into a SQL condition and parameter.

    ``~`` is a case-insensitive whole-value match (SQLite LIKE without wildcards).
    """
    # Values are double quoted and escaped with sanitize_param()
    match = re.fullmatch(
        r"""(\w+)\s*(=|!=|>=|<=|>|<|~)\s*"((?:[^"\\]|\\.)*)\"""",
        comparison.strip(),
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = json.loads(f'"{match.group(3)}"')

    sql_op = _get_sql_operator(op)
    if sql_op == "LIKE":
        return f"{field} LIKE ? ESCAPE '\\'", _parse_value(raw_value, is_like=True)

    return f"{field} {sql_op} ?", _parse_value(raw_value)


def _parse_or_group(or_group: str) -> tuple[str, list[str]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]
    or_parts = [p.strip() for p in inner.split("||")]
    or_conditions = []
    or_params = []

    for part in or_parts:
        cond, value = _parse_single_comparison(part)
        or_conditions.append(cond)
        or_params.append(value)

    return f"({' OR '.join(or_conditions)})", or_params


def _split_and_conditions(filter_query: str) -> list[str]:
    """Split filter query by && while preserving parenthesized groups."""
    parts = []
    current = ""
    paren_depth = 0

    for char in filter_query:
        if char == "(":
            paren_depth += 1
        elif char == ")":
            paren_depth -= 1

        current += char

        if paren_depth == 0 and current.endswith("&&"):
            parts.append(current[:-2].strip())
            current = ""

    if current.strip():
        parts.append(current.strip())

    return parts


def parse_filter(filter_query: str) -> tuple[str, list[str]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list."""
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params = []

    for raw_part in parts:
        part = raw_part.strip()

        if part.startswith("(") and part.endswith(")"):
            cond, cond_params = _parse_or_group(part)
            conditions.append(cond)
            params.extend(cond_params)
        else:
            cond, value = _parse_single_comparison(part)
            conditions.append(cond)
            params.append(value)

    return " AND ".join(conditions), params


def _safe_sort(sort: str) -> str:
    """Validate an ORDER BY expression: column_name [ASC|DESC], optionally comma separated."""
    if not sort:
        return "id ASC"
    parts = [p.strip() for p in sort.split(",")]
    for part in parts:
        if not re.match(r"^[A-Za-z_][A-Za-z0-9_]*(\s+(ASC|DESC))?$", part, re.IGNORECASE):
            logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
            return "id ASC"
    return ", ".join(parts)


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()
_connection_locks: "weakref.WeakKeyDictionary[aiosqlite.Connection, asyncio.Lock]" = weakref.WeakKeyDictionary()
_active_transaction: ContextVar[aiosqlite.Connection | None] = ContextVar("_active_transaction", default=None)


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    thread_id = threading.get_ident()
    loop = asyncio.get_running_loop()
    loop_id = id(loop)
    path = get_db_path(db_path)
    cache_key = (thread_id, loop_id, str(path))

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA foreign_keys = ON")
        await conn.execute("PRAGMA journal_mode = WAL")
        await conn.execute("PRAGMA busy_timeout = 5000")

        _db_connections[cache_key] = conn
        _connection_locks[conn] = asyncio.Lock()

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

    async with _db_lock:
        conn = _db_connections.pop(cache_key, None)
        if conn is None:
            return
        await conn.close()
        logger.info("Closed SQLite connection", extra={"thread_id": thread_id, "db_path": str(path)})


@asynccontextmanager
async def _use_connection() -> AsyncIterator[tuple[aiosqlite.Connection, bool]]:
    """Yield (connection, owns_commit). Inside a transaction the transaction owns the commit."""
    active = _active_transaction.get()
    if active is not None:
        yield active, False
        return

    conn = await get_connection()
    async with _connection_locks[conn]:
        yield conn, True


@asynccontextmanager
async def transaction() -> AsyncIterator[aiosqlite.Connection]:
    """Run the enclosed CRUD calls as one atomic unit.

    Commits when the block exits normally and rolls back on any exception.
    Nested ``transaction()`` blocks join the outer one.
    """
    active = _active_transaction.get()
    if active is not None:
        yield active
        return

    conn = await get_connection()
    async with _connection_locks[conn]:
        await conn.execute("BEGIN IMMEDIATE")
        token = _active_transaction.set(conn)
        try:
            yield conn
        except BaseException:
            await conn.rollback()
            logger.debug("Transaction rolled back")
            raise
        else:
            await conn.commit()
        finally:
            _active_transaction.reset(token)


def in_transaction() -> bool:
    """Return True when called inside a ``transaction()`` block."""
    return _active_transaction.get() is not None


async def init_db() -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from kitchenops.core import schema

    await schema.init_db()


async def execute_script(statements: list[str]) -> None:
    """Execute DDL statements and commit them."""
    async with _use_connection() as (conn, owns_commit):
        for statement in statements:
            await conn.execute(statement)
        if owns_commit:
            await conn.commit()


def _raise_store_error(e: Exception, *, operation: str, collection: str) -> None:
    if isinstance(e, sqlite3.IntegrityError):
        logger.warning(f"{operation}_integrity_violation", extra={"collection": collection, "error": str(e)})
        msg = f"Constraint violated in {collection}: {e}"
        raise IntegrityViolationError(msg) from e
    if isinstance(e, sqlite3.OperationalError) and "no such table" in str(e):
        logger.error("Table not found", extra={"collection": collection})
        msg = f"Table '{collection}' does not exist. Call init_db() first."
        raise DatabaseError(msg) from e
    logger.error(f"{operation}_failed", extra={"collection": collection, "error": str(e)})
    msg = f"Failed to {operation.replace('_', ' ')} in {collection}: {e}"
    raise DatabaseError(msg) from e


async def _fetch_record(conn: aiosqlite.Connection, collection: str, record_id: str) -> dict[str, Any]:
    query = f"SELECT * FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (int(record_id),))
    row = await cursor.fetchone()

    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)

    columns = [description[0] for description in cursor.description]
    return _convert_record_ids(dict(zip(columns, row, strict=True)))


async def create_record(*, collection: str, data: dict[str, Any]) -> dict[str, Any]:
    """Insert a new record and return it with its assigned id."""
    _validate_collection_name(collection)
    try:
        async with _use_connection() as (conn, owns_commit):
            columns = list(data.keys())
            columns_str = ", ".join(columns)
            placeholders_str = ", ".join("?" for _ in columns)
            values = [_to_sql_value(data[key]) for key in columns]

            query = f"INSERT INTO {collection} ({columns_str}) VALUES ({placeholders_str})"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, values)
            if owns_commit:
                await conn.commit()

            record_id = cursor.lastrowid
            result = await _fetch_record(conn, collection, str(record_id))

        logger.info("Created record", extra={"collection": collection, "record_id": record_id})
        return result
    except (KeyError, DatabaseError):
        raise
    except Exception as e:
        _raise_store_error(e, operation="create_record", collection=collection)
        raise


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising KeyError if not found."""
    _validate_collection_name(collection)
    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)
    try:
        async with _use_connection() as (conn, _):
            record = await _fetch_record(conn, collection, record_id)

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return record
    except KeyError:
        raise
    except Exception as e:
        _raise_store_error(e, operation="get_record", collection=collection)
        raise


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Update a record by ID and return the updated record."""
    record = await update_record_where(collection=collection, record_id=record_id, data=data, expected={})
    if record is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)
    return record


async def update_record_where(
    *,
    collection: str,
    record_id: str,
    data: dict[str, Any],
    expected: dict[str, Any],
) -> dict[str, Any] | None:
    """Compare-and-swap update.

    Applies ``data`` only while every ``expected`` column still holds its
    expected value. Returns the updated record, or None when the guard did not
    match. Raises KeyError when the record does not exist.
    """
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    _validate_collection_name(collection)
    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)
    for column in [*data, *expected]:
        _validate_collection_name(column)

    try:
        async with _use_connection() as (conn, owns_commit):
            set_clause = ", ".join([*(f"{key} = ?" for key in data), "updated = datetime('now')"])
            where_clause = " AND ".join(["id = ?", *(f"{key} IS ?" for key in expected)])
            values = [
                *(_to_sql_value(val) for val in data.values()),
                int(record_id),
                *(_to_sql_value(val) for val in expected.values()),
            ]

            query = f"UPDATE {collection} SET {set_clause} WHERE {where_clause}"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, values)
            if owns_commit:
                await conn.commit()

            if cursor.rowcount == 0:
                # Raises KeyError when the row is missing entirely
                await _fetch_record(conn, collection, record_id)
                logger.info("Guarded update skipped", extra={"collection": collection, "record_id": record_id})
                return None

            record = await _fetch_record(conn, collection, record_id)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return record
    except KeyError:
        raise
    except Exception as e:
        _raise_store_error(e, operation="update_record", collection=collection)
        raise


async def increment_field(
    *,
    collection: str,
    record_id: str,
    field: str,
    delta: float,
    minimum: float | None = None,
) -> dict[str, Any] | None:
    """Atomically add ``delta`` to a numeric column in a single UPDATE statement.

    With ``minimum`` set, the row is left untouched when the result would fall
    below it and None is returned. Raises KeyError when the record does not exist.
    """
    _validate_collection_name(collection)
    _validate_collection_name(field)
    if not str(record_id).isdigit():
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)

    precision = constants.QUANTITY_PRECISION
    new_value = f"ROUND({field} + ?, {precision})"
    query = f"UPDATE {collection} SET {field} = {new_value}, updated = datetime('now') WHERE id = ?"  # noqa: S608 - names are validated
    values: list[Any] = [delta, int(record_id)]
    if minimum is not None:
        query += f" AND {new_value} >= ?"
        values.extend([delta, minimum])

    try:
        async with _use_connection() as (conn, owns_commit):
            cursor = await conn.execute(query, values)
            if owns_commit:
                await conn.commit()

            if cursor.rowcount == 0:
                await _fetch_record(conn, collection, record_id)
                return None

            record = await _fetch_record(conn, collection, record_id)

        logger.info(
            "Incremented field",
            extra={"collection": collection, "record_id": record_id, "field": field, "delta": delta},
        )
        return record
    except KeyError:
        raise
    except Exception as e:
        _raise_store_error(e, operation="increment_field", collection=collection)
        raise


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising KeyError if not found."""
    deleted = await delete_records(collection=collection, filter_query=f'id = "{sanitize_param(record_id)}"')
    if deleted == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise KeyError(msg)


async def delete_records(*, collection: str, filter_query: str) -> int:
    """Delete every record matching the filter and return how many were removed."""
    _validate_collection_name(collection)
    where_clause, params = parse_filter(filter_query)
    if not where_clause:
        msg = "Refusing to delete without a filter"
        raise ValueError(msg)

    try:
        async with _use_connection() as (conn, owns_commit):
            query = f"DELETE FROM {collection} WHERE {where_clause}"  # noqa: S608 - collection is validated
            cursor = await conn.execute(query, params)
            if owns_commit:
                await conn.commit()

        logger.info("Deleted records", extra={"collection": collection, "count": cursor.rowcount})
        return cursor.rowcount
    except Exception as e:
        _raise_store_error(e, operation="delete_records", collection=collection)
        raise


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = constants.DEFAULT_PER_PAGE_LIMIT,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    return await _select(
        collection=collection,
        filter_query=filter_query,
        sort=sort,
        limit=per_page,
        offset=(page - 1) * per_page,
    )


async def list_all_records(*, collection: str, filter_query: str = "", sort: str = "") -> list[dict[str, Any]]:
    """List every record matching the filter, without pagination."""
    return await _select(collection=collection, filter_query=filter_query, sort=sort, limit=None, offset=0)


async def get_first_record(*, collection: str, filter_query: str, sort: str = "") -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await _select(collection=collection, filter_query=filter_query, sort=sort, limit=1, offset=0)
    return records[0] if records else None


async def _select(
    *,
    collection: str,
    filter_query: str,
    sort: str,
    limit: int | None,
    offset: int,
) -> list[dict[str, Any]]:
    _validate_collection_name(collection)
    try:
        where_clause, params = parse_filter(filter_query)
        where_sql = f"WHERE {where_clause}" if where_clause else ""

        query = f"SELECT * FROM {collection} {where_sql} ORDER BY {_safe_sort(sort)}"  # noqa: S608 - collection is validated
        if limit is not None:
            query += " LIMIT ? OFFSET ?"
            params.extend([limit, offset])

        async with _use_connection() as (conn, _):
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
            columns = [description[0] for description in cursor.description]

        records = [_convert_record_ids(dict(zip(columns, row, strict=True))) for row in rows]
        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except ValueError:
        raise
    except Exception as e:
        _raise_store_error(e, operation="list_records", collection=collection)
        raise
