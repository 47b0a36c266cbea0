"""SQLite-backed document store client with CRUD operations and atomic write batches.

Every collection is a table of JSON documents (``id``, ``created``, ``updated``,
``data``). Filters use a PocketBase-style syntax that is translated to
``json_extract`` / ``json_each`` expressions.
"""

import asyncio
import json
import logging
import re
import secrets
import threading
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from dataclasses import dataclass
from datetime import UTC, date, datetime, time
from enum import Enum
from pathlib import Path
from typing import Any, Literal

import aiosqlite

from taskmate.core.config import settings


logger = logging.getLogger(__name__)

RESERVED_FIELDS = ("id", "created", "updated")

_IDENTIFIER_PATTERN = r"^[a-zA-Z_][a-zA-Z0-9_]*$"


class DatabaseError(RuntimeError):
    """The store failed to execute an operation."""


class RecordNotFoundError(KeyError):
    """The requested record does not exist."""


@dataclass(frozen=True)
class ArrayUnion:
    """Field transform adding values to an array field (no duplicates)."""

    values: tuple[Any, ...]


@dataclass(frozen=True)
class ArrayRemove:
    """Field transform removing every occurrence of values from an array field."""

    values: tuple[Any, ...]


def array_union(*values: Any) -> ArrayUnion:
    """Build an array-union transform for use in update payloads."""
    return ArrayUnion(values=values)


def array_remove(*values: Any) -> ArrayRemove:
    """Build an array-remove transform for use in update payloads."""
    return ArrayRemove(values=values)


def resolve_field_transforms(current: dict[str, Any], changes: dict[str, Any]) -> dict[str, Any]:
    """Resolve array transforms in an update payload against the current document."""
    resolved: dict[str, Any] = {}
    for key, value in changes.items():
        if isinstance(value, ArrayUnion):
            existing = list(current.get(key) or [])
            resolved[key] = existing + [v for v in value.values if v not in existing]
        elif isinstance(value, ArrayRemove):
            resolved[key] = [v for v in current.get(key) or [] if v not in value.values]
        else:
            resolved[key] = value
    return resolved


def _validate_collection_name(collection: str) -> None:
    """Validate that a collection name contains only alphanumeric characters and underscores."""
    if not re.match(_IDENTIFIER_PATTERN, collection):
        msg = f"Invalid collection name: {collection}. Only alphanumeric characters and underscores are allowed."
        raise ValueError(msg)


def _validate_field_name(field: str) -> None:
    if not re.match(_IDENTIFIER_PATTERN, field):
        msg = f"Invalid field name: {field}"
        raise ValueError(msg)


def sanitize_param(value: str | int | float | bool | None) -> str:
    """Escape a value for safe embedding in filter queries via json.dumps."""
    return json.dumps(str(value))[1:-1]


def generate_record_id() -> str:
    """Generate a random record id, in the spirit of hosted document stores."""
    return secrets.token_hex(8)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


def _json_default(value: Any) -> Any:
    """Serialize values json.dumps does not handle natively."""
    if isinstance(value, datetime | date | time):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, set | tuple):
        return list(value)
    msg = f"Object of type {type(value).__name__} is not JSON serializable"
    raise TypeError(msg)


def _dump_document(data: dict[str, Any]) -> str:
    return json.dumps({k: v for k, v in data.items() if k not in RESERVED_FIELDS}, default=_json_default)


def _row_to_record(row: aiosqlite.Row | tuple[Any, ...]) -> dict[str, Any]:
    record_id, created, updated, raw = row
    return {"id": record_id, "created": created, "updated": updated, **json.loads(raw or "{}")}


def get_db_path(db_path: str | None = None) -> Path:
    """Get the resolved SQLite database file path."""
    path_str = db_path or settings.sqlite_db_path
    return Path(path_str).resolve()


def _parse_value(value: str, *, is_like: bool = False) -> str | bool:
    """Parse a filter literal. Only booleans are coerced; ids stay strings."""
    if is_like:
        escaped = value.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
        return f"%{escaped}%"

    if value.lower() == "true":
        return True
    if value.lower() == "false":
        return False

    return value


def _field_expression(field: str) -> str:
    """Map a document field to its SQL expression."""
    _validate_field_name(field)
    if field in RESERVED_FIELDS:
        return field
    return f"json_extract(data, '$.{field}')"


def _parse_single_comparison(comparison: str) -> tuple[str, str | bool]:
    """Parse a single comparison expression into a SQL condition and parameter."""
    match = re.match(
        r"""^(\w+)\s*(\?=|!=|>=|<=|=|>|<|~)\s*(['"])(.*)\3$""",
        comparison.strip(),
    )
    if not match:
        msg = f"Invalid filter syntax: {comparison}"
        raise ValueError(msg)

    field = match.group(1)
    op = match.group(2)
    raw_value = match.group(4)
    expression = _field_expression(field)

    if op == "?=":
        _validate_field_name(field)
        return (
            f"EXISTS (SELECT 1 FROM json_each(data, '$.{field}') WHERE json_each.value = ?)",
            _parse_value(raw_value),
        )
    if op == "~":
        return f"{expression} LIKE ? ESCAPE '\\'", _parse_value(raw_value, is_like=True)
    if op == "!=":
        return f"IFNULL({expression}, '') != ?", _parse_value(raw_value)

    return f"{expression} {op} ?", _parse_value(raw_value)


def _parse_or_group(or_group: str) -> tuple[str, list[str | bool]]:
    """Parse a parenthesized OR group into a SQL condition and parameters."""
    inner = or_group[1:-1]  # Remove parentheses
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


def parse_filter(filter_query: str) -> tuple[str, list[str | bool]]:
    """Parse filter syntax into a SQL WHERE clause and parameter list.

    Supported operators: ``=``, ``!=``, ``>``, ``<``, ``>=``, ``<=``,
    ``~`` (contains) and ``?=`` (array field contains value). Conditions are
    joined with ``&&``; parenthesized groups may use ``||``.
    """
    if not filter_query:
        return "", []

    parts = _split_and_conditions(filter_query)
    conditions = []
    params: list[str | bool] = []

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


def _parse_sort(sort: str) -> str:
    """Translate ``+field`` / ``-field`` / ``field DESC`` into an ORDER BY clause."""
    if not sort:
        return "created ASC, id ASC"

    match = re.match(r"^([+-]?)([A-Za-z_][A-Za-z0-9_]*)\s*(ASC|DESC)?$", sort.strip(), re.IGNORECASE)
    if not match:
        logger.warning("Invalid sort parameter, using default", extra={"sort": sort})
        return "created ASC, id ASC"

    prefix, field, direction = match.groups()
    if prefix == "-":
        direction = "DESC"
    return f"{_field_expression(field)} {(direction or 'ASC').upper()}"


_db_connections: dict[tuple[int, int, str], aiosqlite.Connection] = {}
_db_lock = asyncio.Lock()

# One lock per cached connection. Every statement sequence on a connection
# (including a whole batch transaction) runs while holding it.
_connection_locks: dict[tuple[int, int, str], asyncio.Lock] = {}


def _cache_key(db_path: str | None = None) -> tuple[int, int, str]:
    return (threading.get_ident(), id(asyncio.get_running_loop()), str(get_db_path(db_path)))


@asynccontextmanager
async def _session() -> AsyncIterator[aiosqlite.Connection]:
    """Exclusive use of the cached connection for the current loop."""
    conn = await get_connection()
    lock = _connection_locks.setdefault(_cache_key(), asyncio.Lock())
    async with lock:
        yield conn


async def get_connection(*, db_path: str | None = None) -> aiosqlite.Connection:
    """Get or create a cached connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    thread_id, loop_id, _ = cache_key
    path = get_db_path(db_path)

    if cache_key in _db_connections:
        return _db_connections[cache_key]

    async with _db_lock:
        # Double-check after acquiring lock
        if cache_key in _db_connections:
            return _db_connections[cache_key]

        path.parent.mkdir(parents=True, exist_ok=True)

        conn = await aiosqlite.connect(str(path))
        await conn.execute("PRAGMA journal_mode = WAL")

        _db_connections[cache_key] = conn

        logger.info(
            "Created new SQLite connection",
            extra={"db_path": str(path), "thread_id": thread_id, "loop_id": loop_id},
        )
        return conn


async def close_connection(*, db_path: str | None = None) -> None:
    """Close the cached SQLite connection for the current thread, loop, and db path."""
    cache_key = _cache_key(db_path)
    thread_id, loop_id, path = cache_key

    if cache_key not in _db_connections:
        return

    try:
        async with _db_lock:
            if cache_key in _db_connections:
                conn = _db_connections.pop(cache_key)
                _connection_locks.pop(cache_key, None)
                await conn.close()
                logger.info(
                    "Closed SQLite connection",
                    extra={"thread_id": thread_id, "loop_id": loop_id, "db_path": path},
                )
    except Exception as e:
        logger.warning(
            "Error closing SQLite connection",
            extra={"error": str(e), "thread_id": thread_id, "loop_id": loop_id},
        )


async def init_db(*, db_path: str | None = None) -> None:
    """Initialize the database schema by delegating to schema.init_db()."""
    from taskmate.core import schema  # noqa: PLC0415 - schema imports this module

    await schema.init_db(db_path=db_path)


async def _fetch_record(conn: aiosqlite.Connection, collection: str, record_id: str) -> dict[str, Any]:
    query = f"SELECT id, created, updated, data FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (record_id,))
    row = await cursor.fetchone()
    if row is None:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)
    return _row_to_record(row)


async def _insert_document(conn: aiosqlite.Connection, collection: str, record_id: str, data: dict[str, Any]) -> None:
    now = _now_iso()
    query = f"INSERT INTO {collection} (id, created, updated, data) VALUES (?, ?, ?, ?)"  # noqa: S608
    await conn.execute(query, (record_id, now, now, _dump_document(data)))


async def _upsert_document(conn: aiosqlite.Connection, collection: str, record_id: str, data: dict[str, Any]) -> None:
    now = _now_iso()
    query = (
        f"INSERT INTO {collection} (id, created, updated, data) VALUES (?, ?, ?, ?) "  # noqa: S608
        "ON CONFLICT(id) DO UPDATE SET data = excluded.data, updated = excluded.updated"
    )
    await conn.execute(query, (record_id, now, now, _dump_document(data)))


async def _update_document(conn: aiosqlite.Connection, collection: str, record_id: str, data: dict[str, Any]) -> None:
    current = await _fetch_record(conn, collection, record_id)
    document = {k: v for k, v in current.items() if k not in RESERVED_FIELDS}
    document.update(resolve_field_transforms(document, data))
    query = f"UPDATE {collection} SET data = ?, updated = ? WHERE id = ?"  # noqa: S608 - collection is validated
    await conn.execute(query, (_dump_document(document), _now_iso(), record_id))


async def _delete_document(conn: aiosqlite.Connection, collection: str, record_id: str) -> None:
    query = f"DELETE FROM {collection} WHERE id = ?"  # noqa: S608 - collection is validated
    cursor = await conn.execute(query, (record_id,))
    if cursor.rowcount == 0:
        msg = f"Record not found in {collection}: {record_id}"
        raise RecordNotFoundError(msg)


def _wrap_error(e: Exception, *, action: str, collection: str) -> DatabaseError:
    if isinstance(e, aiosqlite.OperationalError) and "no such table" in str(e):
        return DatabaseError(f"Table '{collection}' does not exist. Call init_db() first.")
    return DatabaseError(f"Failed to {action} {collection}: {e}")


async def create_record(
    *, collection: str, data: dict[str, Any], record_id: str | None = None
) -> dict[str, Any]:
    """Insert a new document and return it with its assigned id."""
    try:
        _validate_collection_name(collection)
        new_id = record_id or generate_record_id()

        async with _session() as conn:
            await _insert_document(conn, collection, new_id, data)
            await conn.commit()
            result = await _fetch_record(conn, collection, new_id)
        logger.info("Created record", extra={"collection": collection, "record_id": new_id})
        return result
    except Exception as e:
        logger.error("create_record_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, action="create record in", collection=collection) from e


async def set_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Create or replace the document stored under record_id."""
    try:
        _validate_collection_name(collection)
        async with _session() as conn:
            await _upsert_document(conn, collection, record_id, data)
            await conn.commit()
            result = await _fetch_record(conn, collection, record_id)

        logger.info("Set record", extra={"collection": collection, "record_id": record_id})
        return result
    except Exception as e:
        logger.error("set_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, action="set record in", collection=collection) from e


async def get_record(*, collection: str, record_id: str) -> dict[str, Any]:
    """Fetch a single record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)
        async with _session() as conn:
            record = await _fetch_record(conn, collection, record_id)

        logger.debug("Retrieved record", extra={"collection": collection, "record_id": record_id})
        return record
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("get_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, action="get record from", collection=collection) from e


async def update_record(*, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
    """Merge data into a document by ID and return the updated record.

    Array transforms (``array_union`` / ``array_remove``) are resolved against
    the stored document.
    """
    if not data:
        msg = "Empty update payload"
        raise ValueError(msg)

    try:
        _validate_collection_name(collection)
        async with _session() as conn:
            await _update_document(conn, collection, record_id, data)
            await conn.commit()
            result = await _fetch_record(conn, collection, record_id)

        logger.info("Updated record", extra={"collection": collection, "record_id": record_id})
        return result
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("update_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, action="update record in", collection=collection) from e


async def delete_record(*, collection: str, record_id: str) -> None:
    """Delete a record by ID, raising RecordNotFoundError if not found."""
    try:
        _validate_collection_name(collection)
        async with _session() as conn:
            await _delete_document(conn, collection, record_id)
            await conn.commit()

        logger.info("Deleted record", extra={"collection": collection, "record_id": record_id})
    except RecordNotFoundError:
        raise
    except Exception as e:
        logger.error("delete_record_failed", extra={"collection": collection, "record_id": record_id, "error": str(e)})
        raise _wrap_error(e, action="delete record from", collection=collection) from e


async def list_records(
    *,
    collection: str,
    page: int = 1,
    per_page: int = 50,
    filter_query: str = "",
    sort: str = "",
) -> list[dict[str, Any]]:
    """List records with optional filtering, sorting, and pagination."""
    try:
        _validate_collection_name(collection)
        where_clause = ""
        params: list[Any] = []
        if filter_query:
            where_clause, params = parse_filter(filter_query)
            where_clause = f"WHERE {where_clause}"

        order_by = _parse_sort(sort)
        offset = (page - 1) * per_page

        query = f"SELECT id, created, updated, data FROM {collection} {where_clause} ORDER BY {order_by} LIMIT ? OFFSET ?"  # noqa: S608, E501 - collection and fields are validated
        params.extend([per_page, offset])

        async with _session() as conn:
            cursor = await conn.execute(query, params)
            rows = await cursor.fetchall()
        records = [_row_to_record(row) for row in rows]

        logger.debug("Listed records", extra={"collection": collection, "count": len(records)})
        return records
    except Exception as e:
        logger.error("list_records_failed", extra={"collection": collection, "error": str(e)})
        raise _wrap_error(e, action="list records from", collection=collection) from e


async def get_first_record(*, collection: str, filter_query: str) -> dict[str, Any] | None:
    """Return the first record matching the filter, or None."""
    records = await list_records(collection=collection, filter_query=filter_query, per_page=1)
    return records[0] if records else None


@dataclass(frozen=True)
class BatchOperation:
    """A write staged in a WriteBatch."""

    kind: Literal["set", "update", "delete"]
    collection: str
    record_id: str
    data: dict[str, Any] | None = None


class WriteBatch:
    """Stage set/update/delete writes and commit them atomically.

    Either every staged write becomes visible or none does: the whole batch
    runs inside one SQLite transaction that is rolled back on any failure
    (including an update or delete whose target does not exist).
    """

    def __init__(self) -> None:
        self._operations: list[BatchOperation] = []
        self._committed = False

    @property
    def operations(self) -> list[BatchOperation]:
        return list(self._operations)

    def _stage(self, operation: BatchOperation) -> "WriteBatch":
        if self._committed:
            msg = "Batch has already been committed"
            raise DatabaseError(msg)
        _validate_collection_name(operation.collection)
        self._operations.append(operation)
        return self

    def set(self, *, collection: str, record_id: str, data: dict[str, Any]) -> "WriteBatch":
        return self._stage(BatchOperation("set", collection, record_id, data))

    def update(self, *, collection: str, record_id: str, data: dict[str, Any]) -> "WriteBatch":
        return self._stage(BatchOperation("update", collection, record_id, data))

    def delete(self, *, collection: str, record_id: str) -> "WriteBatch":
        return self._stage(BatchOperation("delete", collection, record_id))

    async def commit(self) -> None:
        """Apply all staged writes in one transaction."""
        if self._committed:
            msg = "Batch has already been committed"
            raise DatabaseError(msg)

        async with _session() as conn:
            try:
                await conn.execute("BEGIN")
                for operation in self._operations:
                    if operation.kind == "set":
                        await _upsert_document(conn, operation.collection, operation.record_id, operation.data or {})
                    elif operation.kind == "update":
                        await _update_document(conn, operation.collection, operation.record_id, operation.data or {})
                    else:
                        await _delete_document(conn, operation.collection, operation.record_id)
                await conn.commit()
            except Exception as e:
                await conn.rollback()
                logger.error(
                    "batch_commit_failed",
                    extra={"operations": len(self._operations), "error": str(e)},
                )
                if isinstance(e, RecordNotFoundError):
                    raise
                msg = f"Failed to commit batch: {e}"
                raise DatabaseError(msg) from e

        self._committed = True
        logger.info("Committed batch", extra={"operations": len(self._operations)})


def batch() -> WriteBatch:
    """Start a new atomic write batch."""
    return WriteBatch()
