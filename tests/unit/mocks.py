"""Pure Python in-memory document store for unit testing."""

import copy
from datetime import UTC, datetime
from typing import Any

from taskmate.core.db_client import (
    RESERVED_FIELDS,
    DatabaseError,
    RecordNotFoundError,
    resolve_field_transforms,
)


Collections = dict[str, dict[str, dict[str, Any]]]


def _now() -> str:
    return datetime.now(UTC).isoformat().replace("+00:00", "Z")


class InMemoryWriteBatch:
    """Write batch with the same all-or-nothing semantics as the SQLite store.

    Staged writes are applied to a copy of the collections, which replaces the
    live data only when every write succeeded.
    """

    def __init__(self, db: "InMemoryDBClient"):
        self._db = db
        self._operations: list[tuple[str, str, str, dict[str, Any] | None]] = []
        self._committed = False

    @property
    def operations(self) -> list[tuple[str, str, str, dict[str, Any] | None]]:
        return list(self._operations)

    def set(self, *, collection: str, record_id: str, data: dict[str, Any]) -> "InMemoryWriteBatch":
        self._operations.append(("set", collection, record_id, data))
        return self

    def update(self, *, collection: str, record_id: str, data: dict[str, Any]) -> "InMemoryWriteBatch":
        self._operations.append(("update", collection, record_id, data))
        return self

    def delete(self, *, collection: str, record_id: str) -> "InMemoryWriteBatch":
        self._operations.append(("delete", collection, record_id, None))
        return self

    async def commit(self) -> None:
        if self._committed:
            raise DatabaseError("Batch has already been committed")

        staged = copy.deepcopy(self._db._collections)
        fail_after = self._db._fail_batch_after
        self._db._fail_batch_after = None

        for applied, (kind, collection, record_id, data) in enumerate(self._operations):
            if fail_after is not None and applied >= fail_after:
                raise DatabaseError(f"Injected batch failure after {applied} writes")

            records = staged.setdefault(collection, {})
            if kind == "set":
                existing = records.get(record_id)
                created = existing["created"] if existing else _now()
                records[record_id] = {"id": record_id, "created": created, "updated": _now(), **copy.deepcopy(data)}
            elif kind == "update":
                if record_id not in records:
                    raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
                self._db._apply_update(records[record_id], data or {})
            else:
                if record_id not in records:
                    raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
                del records[record_id]

        self._db._collections = staged
        self._db.committed_batches += 1
        self._committed = True


class InMemoryDBClient:
    """Pure Python in-memory document store for unit testing.

    Mirrors the db_client module interface: CRUD, upsert, filtered listing
    (``=``, ``!=``, ``~``, ``?=``), array transforms and atomic batches.
    """

    def __init__(self):
        """Initialize empty in-memory database."""
        self._collections: Collections = {}
        self._id_counter = 1000
        self._fail_batch_after: int | None = None
        self.committed_batches = 0

    def fail_next_batch_after(self, writes: int) -> None:
        """Make the next batch commit abort after `writes` staged writes were applied."""
        self._fail_batch_after = writes

    def records(self, collection: str) -> list[dict[str, Any]]:
        """Snapshot of every record in a collection (test helper)."""
        return [copy.deepcopy(r) for r in self._collections.get(collection, {}).values()]

    def _apply_update(self, record: dict[str, Any], data: dict[str, Any]) -> None:
        current = {k: v for k, v in record.items() if k not in RESERVED_FIELDS}
        record.update(copy.deepcopy(resolve_field_transforms(current, data)))
        record["updated"] = _now()

    def _require(self, collection: str, record_id: str) -> dict[str, Any]:
        if not isinstance(record_id, str):
            raise DatabaseError(f"Record ID must be a string, got {type(record_id)}")
        records = self._collections.get(collection, {})
        if record_id not in records:
            raise RecordNotFoundError(f"Record not found in {collection}: {record_id}")
        return records[record_id]

    async def create_record(
        self, collection: str, data: dict[str, Any], record_id: str | None = None
    ) -> dict[str, Any]:
        """Create a new record, generating an id unless one is given."""
        if not isinstance(data, dict):
            raise DatabaseError(f"Data must be a dictionary, got {type(data)}")

        records = self._collections.setdefault(collection, {})
        if record_id is None:
            record_id = str(self._id_counter)
            self._id_counter += 1
        elif record_id in records:
            raise DatabaseError(f"Failed to create record in {collection}: duplicate id {record_id}")

        now = _now()
        records[record_id] = {"id": record_id, "created": now, "updated": now, **copy.deepcopy(data)}
        return copy.deepcopy(records[record_id])

    async def set_record(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Create or replace a record."""
        records = self._collections.setdefault(collection, {})
        existing = records.get(record_id)
        created = existing["created"] if existing else _now()
        records[record_id] = {"id": record_id, "created": created, "updated": _now(), **copy.deepcopy(data)}
        return copy.deepcopy(records[record_id])

    async def get_record(self, collection: str, record_id: str) -> dict[str, Any]:
        """Get a record by ID, raising RecordNotFoundError if absent."""
        return copy.deepcopy(self._require(collection, record_id))

    async def update_record(self, collection: str, record_id: str, data: dict[str, Any]) -> dict[str, Any]:
        """Merge data into an existing record."""
        if not data:
            raise ValueError("Empty update payload")
        record = self._require(collection, record_id)
        self._apply_update(record, data)
        return copy.deepcopy(record)

    async def delete_record(self, collection: str, record_id: str) -> None:
        """Delete a record, raising RecordNotFoundError if absent."""
        self._require(collection, record_id)
        del self._collections[collection][record_id]

    async def list_records(
        self,
        collection: str,
        page: int = 1,
        per_page: int = 50,
        filter_query: str = "",
        sort: str = "",
    ) -> list[dict[str, Any]]:
        """List records with optional filtering, sorting and pagination."""
        records = list(self._collections.get(collection, {}).values())

        if filter_query:
            records = [r for r in records if self._parse_filter(filter_query, r)]

        if sort:
            records = self._apply_sort(records, sort)

        start_idx = (page - 1) * per_page
        return [copy.deepcopy(r) for r in records[start_idx : start_idx + per_page]]

    async def get_first_record(self, collection: str, filter_query: str) -> dict[str, Any] | None:
        """Get the first matching record or None."""
        records = await self.list_records(collection, filter_query=filter_query)
        return records[0] if records else None

    def batch(self) -> InMemoryWriteBatch:
        """Start a new atomic write batch."""
        return InMemoryWriteBatch(self)

    def _parse_filter(self, filter_str: str, record: dict[str, Any]) -> bool:
        """Evaluate a filter expression against a record.

        Supports ``=``, ``!=``, ``~`` (case-insensitive contains), ``?=``
        (array contains) and ``&&``.
        """
        if "&&" in filter_str:
            return all(self._parse_filter(cond.strip(), record) for cond in filter_str.split("&&"))

        for op in ("?=", "!=", "~", "="):
            if op in filter_str:
                field, raw = (part.strip() for part in filter_str.split(op, 1))
                value = raw.strip("'\"")
                break
        else:
            raise DatabaseError(f"Invalid filter syntax (no operator found): {filter_str}")

        actual = record.get(field)
        if op == "?=":
            return value in (actual or [])
        if op == "~":
            return value.lower() in str(actual or "").lower()
        if value.lower() in ("true", "false"):
            matches = actual == (value.lower() == "true")
        else:
            matches = str(actual if actual is not None else "") == value
        return matches if op == "=" else not matches

    def _apply_sort(self, records: list[dict], sort: str) -> list[dict]:
        """Sort records by ``+field`` / ``-field``; missing values sort first."""
        reverse = sort.startswith("-")
        field = sort.lstrip("+-")
        return sorted(records, key=lambda r: str(r.get(field) or ""), reverse=reverse)
