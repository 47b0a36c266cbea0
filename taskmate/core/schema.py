"""SQLite document store schema management (code-first approach)."""

import logging

from taskmate.core import db_client
from taskmate.core.config import constants


logger = logging.getLogger(__name__)


# Central list of all collections in the schema
COLLECTIONS = [
    constants.TASKS,
    constants.SHARED_TASKS,
    constants.USERS,
    constants.GROUPS,
    constants.NOTIFICATIONS,
    constants.SCHEDULED_NOTIFICATIONS,
]

# Expression indexes on the JSON fields the services filter by
INDEXES = {
    constants.TASKS: ["owner_id", "status"],
    constants.SHARED_TASKS: ["assigned_to", "original_task_id"],
    constants.NOTIFICATIONS: ["recipient_id"],
    constants.SCHEDULED_NOTIFICATIONS: ["task_id", "user_id"],
}


def _table_ddl(collection: str) -> str:
    return (
        f"CREATE TABLE IF NOT EXISTS {collection} ("
        "id TEXT PRIMARY KEY, "
        "created TEXT NOT NULL, "
        "updated TEXT NOT NULL, "
        "data TEXT NOT NULL DEFAULT '{}'"
        ")"
    )


def _index_ddl(collection: str, field: str) -> str:
    return f"CREATE INDEX IF NOT EXISTS idx_{collection}_{field} ON {collection} (json_extract(data, '$.{field}'))"


async def init_db(*, db_path: str | None = None) -> None:
    """Create every collection table and its indexes if they do not exist yet."""
    conn = await db_client.get_connection(db_path=db_path)

    for collection in COLLECTIONS:
        await conn.execute(_table_ddl(collection))
        for field in INDEXES.get(collection, []):
            await conn.execute(_index_ddl(collection, field))

    await conn.commit()
    logger.info("Database schema initialized", extra={"collections": COLLECTIONS})
