"""Task repository: CRUD of personal tasks plus the active/completed views."""

import logging
from datetime import UTC, datetime
from typing import Any, TypeVar

from pydantic import ValidationError

from taskmate.core import db_client
from taskmate.core.config import Constants, constants
from taskmate.core.errors import FetchFailure, NotFoundFailure, ValidationFailure, WriteFailure
from taskmate.core.logging import span
from taskmate.domain.create_models import TaskCreate
from taskmate.domain.shared_task import SharedTask
from taskmate.domain.task import PRIORITY_RANK, Task, TaskPriority, TaskStatus
from taskmate.domain.update_models import TaskContentUpdate, TaskUpdate


logger = logging.getLogger(__name__)

SORT_FIELDS = ("name", "priority", "due_date")

T = TypeVar("T", bound=Task | SharedTask)


def build_update_payload(fields: TaskContentUpdate) -> dict[str, Any]:
    """Turn a partial update into the store payload.

    Only explicitly set fields are applied and None never overwrites a value,
    so an omitted (or None) note keeps the stored note while ``note=""``
    clears it. The one exception is ``notification_policy``: an explicit None
    removes the policy.

    Raises:
        ValidationFailure: If an explicitly provided name is empty
    """
    payload: dict[str, Any] = {}
    for key, value in fields.model_dump(mode="json", exclude_unset=True).items():
        if value is None:
            if key == "notification_policy":
                payload[key] = None
            continue
        payload[key] = value

    if "name" in payload:
        payload["name"] = payload["name"].strip()
        if not payload["name"]:
            raise ValidationFailure("Task name cannot be empty")

    return payload


def _to_tasks(records: list[dict[str, Any]]) -> list[Task]:
    tasks = []
    for record in records:
        try:
            tasks.append(Task(**record))
        except ValidationError as e:
            logger.warning("Skipping malformed task %s: %s", record.get("id"), e)
    return tasks


async def _list(*, filter_query: str, sort: str = "+created") -> list[Task]:
    try:
        records = await db_client.list_records(
            collection=constants.TASKS,
            filter_query=filter_query,
            sort=sort,
            per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
        )
    except db_client.DatabaseError as e:
        logger.error("Failed to list tasks (%s): %s", filter_query, e)
        raise FetchFailure(f"Could not load tasks: {e}") from e
    return _to_tasks(records)


async def list_tasks(*, owner_id: str) -> list[Task]:
    """List every task owned by owner_id, completed ones included.

    Raises:
        FetchFailure: If the store cannot be read
    """
    with span("task_service.list_tasks"):
        return await _list(filter_query=f'owner_id = "{db_client.sanitize_param(owner_id)}"')


async def list_active_tasks(*, owner_id: str) -> list[Task]:
    """List the owner's tasks that are not completed."""
    with span("task_service.list_active_tasks"):
        owner = db_client.sanitize_param(owner_id)
        return await _list(filter_query=f'owner_id = "{owner}" && status != "{TaskStatus.COMPLETED}"')


async def list_completed_tasks(*, owner_id: str, descending: bool = True) -> list[Task]:
    """List the owner's completed tasks ordered by due date."""
    with span("task_service.list_completed_tasks"):
        owner = db_client.sanitize_param(owner_id)
        return await _list(
            filter_query=f'owner_id = "{owner}" && status = "{TaskStatus.COMPLETED}"',
            sort="-due_date" if descending else "+due_date",
        )


async def get_task(*, task_id: str) -> Task:
    """Get a task by ID.

    Raises:
        NotFoundFailure: If the task does not exist
        FetchFailure: If the store cannot be read
    """
    with span("task_service.get_task"):
        try:
            record = await db_client.get_record(collection=constants.TASKS, record_id=task_id)
        except KeyError as e:
            raise NotFoundFailure(f"Task not found: {task_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch task %s: %s", task_id, e)
            raise FetchFailure(f"Could not load task: {e}") from e
        return Task(**record)


async def create_task(*, owner_id: str, task: TaskCreate) -> str:
    """Create a task for owner_id and return its id.

    Unset fields default to status in_progress, priority none, due date now
    and an empty note.

    Raises:
        ValidationFailure: If the name is empty or whitespace-only
        WriteFailure: If the store rejects the write
    """
    with span("task_service.create_task"):
        name = task.name.strip()
        if not name:
            raise ValidationFailure("Task name cannot be empty")

        data = {
            "name": name,
            "description": task.description,
            "resolution_note": task.resolution_note,
            "status": task.status or TaskStatus.IN_PROGRESS,
            "priority": task.priority or TaskPriority.NONE,
            "due_date": (task.due_date or datetime.now(UTC)).isoformat(),
            "note": task.note if task.note is not None else "",
            "notification_policy": task.notification_policy.model_dump(mode="json")
            if task.notification_policy
            else None,
            "owner_id": owner_id,
            "is_shared": False,
            "shared_with": [],
            "shared_with_groups": [],
        }

        try:
            record = await db_client.create_record(collection=constants.TASKS, data=data)
        except db_client.DatabaseError as e:
            logger.error("Failed to create task for %s: %s", owner_id, e)
            raise WriteFailure(f"Could not save task: {e}") from e

        logger.info("Created task %s '%s' for %s", record["id"], name, owner_id)
        return record["id"]


async def update_task(*, task_id: str, fields: TaskUpdate) -> None:
    """Merge the provided fields over the stored task.

    Raises:
        ValidationFailure: If an explicitly provided name is empty
        NotFoundFailure: If the task does not exist
        WriteFailure: If the store rejects the write
    """
    with span("task_service.update_task"):
        payload = build_update_payload(fields)
        await get_task(task_id=task_id)

        if not payload:
            logger.debug("No fields to update for task %s", task_id)
            return

        try:
            await db_client.update_record(collection=constants.TASKS, record_id=task_id, data=payload)
        except KeyError as e:
            raise NotFoundFailure(f"Task not found: {task_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to update task %s: %s", task_id, e)
            raise WriteFailure(f"Could not update task: {e}") from e

        logger.info("Updated task %s fields=%s", task_id, sorted(payload))


async def delete_task(*, task_id: str) -> None:
    """Delete a task. Shared copies of it are left in place.

    Raises:
        NotFoundFailure: If the task does not exist
        WriteFailure: If the store rejects the delete
    """
    with span("task_service.delete_task"):
        try:
            await db_client.delete_record(collection=constants.TASKS, record_id=task_id)
        except KeyError as e:
            raise NotFoundFailure(f"Task not found: {task_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to delete task %s: %s", task_id, e)
            raise WriteFailure(f"Could not delete task: {e}") from e

        logger.info("Deleted task %s", task_id)


async def reopen_task(*, task_id: str) -> None:
    """Move a completed task back to in_progress."""
    with span("task_service.reopen_task"):
        await update_task(task_id=task_id, fields=TaskUpdate(status=TaskStatus.IN_PROGRESS))


def _matches(task: Task | SharedTask, needle: str) -> bool:
    if needle in task.name.lower():
        return True
    if task.due_date is None:
        return False
    return needle in task.due_date.strftime("%Y-%m-%d") or needle in task.due_date.strftime("%d/%m/%Y")


def _timestamp(value: datetime) -> float:
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    return value.timestamp()


def filter_and_sort_tasks(
    tasks: list[T],
    *,
    query: str = "",
    sort_by: str = "due_date",
    descending: bool = True,
) -> list[T]:
    """Search tasks by name or due date and sort them.

    ``priority`` sorts high first; ``descending`` reverses it. Tasks without a
    due date always sort last.

    Raises:
        ValidationFailure: If sort_by is not one of name, priority, due_date
    """
    if sort_by not in SORT_FIELDS:
        raise ValidationFailure(f"Cannot sort by {sort_by!r}; use one of {', '.join(SORT_FIELDS)}")

    needle = query.strip().lower()
    matched = [task for task in tasks if _matches(task, needle)] if needle else list(tasks)

    if sort_by == "name":
        return sorted(matched, key=lambda t: t.name.lower(), reverse=descending)
    if sort_by == "priority":
        return sorted(matched, key=lambda t: PRIORITY_RANK[t.priority], reverse=descending)

    dated = sorted(
        (t for t in matched if t.due_date is not None),
        key=lambda t: _timestamp(t.due_date),
        reverse=descending,
    )
    return dated + [t for t in matched if t.due_date is None]
