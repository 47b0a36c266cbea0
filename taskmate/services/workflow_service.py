"""Task workflows that keep tasks and their reminders in step."""

import logging

from pydantic import BaseModel, Field

from taskmate.core.errors import PermissionDenied, ValidationFailure
from taskmate.core.logging import span
from taskmate.domain.create_models import TaskCreate
from taskmate.domain.shared_task import SharedTask
from taskmate.domain.task import Task, TaskStatus
from taskmate.domain.update_models import TaskUpdate
from taskmate.services import reminder_service, sharing_service, task_service


logger = logging.getLogger(__name__)


class SaveResult(BaseModel):
    """Outcome of saving a task."""

    task_id: str = Field(..., description="ID of the created or updated task")
    reminder_id: str | None = Field(default=None, description="Platform alert handle, if one was scheduled")


async def _load_owned_task(*, task_id: str, owner_id: str) -> Task:
    task = await task_service.get_task(task_id=task_id)
    if task.owner_id != owner_id:
        logger.warning("User %s attempted to modify task %s owned by %s", owner_id, task_id, task.owner_id)
        raise PermissionDenied(f"Task {task_id} does not belong to {owner_id}")
    return task


async def save_task(
    *,
    owner_id: str,
    fields: TaskCreate | TaskUpdate,
    task_id: str | None = None,
) -> SaveResult:
    """Create or update a task, then reschedule its reminder.

    Raises:
        ValidationFailure: If the name is empty, or a new task is saved from a partial update
        NotFoundFailure: If task_id does not exist
        PermissionDenied: If owner_id does not own the task
    """
    with span("workflow_service.save_task"):
        if task_id is None:
            if not isinstance(fields, TaskCreate):
                raise ValidationFailure("A new task needs at least a name")
            task_id = await task_service.create_task(owner_id=owner_id, task=fields)
        else:
            await _load_owned_task(task_id=task_id, owner_id=owner_id)
            update = fields if isinstance(fields, TaskUpdate) else TaskUpdate(**fields.model_dump(exclude_unset=True))
            await task_service.update_task(task_id=task_id, fields=update)

        task = await task_service.get_task(task_id=task_id)
        if task.status == TaskStatus.COMPLETED:
            await reminder_service.cancel(task_id=task_id, user_id=owner_id)
            return SaveResult(task_id=task_id)

        reminder_id = await reminder_service.schedule(task=task, user_id=owner_id)
        return SaveResult(task_id=task_id, reminder_id=reminder_id)


async def complete_task(*, task_id: str, owner_id: str, resolution_note: str | None = None) -> None:
    """Mark a task completed and cancel its reminder."""
    with span("workflow_service.complete_task"):
        await _load_owned_task(task_id=task_id, owner_id=owner_id)
        await task_service.update_task(
            task_id=task_id,
            fields=TaskUpdate(status=TaskStatus.COMPLETED, resolution_note=resolution_note),
        )
        await reminder_service.cancel(task_id=task_id, user_id=owner_id)
        logger.info("Task %s completed by %s", task_id, owner_id)


async def reopen_task(*, task_id: str, owner_id: str) -> str | None:
    """Reopen a completed task and schedule its reminder again."""
    with span("workflow_service.reopen_task"):
        await _load_owned_task(task_id=task_id, owner_id=owner_id)
        await task_service.reopen_task(task_id=task_id)
        task = await task_service.get_task(task_id=task_id)
        return await reminder_service.schedule(task=task, user_id=owner_id)


async def remove_task(*, task_id: str, owner_id: str) -> None:
    """Delete a task and cancel its reminder."""
    with span("workflow_service.remove_task"):
        await _load_owned_task(task_id=task_id, owner_id=owner_id)
        await task_service.delete_task(task_id=task_id)
        await reminder_service.cancel(task_id=task_id, user_id=owner_id)
        logger.info("Task %s removed by %s", task_id, owner_id)


async def load_home_tasks(
    *,
    user_id: str,
    query: str = "",
    sort_by: str = "due_date",
    descending: bool = True,
) -> list[Task | SharedTask]:
    """Own active tasks plus active shared tasks, searched and sorted."""
    with span("workflow_service.load_home_tasks"):
        own = await task_service.list_active_tasks(owner_id=user_id)
        shared = [t for t in await sharing_service.fetch_shared_tasks(user_id=user_id) if t.status != TaskStatus.COMPLETED]
        return task_service.filter_and_sort_tasks(
            [*own, *shared],
            query=query,
            sort_by=sort_by,
            descending=descending,
        )
