"""Sharing coordinator: shared-task projections and their membership indexes.

A shared task is a copy of a task taken at share time. Each share writes the
projection, the source task's sharing fields and the recipients' reverse
index (``users.shared_tasks``, plus ``groups.tasks`` for group shares) in one
atomic batch; deleting a share prunes the same indexes in one batch.
"""

import logging
import time
from datetime import UTC, datetime
from typing import Any

from pydantic import ValidationError

from taskmate.core import db_client
from taskmate.core.config import Constants, constants
from taskmate.core.errors import (
    FetchFailure,
    LookupDegraded,
    NotFoundFailure,
    PermissionDenied,
    ValidationFailure,
    WriteFailure,
)
from taskmate.core.logging import span
from taskmate.domain.shared_task import SharedTask
from taskmate.domain.task import Task, TaskStatus
from taskmate.domain.update_models import SharedTaskUpdate
from taskmate.services import group_service, notification_service, task_service, user_service


logger = logging.getLogger(__name__)

_last_time_ns = 0


def _unique_time_ns() -> int:
    """Strictly increasing nanosecond clock, even on coarse platform clocks."""
    global _last_time_ns  # noqa: PLW0603
    _last_time_ns = max(time.time_ns(), _last_time_ns + 1)
    return _last_time_ns


def build_shared_task_id(*, task_id: str, share_type: str, recipient_id: str) -> str:
    """Build the synthetic shared-task id ``{task_id}_{type}_{recipient}_{time_ns}``.

    Repeated shares of one task to one recipient get distinct ids.
    """
    return f"{task_id}_{share_type}_{recipient_id}_{_unique_time_ns()}"


def _snapshot(task: Task) -> dict[str, Any]:
    """Copy the task's content fields for a projection."""
    return task.model_dump(
        mode="json",
        include={"name", "description", "resolution_note", "status", "priority", "due_date", "note"},
    )


async def _load_owned_task(*, task_id: str, owner_id: str) -> Task:
    task = await task_service.get_task(task_id=task_id)
    if task.owner_id != owner_id:
        logger.warning("User %s attempted to share task %s owned by %s", owner_id, task_id, task.owner_id)
        raise PermissionDenied(f"Task {task_id} does not belong to {owner_id}")
    return task


async def _commit(batch: db_client.WriteBatch, *, action: str) -> None:
    try:
        await batch.commit()
    except KeyError as e:
        raise NotFoundFailure(f"A referenced record no longer exists ({action})") from e
    except db_client.DatabaseError as e:
        logger.error("Failed to %s: %s", action, e)
        raise WriteFailure(f"Could not {action}: {e}") from e


async def share_with_user(*, task_id: str, owner_id: str, recipient_id: str) -> str:
    """Share a task with a single user.

    Args:
        task_id: Task to share
        owner_id: Acting user; must own the task
        recipient_id: User receiving the copy

    Returns:
        The new shared task id

    Raises:
        NotFoundFailure: If the task or the recipient does not exist
        PermissionDenied: If owner_id does not own the task
        ValidationFailure: If the owner shares with themselves
        WriteFailure: If the store aborts the batch (nothing is written)
    """
    with span("sharing_service.share_with_user"):
        task = await _load_owned_task(task_id=task_id, owner_id=owner_id)

        if recipient_id == owner_id:
            raise ValidationFailure("You cannot share a task with yourself")

        recipient = await user_service.get_user_profile(user_id=recipient_id)
        if recipient is None:
            raise NotFoundFailure(f"User not found: {recipient_id}")

        shared_task_id = build_shared_task_id(
            task_id=task_id,
            share_type=constants.SHARE_MARKER_USER,
            recipient_id=recipient_id,
        )
        projection = {
            **_snapshot(task),
            "original_task_id": task_id,
            "shared_by": owner_id,
            "shared_with": [recipient_id],
            "is_group_task": False,
            "group_id": None,
            "assigned_to": recipient_id,
            "created_at": datetime.now(UTC).isoformat(),
        }

        batch = db_client.batch()
        batch.set(collection=constants.SHARED_TASKS, record_id=shared_task_id, data=projection)
        batch.update(
            collection=constants.TASKS,
            record_id=task_id,
            data={"shared_with": db_client.array_union(recipient_id), "is_shared": True},
        )
        batch.update(
            collection=constants.USERS,
            record_id=recipient_id,
            data={"shared_tasks": db_client.array_union(shared_task_id)},
        )
        await _commit(batch, action="share task")

        logger.info("Task %s shared by %s with user %s as %s", task_id, owner_id, recipient_id, shared_task_id)

        await notification_service.send_task_shared(
            recipient_id=recipient_id,
            shared_task_id=shared_task_id,
            actor_id=owner_id,
            task_name=task.name,
        )
        return shared_task_id


async def share_with_group(*, task_id: str, owner_id: str, group_id: str) -> str:
    """Share a task with every current member of a group.

    ``shared_with`` is a snapshot of the member list at share time; members
    added later do not see the task.

    Raises:
        NotFoundFailure: If the task, the group or a member profile does not exist
        PermissionDenied: If owner_id does not own the task
        WriteFailure: If the store aborts the batch (nothing is written)
    """
    with span("sharing_service.share_with_group"):
        task = await _load_owned_task(task_id=task_id, owner_id=owner_id)
        group = await group_service.get_group(group_id=group_id)
        members = list(group.members)

        shared_task_id = build_shared_task_id(
            task_id=task_id,
            share_type=constants.SHARE_MARKER_GROUP,
            recipient_id=group_id,
        )
        projection = {
            **_snapshot(task),
            "original_task_id": task_id,
            "shared_by": owner_id,
            "shared_with": members,
            "is_group_task": True,
            "group_id": group_id,
            "assigned_to": None,
            "created_at": datetime.now(UTC).isoformat(),
        }

        batch = db_client.batch()
        batch.set(collection=constants.SHARED_TASKS, record_id=shared_task_id, data=projection)
        batch.update(
            collection=constants.TASKS,
            record_id=task_id,
            data={"shared_with_groups": db_client.array_union(group_id), "is_shared": True},
        )
        for member_id in members:
            batch.update(
                collection=constants.USERS,
                record_id=member_id,
                data={"shared_tasks": db_client.array_union(shared_task_id)},
            )
        batch.update(
            collection=constants.GROUPS,
            record_id=group_id,
            data={"tasks": db_client.array_union(shared_task_id)},
        )
        await _commit(batch, action="share task with group")

        logger.info(
            "Task %s shared by %s with group %s (%d members) as %s",
            task_id,
            owner_id,
            group_id,
            len(members),
            shared_task_id,
        )

        for member_id in members:
            if member_id == owner_id:
                continue
            await notification_service.send_task_shared(
                recipient_id=member_id,
                shared_task_id=shared_task_id,
                actor_id=owner_id,
                task_name=task.name,
            )
        return shared_task_id


async def _resolve_name(user_id: str | None, cache: dict[str, str]) -> str | None:
    """Best-effort display name; falls back to the raw id."""
    if user_id is None:
        return None
    if user_id not in cache:
        try:
            cache[user_id] = await user_service.get_display_name(user_id=user_id)
        except LookupDegraded as e:
            logger.warning("Display name lookup degraded for %s: %s", user_id, e)
            cache[user_id] = user_id
    return cache[user_id]


async def fetch_shared_tasks(*, user_id: str) -> list[SharedTask]:
    """List shared tasks visible to a user, each id at most once.

    A task is visible when the user is in ``shared_with`` or is its
    ``assigned_to``. Sharer and assignee ids are resolved to display names.

    Raises:
        FetchFailure: If the store cannot be read
    """
    with span("sharing_service.fetch_shared_tasks"):
        uid = db_client.sanitize_param(user_id)
        try:
            by_membership = await db_client.list_records(
                collection=constants.SHARED_TASKS,
                filter_query=f'shared_with ?= "{uid}"',
                per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
            )
            by_assignment = await db_client.list_records(
                collection=constants.SHARED_TASKS,
                filter_query=f'assigned_to = "{uid}"',
                per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
            )
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch shared tasks for %s: %s", user_id, e)
            raise FetchFailure(f"Could not load shared tasks: {e}") from e

        records: dict[str, dict[str, Any]] = {}
        for record in [*by_membership, *by_assignment]:
            records.setdefault(record["id"], record)

        names: dict[str, str] = {}
        shared_tasks = []
        for record in records.values():
            try:
                shared_task = SharedTask(**record)
            except ValidationError as e:
                logger.warning("Skipping malformed shared task %s: %s", record.get("id"), e)
                continue
            shared_task.shared_by_name = await _resolve_name(shared_task.shared_by, names)
            shared_task.assigned_to_name = await _resolve_name(shared_task.assigned_to, names)
            shared_tasks.append(shared_task)

        logger.debug("Fetched %d shared tasks for %s", len(shared_tasks), user_id)
        return shared_tasks


async def get_shared_task(*, shared_task_id: str) -> SharedTask:
    """Get a shared task by ID.

    Raises:
        NotFoundFailure: If the shared task does not exist
        FetchFailure: If the store cannot be read
    """
    with span("sharing_service.get_shared_task"):
        try:
            record = await db_client.get_record(collection=constants.SHARED_TASKS, record_id=shared_task_id)
        except KeyError as e:
            raise NotFoundFailure(f"Shared task not found: {shared_task_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch shared task %s: %s", shared_task_id, e)
            raise FetchFailure(f"Could not load shared task: {e}") from e
        return SharedTask(**record)


async def update_shared_task(*, shared_task_id: str, fields: SharedTaskUpdate, actor_id: str) -> None:
    """Merge-update a shared task and notify the affected users.

    Completing the task notifies the sharer. Any other status change, and any
    priority change, notifies every recipient except the actor.

    Raises:
        ValidationFailure: If an explicitly provided name is empty
        NotFoundFailure: If the shared task does not exist
        WriteFailure: If the store rejects the write
    """
    with span("sharing_service.update_shared_task"):
        payload = task_service.build_update_payload(fields)
        current = await get_shared_task(shared_task_id=shared_task_id)

        if not payload:
            logger.debug("No fields to update for shared task %s", shared_task_id)
            return

        try:
            await db_client.update_record(
                collection=constants.SHARED_TASKS,
                record_id=shared_task_id,
                data=payload,
            )
        except KeyError as e:
            raise NotFoundFailure(f"Shared task not found: {shared_task_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to update shared task %s: %s", shared_task_id, e)
            raise WriteFailure(f"Could not update shared task: {e}") from e

        logger.info("Shared task %s updated by %s fields=%s", shared_task_id, actor_id, sorted(payload))

        status_changed = "status" in payload and payload["status"] != current.status
        completed = status_changed and payload["status"] == TaskStatus.COMPLETED
        priority_changed = "priority" in payload and payload["priority"] != current.priority
        task_name = payload.get("name", current.name)

        if completed:
            await notification_service.send_task_completed(
                recipient_id=current.shared_by,
                shared_task_id=shared_task_id,
                actor_id=actor_id,
                task_name=task_name,
            )

        # Recipients still hear about a priority change made while completing.
        changed = []
        if status_changed and not completed:
            changed.append("status")
        if priority_changed:
            changed.append("priority")
        if changed:
            await notification_service.send_task_updated(
                recipient_ids=current.shared_with,
                shared_task_id=shared_task_id,
                actor_id=actor_id,
                task_name=task_name,
                changed_fields=changed,
            )


async def delete_shared_task(*, shared_task_id: str) -> None:
    """Delete a shared task and prune it from every reverse index in one batch.

    Recipients whose profile no longer exists are skipped.

    Raises:
        NotFoundFailure: If the shared task does not exist
        WriteFailure: If the store aborts the batch (nothing is removed)
    """
    with span("sharing_service.delete_shared_task"):
        current = await get_shared_task(shared_task_id=shared_task_id)

        batch = db_client.batch()
        batch.delete(collection=constants.SHARED_TASKS, record_id=shared_task_id)

        for member_id in dict.fromkeys(current.shared_with):
            if await user_service.get_user_profile(user_id=member_id) is None:
                logger.warning("Skipping missing user %s while deleting %s", member_id, shared_task_id)
                continue
            batch.update(
                collection=constants.USERS,
                record_id=member_id,
                data={"shared_tasks": db_client.array_remove(shared_task_id)},
            )

        if current.is_group_task and current.group_id:
            batch.update(
                collection=constants.GROUPS,
                record_id=current.group_id,
                data={"tasks": db_client.array_remove(shared_task_id)},
            )

        await _commit(batch, action="delete shared task")

        logger.info(
            "Deleted shared task %s and pruned %d recipients",
            shared_task_id,
            len(current.shared_with),
        )
