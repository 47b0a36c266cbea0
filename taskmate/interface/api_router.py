"""HTTP API for an authenticated user's tasks, shares, groups and notifications."""

import logging

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel

from taskmate.core.errors import NotFoundFailure, PermissionDenied
from taskmate.core.identity import CurrentUser, get_current_user
from taskmate.core.logging import log_with_user_context
from taskmate.domain.create_models import GroupCreate, TaskCreate, UserProfileCreate
from taskmate.domain.notification import NotificationEvent
from taskmate.domain.shared_task import SharedTask
from taskmate.domain.task import Task
from taskmate.domain.update_models import SharedTaskUpdate, TaskUpdate, UserProfileUpdate
from taskmate.domain.user import Group, UserProfile
from taskmate.services import (
    group_service,
    notification_service,
    sharing_service,
    task_service,
    user_service,
    workflow_service,
)
from taskmate.services.workflow_service import SaveResult


logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["api"])


class CompleteRequest(BaseModel):
    """Body for completing a task."""

    resolution_note: str | None = None


class ShareResponse(BaseModel):
    """Result of sharing a task."""

    shared_task_id: str


class ReminderResponse(BaseModel):
    """Result of rescheduling a task's reminder."""

    reminder_id: str | None


async def _require_participant(*, shared_task_id: str, user_id: str) -> SharedTask:
    shared_task = await sharing_service.get_shared_task(shared_task_id=shared_task_id)
    if user_id != shared_task.shared_by and user_id not in shared_task.shared_with and user_id != shared_task.assigned_to:
        raise PermissionDenied(f"User {user_id} cannot access shared task {shared_task_id}")
    return shared_task


# Profiles and friends


@router.post("/users/me", status_code=status.HTTP_201_CREATED)
async def create_profile(
    profile: UserProfileCreate,
    current_user: CurrentUser = Depends(get_current_user),
) -> UserProfile:
    """Create the current user's profile."""
    return await user_service.create_user_profile(user_id=current_user.id, profile=profile)


@router.get("/users/me")
async def get_profile(current_user: CurrentUser = Depends(get_current_user)) -> UserProfile:
    """Get the current user's profile."""
    profile = await user_service.get_user_profile(user_id=current_user.id)
    if profile is None:
        raise NotFoundFailure("Profile not found")
    return profile


@router.patch("/users/me", status_code=status.HTTP_204_NO_CONTENT)
async def update_profile(
    update: UserProfileUpdate,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    """Update the current user's profile."""
    await user_service.update_user_profile(user_id=current_user.id, update=update)


@router.get("/users/search")
async def search_users(
    q: str = Query(..., min_length=1),
    current_user: CurrentUser = Depends(get_current_user),
) -> list[UserProfile]:
    """Search other users by email or display name."""
    return await user_service.search_users(query=q, exclude_user_id=current_user.id)


@router.post("/friends/{friend_id}/request", status_code=status.HTTP_204_NO_CONTENT)
async def send_friend_request(friend_id: str, current_user: CurrentUser = Depends(get_current_user)) -> None:
    await user_service.send_friend_request(from_user_id=current_user.id, to_user_id=friend_id)


@router.post("/friends/{friend_id}/accept", status_code=status.HTTP_204_NO_CONTENT)
async def accept_friend_request(friend_id: str, current_user: CurrentUser = Depends(get_current_user)) -> None:
    await user_service.accept_friend_request(user_id=current_user.id, friend_id=friend_id)


@router.post("/friends/{friend_id}/reject", status_code=status.HTTP_204_NO_CONTENT)
async def reject_friend_request(friend_id: str, current_user: CurrentUser = Depends(get_current_user)) -> None:
    await user_service.reject_friend_request(user_id=current_user.id, friend_id=friend_id)


@router.delete("/friends/{friend_id}", status_code=status.HTTP_204_NO_CONTENT)
async def remove_friend(friend_id: str, current_user: CurrentUser = Depends(get_current_user)) -> None:
    await user_service.remove_friend(user_id=current_user.id, friend_id=friend_id)


# Groups


@router.post("/groups", status_code=status.HTTP_201_CREATED)
async def create_group(group: GroupCreate, current_user: CurrentUser = Depends(get_current_user)) -> Group:
    return await group_service.create_group(owner_id=current_user.id, group=group)


@router.get("/groups")
async def list_groups(current_user: CurrentUser = Depends(get_current_user)) -> list[Group]:
    return await group_service.get_user_groups(user_id=current_user.id)


@router.post("/groups/{group_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
async def add_group_member(
    group_id: str,
    user_id: str,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    """Add a member to a group the current user belongs to."""
    group = await group_service.get_group(group_id=group_id)
    if current_user.id not in group.members:
        raise PermissionDenied(f"User {current_user.id} is not a member of group {group_id}")
    await group_service.add_member_to_group(group_id=group_id, user_id=user_id)


# Tasks


@router.get("/tasks")
async def list_home_tasks(
    q: str = "",
    sort_by: str = "due_date",
    descending: bool = True,
    current_user: CurrentUser = Depends(get_current_user),
) -> list[Task | SharedTask]:
    """Active own and shared tasks, searched and sorted."""
    return await workflow_service.load_home_tasks(
        user_id=current_user.id,
        query=q,
        sort_by=sort_by,
        descending=descending,
    )


@router.get("/tasks/completed")
async def list_completed_tasks(
    descending: bool = True,
    current_user: CurrentUser = Depends(get_current_user),
) -> list[Task]:
    return await task_service.list_completed_tasks(owner_id=current_user.id, descending=descending)


@router.post("/tasks", status_code=status.HTTP_201_CREATED)
async def create_task(task: TaskCreate, current_user: CurrentUser = Depends(get_current_user)) -> SaveResult:
    return await workflow_service.save_task(owner_id=current_user.id, fields=task)


@router.get("/tasks/{task_id}")
async def get_task(task_id: str, current_user: CurrentUser = Depends(get_current_user)) -> Task:
    task = await task_service.get_task(task_id=task_id)
    if task.owner_id != current_user.id:
        raise PermissionDenied(f"Task {task_id} does not belong to {current_user.id}")
    return task


@router.patch("/tasks/{task_id}")
async def update_task(
    task_id: str,
    fields: TaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
) -> SaveResult:
    return await workflow_service.save_task(owner_id=current_user.id, task_id=task_id, fields=fields)


@router.delete("/tasks/{task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_task(task_id: str, current_user: CurrentUser = Depends(get_current_user)) -> None:
    await workflow_service.remove_task(task_id=task_id, owner_id=current_user.id)


@router.post("/tasks/{task_id}/complete", status_code=status.HTTP_204_NO_CONTENT)
async def complete_task(
    task_id: str,
    body: CompleteRequest | None = None,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    await workflow_service.complete_task(
        task_id=task_id,
        owner_id=current_user.id,
        resolution_note=body.resolution_note if body else None,
    )


@router.post("/tasks/{task_id}/reopen")
async def reopen_task(task_id: str, current_user: CurrentUser = Depends(get_current_user)) -> ReminderResponse:
    reminder_id = await workflow_service.reopen_task(task_id=task_id, owner_id=current_user.id)
    return ReminderResponse(reminder_id=reminder_id)


@router.post("/tasks/{task_id}/share/user/{recipient_id}", status_code=status.HTTP_201_CREATED)
async def share_with_user(
    task_id: str,
    recipient_id: str,
    current_user: CurrentUser = Depends(get_current_user),
) -> ShareResponse:
    shared_task_id = await sharing_service.share_with_user(
        task_id=task_id,
        owner_id=current_user.id,
        recipient_id=recipient_id,
    )
    log_with_user_context(logger, "info", "task_shared_with_user", user_id=current_user.id, task_id=task_id)
    return ShareResponse(shared_task_id=shared_task_id)


@router.post("/tasks/{task_id}/share/group/{group_id}", status_code=status.HTTP_201_CREATED)
async def share_with_group(
    task_id: str,
    group_id: str,
    current_user: CurrentUser = Depends(get_current_user),
) -> ShareResponse:
    shared_task_id = await sharing_service.share_with_group(
        task_id=task_id,
        owner_id=current_user.id,
        group_id=group_id,
    )
    log_with_user_context(logger, "info", "task_shared_with_group", user_id=current_user.id, group_id=group_id)
    return ShareResponse(shared_task_id=shared_task_id)


# Shared tasks


@router.get("/shared-tasks")
async def list_shared_tasks(current_user: CurrentUser = Depends(get_current_user)) -> list[SharedTask]:
    return await sharing_service.fetch_shared_tasks(user_id=current_user.id)


@router.patch("/shared-tasks/{shared_task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def update_shared_task(
    shared_task_id: str,
    fields: SharedTaskUpdate,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    await _require_participant(shared_task_id=shared_task_id, user_id=current_user.id)
    await sharing_service.update_shared_task(
        shared_task_id=shared_task_id,
        fields=fields,
        actor_id=current_user.id,
    )


@router.delete("/shared-tasks/{shared_task_id}", status_code=status.HTTP_204_NO_CONTENT)
async def delete_shared_task(shared_task_id: str, current_user: CurrentUser = Depends(get_current_user)) -> None:
    await _require_participant(shared_task_id=shared_task_id, user_id=current_user.id)
    await sharing_service.delete_shared_task(shared_task_id=shared_task_id)
    log_with_user_context(logger, "info", "shared_task_deleted", user_id=current_user.id, shared_task_id=shared_task_id)


# Notifications


@router.get("/notifications")
async def list_notifications(
    unread_only: bool = False,
    current_user: CurrentUser = Depends(get_current_user),
) -> list[NotificationEvent]:
    return await notification_service.list_notifications(user_id=current_user.id, unread_only=unread_only)


@router.post("/notifications/{notification_id}/read", status_code=status.HTTP_204_NO_CONTENT)
async def mark_notification_read(
    notification_id: str,
    current_user: CurrentUser = Depends(get_current_user),
) -> None:
    await notification_service.mark_read(notification_id=notification_id, user_id=current_user.id)
