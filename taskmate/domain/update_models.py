"""Update models for store operations.

Only fields the caller actually set are applied (``model_dump(exclude_unset=True)``).
"""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, field_validator

from taskmate.domain.task import NotificationPolicy, TaskPriority, TaskStatus, normalize_timestamp


class TaskContentUpdate(BaseModel):
    """Content fields shared by personal and shared task updates."""

    name: str | None = None
    description: str | None = None
    resolution_note: str | None = None
    status: TaskStatus | None = None
    priority: TaskPriority | None = None
    due_date: datetime | None = None
    note: str | None = None

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)


class TaskUpdate(TaskContentUpdate):
    """Partial update of a personal task. An explicit None policy clears it."""

    notification_policy: NotificationPolicy | None = None


class SharedTaskUpdate(TaskContentUpdate):
    """Partial update of a shared task."""


class UserProfileUpdate(BaseModel):
    """Partial update of a user profile."""

    display_name: str | None = None
    first_name: str | None = None
    last_name: str | None = None
    birthdate: str | None = None
