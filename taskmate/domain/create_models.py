"""Pydantic models for creating records in the store."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskmate.domain.task import NotificationPolicy, TaskPriority, TaskStatus, normalize_timestamp


class TaskCreate(BaseModel):
    """Payload for creating a task. Unset fields receive defaults on save."""

    name: str = Field(..., description="Task name (must be non-empty)")
    description: str = Field(default="", description="Detailed task description")
    resolution_note: str = Field(default="", description="How the task was resolved")
    status: TaskStatus | None = Field(default=None, description="Defaults to in_progress")
    priority: TaskPriority | None = Field(default=None, description="Defaults to none")
    due_date: datetime | None = Field(default=None, description="Defaults to now")
    note: str | None = Field(default=None, description="Defaults to empty string")
    notification_policy: NotificationPolicy | None = Field(default=None, description="Reminder policy")

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)


class UserProfileCreate(BaseModel):
    """Payload for creating a user profile."""

    email: str = Field(..., description="Email address")
    display_name: str | None = Field(default=None, description="Defaults to the email local part")
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    birthdate: str | None = Field(default=None, description="Birthdate (ISO date)")


class GroupCreate(BaseModel):
    """Payload for creating a group."""

    name: str = Field(..., description="Group name")
    description: str = Field(default="")
    members: list[str] = Field(default_factory=list, description="Initial member user IDs (owner is added)")
