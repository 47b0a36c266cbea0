"""Shared task projection model."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskmate.domain.task import TaskPriority, TaskStatus, normalize_timestamp


class SharedTask(BaseModel):
    """A copy of a task made visible to other users or a group.

    The content fields are snapshotted when the task is shared; later edits to
    the original task are not propagated.
    """

    id: str = Field(..., description="Synthetic id: {task_id}_{user|group}_{recipient_id}_{time_ns}")
    original_task_id: str = Field(..., description="Source task (back-reference only)")
    name: str = Field(..., description="Task name")
    description: str = Field(default="")
    resolution_note: str = Field(default="")
    status: TaskStatus = Field(default=TaskStatus.IN_PROGRESS)
    priority: TaskPriority = Field(default=TaskPriority.NONE)
    due_date: datetime | None = Field(default=None)
    note: str = Field(default="")
    shared_by: str = Field(..., description="Owner of the original task")
    shared_with: list[str] = Field(default_factory=list, description="Recipient user IDs")
    is_group_task: bool = Field(default=False)
    group_id: str | None = Field(default=None, description="Present iff is_group_task")
    assigned_to: str | None = Field(default=None, description="Present iff shared with a single user")
    shared_by_name: str | None = Field(default=None, description="Resolved display name of shared_by")
    assigned_to_name: str | None = Field(default=None, description="Resolved display name of assigned_to")
    created: str | None = Field(default=None)
    updated: str | None = Field(default=None)

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)
