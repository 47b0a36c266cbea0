"""Task domain models and enums."""

import re
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

from dateutil.parser import isoparse
from pydantic import BaseModel, Field, field_validator, model_validator


TIME_OF_DAY_PATTERN = r"^([01]\d|2[0-3]):([0-5]\d)$"


class TaskStatus(StrEnum):
    """Task lifecycle state."""

    WAITING = "waiting"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class TaskPriority(StrEnum):
    """Task priority."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


# Lower rank sorts first
PRIORITY_RANK = {
    TaskPriority.HIGH: 1,
    TaskPriority.MEDIUM: 2,
    TaskPriority.LOW: 3,
    TaskPriority.NONE: 4,
}


class NotificationKind(StrEnum):
    """How a reminder's date is derived from the due date."""

    SAME_DAY = "same_day"
    DAYS_BEFORE = "days_before"


def normalize_timestamp(value: Any) -> datetime | None:
    """Normalize a stored timestamp to a datetime.

    Accepts datetimes, ISO-8601 strings, epoch milliseconds and
    ``{"seconds": ...}`` mappings written by hosted document stores.
    """
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, bool):
        msg = f"Invalid timestamp: {value!r}"
        raise ValueError(msg)
    if isinstance(value, int | float):
        return datetime.fromtimestamp(value / 1000, tz=UTC)
    if isinstance(value, dict) and "seconds" in value:
        seconds = value["seconds"] + value.get("nanoseconds", 0) / 1_000_000_000
        return datetime.fromtimestamp(seconds, tz=UTC)
    if isinstance(value, str):
        return isoparse(value)
    msg = f"Invalid timestamp: {value!r}"
    raise ValueError(msg)


class NotificationPolicy(BaseModel):
    """Declarative rule for computing when to remind the user about a task."""

    kind: NotificationKind = Field(default=NotificationKind.SAME_DAY, description="same_day or days_before")
    time_of_day: str = Field(default="09:00", description="Reminder time as HH:MM (24h)")
    days_before: int | None = Field(default=None, ge=0, description="Days before the due date (days_before only)")

    @field_validator("time_of_day")
    @classmethod
    def validate_time_of_day(cls, v: str) -> str:
        """Validate time_of_day is HH:MM."""
        if not re.match(TIME_OF_DAY_PATTERN, v):
            msg = "time_of_day must be in HH:MM format (e.g., 09:30)"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_days_before(self) -> "NotificationPolicy":
        if self.kind == NotificationKind.DAYS_BEFORE and self.days_before is None:
            msg = "days_before is required when kind is days_before"
            raise ValueError(msg)
        return self

    @property
    def hour(self) -> int:
        return int(self.time_of_day.split(":")[0])

    @property
    def minute(self) -> int:
        return int(self.time_of_day.split(":")[1])


class Task(BaseModel):
    """Task data transfer object."""

    id: str = Field(..., description="Unique task ID from the store")
    name: str = Field(..., description="Task name")
    description: str = Field(default="", description="Detailed task description")
    resolution_note: str = Field(default="", description="How the task was resolved (meaningful once completed)")
    status: TaskStatus = Field(default=TaskStatus.IN_PROGRESS, description="Current lifecycle state")
    priority: TaskPriority = Field(default=TaskPriority.NONE, description="Task priority")
    due_date: datetime | None = Field(default=None, description="Due date")
    note: str = Field(default="", description="Free-text note, editable independently")
    notification_policy: NotificationPolicy | None = Field(default=None, description="Reminder policy")
    owner_id: str = Field(..., description="Owner user ID")
    is_shared: bool = Field(default=False, description="Whether the task has been shared")
    shared_with: list[str] = Field(default_factory=list, description="User IDs the task is shared with")
    shared_with_groups: list[str] = Field(default_factory=list, description="Group IDs the task is shared with")
    created: str | None = Field(default=None, description="Creation timestamp (ISO format)")
    updated: str | None = Field(default=None, description="Last update timestamp (ISO format)")

    @field_validator("due_date", mode="before")
    @classmethod
    def normalize_due_date(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)

    @property
    def is_active(self) -> bool:
        return self.status != TaskStatus.COMPLETED
