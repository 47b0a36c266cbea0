"""Reminder records and notification events."""

from datetime import datetime
from enum import StrEnum
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskmate.domain.task import normalize_timestamp


class ScheduledNotificationStatus(StrEnum):
    """Status of a persisted reminder."""

    SCHEDULED = "scheduled"
    CANCELED = "canceled"


class ScheduledNotification(BaseModel):
    """Record of a pending one-shot alert tied to one task."""

    id: str = Field(..., description="Record id: {user_id}_{task_id}")
    user_id: str = Field(..., description="User who receives the alert")
    task_id: str = Field(..., description="Correlated task")
    task_name: str = Field(default="")
    scheduled_for: datetime = Field(..., description="Fire time")
    platform_notification_id: str = Field(..., description="Opaque handle used for cancellation")
    status: ScheduledNotificationStatus = Field(default=ScheduledNotificationStatus.SCHEDULED)
    created_at: datetime | None = Field(default=None)
    canceled_at: datetime | None = Field(default=None)

    @field_validator("scheduled_for", "created_at", "canceled_at", mode="before")
    @classmethod
    def normalize_timestamps(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)

    @property
    def is_active(self) -> bool:
        return self.status == ScheduledNotificationStatus.SCHEDULED


class EventType(StrEnum):
    """Kinds of entries in the notification event log."""

    TASK_SHARED = "task_shared"
    TASK_COMPLETED = "task_completed"
    TASK_UPDATED = "task_updated"
    PERMISSION_ADVISORY = "permission_advisory"
    TASK_REMINDER = "task_reminder"


class NotificationEvent(BaseModel):
    """An entry in a user's notification feed."""

    id: str = Field(..., description="Unique event ID from the store")
    recipient_id: str = Field(..., description="User the event is addressed to")
    type: EventType = Field(..., description="Event kind")
    task_id: str | None = Field(default=None, description="Task or shared task the event refers to")
    actor_id: str | None = Field(default=None, description="User who caused the event")
    message: str = Field(default="")
    read: bool = Field(default=False)
    created_at: datetime | None = Field(default=None)

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_created_at(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)
