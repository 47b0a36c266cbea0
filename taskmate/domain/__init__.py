"""Domain models and DTOs."""

from taskmate.domain.create_models import GroupCreate, TaskCreate, UserProfileCreate
from taskmate.domain.notification import (
    EventType,
    NotificationEvent,
    ScheduledNotification,
    ScheduledNotificationStatus,
)
from taskmate.domain.shared_task import SharedTask
from taskmate.domain.task import NotificationKind, NotificationPolicy, Task, TaskPriority, TaskStatus
from taskmate.domain.update_models import SharedTaskUpdate, TaskContentUpdate, TaskUpdate, UserProfileUpdate
from taskmate.domain.user import Group, UserProfile


__all__ = [
    "EventType",
    "Group",
    "GroupCreate",
    "NotificationEvent",
    "NotificationKind",
    "NotificationPolicy",
    "ScheduledNotification",
    "ScheduledNotificationStatus",
    "SharedTask",
    "SharedTaskUpdate",
    "Task",
    "TaskContentUpdate",
    "TaskCreate",
    "TaskPriority",
    "TaskStatus",
    "TaskUpdate",
    "UserProfile",
    "UserProfileCreate",
    "UserProfileUpdate",
]
