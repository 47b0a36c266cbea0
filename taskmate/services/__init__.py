from taskmate.services import (
    group_service,
    notification_service,
    reminder_service,
    sharing_service,
    task_service,
    user_service,
    workflow_service,
)


__all__ = [
    "group_service",
    "notification_service",
    "reminder_service",
    "sharing_service",
    "task_service",
    "user_service",
    "workflow_service",
]
