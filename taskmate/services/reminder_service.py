"""Reminder scheduling: fire-time computation and one-shot alert bookkeeping.

Each task has at most one active ScheduledNotification, stored under the
record id ``{user_id}_{task_id}``. Scheduling always cancels the previous
alert first.
"""

import logging
from datetime import UTC, datetime, timedelta

from taskmate.core import db_client, platform_notifier
from taskmate.core.config import constants, settings
from taskmate.core.errors import FetchFailure, WriteFailure
from taskmate.core.logging import span
from taskmate.domain.notification import ScheduledNotification, ScheduledNotificationStatus
from taskmate.domain.task import NotificationKind, NotificationPolicy, Task
from taskmate.services import notification_service


logger = logging.getLogger(__name__)

# Users who already received the "reminders are disabled" advisory
_advised_users: set[str] = set()


def compute_fire_time(due_date: datetime, policy: NotificationPolicy | None = None) -> datetime:
    """Compute when to remind the user about a task.

    ``days_before`` moves the date back by ``days_before`` days, then the
    policy's time of day is applied with seconds zeroed. Without a policy the
    default reminder time (09:00) on the due date is used. The result keeps
    the due date's timezone.
    """
    if policy is None:
        return due_date.replace(
            hour=settings.default_reminder_hour,
            minute=settings.default_reminder_minute,
            second=0,
            microsecond=0,
        )

    day = due_date
    if policy.kind == NotificationKind.DAYS_BEFORE:
        day = due_date - timedelta(days=policy.days_before or 0)
    return day.replace(hour=policy.hour, minute=policy.minute, second=0, microsecond=0)


def _now_for(moment: datetime) -> datetime:
    """Current time comparable with moment (aware or naive)."""
    return datetime.now(moment.tzinfo) if moment.tzinfo else datetime.now()


def _record_id(*, user_id: str, task_id: str) -> str:
    return f"{user_id}_{task_id}"


async def _advise_permission_denied(user_id: str) -> None:
    if user_id in _advised_users:
        return
    _advised_users.add(user_id)
    await notification_service.send_permission_advisory(user_id=user_id)


async def get_scheduled_notification(*, task_id: str, user_id: str) -> ScheduledNotification | None:
    """Get the persisted reminder record for a task, or None."""
    with span("reminder_service.get_scheduled_notification"):
        try:
            record = await db_client.get_record(
                collection=constants.SCHEDULED_NOTIFICATIONS,
                record_id=_record_id(user_id=user_id, task_id=task_id),
            )
        except KeyError:
            return None
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch reminder for task %s: %s", task_id, e)
            raise FetchFailure(f"Could not load reminder: {e}") from e
        return ScheduledNotification(**record)


async def schedule(*, task: Task, user_id: str | None = None) -> str | None:
    """Schedule (or reschedule) the reminder for a task.

    Returns:
        The platform alert handle, or None when permission is denied, the task
        has no due date, or the fire time is not in the future

    Raises:
        WriteFailure: If the reminder record cannot be persisted
    """
    with span("reminder_service.schedule"):
        recipient = user_id or task.owner_id

        if platform_notifier.request_permission() != platform_notifier.PermissionStatus.GRANTED:
            logger.info("Notification permission denied; not scheduling task %s", task.id)
            await _advise_permission_denied(recipient)
            return None

        await cancel(task_id=task.id, user_id=recipient)

        if task.due_date is None:
            return None

        fire_time = compute_fire_time(task.due_date, task.notification_policy)
        if fire_time <= _now_for(fire_time):
            logger.info("Fire time %s for task %s is in the past; not scheduling", fire_time.isoformat(), task.id)
            return None

        handle = platform_notifier.schedule_one_shot(
            fire_time=fire_time,
            payload={"task_id": task.id, "user_id": recipient, "task_name": task.name},
        )

        try:
            await db_client.set_record(
                collection=constants.SCHEDULED_NOTIFICATIONS,
                record_id=_record_id(user_id=recipient, task_id=task.id),
                data={
                    "user_id": recipient,
                    "task_id": task.id,
                    "task_name": task.name,
                    "scheduled_for": fire_time.isoformat(),
                    "platform_notification_id": handle,
                    "status": ScheduledNotificationStatus.SCHEDULED,
                    "created_at": datetime.now(UTC).isoformat(),
                    "canceled_at": None,
                },
            )
        except db_client.DatabaseError as e:
            logger.error("Failed to persist reminder for task %s: %s", task.id, e)
            platform_notifier.cancel(handle)
            raise WriteFailure(f"Could not save reminder: {e}") from e

        logger.info("Scheduled reminder %s for task %s at %s", handle, task.id, fire_time.isoformat())
        return handle


async def cancel(*, task_id: str, user_id: str) -> None:
    """Cancel a task's reminder.

    The persisted record is marked canceled when active. Pending platform
    alerts correlated to the task are canceled as well, whether or not a
    record exists.

    Raises:
        FetchFailure: If the reminder record cannot be read (alerts are still canceled)
        WriteFailure: If the record cannot be marked canceled
    """
    with span("reminder_service.cancel"):
        lookup_error: FetchFailure | None = None
        try:
            current = await get_scheduled_notification(task_id=task_id, user_id=user_id)
        except FetchFailure as e:
            lookup_error = e
            current = None

        if current is not None and current.is_active:
            platform_notifier.cancel(current.platform_notification_id)
            try:
                await db_client.update_record(
                    collection=constants.SCHEDULED_NOTIFICATIONS,
                    record_id=current.id,
                    data={
                        "status": ScheduledNotificationStatus.CANCELED,
                        "canceled_at": datetime.now(UTC).isoformat(),
                    },
                )
            except (KeyError, db_client.DatabaseError) as e:
                logger.error("Failed to mark reminder %s canceled: %s", current.id, e)
                raise WriteFailure(f"Could not cancel reminder: {e}") from e
            logger.info("Canceled reminder %s for task %s", current.platform_notification_id, task_id)

        for alert in platform_notifier.list_scheduled():
            if alert["payload"].get("task_id") == task_id:
                logger.warning("Canceling orphaned alert %s for task %s", alert["handle"], task_id)
                platform_notifier.cancel(alert["handle"])

        if lookup_error is not None:
            raise lookup_error
