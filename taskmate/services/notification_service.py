"""Notification event log: append-only feed entries consumed by the UI badge.

Emission is best-effort. A failed write is logged and swallowed so that it
never fails the operation that triggered it.
"""

import logging
from datetime import UTC, datetime

from pydantic import ValidationError

from taskmate.core import db_client
from taskmate.core.config import Constants, constants
from taskmate.core.errors import FetchFailure, NotFoundFailure, PermissionDenied, WriteFailure
from taskmate.core.logging import span
from taskmate.domain.notification import EventType, NotificationEvent


logger = logging.getLogger(__name__)


async def _emit(
    *,
    recipient_id: str,
    event_type: EventType,
    message: str,
    task_id: str | None = None,
    actor_id: str | None = None,
) -> str | None:
    """Append one event to the log, returning its id or None on failure."""
    try:
        record = await db_client.create_record(
            collection=constants.NOTIFICATIONS,
            data={
                "recipient_id": recipient_id,
                "type": event_type,
                "task_id": task_id,
                "actor_id": actor_id,
                "message": message,
                "read": False,
                "created_at": datetime.now(UTC).isoformat(),
            },
        )
    except Exception as e:
        logger.error("Failed to record %s event for %s: %s", event_type, recipient_id, e)
        return None

    logger.info("Recorded %s event for %s (task=%s)", event_type, recipient_id, task_id)
    return record["id"]


async def send_task_shared(
    *,
    recipient_id: str,
    shared_task_id: str,
    actor_id: str,
    task_name: str,
) -> str | None:
    """Tell a user that a task has been shared with them."""
    with span("notification_service.send_task_shared"):
        return await _emit(
            recipient_id=recipient_id,
            event_type=EventType.TASK_SHARED,
            task_id=shared_task_id,
            actor_id=actor_id,
            message=f"A task was shared with you: {task_name}",
        )


async def send_task_completed(
    *,
    recipient_id: str,
    shared_task_id: str,
    actor_id: str,
    task_name: str,
) -> str | None:
    """Tell the sharer that a shared task was completed."""
    with span("notification_service.send_task_completed"):
        return await _emit(
            recipient_id=recipient_id,
            event_type=EventType.TASK_COMPLETED,
            task_id=shared_task_id,
            actor_id=actor_id,
            message=f"A shared task was completed: {task_name}",
        )


async def send_task_updated(
    *,
    recipient_ids: list[str],
    shared_task_id: str,
    actor_id: str,
    task_name: str,
    changed_fields: list[str],
) -> list[str]:
    """Tell every recipient except the actor that a shared task changed.

    Returns:
        IDs of the events that were recorded
    """
    with span("notification_service.send_task_updated"):
        changes = ", ".join(changed_fields)
        event_ids = []
        for recipient_id in recipient_ids:
            if recipient_id == actor_id:
                continue
            event_id = await _emit(
                recipient_id=recipient_id,
                event_type=EventType.TASK_UPDATED,
                task_id=shared_task_id,
                actor_id=actor_id,
                message=f"{task_name} was updated ({changes})",
            )
            if event_id:
                event_ids.append(event_id)
        return event_ids


async def send_permission_advisory(*, user_id: str) -> str | None:
    """Tell a user that reminders are disabled because permission was denied."""
    with span("notification_service.send_permission_advisory"):
        return await _emit(
            recipient_id=user_id,
            event_type=EventType.PERMISSION_ADVISORY,
            message="Reminders are turned off. Enable notifications to be reminded about your tasks.",
        )


async def send_task_reminder(*, user_id: str, task_id: str, task_name: str) -> str | None:
    """Record that a task reminder fired."""
    with span("notification_service.send_task_reminder"):
        return await _emit(
            recipient_id=user_id,
            event_type=EventType.TASK_REMINDER,
            task_id=task_id,
            message=f"Reminder: {task_name}",
        )


async def list_notifications(*, user_id: str, unread_only: bool = False) -> list[NotificationEvent]:
    """List a user's notification events, newest first.

    Raises:
        FetchFailure: If the store cannot be read
    """
    with span("notification_service.list_notifications"):
        filter_query = f'recipient_id = "{db_client.sanitize_param(user_id)}"'
        if unread_only:
            filter_query += ' && read = "false"'

        try:
            records = await db_client.list_records(
                collection=constants.NOTIFICATIONS,
                filter_query=filter_query,
                sort="-created",
                per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
            )
        except db_client.DatabaseError as e:
            logger.error("Failed to list notifications for %s: %s", user_id, e)
            raise FetchFailure(f"Could not load notifications: {e}") from e

        events = []
        for record in records:
            try:
                events.append(NotificationEvent(**record))
            except ValidationError as e:
                logger.warning("Skipping malformed notification %s: %s", record.get("id"), e)
        return events


async def mark_read(*, notification_id: str, user_id: str) -> None:
    """Mark one of the user's notification events as read.

    Raises:
        NotFoundFailure: If the event does not exist
        PermissionDenied: If the event is addressed to another user
        WriteFailure: If the store rejects the write
    """
    with span("notification_service.mark_read"):
        try:
            record = await db_client.get_record(collection=constants.NOTIFICATIONS, record_id=notification_id)
        except KeyError as e:
            raise NotFoundFailure(f"Notification not found: {notification_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch notification %s: %s", notification_id, e)
            raise FetchFailure(f"Could not load notification: {e}") from e

        if record.get("recipient_id") != user_id:
            raise PermissionDenied(f"Notification {notification_id} is not addressed to {user_id}")

        try:
            await db_client.update_record(
                collection=constants.NOTIFICATIONS,
                record_id=notification_id,
                data={"read": True},
            )
        except KeyError as e:
            raise NotFoundFailure(f"Notification not found: {notification_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to mark notification %s read: %s", notification_id, e)
            raise WriteFailure(f"Could not update notification: {e}") from e
