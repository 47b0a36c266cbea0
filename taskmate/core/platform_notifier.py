"""In-process platform notification service backed by APScheduler.

Each reminder is a one-shot ``DateTrigger`` job whose kwargs carry the
correlation payload (``task_id``, ``user_id``, ``task_name``). The job id is
the opaque handle used for cancellation.
"""

import logging
import uuid
from datetime import datetime
from enum import StrEnum
from typing import Any

from apscheduler.jobstores.base import JobLookupError
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.date import DateTrigger

from taskmate.core.config import settings


logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = AsyncIOScheduler()


class PermissionStatus(StrEnum):
    """Outcome of a notification permission request."""

    GRANTED = "granted"
    DENIED = "denied"


def request_permission() -> PermissionStatus:
    """Report whether reminders may be scheduled."""
    return PermissionStatus.GRANTED if settings.notifications_enabled else PermissionStatus.DENIED


async def _deliver_alert(payload: dict[str, Any]) -> None:
    """Fire a reminder: log it and record it in the user's notification feed."""
    from taskmate.services import notification_service  # noqa: PLC0415 - services import this module

    logger.info("Reminder fired for task %s (user %s)", payload.get("task_id"), payload.get("user_id"))
    await notification_service.send_task_reminder(
        user_id=payload["user_id"],
        task_id=payload["task_id"],
        task_name=payload.get("task_name", ""),
    )


def schedule_one_shot(*, fire_time: datetime, payload: dict[str, Any]) -> str:
    """Register a one-shot alert and return its handle."""
    handle = uuid.uuid4().hex
    scheduler.add_job(
        _deliver_alert,
        trigger=DateTrigger(run_date=fire_time),
        kwargs={"payload": payload},
        id=handle,
        name=f"Reminder for task {payload.get('task_id')}",
        misfire_grace_time=None,
    )
    logger.info("Scheduled one-shot alert %s at %s", handle, fire_time.isoformat())
    return handle


def cancel(handle: str) -> None:
    """Cancel an alert by handle. Unknown or already-fired handles are ignored."""
    try:
        scheduler.remove_job(handle)
        logger.info("Canceled alert %s", handle)
    except JobLookupError:
        logger.debug("Alert %s not found (already fired or canceled)", handle)


def list_scheduled() -> list[dict[str, Any]]:
    """List pending alerts as ``{handle, payload}``."""
    return [{"handle": job.id, "payload": job.kwargs.get("payload", {})} for job in scheduler.get_jobs()]


def start() -> None:
    """Start the scheduler.

    This should be called during FastAPI app startup.
    """
    logger.info("Starting platform notifier")
    scheduler.start()
    logger.info("Platform notifier started successfully")


def stop() -> None:
    """Stop the scheduler.

    This should be called during FastAPI app shutdown.
    """
    logger.info("Stopping platform notifier")
    if scheduler.running:
        scheduler.shutdown(wait=False)
    logger.info("Platform notifier stopped")
