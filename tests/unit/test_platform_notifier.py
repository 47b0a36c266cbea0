"""Tests for the APScheduler-backed platform notifier and its health endpoint."""

from datetime import UTC, datetime, timedelta

import pytest
from fastapi.testclient import TestClient

from taskmate.core import platform_notifier
from taskmate.core.config import settings
from taskmate.main import app


@pytest.fixture
def clean_scheduler():
    """Remove any jobs left on the global scheduler."""
    platform_notifier.scheduler.remove_all_jobs()
    yield platform_notifier.scheduler
    platform_notifier.scheduler.remove_all_jobs()


@pytest.mark.unit
class TestPlatformNotifier:
    def test_permission_follows_settings(self, monkeypatch):
        monkeypatch.setattr(settings, "notifications_enabled", False)
        assert platform_notifier.request_permission() == platform_notifier.PermissionStatus.DENIED

        monkeypatch.setattr(settings, "notifications_enabled", True)
        assert platform_notifier.request_permission() == platform_notifier.PermissionStatus.GRANTED

    def test_schedule_list_and_cancel(self, clean_scheduler):
        fire_time = datetime.now(UTC) + timedelta(days=1)
        handle = platform_notifier.schedule_one_shot(fire_time=fire_time, payload={"task_id": "t1"})

        assert platform_notifier.list_scheduled() == [{"handle": handle, "payload": {"task_id": "t1"}}]

        platform_notifier.cancel(handle)
        platform_notifier.cancel(handle)

        assert platform_notifier.list_scheduled() == []

    def test_stop_when_not_running_is_noop(self, clean_scheduler):
        platform_notifier.stop()

        assert not clean_scheduler.running

    async def test_deliver_alert_records_reminder_event(self, patched_db):
        await platform_notifier._deliver_alert({"task_id": "t1", "user_id": "alice", "task_name": "Pay rent"})

        (event,) = patched_db.records("notifications")
        assert event["type"] == "task_reminder"
        assert event["recipient_id"] == "alice"


@pytest.mark.unit
def test_health_endpoint_returns_healthy() -> None:
    """Test that health endpoint returns healthy status."""
    response = TestClient(app).get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


@pytest.mark.unit
def test_reminders_health_when_stopped() -> None:
    """Test reminders health reports 503 while the scheduler is not running."""
    response = TestClient(app).get("/health/reminders")

    assert response.status_code == 503
    assert response.json()["status"] == "stopped"
