"""Pytest configuration and shared fixtures."""

import logging
from collections.abc import AsyncIterator
from datetime import datetime
from typing import Any

import pytest

from taskmate.core import db_client
from taskmate.core.config import settings
from taskmate.core.platform_notifier import PermissionStatus
from taskmate.services import reminder_service


logger = logging.getLogger(__name__)


@pytest.fixture
async def sqlite_store(tmp_path, monkeypatch) -> AsyncIterator[str]:
    """Points the document store at a fresh SQLite file with the full schema."""
    db_path = str(tmp_path / "taskmate.db")
    monkeypatch.setattr(settings, "sqlite_db_path", db_path)
    await db_client.init_db()
    logger.debug("Test store initialized at %s", db_path)
    yield db_path
    await db_client.close_connection()


class FakePlatformNotifier:
    """Records one-shot alerts instead of scheduling real jobs."""

    def __init__(self):
        self.permission = PermissionStatus.GRANTED
        self.alerts: dict[str, dict[str, Any]] = {}
        self.canceled: list[str] = []
        self._counter = 0

    def request_permission(self) -> PermissionStatus:
        return self.permission

    def schedule_one_shot(self, *, fire_time: datetime, payload: dict[str, Any]) -> str:
        self._counter += 1
        handle = f"alert-{self._counter}"
        self.alerts[handle] = {"fire_time": fire_time, "payload": payload}
        return handle

    def cancel(self, handle: str) -> None:
        self.canceled.append(handle)
        self.alerts.pop(handle, None)

    def list_scheduled(self) -> list[dict[str, Any]]:
        return [{"handle": handle, "payload": alert["payload"]} for handle, alert in self.alerts.items()]


@pytest.fixture
def fake_notifier(monkeypatch):
    """Replaces the platform notifier with an in-memory fake."""
    fake = FakePlatformNotifier()
    monkeypatch.setattr("taskmate.core.platform_notifier.request_permission", fake.request_permission)
    monkeypatch.setattr("taskmate.core.platform_notifier.schedule_one_shot", fake.schedule_one_shot)
    monkeypatch.setattr("taskmate.core.platform_notifier.cancel", fake.cancel)
    monkeypatch.setattr("taskmate.core.platform_notifier.list_scheduled", fake.list_scheduled)
    return fake


@pytest.fixture(autouse=True)
def reset_permission_advisories():
    """Forget which users were told that reminders are disabled."""
    reminder_service._advised_users.clear()
    yield
    reminder_service._advised_users.clear()
