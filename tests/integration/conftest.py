"""Pytest configuration and fixtures for integration tests."""

import pytest

from taskmate.domain.create_models import UserProfileCreate
from taskmate.services import user_service


@pytest.fixture
async def users(sqlite_store, fake_notifier) -> list[str]:
    """Registers alice, bob and carol in a fresh SQLite store."""
    user_ids = ["alice", "bob", "carol"]
    for user_id in user_ids:
        await user_service.create_user_profile(
            user_id=user_id,
            profile=UserProfileCreate(email=f"{user_id}@example.com", display_name=user_id.capitalize()),
        )
    return user_ids
