"""Pytest configuration and fixtures for unit tests."""

import pytest

from tests.unit.mocks import InMemoryDBClient


@pytest.fixture
def in_memory_db():
    """Provides a fresh InMemoryDBClient for each test."""
    return InMemoryDBClient()


@pytest.fixture
def patched_db(monkeypatch, in_memory_db):
    """Patches taskmate.core.db_client functions to use InMemoryDBClient."""
    monkeypatch.setattr("taskmate.core.db_client.create_record", in_memory_db.create_record)
    monkeypatch.setattr("taskmate.core.db_client.set_record", in_memory_db.set_record)
    monkeypatch.setattr("taskmate.core.db_client.get_record", in_memory_db.get_record)
    monkeypatch.setattr("taskmate.core.db_client.update_record", in_memory_db.update_record)
    monkeypatch.setattr("taskmate.core.db_client.delete_record", in_memory_db.delete_record)
    monkeypatch.setattr("taskmate.core.db_client.list_records", in_memory_db.list_records)
    monkeypatch.setattr("taskmate.core.db_client.get_first_record", in_memory_db.get_first_record)
    monkeypatch.setattr("taskmate.core.db_client.batch", in_memory_db.batch)

    return in_memory_db


@pytest.fixture
async def seeded_users(patched_db):
    """Creates three user profiles: alice, bob and carol."""
    for user_id in ("alice", "bob", "carol"):
        await patched_db.set_record(
            "users",
            user_id,
            {
                "email": f"{user_id}@example.com",
                "display_name": user_id.capitalize(),
                "friends": [],
                "pending_friends": [],
                "shared_tasks": [],
                "groups": [],
            },
        )
    return patched_db
