"""Unit tests for sharing_service module."""

import pytest

from taskmate.core.errors import NotFoundFailure, PermissionDenied, ValidationFailure, WriteFailure
from taskmate.domain.create_models import GroupCreate, TaskCreate
from taskmate.domain.task import TaskPriority, TaskStatus
from taskmate.domain.update_models import SharedTaskUpdate
from taskmate.services import group_service, sharing_service, task_service


@pytest.fixture
async def task_id(seeded_users):
    return await task_service.create_task(owner_id="alice", task=TaskCreate(name="Pay rent", note="by the 5th"))


@pytest.fixture
async def group_id(seeded_users):
    group = await group_service.create_group(owner_id="alice", group=GroupCreate(name="Flat", members=["bob", "carol"]))
    return group.id


def _events(db, recipient_id: str, event_type: str) -> list[dict]:
    return [e for e in db.records("notifications") if e["recipient_id"] == recipient_id and e["type"] == event_type]


@pytest.mark.unit
class TestBuildSharedTaskId:
    def test_format_and_uniqueness(self):
        first = sharing_service.build_shared_task_id(task_id="t1", share_type="user", recipient_id="bob")
        second = sharing_service.build_shared_task_id(task_id="t1", share_type="user", recipient_id="bob")

        assert first.startswith("t1_user_bob_")
        assert first != second


@pytest.mark.unit
class TestShareWithUser:
    async def test_writes_projection_task_and_reverse_index(self, task_id, seeded_users):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        projection = await seeded_users.get_record("shared_tasks", shared_task_id)
        task = await task_service.get_task(task_id=task_id)
        bob = await seeded_users.get_record("users", "bob")

        assert projection["name"] == "Pay rent"
        assert projection["note"] == "by the 5th"
        assert projection["shared_by"] == "alice"
        assert projection["shared_with"] == ["bob"]
        assert projection["assigned_to"] == "bob"
        assert projection["is_group_task"] is False
        assert projection["original_task_id"] == task_id
        assert task.is_shared is True
        assert "bob" in task.shared_with
        assert shared_task_id in bob["shared_tasks"]

    async def test_notifies_recipient(self, task_id, seeded_users):
        await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        assert len(_events(seeded_users, "bob", "task_shared")) == 1
        assert _events(seeded_users, "alice", "task_shared") == []

    async def test_non_owner_is_denied(self, task_id, seeded_users):
        with pytest.raises(PermissionDenied):
            await sharing_service.share_with_user(task_id=task_id, owner_id="bob", recipient_id="carol")

        assert seeded_users.records("shared_tasks") == []

    async def test_missing_recipient(self, task_id, seeded_users):
        with pytest.raises(NotFoundFailure):
            await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="ghost")

    async def test_missing_task(self, seeded_users):
        with pytest.raises(NotFoundFailure):
            await sharing_service.share_with_user(task_id="missing", owner_id="alice", recipient_id="bob")

    async def test_cannot_share_with_self(self, task_id):
        with pytest.raises(ValidationFailure):
            await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="alice")

    async def test_repeated_shares_create_distinct_projections(self, task_id, seeded_users):
        first = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")
        second = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        bob = await seeded_users.get_record("users", "bob")
        task = await task_service.get_task(task_id=task_id)
        assert first != second
        assert len(seeded_users.records("shared_tasks")) == 2
        assert bob["shared_tasks"] == [first, second]
        assert task.shared_with == ["bob"]

    @pytest.mark.parametrize("writes_before_abort", [0, 1, 2])
    async def test_aborted_batch_leaves_no_partial_state(self, task_id, seeded_users, writes_before_abort):
        seeded_users.fail_next_batch_after(writes_before_abort)

        with pytest.raises(WriteFailure):
            await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        task = await task_service.get_task(task_id=task_id)
        bob = await seeded_users.get_record("users", "bob")
        assert seeded_users.records("shared_tasks") == []
        assert task.shared_with == []
        assert task.is_shared is False
        assert bob["shared_tasks"] == []
        assert _events(seeded_users, "bob", "task_shared") == []


@pytest.mark.unit
class TestShareWithGroup:
    async def test_snapshots_members_and_updates_every_index(self, task_id, group_id, seeded_users):
        shared_task_id = await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        projection = await seeded_users.get_record("shared_tasks", shared_task_id)
        group = await group_service.get_group(group_id=group_id)
        task = await task_service.get_task(task_id=task_id)

        assert shared_task_id.startswith(f"{task_id}_group_{group_id}_")
        assert sorted(projection["shared_with"]) == ["alice", "bob", "carol"]
        assert projection["is_group_task"] is True
        assert projection["group_id"] == group_id
        assert projection["assigned_to"] is None
        assert shared_task_id in group.tasks
        assert task.shared_with_groups == [group_id]
        for user_id in ("alice", "bob", "carol"):
            assert shared_task_id in (await seeded_users.get_record("users", user_id))["shared_tasks"]

    async def test_notifies_every_member_except_sharer(self, task_id, group_id, seeded_users):
        await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        assert len(_events(seeded_users, "bob", "task_shared")) == 1
        assert len(_events(seeded_users, "carol", "task_shared")) == 1
        assert _events(seeded_users, "alice", "task_shared") == []

    async def test_later_members_do_not_see_existing_share(self, task_id, group_id, seeded_users):
        await seeded_users.set_record("users", "dave", {"email": "dave@example.com", "shared_tasks": [], "groups": []})
        shared_task_id = await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        await group_service.add_member_to_group(group_id=group_id, user_id="dave")

        projection = await seeded_users.get_record("shared_tasks", shared_task_id)
        assert "dave" not in projection["shared_with"]
        assert await sharing_service.fetch_shared_tasks(user_id="dave") == []

    async def test_missing_group(self, task_id):
        with pytest.raises(NotFoundFailure):
            await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id="missing")


@pytest.mark.unit
class TestFetchSharedTasks:
    async def test_no_duplicates_when_both_predicates_match(self, task_id, seeded_users):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        shared = await sharing_service.fetch_shared_tasks(user_id="bob")

        assert [s.id for s in shared] == [shared_task_id]

    async def test_resolves_display_names(self, task_id):
        await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        (shared,) = await sharing_service.fetch_shared_tasks(user_id="bob")

        assert shared.shared_by_name == "Alice"
        assert shared.assigned_to_name == "Bob"

    async def test_lookup_failure_falls_back_to_raw_id(self, seeded_users):
        await seeded_users.set_record(
            "shared_tasks",
            "orphan",
            {
                "name": "Old chore",
                "original_task_id": "gone",
                "shared_by": "ghost",
                "shared_with": ["bob"],
                "assigned_to": "bob",
            },
        )

        (shared,) = await sharing_service.fetch_shared_tasks(user_id="bob")

        assert shared.shared_by_name == "ghost"
        assert shared.assigned_to_name == "Bob"

    async def test_group_share_visible_to_members(self, task_id, group_id):
        shared_task_id = await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        shared = await sharing_service.fetch_shared_tasks(user_id="carol")

        assert [s.id for s in shared] == [shared_task_id]
        assert shared[0].assigned_to_name is None


@pytest.mark.unit
class TestUpdateSharedTask:
    async def test_merge_semantics_match_tasks(self, task_id):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        await sharing_service.update_shared_task(
            shared_task_id=shared_task_id,
            fields=SharedTaskUpdate(description="split with bob"),
            actor_id="bob",
        )

        shared = await sharing_service.get_shared_task(shared_task_id=shared_task_id)
        assert shared.description == "split with bob"
        assert shared.note == "by the 5th"

    async def test_original_task_is_not_updated(self, task_id):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        await sharing_service.update_shared_task(
            shared_task_id=shared_task_id,
            fields=SharedTaskUpdate(name="Pay rent (shared)"),
            actor_id="bob",
        )

        assert (await task_service.get_task(task_id=task_id)).name == "Pay rent"

    async def test_completion_notifies_sharer(self, task_id, seeded_users):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        await sharing_service.update_shared_task(
            shared_task_id=shared_task_id,
            fields=SharedTaskUpdate(status=TaskStatus.COMPLETED),
            actor_id="bob",
        )

        assert len(_events(seeded_users, "alice", "task_completed")) == 1
        assert _events(seeded_users, "bob", "task_updated") == []

    async def test_priority_change_notifies_everyone_but_actor(self, task_id, group_id, seeded_users):
        shared_task_id = await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        await sharing_service.update_shared_task(
            shared_task_id=shared_task_id,
            fields=SharedTaskUpdate(priority=TaskPriority.HIGH),
            actor_id="bob",
        )

        assert len(_events(seeded_users, "alice", "task_updated")) == 1
        assert len(_events(seeded_users, "carol", "task_updated")) == 1
        assert _events(seeded_users, "bob", "task_updated") == []

    async def test_completion_with_priority_change_notifies_both(self, task_id, group_id, seeded_users):
        shared_task_id = await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        await sharing_service.update_shared_task(
            shared_task_id=shared_task_id,
            fields=SharedTaskUpdate(status=TaskStatus.COMPLETED, priority=TaskPriority.HIGH),
            actor_id="bob",
        )

        assert len(_events(seeded_users, "alice", "task_completed")) == 1
        (carol_event,) = _events(seeded_users, "carol", "task_updated")
        assert carol_event["message"] == "Pay rent was updated (priority)"
        assert _events(seeded_users, "bob", "task_updated") == []

    async def test_unchanged_status_does_not_notify(self, task_id, seeded_users):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        await sharing_service.update_shared_task(
            shared_task_id=shared_task_id,
            fields=SharedTaskUpdate(status=TaskStatus.IN_PROGRESS, note="done soon"),
            actor_id="alice",
        )

        assert _events(seeded_users, "bob", "task_updated") == []

    async def test_missing_shared_task(self, seeded_users):
        with pytest.raises(NotFoundFailure):
            await sharing_service.update_shared_task(
                shared_task_id="missing",
                fields=SharedTaskUpdate(note="x"),
                actor_id="bob",
            )


@pytest.mark.unit
class TestDeleteSharedTask:
    async def test_prunes_every_member_of_group_share(self, task_id, group_id, seeded_users):
        shared_task_id = await sharing_service.share_with_group(task_id=task_id, owner_id="alice", group_id=group_id)

        await sharing_service.delete_shared_task(shared_task_id=shared_task_id)

        assert seeded_users.records("shared_tasks") == []
        for user_id in ("alice", "bob", "carol"):
            assert shared_task_id not in (await seeded_users.get_record("users", user_id))["shared_tasks"]
        assert shared_task_id not in (await group_service.get_group(group_id=group_id)).tasks

    async def test_keeps_other_shares(self, task_id, seeded_users):
        keep = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")
        drop = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")

        await sharing_service.delete_shared_task(shared_task_id=drop)

        assert (await seeded_users.get_record("users", "bob"))["shared_tasks"] == [keep]

    async def test_aborted_delete_keeps_everything(self, task_id, seeded_users):
        shared_task_id = await sharing_service.share_with_user(task_id=task_id, owner_id="alice", recipient_id="bob")
        seeded_users.fail_next_batch_after(1)

        with pytest.raises(WriteFailure):
            await sharing_service.delete_shared_task(shared_task_id=shared_task_id)

        assert len(seeded_users.records("shared_tasks")) == 1
        assert (await seeded_users.get_record("users", "bob"))["shared_tasks"] == [shared_task_id]

    async def test_missing_shared_task(self, seeded_users):
        with pytest.raises(NotFoundFailure):
            await sharing_service.delete_shared_task(shared_task_id="missing")
