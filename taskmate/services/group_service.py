"""Group service: creating groups and maintaining group membership."""

import logging
from datetime import UTC, datetime

from taskmate.core import db_client
from taskmate.core.config import Constants, constants
from taskmate.core.errors import FetchFailure, NotFoundFailure, ValidationFailure, WriteFailure
from taskmate.core.logging import span
from taskmate.domain.create_models import GroupCreate
from taskmate.domain.user import Group


logger = logging.getLogger(__name__)


async def _commit(batch: db_client.WriteBatch, *, action: str) -> None:
    try:
        await batch.commit()
    except KeyError as e:
        raise NotFoundFailure(f"User not found while trying to {action}") from e
    except db_client.DatabaseError as e:
        logger.error("Failed to %s: %s", action, e)
        raise WriteFailure(f"Could not {action}: {e}") from e


async def create_group(*, owner_id: str, group: GroupCreate) -> Group:
    """Create a group owned by owner_id.

    The owner is always a member. Every member's profile lists the new group
    in ``groups``, written in the same batch as the group itself.

    Raises:
        ValidationFailure: If the group name is empty
        NotFoundFailure: If any member profile does not exist
        WriteFailure: If the store rejects the batch
    """
    with span("group_service.create_group"):
        name = group.name.strip()
        if not name:
            raise ValidationFailure("Group name cannot be empty")

        members = list(dict.fromkeys([owner_id, *group.members]))
        group_id = db_client.generate_record_id()
        data = {
            "name": name,
            "description": group.description,
            "owner": owner_id,
            "members": members,
            "tasks": [],
            "created_at": datetime.now(UTC).isoformat(),
        }

        batch = db_client.batch()
        batch.set(collection=constants.GROUPS, record_id=group_id, data=data)
        for member_id in members:
            batch.update(
                collection=constants.USERS,
                record_id=member_id,
                data={"groups": db_client.array_union(group_id)},
            )
        await _commit(batch, action="create group")

        logger.info("Created group %s '%s' with %d members", group_id, name, len(members))
        return Group(id=group_id, **data)


async def get_group(*, group_id: str) -> Group:
    """Get a group by ID.

    Raises:
        NotFoundFailure: If the group does not exist
        FetchFailure: If the store cannot be read
    """
    with span("group_service.get_group"):
        try:
            record = await db_client.get_record(collection=constants.GROUPS, record_id=group_id)
        except KeyError as e:
            raise NotFoundFailure(f"Group not found: {group_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch group %s: %s", group_id, e)
            raise FetchFailure(f"Could not load group: {e}") from e
        return Group(**record)


async def get_user_groups(*, user_id: str) -> list[Group]:
    """List the groups a user is a member of."""
    with span("group_service.get_user_groups"):
        try:
            records = await db_client.list_records(
                collection=constants.GROUPS,
                filter_query=f'members ?= "{db_client.sanitize_param(user_id)}"',
                per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
            )
        except db_client.DatabaseError as e:
            logger.error("Failed to list groups for %s: %s", user_id, e)
            raise FetchFailure(f"Could not load groups: {e}") from e
        return [Group(**record) for record in records]


async def add_member_to_group(*, group_id: str, user_id: str) -> None:
    """Add a user to a group, updating both sides in one batch.

    Membership changes do not touch tasks already shared with the group.
    """
    with span("group_service.add_member_to_group"):
        batch = db_client.batch()
        batch.update(
            collection=constants.GROUPS,
            record_id=group_id,
            data={"members": db_client.array_union(user_id)},
        )
        batch.update(
            collection=constants.USERS,
            record_id=user_id,
            data={"groups": db_client.array_union(group_id)},
        )
        await _commit(batch, action="add group member")

        logger.info("Added user %s to group %s", user_id, group_id)
