"""User profile service: profiles, friends and display-name lookup."""

import logging
from datetime import UTC, datetime

from taskmate.core import db_client
from taskmate.core.config import Constants, constants
from taskmate.core.errors import (
    FetchFailure,
    LookupDegraded,
    NotFoundFailure,
    ValidationFailure,
    WriteFailure,
)
from taskmate.core.logging import span
from taskmate.domain.create_models import UserProfileCreate
from taskmate.domain.update_models import UserProfileUpdate
from taskmate.domain.user import UserProfile


logger = logging.getLogger(__name__)


def _now() -> str:
    return datetime.now(UTC).isoformat()


async def create_user_profile(*, user_id: str, profile: UserProfileCreate) -> UserProfile:
    """Create (or overwrite) the profile for an authenticated user.

    Args:
        user_id: Identity provider user ID, used as the profile record id
        profile: Profile fields

    Returns:
        The stored profile

    Raises:
        ValidationFailure: If the email is not usable
        WriteFailure: If the store rejects the write
    """
    with span("user_service.create_user_profile"):
        email = profile.email.strip()
        if "@" not in email:
            raise ValidationFailure("A valid email address is required")

        now = _now()
        data = {
            "email": email,
            "display_name": (profile.display_name or "").strip() or email.split("@")[0],
            "first_name": profile.first_name,
            "last_name": profile.last_name,
            "birthdate": profile.birthdate,
            "friends": [],
            "pending_friends": [],
            "shared_tasks": [],
            "groups": [],
            "created_at": now,
            "last_active": now,
        }

        try:
            record = await db_client.set_record(collection=constants.USERS, record_id=user_id, data=data)
        except db_client.DatabaseError as e:
            logger.error("Failed to create profile for %s: %s", user_id, e)
            raise WriteFailure(f"Could not create profile: {e}") from e

        logger.info("Created user profile for %s", user_id)
        return UserProfile(**record)


async def get_user_profile(*, user_id: str) -> UserProfile | None:
    """Get a user profile, or None if it does not exist."""
    with span("user_service.get_user_profile"):
        try:
            record = await db_client.get_record(collection=constants.USERS, record_id=user_id)
        except KeyError:
            return None
        except db_client.DatabaseError as e:
            logger.error("Failed to fetch profile %s: %s", user_id, e)
            raise FetchFailure(f"Could not load profile: {e}") from e
        return UserProfile(**record)


async def update_user_profile(*, user_id: str, update: UserProfileUpdate) -> None:
    """Apply a partial profile update and stamp last_active."""
    with span("user_service.update_user_profile"):
        data = {k: v for k, v in update.model_dump(exclude_unset=True).items() if v is not None}
        data["last_active"] = _now()

        try:
            await db_client.update_record(collection=constants.USERS, record_id=user_id, data=data)
        except KeyError as e:
            raise NotFoundFailure(f"User not found: {user_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to update profile %s: %s", user_id, e)
            raise WriteFailure(f"Could not update profile: {e}") from e


async def _require_profile(user_id: str) -> UserProfile:
    profile = await get_user_profile(user_id=user_id)
    if profile is None:
        raise NotFoundFailure(f"User not found: {user_id}")
    return profile


async def _commit(batch: db_client.WriteBatch, *, action: str) -> None:
    try:
        await batch.commit()
    except KeyError as e:
        raise NotFoundFailure(f"User not found while trying to {action}") from e
    except db_client.DatabaseError as e:
        logger.error("Failed to %s: %s", action, e)
        raise WriteFailure(f"Could not {action}: {e}") from e


async def send_friend_request(*, from_user_id: str, to_user_id: str) -> None:
    """Add from_user_id to the target's pending friend requests.

    Raises:
        ValidationFailure: If a user befriends themselves
        NotFoundFailure: If the target user does not exist
    """
    with span("user_service.send_friend_request"):
        if from_user_id == to_user_id:
            raise ValidationFailure("You cannot send a friend request to yourself")

        target = await _require_profile(to_user_id)
        if from_user_id in target.friends:
            logger.info("Users %s and %s are already friends", from_user_id, to_user_id)
            return

        try:
            await db_client.update_record(
                collection=constants.USERS,
                record_id=to_user_id,
                data={"pending_friends": db_client.array_union(from_user_id)},
            )
        except KeyError as e:
            raise NotFoundFailure(f"User not found: {to_user_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to send friend request %s -> %s: %s", from_user_id, to_user_id, e)
            raise WriteFailure(f"Could not send friend request: {e}") from e

        logger.info("Friend request sent from %s to %s", from_user_id, to_user_id)


async def accept_friend_request(*, user_id: str, friend_id: str) -> None:
    """Accept a pending request, linking both profiles in one batch.

    Raises:
        ValidationFailure: If there is no pending request from friend_id
        NotFoundFailure: If either profile does not exist
    """
    with span("user_service.accept_friend_request"):
        profile = await _require_profile(user_id)
        if friend_id not in profile.pending_friends:
            raise ValidationFailure(f"No pending friend request from {friend_id}")

        batch = db_client.batch()
        batch.update(
            collection=constants.USERS,
            record_id=user_id,
            data={
                "friends": db_client.array_union(friend_id),
                "pending_friends": db_client.array_remove(friend_id),
            },
        )
        batch.update(
            collection=constants.USERS,
            record_id=friend_id,
            data={"friends": db_client.array_union(user_id)},
        )
        await _commit(batch, action="accept friend request")

        logger.info("User %s accepted friend request from %s", user_id, friend_id)


async def reject_friend_request(*, user_id: str, friend_id: str) -> None:
    """Drop a pending friend request."""
    with span("user_service.reject_friend_request"):
        try:
            await db_client.update_record(
                collection=constants.USERS,
                record_id=user_id,
                data={"pending_friends": db_client.array_remove(friend_id)},
            )
        except KeyError as e:
            raise NotFoundFailure(f"User not found: {user_id}") from e
        except db_client.DatabaseError as e:
            logger.error("Failed to reject friend request for %s: %s", user_id, e)
            raise WriteFailure(f"Could not reject friend request: {e}") from e


async def remove_friend(*, user_id: str, friend_id: str) -> None:
    """Unlink two users on both sides in one batch."""
    with span("user_service.remove_friend"):
        batch = db_client.batch()
        batch.update(
            collection=constants.USERS,
            record_id=user_id,
            data={"friends": db_client.array_remove(friend_id)},
        )
        batch.update(
            collection=constants.USERS,
            record_id=friend_id,
            data={"friends": db_client.array_remove(user_id)},
        )
        await _commit(batch, action="remove friend")

        logger.info("Users %s and %s are no longer friends", user_id, friend_id)


async def search_users(*, query: str, exclude_user_id: str | None = None) -> list[UserProfile]:
    """Case-insensitive search over email and display name."""
    with span("user_service.search_users"):
        needle = query.strip().lower()
        if not needle:
            return []

        try:
            records = await db_client.list_records(
                collection=constants.USERS,
                per_page=Constants.DEFAULT_PER_PAGE_LIMIT,
            )
        except db_client.DatabaseError as e:
            logger.error("User search failed: %s", e)
            raise FetchFailure(f"Could not search users: {e}") from e

        return [
            UserProfile(**record)
            for record in records
            if record["id"] != exclude_user_id
            and (needle in record.get("email", "").lower() or needle in record.get("display_name", "").lower())
        ]


async def get_display_name(*, user_id: str) -> str:
    """Resolve a user id to the name shown in the UI.

    Raises:
        LookupDegraded: If the profile cannot be loaded
    """
    try:
        record = await db_client.get_record(collection=constants.USERS, record_id=user_id)
    except (KeyError, db_client.DatabaseError) as e:
        raise LookupDegraded(f"Could not resolve display name for {user_id}") from e
    return record.get("display_name") or record.get("email") or user_id
