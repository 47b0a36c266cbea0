"""User profile and group domain models."""

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, field_validator

from taskmate.domain.task import normalize_timestamp


class UserProfile(BaseModel):
    """User profile data transfer object."""

    id: str = Field(..., description="Identity provider user ID")
    email: str = Field(..., description="Email address")
    display_name: str = Field(default="", description="Name shown to other users")
    first_name: str = Field(default="")
    last_name: str = Field(default="")
    birthdate: str | None = Field(default=None, description="Birthdate (ISO date)")
    friends: list[str] = Field(default_factory=list, description="Friend user IDs")
    pending_friends: list[str] = Field(default_factory=list, description="User IDs with pending requests")
    shared_tasks: list[str] = Field(default_factory=list, description="Shared task IDs visible to this user")
    groups: list[str] = Field(default_factory=list, description="Group IDs this user belongs to")
    created_at: datetime | None = Field(default=None)
    last_active: datetime | None = Field(default=None)

    @field_validator("created_at", "last_active", mode="before")
    @classmethod
    def normalize_timestamps(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)


class Group(BaseModel):
    """Group data transfer object."""

    id: str = Field(..., description="Unique group ID from the store")
    name: str = Field(..., description="Group name")
    description: str = Field(default="")
    owner: str = Field(..., description="User ID of the creator")
    members: list[str] = Field(default_factory=list, description="Member user IDs (owner included)")
    tasks: list[str] = Field(default_factory=list, description="Shared task IDs shared with the group")
    created_at: datetime | None = Field(default=None)

    @field_validator("created_at", mode="before")
    @classmethod
    def normalize_created_at(cls, v: Any) -> datetime | None:
        return normalize_timestamp(v)
