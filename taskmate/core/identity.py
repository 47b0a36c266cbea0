"""Session-token identity provider.

Tokens are signed with itsdangerous and resolve to the authenticated user's
``{id, email}``. Route handlers depend on ``get_current_user`` and pass
``current_user.id`` explicitly into every service call.
"""

import logging

from fastapi import Header, HTTPException, status
from itsdangerous import BadSignature, SignatureExpired, URLSafeTimedSerializer
from pydantic import BaseModel

from taskmate.core.config import settings


logger = logging.getLogger(__name__)

serializer = URLSafeTimedSerializer(str(settings.secret_key), salt="taskmate-session")


class CurrentUser(BaseModel):
    """The authenticated user as seen by the service layer."""

    id: str
    email: str


def issue_session_token(*, user_id: str, email: str) -> str:
    """Sign a session token for a user."""
    return serializer.dumps({"id": user_id, "email": email})


def resolve_session_token(token: str) -> CurrentUser | None:
    """Resolve a session token to its user, or None if it is invalid or expired."""
    try:
        payload = serializer.loads(token, max_age=settings.session_max_age_seconds)
    except SignatureExpired:
        logger.warning("session_token_expired")
        return None
    except BadSignature:
        logger.warning("session_token_tampered")
        return None

    if not isinstance(payload, dict) or not payload.get("id"):
        return None
    return CurrentUser(id=payload["id"], email=payload.get("email", ""))


async def get_current_user(authorization: str | None = Header(default=None)) -> CurrentUser:
    """FastAPI dependency resolving the Bearer token to the current user."""
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    user = resolve_session_token(authorization.removeprefix("Bearer ").strip())
    if user is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired session",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return user
