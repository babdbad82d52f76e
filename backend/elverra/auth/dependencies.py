"""FastAPI authentication dependencies for route protection."""

import uuid

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.auth.jwt import decode_token
from elverra.database import get_db
from elverra.services.profile_service import UserProfile, get_user_profile

# Missing credentials are turned into a 401 below rather than HTTPBearer's 403
_bearer_scheme = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(_bearer_scheme),
    db: AsyncSession = Depends(get_db),
) -> UserProfile:
    """Validate the Bearer token and return the caller's (cached) profile.

    Raises:
        HTTPException 401: If the token is missing, invalid, expired, of the
            wrong type, or names an unknown or inactive user.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise credentials_exception

    try:
        payload = decode_token(credentials.credentials)
    except JWTError:
        raise credentials_exception from None

    if payload.get("type") != "access":
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token type",
            headers={"WWW-Authenticate": "Bearer"},
        )

    sub: str | None = payload.get("sub")
    if sub is None:
        raise credentials_exception

    try:
        user_id = uuid.UUID(sub)
    except ValueError:
        raise credentials_exception from None

    profile = await get_user_profile(db, user_id)
    if profile is None:
        raise credentials_exception

    if not profile.is_active:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is inactive",
            headers={"WWW-Authenticate": "Bearer"},
        )

    return profile


async def get_current_active_user(
    user: UserProfile = Depends(get_current_user),
) -> UserProfile:
    """Return the current user only if their account is active.

    Raises:
        HTTPException 403: If the account was deactivated after the profile
            was cached.
    """
    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Account is inactive",
        )
    return user


async def get_current_admin(
    user: UserProfile = Depends(get_current_active_user),
) -> UserProfile:
    """Return the current user only if they hold the admin role.

    Raises:
        HTTPException 403: If the caller is not an admin.
    """
    if not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Admin access required",
        )
    return user


def ensure_self_or_admin(user: UserProfile, user_id: uuid.UUID) -> None:
    """Raise 403 unless ``user`` is ``user_id`` or an admin."""
    if user.id != user_id and not user.is_admin:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Unauthorized",
        )
