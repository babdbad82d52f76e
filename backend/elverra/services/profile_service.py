"""Profile service — cached role / tier lookups and membership tier writes."""

import logging
import uuid
from dataclasses import dataclass

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.cache import TTLCache
from elverra.config import settings
from elverra.database import utcnow
from elverra.models.user import User

logger = logging.getLogger(__name__)


class UserNotFoundError(Exception):
    """No user row exists for the given id."""


@dataclass(frozen=True)
class UserProfile:
    """Detached snapshot of the fields used for authorization."""

    id: uuid.UUID
    email: str
    full_name: str | None
    role: str
    membership_tier: str | None
    is_active: bool

    @property
    def is_admin(self) -> bool:
        return self.role == "admin"


profile_cache: TTLCache[uuid.UUID, UserProfile] = TTLCache(
    maxsize=settings.profile_cache_max_entries,
    ttl=settings.profile_cache_ttl_seconds,
)


async def get_user_profile(db: AsyncSession, user_id: uuid.UUID) -> UserProfile | None:
    """Return the user's profile, from cache when fresh."""
    cached = profile_cache.get(user_id)
    if cached is not None:
        return cached

    result = await db.execute(select(User).where(User.id == user_id))
    user = result.scalar_one_or_none()
    if user is None:
        return None

    profile = UserProfile(
        id=user.id,
        email=user.email,
        full_name=user.full_name,
        role=user.role,
        membership_tier=user.membership_tier,
        is_active=user.is_active,
    )
    profile_cache.set(user_id, profile)
    return profile


async def set_membership_tier(db: AsyncSession, user_id: uuid.UUID, tier: str) -> None:
    """Set the user's membership tier and drop their cached profile.

    Raises:
        UserNotFoundError: If no user matched.
    """
    result = await db.execute(
        update(User)
        .where(User.id == user_id)
        .values(membership_tier=tier, updated_at=utcnow())
    )
    if result.rowcount == 0:
        raise UserNotFoundError(f"User {user_id} not found")

    profile_cache.invalidate(user_id)
    logger.info("Set membership tier of user %s to %s", user_id, tier)
