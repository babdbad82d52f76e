"""Subscription service — membership terms and activation."""

import logging
import uuid
from datetime import timedelta

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.database import utcnow
from elverra.models.subscription import Subscription
from elverra.services.tier_sync import sync_membership_tier

logger = logging.getLogger(__name__)

SUBSCRIPTION_TERM = timedelta(days=365)
VALID_STATUSES: tuple[str, ...] = ("active", "inactive", "cancelled", "pending")


class SubscriptionNotFoundError(Exception):
    """No subscription exists for the given id."""


async def get_subscription(
    db: AsyncSession, subscription_id: uuid.UUID
) -> Subscription | None:
    result = await db.execute(
        select(Subscription).where(Subscription.id == subscription_id)
    )
    return result.scalar_one_or_none()


async def create_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan: str,
    status: str = "pending",
) -> Subscription:
    """Open a one-year membership term for the user."""
    now = utcnow()
    subscription = Subscription(
        user_id=user_id,
        plan=plan,
        status=status,
        start_date=now,
        end_date=now + SUBSCRIPTION_TERM,
        is_recurring=True,
    )
    db.add(subscription)
    await db.flush()
    logger.info("Created %s subscription %s (%s) for user %s", status, subscription.id, plan, user_id)
    return subscription


async def update_subscription_status(
    db: AsyncSession, subscription_id: uuid.UUID, status: str
) -> Subscription:
    """Set an arbitrary lifecycle status (admin use)."""
    subscription = await get_subscription(db, subscription_id)
    if subscription is None:
        raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")

    subscription.status = status
    if status == "active" and subscription.activated_at is None:
        subscription.activated_at = utcnow()
    await db.flush()
    logger.info("Subscription %s status set to %s", subscription_id, status)
    return subscription


async def activate_subscription(
    db: AsyncSession, subscription_id: uuid.UUID
) -> Subscription:
    """Flip a subscription to active.

    Raises:
        SubscriptionNotFoundError: If the subscription does not exist.
    """
    subscription = await get_subscription(db, subscription_id)
    if subscription is None:
        raise SubscriptionNotFoundError(f"Subscription {subscription_id} not found")

    subscription.status = "active"
    subscription.activated_at = utcnow()
    await db.flush()
    logger.info("Activated subscription %s (user %s)", subscription.id, subscription.user_id)
    return subscription


async def activate_membership(
    db: AsyncSession,
    subscription_id: uuid.UUID,
    user_id: uuid.UUID,
    plan: str,
) -> tuple[Subscription, bool]:
    """Activate the subscription, then sync the user's tier to ``plan``.

    The tier write never undoes the activation; a failed write is queued.
    Returns the subscription and whether the tier was written immediately.
    """
    subscription = await activate_subscription(db, subscription_id)
    tier_synced = await sync_membership_tier(
        db, user_id, plan, subscription_id=subscription.id
    )
    return subscription, tier_synced
