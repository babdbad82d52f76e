"""Membership tier sync — activation saga and its reconciliation job.

Activating a subscription is the primary effect; copying the plan onto the
user's membership tier is secondary. When that second write fails it is
recorded as a pending :class:`TierSyncTask` and retried by
:func:`reconcile_pending_tier_syncs` instead of being dropped.
"""

import logging
import uuid

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.models.tier_sync import TierSyncTask
from elverra.services.profile_service import UserNotFoundError, set_membership_tier

logger = logging.getLogger(__name__)


async def sync_membership_tier(
    db: AsyncSession,
    user_id: uuid.UUID,
    plan: str,
    subscription_id: uuid.UUID | None = None,
) -> bool:
    """Apply ``plan`` as the user's tier, queueing a retry on failure.

    Returns True if the tier was written now, False if it was queued.
    """
    try:
        async with db.begin_nested():
            await set_membership_tier(db, user_id, plan)
    except (UserNotFoundError, SQLAlchemyError) as e:
        logger.warning(
            "Tier update for user %s (plan %s) failed, queued for reconciliation: %s",
            user_id,
            plan,
            e,
        )
        db.add(
            TierSyncTask(
                user_id=user_id,
                subscription_id=subscription_id,
                plan=plan,
                status="pending",
                attempts=1,
                last_error=str(e),
            )
        )
        await db.flush()
        return False
    return True


async def list_pending_tier_syncs(db: AsyncSession, limit: int = 100) -> list[TierSyncTask]:
    result = await db.execute(
        select(TierSyncTask)
        .where(TierSyncTask.status == "pending")
        .order_by(TierSyncTask.created_at)
        .limit(limit)
    )
    return list(result.scalars().all())


async def reconcile_pending_tier_syncs(db: AsyncSession, limit: int = 100) -> int:
    """Retry queued tier writes. Returns the number that succeeded."""
    tasks = await list_pending_tier_syncs(db, limit=limit)
    resolved = 0

    for task in tasks:
        task.attempts += 1
        try:
            async with db.begin_nested():
                await set_membership_tier(db, task.user_id, task.plan)
        except (UserNotFoundError, SQLAlchemyError) as e:
            task.last_error = str(e)
            logger.warning(
                "Tier sync %s still failing after %d attempts: %s",
                task.id,
                task.attempts,
                e,
            )
            continue

        task.status = "done"
        task.last_error = None
        resolved += 1

    await db.flush()
    if tasks:
        logger.info("Reconciled %d of %d pending tier syncs", resolved, len(tasks))
    return resolved
