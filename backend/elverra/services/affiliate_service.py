"""Affiliate reporting — referral counts, commission totals and leaderboard.

Read-only. Commission sums come from ``affiliate_rewards``; counts from
``referrals``. Each aggregate is computed in its own grouped subquery so that
joining both onto agents cannot multiply the sums.
"""

import logging
import uuid
from dataclasses import dataclass, field
from typing import Any

from sqlalchemy import case, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.models.affiliate import AffiliateReward, Agent, Referral
from elverra.models.user import User

logger = logging.getLogger(__name__)

LEADERBOARD_SIZE = 10
RECENT_REWARDS = 5

ANONYMOUS_USER: dict[str, Any] = {
    "id": "unknown",
    "full_name": "Anonymous",
    "email": "unknown@example.com",
    "avatar": None,
}


class AffiliateNotFoundError(Exception):
    pass


@dataclass
class AffiliateStats:
    referral_code: str
    total_referrals: int
    total_earnings: int
    pending_earnings: int
    recent_rewards: list[AffiliateReward] = field(default_factory=list)


@dataclass
class LeaderboardEntry:
    user: dict[str, Any]
    total_commissions: int
    total_referrals: int


async def get_agent(db: AsyncSession, user_id: uuid.UUID) -> Agent | None:
    result = await db.execute(select(Agent).where(Agent.user_id == user_id))
    return result.scalar_one_or_none()


async def get_affiliate_stats(db: AsyncSession, user_id: uuid.UUID) -> AffiliateStats:
    """Totals for one affiliate.

    Raises:
        AffiliateNotFoundError: If the user is not enrolled as an agent.
    """
    agent = await get_agent(db, user_id)
    if agent is None:
        raise AffiliateNotFoundError(f"Affiliate {user_id} not found")

    referral_count = await db.execute(
        select(func.count(Referral.id)).where(Referral.referrer_id == user_id)
    )

    points = AffiliateReward.credit_points_awarded
    totals = await db.execute(
        select(
            func.coalesce(
                func.sum(case((AffiliateReward.status == "awarded", points), else_=0)), 0
            ),
            func.coalesce(
                func.sum(case((AffiliateReward.status == "pending", points), else_=0)), 0
            ),
        ).where(AffiliateReward.referrer_id == user_id)
    )
    awarded, pending = totals.one()

    recent = await db.execute(
        select(AffiliateReward)
        .where(AffiliateReward.referrer_id == user_id)
        .order_by(AffiliateReward.created_at.desc())
        .limit(RECENT_REWARDS)
    )

    return AffiliateStats(
        referral_code=agent.referral_code,
        total_referrals=int(referral_count.scalar_one()),
        total_earnings=int(awarded or 0),
        pending_earnings=int(pending or 0),
        recent_rewards=list(recent.scalars().all()),
    )


async def list_referrals(db: AsyncSession, user_id: uuid.UUID) -> list[dict[str, Any]]:
    """Referrals made by ``user_id`` with the referred user and reward, newest first."""
    result = await db.execute(
        select(Referral, User, AffiliateReward)
        .outerjoin(User, User.id == Referral.referred_user_id)
        .outerjoin(AffiliateReward, AffiliateReward.referral_id == Referral.id)
        .where(Referral.referrer_id == user_id)
        .order_by(Referral.created_at.desc())
    )

    referrals = []
    for referral, user, reward in result.all():
        referrals.append(
            {
                "id": referral.id,
                "status": referral.status,
                "created_at": referral.created_at,
                "referred_user": (
                    {
                        "id": user.id,
                        "email": user.email,
                        "full_name": user.full_name,
                        "created_at": user.created_at,
                    }
                    if user is not None
                    else None
                ),
                "reward": (
                    {
                        "id": reward.id,
                        "credit_points_awarded": reward.credit_points_awarded,
                        "status": reward.status,
                        "awarded_at": reward.awarded_at,
                    }
                    if reward is not None
                    else None
                ),
            }
        )
    return referrals


async def get_leaderboard(
    db: AsyncSession, limit: int = LEADERBOARD_SIZE
) -> list[LeaderboardEntry]:
    """Top agents by awarded commission, highest first."""
    rewards = (
        select(
            AffiliateReward.referrer_id.label("user_id"),
            func.sum(AffiliateReward.credit_points_awarded).label("total"),
        )
        .where(AffiliateReward.status == "awarded")
        .group_by(AffiliateReward.referrer_id)
        .subquery()
    )
    referral_counts = (
        select(
            Referral.referrer_id.label("user_id"),
            func.count(Referral.id).label("total"),
        )
        .group_by(Referral.referrer_id)
        .subquery()
    )

    total_commissions = func.coalesce(rewards.c.total, 0)
    stmt = (
        select(
            User.id,
            User.full_name,
            User.email,
            User.profile_picture_url,
            total_commissions.label("total_commissions"),
            func.coalesce(referral_counts.c.total, 0).label("total_referrals"),
        )
        .select_from(Agent)
        .outerjoin(User, User.id == Agent.user_id)
        .outerjoin(rewards, rewards.c.user_id == Agent.user_id)
        .outerjoin(referral_counts, referral_counts.c.user_id == Agent.user_id)
        .order_by(total_commissions.desc(), Agent.created_at)
        .limit(min(limit, LEADERBOARD_SIZE))
    )
    result = await db.execute(stmt)

    entries = []
    for row in result.all():
        if row.id is None:
            user = dict(ANONYMOUS_USER)
        else:
            user = {
                "id": str(row.id),
                "full_name": row.full_name or "Anonymous",
                "email": row.email,
                "avatar": row.profile_picture_url,
            }
        entries.append(
            LeaderboardEntry(
                user=user,
                total_commissions=int(row.total_commissions or 0),
                total_referrals=int(row.total_referrals or 0),
            )
        )
    return entries
