"""Pydantic v2 response schemas for affiliate reporting (camelCase on the wire)."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel


class _CamelModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        from_attributes=True,
    )


class RewardResponse(_CamelModel):
    id: uuid.UUID
    credit_points_awarded: int
    status: str
    awarded_at: datetime | None = None
    created_at: datetime | None = None


class AffiliateStatsResponse(_CamelModel):
    referral_code: str
    total_referrals: int
    total_earnings: int
    pending_earnings: int
    recent_rewards: list[RewardResponse]


class ReferredUser(_CamelModel):
    id: uuid.UUID
    email: str
    full_name: str | None = None
    created_at: datetime | None = None


class ReferralResponse(_CamelModel):
    id: uuid.UUID
    status: str
    created_at: datetime
    referred_user: ReferredUser | None = None
    reward: RewardResponse | None = None


class LeaderboardUser(_CamelModel):
    id: str
    full_name: str
    email: str | None = None
    avatar: str | None = None


class LeaderboardEntryResponse(_CamelModel):
    user: LeaderboardUser
    total_commissions: int
    total_referrals: int
