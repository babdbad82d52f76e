"""Affiliate reporting endpoints — stats, referrals and the leaderboard."""

import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.api.deps import ensure_self_or_admin, get_current_active_user, get_db
from elverra.schemas.affiliate import (
    AffiliateStatsResponse,
    LeaderboardEntryResponse,
    ReferralResponse,
)
from elverra.schemas.common import ApiResponse
from elverra.services.affiliate_service import (
    AffiliateNotFoundError,
    get_affiliate_stats,
    get_leaderboard,
    list_referrals,
)
from elverra.services.profile_service import UserProfile

router = APIRouter(prefix="/api/affiliates", tags=["affiliates"])


@router.get("/leaderboard", response_model=ApiResponse[list[LeaderboardEntryResponse]])
async def leaderboard(
    db: AsyncSession = Depends(get_db),
    current_user: UserProfile = Depends(get_current_active_user),
) -> ApiResponse[list[LeaderboardEntryResponse]]:
    """Top ten agents by awarded commission."""
    entries = await get_leaderboard(db)
    return ApiResponse(data=[LeaderboardEntryResponse.model_validate(e) for e in entries])


@router.get("/{user_id}/stats", response_model=ApiResponse[AffiliateStatsResponse])
async def affiliate_stats(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: UserProfile = Depends(get_current_active_user),
) -> ApiResponse[AffiliateStatsResponse]:
    """Referral count and commission totals for one affiliate (self or admin)."""
    ensure_self_or_admin(current_user, user_id)
    try:
        stats = await get_affiliate_stats(db, user_id)
    except AffiliateNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ApiResponse(data=AffiliateStatsResponse.model_validate(stats))


@router.get("/{user_id}/referrals", response_model=ApiResponse[list[ReferralResponse]])
async def affiliate_referrals(
    user_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    current_user: UserProfile = Depends(get_current_active_user),
) -> ApiResponse[list[ReferralResponse]]:
    ensure_self_or_admin(current_user, user_id)
    referrals = await list_referrals(db, user_id)
    return ApiResponse(data=[ReferralResponse.model_validate(r) for r in referrals])
