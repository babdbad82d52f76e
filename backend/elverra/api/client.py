"""Member-facing account endpoints."""

import uuid

from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.api.deps import ensure_self_or_admin, get_current_active_user, get_db
from elverra.schemas.common import ApiResponse
from elverra.schemas.payment import PaymentHistoryResponse
from elverra.services.payment_history import get_payment_history
from elverra.services.profile_service import UserProfile

router = APIRouter(prefix="/api/client", tags=["client"])


@router.get("/payment-history", response_model=ApiResponse[PaymentHistoryResponse])
async def payment_history(
    user_id: uuid.UUID = Query(..., alias="userId"),
    db: AsyncSession = Depends(get_db),
    current_user: UserProfile = Depends(get_current_active_user),
) -> ApiResponse[PaymentHistoryResponse]:
    """The member's 20 most recent payments with lifetime totals (self or admin)."""
    ensure_self_or_admin(current_user, user_id)
    history = await get_payment_history(db, user_id)
    return ApiResponse(data=PaymentHistoryResponse.model_validate(history))
