"""Membership subscription endpoints — plans, creation, status and activation."""

import logging

from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.api.deps import get_db
from elverra.billing.plans import PLANS, VALID_PLAN_NAMES
from elverra.schemas.common import ApiResponse
from elverra.schemas.subscription import (
    ActivateSubscriptionRequest,
    CreateSubscriptionRequest,
    PlanResponse,
    SubscriptionResponse,
    UpdateSubscriptionRequest,
)
from elverra.services.subscription_service import (
    SubscriptionNotFoundError,
    activate_membership,
    create_subscription,
    update_subscription_status,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/subscriptions", tags=["subscriptions"])


def _ensure_known_plan(plan: str) -> None:
    if plan not in VALID_PLAN_NAMES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown plan: {plan}. Choose from {sorted(VALID_PLAN_NAMES)}",
        )


@router.get("/plans", response_model=ApiResponse[list[PlanResponse]])
async def list_plans() -> ApiResponse[list[PlanResponse]]:
    """List membership tiers and their prices (public)."""
    return ApiResponse(data=[PlanResponse.model_validate(p) for p in PLANS.values()])


@router.post(
    "",
    response_model=ApiResponse[SubscriptionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create(
    body: CreateSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[SubscriptionResponse]:
    """Open a one-year membership subscription."""
    _ensure_known_plan(body.plan)
    subscription = await create_subscription(db, body.user_id, body.plan, status=body.status)
    await db.refresh(subscription)
    return ApiResponse(data=SubscriptionResponse.model_validate(subscription))


@router.post("/update", response_model=ApiResponse[SubscriptionResponse])
async def update_status(
    body: UpdateSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[SubscriptionResponse]:
    try:
        subscription = await update_subscription_status(db, body.subscription_id, body.status)
    except SubscriptionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    await db.refresh(subscription)
    return ApiResponse(data=SubscriptionResponse.model_validate(subscription))


@router.post("/activate", response_model=ApiResponse[SubscriptionResponse])
async def activate(
    body: ActivateSubscriptionRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[SubscriptionResponse]:
    """Activate a subscription and move the member to its tier.

    A tier update that fails is queued for the reconciliation job; the
    activation itself still succeeds.
    """
    _ensure_known_plan(body.plan)

    try:
        subscription, tier_synced = await activate_membership(
            db, body.subscription_id, body.user_id, body.plan
        )
    except SubscriptionNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e

    if not tier_synced:
        logger.warning(
            "Subscription %s active but tier update for user %s was queued",
            subscription.id,
            body.user_id,
        )
    await db.refresh(subscription)
    return ApiResponse(data=SubscriptionResponse.model_validate(subscription))
