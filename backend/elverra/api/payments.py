"""Mobile-money endpoints — gateway callbacks, status checks and subscription payment initiation."""

import json
import logging
from typing import Any
from urllib.parse import parse_qsl

from fastapi import APIRouter, Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.api.deps import get_db
from elverra.billing.callbacks import CALLBACK_PARSERS
from elverra.billing.plans import get_plan
from elverra.billing.references import PaymentKind, build_subscription_reference
from elverra.billing.sama_money import SamaMoneyError, request_payment
from elverra.billing.webhooks import process_callback
from elverra.schemas.common import Acknowledgement, ApiResponse
from elverra.schemas.payment import PaymentStatusResponse, VerifyPaymentRequest
from elverra.schemas.subscription import (
    InitiateSubscriptionPaymentRequest,
    PaymentInitiationResponse,
)
from elverra.services.payment_attempts import (
    create_payment_attempt,
    get_payment_status,
    resolve_attempt,
)
from elverra.services.subscription_service import get_subscription

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/payments", tags=["payments"])


async def _read_payload(request: Request) -> dict[str, Any]:
    """Decode a JSON or form-encoded callback body."""
    body = await request.body()
    content_type = request.headers.get("content-type", "")
    if content_type.startswith("application/x-www-form-urlencoded"):
        return dict(parse_qsl(body.decode("utf-8", errors="replace")))

    try:
        payload = json.loads(body or b"{}")
    except ValueError as e:
        logger.warning("Invalid callback payload")
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        ) from e
    if not isinstance(payload, dict):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Invalid payload",
        )
    return payload


@router.post("/{provider}/webhook", response_model=Acknowledgement)
async def payment_webhook(
    provider: str,
    request: Request,
    db: AsyncSession = Depends(get_db),
) -> Acknowledgement:
    """Receive a gateway status callback.

    Gateways retry on anything but 200, so processing errors are logged and
    rolled back but still acknowledged.
    """
    parser = CALLBACK_PARSERS.get(provider)
    if parser is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Unknown payment provider: {provider}",
        )

    payload = await _read_payload(request)
    logger.info("%s webhook received: %s", provider, payload)

    try:
        callback = parser(payload)
        result = await process_callback(db, callback)
        await db.commit()
        logger.info("%s webhook %s: %s", provider, callback.reference, result.value)
    except Exception:
        await db.rollback()
        logger.exception("Error processing %s webhook", provider)

    return Acknowledgement()


@router.post("/verify", response_model=ApiResponse[PaymentStatusResponse])
async def verify_payment(
    body: VerifyPaymentRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PaymentStatusResponse]:
    """Report whether a payment is pending, completed or failed.

    Read-only; activation and crediting happen in the webhook.
    """
    payment_status = await get_payment_status(db, body.reference)
    return ApiResponse(data=PaymentStatusResponse.model_validate(payment_status))


@router.post(
    "/sama-money/initiate",
    response_model=ApiResponse[PaymentInitiationResponse],
)
async def initiate_subscription_payment(
    body: InitiateSubscriptionPaymentRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[PaymentInitiationResponse]:
    """Create a ``SUB_`` payment attempt and push it to the member's phone."""
    plan = get_plan(body.plan)
    if plan is None:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown plan: {body.plan}",
        )

    subscription = await get_subscription(db, body.subscription_id)
    if subscription is None or subscription.user_id != body.user_id:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Subscription not found",
        )

    amount = plan.monthly_price_fcfa
    if body.include_registration:
        amount += plan.registration_fee_fcfa

    reference = build_subscription_reference(body.user_id)
    await create_payment_attempt(
        db,
        reference=reference,
        kind=PaymentKind.SUBSCRIPTION,
        user_id=body.user_id,
        amount_fcfa=amount,
        subscription_id=subscription.id,
        metadata={"planType": plan.name, "phone": body.phone},
    )
    # The attempt must exist before the gateway can call back
    await db.commit()

    try:
        await request_payment(
            reference,
            amount,
            body.phone,
            description=f"Elverra {plan.display_name} membership",
        )
    except SamaMoneyError as e:
        await resolve_attempt(db, reference, "failed")
        await db.commit()
        raise HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail=str(e),
        ) from e

    return ApiResponse(
        data=PaymentInitiationResponse(reference=reference, amount_fcfa=amount, status="pending")
    )
