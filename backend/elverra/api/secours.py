"""Ô Secours endpoints — token accounts, purchases, ledger and rescue requests."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.api.deps import get_current_admin, get_db
from elverra.billing.references import PaymentKind, build_token_reference
from elverra.billing.sama_money import SamaMoneyError, request_payment
from elverra.schemas.common import ApiResponse
from elverra.schemas.secours import (
    BalanceAuditResponse,
    RescueDecision,
    RescueRequestCreate,
    RescueRequestResponse,
    TokenPurchaseRequest,
    TokenPurchaseResponse,
    TokenSubscriptionCreate,
    TokenSubscriptionResponse,
    TokenTransactionResponse,
)
from elverra.services.payment_attempts import create_payment_attempt, resolve_attempt
from elverra.services.profile_service import UserProfile
from elverra.services.token_ledger import (
    InsufficientBalanceError,
    InvalidPurchaseError,
    InvalidStateTransitionError,
    RescueRequestNotFoundError,
    TokenAccountExistsError,
    TokenAccountNotFoundError,
    UnknownServiceError,
    audit_balance,
    create_rescue_request,
    create_token_subscription,
    list_rescue_requests,
    list_token_subscriptions,
    list_transactions,
    process_rescue_request,
    validate_purchase,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api/secours", tags=["secours"])


# ---------------------------------------------------------------------------
# Token accounts
# ---------------------------------------------------------------------------


@router.get("/subscriptions", response_model=ApiResponse[list[TokenSubscriptionResponse]])
async def get_subscriptions(
    user_id: uuid.UUID = Query(..., alias="userId"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[TokenSubscriptionResponse]]:
    accounts = await list_token_subscriptions(db, user_id)
    return ApiResponse(data=[TokenSubscriptionResponse.model_validate(a) for a in accounts])


@router.post(
    "/subscriptions",
    response_model=ApiResponse[TokenSubscriptionResponse],
    status_code=status.HTTP_201_CREATED,
)
async def create_subscription(
    body: TokenSubscriptionCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TokenSubscriptionResponse]:
    """Open a token account for one service, with an optional opening balance."""
    try:
        account = await create_token_subscription(
            db, body.user_id, body.service_type, initial_tokens=body.initial_tokens
        )
    except (UnknownServiceError, TokenAccountExistsError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    await db.refresh(account)
    return ApiResponse(data=TokenSubscriptionResponse.model_validate(account))


@router.get(
    "/subscriptions/{subscription_id}/audit",
    response_model=ApiResponse[BalanceAuditResponse],
)
async def get_balance_audit(
    subscription_id: uuid.UUID,
    db: AsyncSession = Depends(get_db),
    _admin: UserProfile = Depends(get_current_admin),
) -> ApiResponse[BalanceAuditResponse]:
    """Compare an account's stored balance with its ledger (admin only)."""
    try:
        audit = await audit_balance(db, subscription_id)
    except TokenAccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    return ApiResponse(data=BalanceAuditResponse.model_validate(audit))


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@router.get("/transactions", response_model=ApiResponse[list[TokenTransactionResponse]])
async def get_transactions(
    user_id: uuid.UUID | None = Query(None, alias="userId"),
    subscription_id: uuid.UUID | None = Query(None, alias="subscriptionId"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[TokenTransactionResponse]]:
    """Token transactions for a user or a single account, newest first."""
    try:
        transactions = await list_transactions(
            db, user_id=user_id, subscription_id=subscription_id
        )
    except ValueError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="userId or subscriptionId is required",
        ) from e
    return ApiResponse(data=[TokenTransactionResponse.model_validate(t) for t in transactions])


@router.post("/purchase", response_model=ApiResponse[TokenPurchaseResponse])
async def purchase_tokens(
    body: TokenPurchaseRequest,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[TokenPurchaseResponse]:
    """Start a token purchase; tokens are credited when the gateway confirms."""
    service_type = body.service_type.lower()
    try:
        amount = await validate_purchase(db, body.user_id, service_type, body.tokens)
    except (UnknownServiceError, InvalidPurchaseError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    reference = build_token_reference(service_type, body.user_id)
    await create_payment_attempt(
        db,
        reference=reference,
        kind=PaymentKind.TOKENS,
        user_id=body.user_id,
        amount_fcfa=amount,
        service_type=service_type,
        tokens=body.tokens,
        metadata={"phone": body.phone},
    )
    await db.commit()

    try:
        await request_payment(
            reference,
            amount,
            body.phone,
            description=f"Ô Secours {service_type}: {body.tokens} tokens",
        )
    except SamaMoneyError as e:
        await resolve_attempt(db, reference, "failed")
        await db.commit()
        raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=str(e)) from e

    return ApiResponse(
        data=TokenPurchaseResponse(
            reference=reference,
            service_type=service_type,
            tokens=body.tokens,
            amount_fcfa=amount,
            status="pending",
        )
    )


# ---------------------------------------------------------------------------
# Rescue requests
# ---------------------------------------------------------------------------


@router.get("/requests", response_model=ApiResponse[list[RescueRequestResponse]])
async def get_rescue_requests(
    user_id: uuid.UUID = Query(..., alias="userId"),
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[list[RescueRequestResponse]]:
    requests = await list_rescue_requests(db, user_id)
    return ApiResponse(data=[RescueRequestResponse.model_validate(r) for r in requests])


@router.post(
    "/requests",
    response_model=ApiResponse[RescueRequestResponse],
    status_code=status.HTTP_201_CREATED,
)
async def submit_rescue_request(
    body: RescueRequestCreate,
    db: AsyncSession = Depends(get_db),
) -> ApiResponse[RescueRequestResponse]:
    """File a withdrawal against a token account; the balance must cover it."""
    try:
        request = await create_rescue_request(
            db,
            body.user_id,
            body.service_type.lower(),
            body.tokens_requested,
            description=body.description,
        )
    except TokenAccountNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (InvalidPurchaseError, InsufficientBalanceError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e

    await db.refresh(request)
    return ApiResponse(data=RescueRequestResponse.model_validate(request))


@router.post(
    "/requests/{request_id}/process",
    response_model=ApiResponse[RescueRequestResponse],
)
async def process_request(
    request_id: uuid.UUID,
    body: RescueDecision,
    db: AsyncSession = Depends(get_db),
    admin: UserProfile = Depends(get_current_admin),
) -> ApiResponse[RescueRequestResponse]:
    """Accept (debit tokens) or reject a pending rescue request (admin only)."""
    try:
        request = await process_rescue_request(db, request_id, body.accept, reason=body.reason)
    except RescueRequestNotFoundError as e:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e)) from e
    except (InvalidStateTransitionError, InsufficientBalanceError) as e:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(e)) from e

    logger.info("Rescue request %s %s by admin %s", request_id, request.status, admin.id)
    await db.refresh(request)
    return ApiResponse(data=RescueRequestResponse.model_validate(request))
