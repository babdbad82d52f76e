"""Token ledger — Ô Secours token accounts, purchases and withdrawals.

Every balance change is written as a :class:`TokenTransaction` together with
an in-database increment of ``token_balance``, inside the caller's
transaction. Purchases carry their gateway reference, which is UNIQUE, so a
reference can credit an account at most once.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.billing.plans import (
    MAX_MONTHLY_PURCHASE_PER_SERVICE,
    MIN_PURCHASE_PER_SERVICE,
    TOKEN_VALUES,
    compute_tokens,
    get_token_value,
)
from elverra.database import utcnow
from elverra.models.secours import RescueRequest, TokenSubscription, TokenTransaction

logger = logging.getLogger(__name__)


class LedgerError(Exception):
    pass


class UnknownServiceError(LedgerError):
    pass


class TokenAccountExistsError(LedgerError):
    pass


class TokenAccountNotFoundError(LedgerError):
    pass


class InsufficientBalanceError(LedgerError):
    pass


class InvalidPurchaseError(LedgerError):
    pass


class DuplicateReferenceError(LedgerError):
    pass


class RescueRequestNotFoundError(LedgerError):
    pass


class InvalidStateTransitionError(LedgerError):
    pass


@dataclass(frozen=True)
class BalanceAudit:
    subscription_id: uuid.UUID
    stored_balance: int
    ledger_balance: int

    @property
    def drift(self) -> int:
        return self.stored_balance - self.ledger_balance

    @property
    def consistent(self) -> bool:
        return self.drift == 0


def _month_start(now: datetime) -> datetime:
    return datetime(now.year, now.month, 1)


# ---------------------------------------------------------------------------
# Accounts
# ---------------------------------------------------------------------------


async def get_token_subscription(
    db: AsyncSession, user_id: uuid.UUID, service_type: str
) -> TokenSubscription | None:
    result = await db.execute(
        select(TokenSubscription).where(
            TokenSubscription.user_id == user_id,
            TokenSubscription.plan == service_type,
        )
    )
    return result.scalar_one_or_none()


async def list_token_subscriptions(
    db: AsyncSession, user_id: uuid.UUID
) -> list[TokenSubscription]:
    result = await db.execute(
        select(TokenSubscription)
        .where(TokenSubscription.user_id == user_id)
        .order_by(TokenSubscription.plan)
    )
    return list(result.scalars().all())


async def _append_transaction(
    db: AsyncSession,
    account: TokenSubscription,
    transaction_type: str,
    token_amount: int,
    payment_method: str | None = None,
    reference: str | None = None,
) -> TokenTransaction:
    """Write a ledger entry and apply it to the running balance."""
    transaction = TokenTransaction(
        subscription_id=account.id,
        transaction_type=transaction_type,
        token_amount=token_amount,
        token_value_fcfa=get_token_value(account.plan),
        payment_method=payment_method,
        payment_status="completed",
        reference=reference,
    )
    db.add(transaction)
    await db.execute(
        update(TokenSubscription)
        .where(TokenSubscription.id == account.id)
        .values(token_balance=TokenSubscription.token_balance + token_amount)
        .execution_options(synchronize_session=False)
    )
    await db.flush()
    await db.refresh(account, attribute_names=["token_balance"])
    return transaction


async def create_token_subscription(
    db: AsyncSession,
    user_id: uuid.UUID,
    service_type: str,
    initial_tokens: int = 0,
) -> TokenSubscription:
    """Open a token account. An opening balance is booked as an adjustment."""
    if service_type not in TOKEN_VALUES:
        raise UnknownServiceError(f"Unknown service type: {service_type}")
    if await get_token_subscription(db, user_id, service_type) is not None:
        raise TokenAccountExistsError("Subscription already exists for this service")

    account = TokenSubscription(
        user_id=user_id, plan=service_type, token_balance=0, status="active"
    )
    db.add(account)
    await db.flush()

    if initial_tokens:
        await _append_transaction(db, account, "adjustment", initial_tokens)

    logger.info("Opened %s token account %s for user %s", service_type, account.id, user_id)
    return account


async def get_or_create_token_subscription(
    db: AsyncSession, user_id: uuid.UUID, service_type: str
) -> TokenSubscription:
    """Return the user's account for ``service_type``, opening it if needed.

    Safe against a concurrent first purchase: the insert runs in its own
    SAVEPOINT and, if another writer opened the account first, the existing
    row is loaded instead.

    Raises:
        UnknownServiceError: ``service_type`` has no token price.
    """
    if service_type not in TOKEN_VALUES:
        raise UnknownServiceError(f"Unknown service type: {service_type}")

    account = await get_token_subscription(db, user_id, service_type)
    if account is not None:
        return account

    account = TokenSubscription(
        user_id=user_id, plan=service_type, token_balance=0, status="active"
    )
    try:
        async with db.begin_nested():
            db.add(account)
            await db.flush()
    except IntegrityError:
        existing = await get_token_subscription(db, user_id, service_type)
        if existing is None:
            raise
        logger.info("%s token account for user %s opened concurrently, reusing it", service_type, user_id)
        return existing

    logger.info("Opened %s token account %s for user %s", service_type, account.id, user_id)
    return account


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


async def list_transactions(
    db: AsyncSession,
    user_id: uuid.UUID | None = None,
    subscription_id: uuid.UUID | None = None,
) -> list[TokenTransaction]:
    """Ledger entries for one account or for all of a user's accounts, newest first."""
    if user_id is None and subscription_id is None:
        raise ValueError("user_id or subscription_id is required")

    stmt = select(TokenTransaction).join(TokenTransaction.subscription)
    if subscription_id is not None:
        stmt = stmt.where(TokenTransaction.subscription_id == subscription_id)
    else:
        stmt = stmt.where(TokenSubscription.user_id == user_id)
    stmt = stmt.order_by(TokenTransaction.created_at.desc())

    result = await db.execute(stmt)
    return list(result.scalars().all())


async def get_transaction_by_reference(
    db: AsyncSession, reference: str
) -> TokenTransaction | None:
    result = await db.execute(
        select(TokenTransaction).where(TokenTransaction.reference == reference)
    )
    return result.scalar_one_or_none()


async def tokens_purchased_this_month(
    db: AsyncSession, user_id: uuid.UUID, service_type: str
) -> int:
    result = await db.execute(
        select(func.coalesce(func.sum(TokenTransaction.token_amount), 0))
        .join(TokenTransaction.subscription)
        .where(
            TokenSubscription.user_id == user_id,
            TokenSubscription.plan == service_type,
            TokenTransaction.transaction_type == "purchase",
            TokenTransaction.created_at >= _month_start(utcnow()),
        )
    )
    return int(result.scalar_one())


async def validate_purchase(
    db: AsyncSession, user_id: uuid.UUID, service_type: str, tokens: int
) -> int:
    """Check purchase limits and return the price in FCFA.

    Raises:
        UnknownServiceError: Unknown service type.
        InvalidPurchaseError: Below the minimum or over the monthly cap.
    """
    token_value = get_token_value(service_type)
    if not token_value:
        raise UnknownServiceError(f"Unknown service type: {service_type}")
    if tokens < MIN_PURCHASE_PER_SERVICE:
        raise InvalidPurchaseError(
            f"Minimum purchase is {MIN_PURCHASE_PER_SERVICE} tokens per service"
        )

    already = await tokens_purchased_this_month(db, user_id, service_type)
    if already + tokens > MAX_MONTHLY_PURCHASE_PER_SERVICE:
        raise InvalidPurchaseError(
            f"Monthly limit of {MAX_MONTHLY_PURCHASE_PER_SERVICE} tokens reached "
            f"({already} already purchased this month)"
        )
    return tokens * token_value


async def credit_tokens(
    db: AsyncSession,
    user_id: uuid.UUID,
    service_type: str,
    amount_fcfa: int,
    reference: str,
    payment_method: str,
    tokens: int | None = None,
) -> TokenTransaction:
    """Credit a confirmed purchase to the user's account for ``service_type``.

    ``tokens`` defaults to ``floor(amount_fcfa / unit price)``. The account
    is opened on first purchase.

    Raises:
        UnknownServiceError: ``service_type`` has no token price.
        DuplicateReferenceError: The reference was already credited.
    """
    if await get_transaction_by_reference(db, reference) is not None:
        raise DuplicateReferenceError(f"Reference {reference} already credited")

    account = await get_or_create_token_subscription(db, user_id, service_type)

    computed = tokens or compute_tokens(amount_fcfa, service_type)
    transaction = await _append_transaction(
        db,
        account,
        "purchase",
        computed,
        payment_method=payment_method,
        reference=reference,
    )
    logger.info(
        "Credited %d %s tokens to user %s (reference %s, balance %d)",
        computed,
        service_type,
        user_id,
        reference,
        account.token_balance,
    )
    return transaction


async def audit_balance(db: AsyncSession, subscription_id: uuid.UUID) -> BalanceAudit:
    """Compare the stored balance with the sum of signed ledger entries."""
    account = await db.get(TokenSubscription, subscription_id)
    if account is None:
        raise TokenAccountNotFoundError(f"Token account {subscription_id} not found")

    result = await db.execute(
        select(func.coalesce(func.sum(TokenTransaction.token_amount), 0)).where(
            TokenTransaction.subscription_id == subscription_id
        )
    )
    audit = BalanceAudit(
        subscription_id=subscription_id,
        stored_balance=account.token_balance,
        ledger_balance=int(result.scalar_one()),
    )
    if not audit.consistent:
        logger.warning(
            "Token account %s drifted: stored=%d ledger=%d",
            subscription_id,
            audit.stored_balance,
            audit.ledger_balance,
        )
    return audit


# ---------------------------------------------------------------------------
# Rescue (withdrawal) requests
# ---------------------------------------------------------------------------


async def create_rescue_request(
    db: AsyncSession,
    user_id: uuid.UUID,
    service_type: str,
    tokens_requested: int,
    description: str = "",
) -> RescueRequest:
    """File a pending withdrawal; the balance must cover it now."""
    if tokens_requested <= 0:
        raise InvalidPurchaseError("Invalid tokens_requested value")

    account = await get_token_subscription(db, user_id, service_type)
    if account is None:
        raise TokenAccountNotFoundError("No subscription found for this service")
    if account.token_balance < tokens_requested:
        raise InsufficientBalanceError("Insufficient token balance")

    request = RescueRequest(
        user_id=user_id,
        subscription_id=account.id,
        service_type=service_type,
        tokens_requested=tokens_requested,
        request_description=description,
        rescue_value_fcfa=tokens_requested * get_token_value(service_type),
        status="pending",
    )
    db.add(request)
    await db.flush()
    logger.info("Rescue request %s filed by user %s (%d %s tokens)", request.id, user_id, tokens_requested, service_type)
    return request


async def list_rescue_requests(db: AsyncSession, user_id: uuid.UUID) -> list[RescueRequest]:
    result = await db.execute(
        select(RescueRequest)
        .where(RescueRequest.user_id == user_id)
        .order_by(RescueRequest.created_at.desc())
    )
    return list(result.scalars().all())


async def process_rescue_request(
    db: AsyncSession,
    request_id: uuid.UUID,
    accept: bool,
    reason: str | None = None,
) -> RescueRequest:
    """Accept (debit the account) or reject a pending rescue request."""
    request = await db.get(RescueRequest, request_id)
    if request is None:
        raise RescueRequestNotFoundError(f"Rescue request {request_id} not found")
    if request.status != "pending":
        raise InvalidStateTransitionError(
            f"Cannot process rescue request in {request.status} state"
        )

    if accept:
        # Conditional decrement so concurrent approvals cannot overdraw.
        result = await db.execute(
            update(TokenSubscription)
            .where(
                TokenSubscription.id == request.subscription_id,
                TokenSubscription.token_balance >= request.tokens_requested,
            )
            .values(token_balance=TokenSubscription.token_balance - request.tokens_requested)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            raise InsufficientBalanceError("Insufficient token balance")

        account = await db.get(TokenSubscription, request.subscription_id)
        db.add(
            TokenTransaction(
                subscription_id=request.subscription_id,
                transaction_type="withdrawal",
                token_amount=-request.tokens_requested,
                token_value_fcfa=get_token_value(request.service_type),
                payment_status="completed",
            )
        )
        request.status = "accepted"
        if account is not None:
            await db.refresh(account, attribute_names=["token_balance"])
    else:
        request.status = "rejected"
        request.rejection_reason = reason

    request.processed_at = utcnow()
    await db.flush()
    logger.info("Rescue request %s %s", request_id, request.status)
    return request
