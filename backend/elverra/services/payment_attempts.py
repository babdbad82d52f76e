"""Payment attempt service — creation, lookup, one-shot resolution and status checks."""

import logging
import uuid
from dataclasses import dataclass
from datetime import datetime
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.billing.references import PaymentKind, classify_reference
from elverra.database import utcnow
from elverra.models.payment import Payment, PaymentAttempt

logger = logging.getLogger(__name__)


async def create_payment_attempt(
    db: AsyncSession,
    reference: str,
    kind: PaymentKind,
    user_id: uuid.UUID,
    amount_fcfa: int,
    provider: str = "sama_money",
    subscription_id: uuid.UUID | None = None,
    service_type: str | None = None,
    tokens: int | None = None,
    metadata: dict[str, Any] | None = None,
) -> PaymentAttempt:
    attempt = PaymentAttempt(
        reference=reference,
        kind=kind.value,
        provider=provider,
        user_id=user_id,
        subscription_id=subscription_id,
        service_type=service_type,
        tokens=tokens,
        amount_fcfa=amount_fcfa,
        status="pending",
        payment_metadata=metadata,
    )
    db.add(attempt)
    await db.flush()
    logger.info("Created %s payment attempt %s for user %s", kind.value, reference, user_id)
    return attempt


async def get_attempt_by_reference(
    db: AsyncSession, reference: str
) -> PaymentAttempt | None:
    """Latest attempt carrying ``reference`` (used by webhooks)."""
    result = await db.execute(
        select(PaymentAttempt)
        .where(PaymentAttempt.reference == reference)
        .order_by(PaymentAttempt.created_at.desc())
        .limit(1)
    )
    return result.scalar_one_or_none()


async def resolve_attempt(db: AsyncSession, reference: str, status: str) -> bool:
    """Move a pending attempt to ``status`` (completed or failed).

    Compare-and-swap on ``status = 'pending'``: only the first caller wins.
    Returns False if the attempt was missing or already resolved.
    """
    result = await db.execute(
        update(PaymentAttempt)
        .where(
            PaymentAttempt.reference == reference,
            PaymentAttempt.status == "pending",
        )
        .values(status=status, completed_at=utcnow())
    )
    return result.rowcount == 1


async def record_subscription_payment(
    db: AsyncSession,
    attempt: PaymentAttempt,
    amount: int,
    status: str,
    payment_method: str,
) -> Payment:
    """Store the settled (or failed) payment behind a subscription attempt."""
    payment = Payment(
        user_id=attempt.user_id,
        subscription_id=attempt.subscription_id,
        amount=amount,
        currency="XOF",
        status=status,
        payment_method=payment_method,
        reference=attempt.reference,
        payment_metadata=attempt.payment_metadata,
    )
    db.add(payment)
    await db.flush()
    return payment


async def list_user_payments(db: AsyncSession, user_id: uuid.UUID) -> list[Payment]:
    result = await db.execute(
        select(Payment)
        .where(Payment.user_id == user_id)
        .order_by(Payment.created_at.desc())
    )
    return list(result.scalars().all())


async def get_payment_by_reference(db: AsyncSession, reference: str) -> Payment | None:
    result = await db.execute(select(Payment).where(Payment.reference == reference))
    return result.scalar_one_or_none()


def settled_status(status: str | None) -> str:
    """Collapse a stored status to pending, completed or failed."""
    if status in ("completed", "success"):
        return "completed"
    if status in ("failed", "cancelled"):
        return "failed"
    return "pending"


@dataclass
class PaymentSummary:
    id: uuid.UUID
    amount: int
    currency: str
    status: str
    created_at: datetime


@dataclass
class PaymentStatus:
    reference: str
    kind: PaymentKind | None
    status: str
    payment: PaymentSummary | None = None


async def get_payment_status(db: AsyncSession, reference: str) -> PaymentStatus:
    """Where a payment stands, as polled by the client after checkout.

    Subscription references are answered from the settled payment when the
    gateway has called back, otherwise from the attempt. A reference nobody
    has recorded yet is reported as pending.
    """
    kind = classify_reference(reference)

    payment = None
    if kind is not PaymentKind.TOKENS:
        settled = await get_payment_by_reference(db, reference)
        if settled is not None:
            payment = PaymentSummary(
                id=settled.id,
                amount=settled.amount,
                currency=settled.currency,
                status=settled.status,
                created_at=settled.created_at,
            )

    if payment is None:
        attempt = await get_attempt_by_reference(db, reference)
        if attempt is not None:
            payment = PaymentSummary(
                id=attempt.id,
                amount=attempt.amount_fcfa,
                currency="XOF",
                status=attempt.status,
                created_at=attempt.created_at,
            )

    return PaymentStatus(
        reference=reference,
        kind=kind,
        status=settled_status(payment.status if payment else None),
        payment=payment,
    )
