"""Mobile-money callback handlers — credit tokens or activate subscriptions.

Each callback is reconciled inside one SAVEPOINT: resolving the payment
attempt, writing the ledger or payment row and applying the balance either
all happen or none do. The attempt is resolved with a compare-and-swap on its
``pending`` status and references are UNIQUE in the ledger and payments
tables, so a redelivered callback is a no-op.
"""

import enum
import logging
import re

from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.billing.callbacks import CallbackOutcome, GatewayCallback
from elverra.billing.plans import get_token_value
from elverra.billing.references import PaymentKind
from elverra.services.payment_attempts import (
    get_attempt_by_reference,
    record_subscription_payment,
    resolve_attempt,
)
from elverra.services.subscription_service import activate_subscription
from elverra.services.tier_sync import sync_membership_tier
from elverra.services.token_ledger import DuplicateReferenceError, credit_tokens

logger = logging.getLogger(__name__)


class ReconcileResult(str, enum.Enum):
    CREDITED = "credited"
    ACTIVATED = "activated"
    MARKED_FAILED = "marked_failed"
    NOTHING_CREDITED = "nothing_credited"
    DUPLICATE = "duplicate"
    SKIPPED = "skipped"
    IGNORED = "ignored"


# SQLite: "UNIQUE constraint failed: payments.reference"
# PostgreSQL: "Key (reference)=(...) already exists"
_REFERENCE_CONFLICT = re.compile(r"\.reference\b|\(reference\)")


def is_reference_conflict(error: IntegrityError) -> bool:
    """True if ``error`` is a uniqueness violation on a ``reference`` column."""
    return bool(_REFERENCE_CONFLICT.search(str(error.orig)))


async def handle_token_payment_succeeded(
    db: AsyncSession, callback: GatewayCallback
) -> ReconcileResult:
    """Credit the purchased tokens and complete the attempt."""
    reference = callback.reference
    attempt = await get_attempt_by_reference(db, reference)

    user_id = callback.user_id or (attempt.user_id if attempt else None)
    service_type = callback.service_type or (attempt.service_type if attempt else None)
    amount = callback.amount or (attempt.amount_fcfa if attempt else 0)
    tokens = attempt.tokens if attempt else None

    if user_id is None or not service_type:
        logger.warning("Cannot resolve user/service for token reference %s, skipping", reference)
        return ReconcileResult.SKIPPED

    if not get_token_value(service_type):
        # Paid, but there is no token account type to credit
        logger.warning("Unknown token service %r for reference %s, nothing credited", service_type, reference)
        if attempt is not None and await resolve_attempt(db, reference, "completed"):
            return ReconcileResult.NOTHING_CREDITED
        return ReconcileResult.SKIPPED

    try:
        async with db.begin_nested():
            if attempt is not None and not await resolve_attempt(db, reference, "completed"):
                logger.info("Token reference %s already resolved, ignoring redelivery", reference)
                return ReconcileResult.DUPLICATE

            await credit_tokens(
                db,
                user_id=user_id,
                service_type=service_type,
                amount_fcfa=amount,
                reference=reference,
                payment_method=callback.provider,
                tokens=tokens,
            )
    except DuplicateReferenceError:
        logger.info("Token reference %s already credited, ignoring redelivery", reference)
        return ReconcileResult.DUPLICATE
    except IntegrityError as e:
        if not is_reference_conflict(e):
            raise
        logger.info("Token reference %s already credited, ignoring redelivery", reference)
        return ReconcileResult.DUPLICATE

    return ReconcileResult.CREDITED


async def handle_token_payment_failed(
    db: AsyncSession, callback: GatewayCallback
) -> ReconcileResult:
    """Mark the token purchase attempt failed; balances are untouched."""
    if await resolve_attempt(db, callback.reference, "failed"):
        logger.info("Token payment %s failed", callback.reference)
        return ReconcileResult.MARKED_FAILED

    logger.info("No pending token attempt for failed reference %s", callback.reference)
    return ReconcileResult.SKIPPED


async def handle_subscription_payment_succeeded(
    db: AsyncSession, callback: GatewayCallback
) -> ReconcileResult:
    """Record the payment, activate the subscription, sync the member tier."""
    reference = callback.reference
    attempt = await get_attempt_by_reference(db, reference)
    if attempt is None:
        logger.warning("No payment attempt found for subscription reference %s", reference)
        return ReconcileResult.SKIPPED

    try:
        async with db.begin_nested():
            if not await resolve_attempt(db, reference, "completed"):
                logger.info("Subscription reference %s already resolved, ignoring redelivery", reference)
                return ReconcileResult.DUPLICATE

            await record_subscription_payment(
                db,
                attempt=attempt,
                amount=callback.amount or attempt.amount_fcfa,
                status="completed",
                payment_method=callback.provider,
            )

            if attempt.subscription_id is not None:
                subscription = await activate_subscription(db, attempt.subscription_id)
                plan = (attempt.payment_metadata or {}).get("planType")
                if plan:
                    await sync_membership_tier(
                        db, attempt.user_id, plan, subscription_id=subscription.id
                    )
    except IntegrityError as e:
        if not is_reference_conflict(e):
            raise
        logger.info("Subscription reference %s already recorded, ignoring redelivery", reference)
        return ReconcileResult.DUPLICATE

    logger.info("Subscription payment %s completed", reference)
    return ReconcileResult.ACTIVATED


async def handle_subscription_payment_failed(
    db: AsyncSession, callback: GatewayCallback
) -> ReconcileResult:
    """Record the failed payment. The subscription keeps its status."""
    reference = callback.reference
    attempt = await get_attempt_by_reference(db, reference)
    if attempt is None:
        logger.warning("No payment attempt found for failed subscription reference %s", reference)
        return ReconcileResult.SKIPPED

    try:
        async with db.begin_nested():
            if not await resolve_attempt(db, reference, "failed"):
                return ReconcileResult.DUPLICATE

            await record_subscription_payment(
                db,
                attempt=attempt,
                amount=callback.amount or attempt.amount_fcfa,
                status="failed",
                payment_method=callback.provider,
            )
    except IntegrityError as e:
        if not is_reference_conflict(e):
            raise
        return ReconcileResult.DUPLICATE

    logger.info("Subscription payment %s failed", reference)
    return ReconcileResult.MARKED_FAILED


CALLBACK_HANDLERS = {
    (PaymentKind.TOKENS, CallbackOutcome.SUCCESS): handle_token_payment_succeeded,
    (PaymentKind.TOKENS, CallbackOutcome.FAILURE): handle_token_payment_failed,
    (PaymentKind.SUBSCRIPTION, CallbackOutcome.SUCCESS): handle_subscription_payment_succeeded,
    (PaymentKind.SUBSCRIPTION, CallbackOutcome.FAILURE): handle_subscription_payment_failed,
}


async def process_callback(db: AsyncSession, callback: GatewayCallback) -> ReconcileResult:
    """Route a normalized callback to its handler."""
    if not callback.reference:
        logger.info("%s callback without reference, nothing to do", callback.provider)
        return ReconcileResult.IGNORED

    kind = callback.kind
    if kind is None:
        logger.warning("Unrecognised reference %s from %s", callback.reference, callback.provider)
        return ReconcileResult.IGNORED

    handler = CALLBACK_HANDLERS.get((kind, callback.outcome))
    if handler is None:
        logger.info(
            "Ignoring %s status for %s reference %s",
            callback.outcome.value,
            kind.value,
            callback.reference,
        )
        return ReconcileResult.IGNORED

    logger.info("Processing %s %s callback for %s", callback.provider, kind.value, callback.reference)
    return await handler(db, callback)
