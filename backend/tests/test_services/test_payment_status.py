"""Tests for payment status lookups."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.billing.references import PaymentKind, build_subscription_reference
from elverra.models.payment import Payment
from elverra.services.payment_attempts import get_payment_status, settled_status
from tests.factories import create_attempt, create_user

pytestmark = pytest.mark.asyncio


@pytest.mark.parametrize(
    "stored, expected",
    [
        ("completed", "completed"),
        ("success", "completed"),
        ("failed", "failed"),
        ("cancelled", "failed"),
        ("pending", "pending"),
        (None, "pending"),
    ],
)
async def test_settled_status(stored, expected):
    assert settled_status(stored) == expected


async def test_settled_payment_wins_over_attempt(db_session: AsyncSession):
    user = await create_user(db_session)
    reference = build_subscription_reference(user.id)
    await create_attempt(db_session, user, reference, kind="subscription", amount_fcfa=12000)
    payment = Payment(
        user_id=user.id,
        amount=11000,
        currency="XOF",
        status="success",
        payment_method="orange_money",
        reference=reference,
    )
    db_session.add(payment)
    await db_session.flush()

    result = await get_payment_status(db_session, reference)

    assert result.kind is PaymentKind.SUBSCRIPTION
    assert result.status == "completed"
    assert result.payment.id == payment.id
    assert result.payment.amount == 11000


async def test_unrecognised_reference(db_session: AsyncSession):
    result = await get_payment_status(db_session, "PAY_42")

    assert result.kind is None
    assert result.status == "pending"
    assert result.payment is None
