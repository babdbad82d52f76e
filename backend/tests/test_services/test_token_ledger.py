"""Tests for the Ô Secours token ledger."""

import uuid
from datetime import datetime, timedelta
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy import func, inspect, select
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.models.secours import TokenSubscription, TokenTransaction
from elverra.services.token_ledger import (
    DuplicateReferenceError,
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
    credit_tokens,
    get_or_create_token_subscription,
    list_rescue_requests,
    list_transactions,
    process_rescue_request,
    tokens_purchased_this_month,
    validate_purchase,
)
from tests.factories import create_user

pytestmark = pytest.mark.asyncio


async def _funded_account(db: AsyncSession, service_type: str = "auto", tokens: int = 20):
    user = await create_user(db)
    account = await create_token_subscription(db, user.id, service_type, initial_tokens=tokens)
    return user, account


class TestAccounts:
    async def test_create_with_opening_balance(self, db_session: AsyncSession):
        user, account = await _funded_account(db_session, "school_fees", tokens=15)

        assert account.plan == "school_fees"
        assert account.token_balance == 15
        transactions = await list_transactions(db_session, subscription_id=account.id)
        assert [(t.transaction_type, t.token_amount) for t in transactions] == [("adjustment", 15)]

    async def test_create_without_opening_balance_writes_no_entry(self, db_session: AsyncSession):
        user = await create_user(db_session)
        account = await create_token_subscription(db_session, user.id, "motors")

        assert account.token_balance == 0
        assert await list_transactions(db_session, subscription_id=account.id) == []

    async def test_duplicate_account_rejected(self, db_session: AsyncSession):
        user, _ = await _funded_account(db_session, "auto")
        with pytest.raises(TokenAccountExistsError):
            await create_token_subscription(db_session, user.id, "auto")

    async def test_unknown_service_rejected(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with pytest.raises(UnknownServiceError):
            await create_token_subscription(db_session, user.id, "spa")

    async def test_get_or_create_is_stable(self, db_session: AsyncSession):
        user = await create_user(db_session)
        first = await get_or_create_token_subscription(db_session, user.id, "telephone")
        second = await get_or_create_token_subscription(db_session, user.id, "telephone")
        assert first.id == second.id

    async def test_get_or_create_reuses_concurrently_opened_account(self, db_session: AsyncSession):
        user, existing = await _funded_account(db_session, "motors", tokens=3)

        with patch(
            "elverra.services.token_ledger.get_token_subscription",
            AsyncMock(side_effect=[None, existing]),
        ):
            account = await get_or_create_token_subscription(db_session, user.id, "motors")

        assert account.id == existing.id
        assert account.token_balance == 3
        count = await db_session.scalar(
            select(func.count()).select_from(TokenSubscription).where(TokenSubscription.user_id == user.id)
        )
        assert count == 1

    async def test_get_or_create_rejects_unknown_service(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with pytest.raises(UnknownServiceError):
            await get_or_create_token_subscription(db_session, user.id, "spa")

    async def test_relationships_use_supported_loaders(self):
        for model in (TokenSubscription, TokenTransaction):
            for rel in inspect(model).relationships:
                assert rel.lazy in ("select", "selectin", "joined", "raise"), rel


class TestCreditTokens:
    async def test_opens_account_on_first_purchase(self, db_session: AsyncSession):
        user = await create_user(db_session)

        transaction = await credit_tokens(
            db_session, user.id, "cata_catanis", 5200, reference="TOKENS_a_1", payment_method="cinetpay"
        )

        assert transaction.token_amount == 10  # 5200 // 500
        assert transaction.token_value_fcfa == 500
        account = await db_session.get(TokenSubscription, transaction.subscription_id)
        assert account.token_balance == 10

    async def test_duplicate_reference_rejected(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await credit_tokens(db_session, user.id, "auto", 7500, reference="TOKENS_b_1", payment_method="sama_money")

        with pytest.raises(DuplicateReferenceError):
            await credit_tokens(db_session, user.id, "auto", 7500, reference="TOKENS_b_1", payment_method="sama_money")

        account = (
            await db_session.execute(
                select(TokenSubscription).where(TokenSubscription.user_id == user.id)
            )
        ).scalar_one()
        assert account.token_balance == 10

    async def test_unknown_service_opens_no_account(self, db_session: AsyncSession):
        user = await create_user(db_session)

        with pytest.raises(UnknownServiceError):
            await credit_tokens(db_session, user.id, "spa", 5000, reference="TOKENS_d_1", payment_method="sama_money")

        count = await db_session.scalar(
            select(func.count()).select_from(TokenSubscription).where(TokenSubscription.user_id == user.id)
        )
        assert count == 0


class TestTransactions:
    async def test_newest_first_across_accounts(self, db_session: AsyncSession):
        user = await create_user(db_session)
        auto = await create_token_subscription(db_session, user.id, "auto")
        motors = await create_token_subscription(db_session, user.id, "motors")
        base = datetime(2026, 1, 1)
        for i, account in enumerate([auto, motors, auto]):
            db_session.add(
                TokenTransaction(
                    subscription_id=account.id,
                    transaction_type="purchase",
                    token_amount=i + 1,
                    token_value_fcfa=250,
                    payment_status="completed",
                    created_at=base + timedelta(days=i),
                )
            )
        await db_session.flush()

        by_user = await list_transactions(db_session, user_id=user.id)
        by_account = await list_transactions(db_session, subscription_id=auto.id)

        assert [t.token_amount for t in by_user] == [3, 2, 1]
        assert [t.token_amount for t in by_account] == [3, 1]

    async def test_requires_a_filter(self, db_session: AsyncSession):
        with pytest.raises(ValueError):
            await list_transactions(db_session)


class TestPurchaseLimits:
    async def test_price_is_tokens_times_unit_value(self, db_session: AsyncSession):
        user = await create_user(db_session)
        assert await validate_purchase(db_session, user.id, "auto", 10) == 7500

    async def test_minimum_purchase(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with pytest.raises(InvalidPurchaseError, match="Minimum"):
            await validate_purchase(db_session, user.id, "auto", 9)

    async def test_monthly_cap(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await credit_tokens(
            db_session, user.id, "motors", 0, reference="TOKENS_c_1", payment_method="sama_money", tokens=50
        )
        assert await tokens_purchased_this_month(db_session, user.id, "motors") == 50

        assert await validate_purchase(db_session, user.id, "motors", 10) == 2500
        with pytest.raises(InvalidPurchaseError, match="Monthly limit"):
            await validate_purchase(db_session, user.id, "motors", 11)

    async def test_cap_is_per_service(self, db_session: AsyncSession):
        user = await create_user(db_session)
        await credit_tokens(
            db_session, user.id, "motors", 0, reference="TOKENS_d_1", payment_method="sama_money", tokens=60
        )
        assert await validate_purchase(db_session, user.id, "telephone", 60) == 15000

    async def test_unknown_service(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with pytest.raises(UnknownServiceError):
            await validate_purchase(db_session, user.id, "spa", 10)


class TestAudit:
    async def test_consistent_ledger(self, db_session: AsyncSession):
        _, account = await _funded_account(db_session, tokens=12)
        audit = await audit_balance(db_session, account.id)
        assert audit.consistent
        assert audit.ledger_balance == 12

    async def test_reports_drift(self, db_session: AsyncSession):
        _, account = await _funded_account(db_session, tokens=12)
        account.token_balance = 20
        await db_session.flush()

        audit = await audit_balance(db_session, account.id)

        assert not audit.consistent
        assert audit.drift == 8

    async def test_unknown_account(self, db_session: AsyncSession):
        with pytest.raises(TokenAccountNotFoundError):
            await audit_balance(db_session, uuid.uuid4())


class TestRescueRequests:
    async def test_create_values_request(self, db_session: AsyncSession):
        user, account = await _funded_account(db_session, "auto", tokens=20)

        request = await create_rescue_request(db_session, user.id, "auto", 4, description="Breakdown")

        assert request.status == "pending"
        assert request.subscription_id == account.id
        assert request.rescue_value_fcfa == 3000
        assert [r.id for r in await list_rescue_requests(db_session, user.id)] == [request.id]

    async def test_balance_must_cover_request(self, db_session: AsyncSession):
        user, _ = await _funded_account(db_session, "auto", tokens=3)
        with pytest.raises(InsufficientBalanceError):
            await create_rescue_request(db_session, user.id, "auto", 4)

    async def test_requires_account(self, db_session: AsyncSession):
        user = await create_user(db_session)
        with pytest.raises(TokenAccountNotFoundError):
            await create_rescue_request(db_session, user.id, "auto", 1)

    async def test_requires_positive_tokens(self, db_session: AsyncSession):
        user, _ = await _funded_account(db_session)
        with pytest.raises(InvalidPurchaseError):
            await create_rescue_request(db_session, user.id, "auto", 0)

    async def test_accept_debits_with_withdrawal_entry(self, db_session: AsyncSession):
        user, account = await _funded_account(db_session, "auto", tokens=20)
        request = await create_rescue_request(db_session, user.id, "auto", 5)

        processed = await process_rescue_request(db_session, request.id, accept=True)

        assert processed.status == "accepted"
        assert processed.processed_at is not None
        await db_session.refresh(account)
        assert account.token_balance == 15
        withdrawals = [
            t for t in await list_transactions(db_session, subscription_id=account.id)
            if t.transaction_type == "withdrawal"
        ]
        assert [t.token_amount for t in withdrawals] == [-5]
        assert (await audit_balance(db_session, account.id)).consistent

    async def test_accept_fails_when_balance_spent(self, db_session: AsyncSession):
        user, account = await _funded_account(db_session, "auto", tokens=5)
        first = await create_rescue_request(db_session, user.id, "auto", 5)
        second = await create_rescue_request(db_session, user.id, "auto", 5)
        await process_rescue_request(db_session, first.id, accept=True)

        with pytest.raises(InsufficientBalanceError):
            await process_rescue_request(db_session, second.id, accept=True)

    async def test_reject_keeps_balance(self, db_session: AsyncSession):
        user, account = await _funded_account(db_session, "auto", tokens=20)
        request = await create_rescue_request(db_session, user.id, "auto", 5)

        processed = await process_rescue_request(db_session, request.id, accept=False, reason="No report")

        assert processed.status == "rejected"
        assert processed.rejection_reason == "No report"
        await db_session.refresh(account)
        assert account.token_balance == 20

    async def test_processed_only_once(self, db_session: AsyncSession):
        user, _ = await _funded_account(db_session)
        request = await create_rescue_request(db_session, user.id, "auto", 1)
        await process_rescue_request(db_session, request.id, accept=False)

        with pytest.raises(InvalidStateTransitionError):
            await process_rescue_request(db_session, request.id, accept=True)

    async def test_unknown_request(self, db_session: AsyncSession):
        with pytest.raises(RescueRequestNotFoundError):
            await process_rescue_request(db_session, uuid.uuid4(), accept=True)
