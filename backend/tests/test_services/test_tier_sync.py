"""Tests for the membership tier saga and its reconciliation job."""

import uuid
from unittest.mock import AsyncMock, patch

import pytest
from sqlalchemy.exc import OperationalError
from sqlalchemy.ext.asyncio import AsyncSession

from elverra.models.tier_sync import TierSyncTask
from elverra.models.user import User
from elverra.services.tier_sync import (
    list_pending_tier_syncs,
    reconcile_pending_tier_syncs,
    sync_membership_tier,
)
from tests.factories import create_user

pytestmark = pytest.mark.asyncio


class TestSyncMembershipTier:
    async def test_writes_tier_immediately(self, db_session: AsyncSession):
        user = await create_user(db_session, membership_tier="essential")

        assert await sync_membership_tier(db_session, user.id, "elite") is True

        await db_session.refresh(user)
        assert user.membership_tier == "elite"
        assert await list_pending_tier_syncs(db_session) == []

    async def test_missing_user_is_queued(self, db_session: AsyncSession):
        user_id = uuid.uuid4()
        subscription_id = uuid.uuid4()

        assert await sync_membership_tier(db_session, user_id, "premium", subscription_id) is False

        [task] = await list_pending_tier_syncs(db_session)
        assert task.user_id == user_id
        assert task.subscription_id == subscription_id
        assert task.attempts == 1
        assert "not found" in task.last_error

    async def test_database_error_is_queued(self, db_session: AsyncSession):
        user = await create_user(db_session)
        error = OperationalError("UPDATE users", {}, Exception("lock timeout"))

        with patch(
            "elverra.services.tier_sync.set_membership_tier",
            AsyncMock(side_effect=error),
        ):
            assert await sync_membership_tier(db_session, user.id, "premium") is False

        [task] = await list_pending_tier_syncs(db_session)
        assert task.user_id == user.id
        assert "lock timeout" in task.last_error


class TestReconcilePendingTierSyncs:
    async def test_applies_pending_tasks(self, db_session: AsyncSession):
        user = await create_user(db_session, membership_tier="essential")
        task = TierSyncTask(user_id=user.id, plan="premium", status="pending", attempts=1)
        db_session.add(task)
        await db_session.flush()

        resolved = await reconcile_pending_tier_syncs(db_session)

        assert resolved == 1
        assert task.status == "done"
        assert task.attempts == 2
        assert task.last_error is None
        refreshed = await db_session.get(User, user.id)
        await db_session.refresh(refreshed)
        assert refreshed.membership_tier == "premium"

    async def test_still_failing_task_stays_pending(self, db_session: AsyncSession):
        task = TierSyncTask(user_id=uuid.uuid4(), plan="elite", status="pending", attempts=1)
        db_session.add(task)
        await db_session.flush()

        resolved = await reconcile_pending_tier_syncs(db_session)

        assert resolved == 0
        assert task.status == "pending"
        assert task.attempts == 2
        assert "not found" in task.last_error

    async def test_done_tasks_are_not_retried(self, db_session: AsyncSession):
        user = await create_user(db_session, membership_tier="essential")
        db_session.add(TierSyncTask(user_id=user.id, plan="elite", status="done", attempts=2))
        await db_session.flush()

        assert await reconcile_pending_tier_syncs(db_session) == 0
        await db_session.refresh(user)
        assert user.membership_tier == "essential"
