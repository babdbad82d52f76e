"""Outbox of membership tier updates still to be applied."""

import uuid

from sqlalchemy import Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from elverra.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class TierSyncTask(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A tier write that failed after its subscription was activated."""

    __tablename__ = "membership_sync_tasks"

    # No foreign key: the task must survive a missing user row.
    user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(nullable=True)
    plan: Mapped[str] = mapped_column(String(50), nullable=False)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending", index=True)
    attempts: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    last_error: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<TierSyncTask(user_id={self.user_id}, plan={self.plan}, status={self.status}, attempts={self.attempts})>"
