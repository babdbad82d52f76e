"""Affiliate programme models — agents, referrals, rewards."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from elverra.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class Agent(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Affiliate enrolment for a user.

    ``user_id`` is not a foreign key: purged users keep their
    agent row so historical rewards still aggregate.
    """

    __tablename__ = "agents"

    user_id: Mapped[uuid.UUID] = mapped_column(unique=True, nullable=False, index=True)
    referral_code: Mapped[str] = mapped_column(String(32), unique=True, nullable=False)

    def __repr__(self) -> str:
        return f"<Agent(user_id={self.user_id}, code={self.referral_code!r})>"


class Referral(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Who referred whom."""

    __tablename__ = "referrals"

    referrer_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    referred_user_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")


class AffiliateReward(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Commission granted to a referrer once the referred user converts."""

    __tablename__ = "affiliate_rewards"

    referrer_id: Mapped[uuid.UUID] = mapped_column(nullable=False, index=True)
    referral_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("referrals.id", ondelete="SET NULL"),
        nullable=True,
    )
    credit_points_awarded: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending, awarded
    awarded_at: Mapped[datetime | None] = mapped_column(nullable=True)
