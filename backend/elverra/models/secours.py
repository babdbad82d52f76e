"""Ô Secours models — emergency token accounts, ledger and rescue requests."""

import uuid
from datetime import datetime

from sqlalchemy import ForeignKey, Integer, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from elverra.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class TokenSubscription(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Token account for one service type. ``plan`` holds the service type."""

    __tablename__ = "secours_subscriptions"
    __table_args__ = (UniqueConstraint("user_id", "plan", name="uq_secours_subscriptions_user_plan"),)

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    plan: Mapped[str] = mapped_column(String(50), nullable=False)
    token_balance: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="active")

    def __repr__(self) -> str:
        return f"<TokenSubscription(id={self.id}, plan={self.plan}, balance={self.token_balance})>"


class TokenTransaction(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """Append-only ledger entry. Purchases are positive, withdrawals negative."""

    __tablename__ = "secours_transactions"

    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("secours_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    transaction_type: Mapped[str] = mapped_column(String(20), nullable=False)  # purchase, withdrawal
    token_amount: Mapped[int] = mapped_column(Integer, nullable=False)
    token_value_fcfa: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    payment_method: Mapped[str | None] = mapped_column(String(50), nullable=True)
    payment_status: Mapped[str] = mapped_column(String(20), nullable=False, default="completed")
    # Gateway reference for purchases; NULL for withdrawals
    reference: Mapped[str | None] = mapped_column(String(128), unique=True, nullable=True)

    subscription: Mapped[TokenSubscription] = relationship(lazy="selectin")

    def __repr__(self) -> str:
        return f"<TokenTransaction(type={self.transaction_type}, amount={self.token_amount}, reference={self.reference!r})>"


class RescueRequest(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A member's request to spend tokens on an emergency (withdrawal)."""

    __tablename__ = "secours_rescue_requests"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("secours_subscriptions.id", ondelete="CASCADE"),
        nullable=False,
    )
    service_type: Mapped[str] = mapped_column(String(50), nullable=False)
    tokens_requested: Mapped[int] = mapped_column(Integer, nullable=False)
    request_description: Mapped[str] = mapped_column(Text, nullable=False, default="")
    rescue_value_fcfa: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")  # pending, accepted, rejected
    rejection_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    processed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<RescueRequest(id={self.id}, tokens={self.tokens_requested}, status={self.status})>"
