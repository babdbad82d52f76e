"""Payment models — gateway payment attempts and settled subscription payments."""

import uuid
from datetime import datetime

from sqlalchemy import JSON, ForeignKey, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from elverra.database import Base, TimestampMixin, UUIDPrimaryKeyMixin


class PaymentAttempt(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A user-initiated mobile-money payment, keyed by its reference.

    The reference is the idempotency key for gateway callbacks: an attempt
    leaves ``pending`` exactly once.
    """

    __tablename__ = "payment_attempts"

    reference: Mapped[str] = mapped_column(String(128), unique=True, nullable=False, index=True)
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # tokens, subscription
    provider: Mapped[str] = mapped_column(String(50), nullable=False, default="sama_money")

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )

    # Token purchases only
    service_type: Mapped[str | None] = mapped_column(String(50), nullable=True)
    tokens: Mapped[int | None] = mapped_column(Integer, nullable=True)

    amount_fcfa: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")
    payment_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)
    completed_at: Mapped[datetime | None] = mapped_column(nullable=True)

    def __repr__(self) -> str:
        return f"<PaymentAttempt(reference={self.reference!r}, kind={self.kind}, status={self.status})>"


class Payment(UUIDPrimaryKeyMixin, TimestampMixin, Base):
    """A resolved subscription payment as reported by the gateway."""

    __tablename__ = "payments"

    user_id: Mapped[uuid.UUID] = mapped_column(
        ForeignKey("users.id", ondelete="CASCADE"),
        nullable=False,
        index=True,
    )
    subscription_id: Mapped[uuid.UUID | None] = mapped_column(
        ForeignKey("subscriptions.id", ondelete="SET NULL"),
        nullable=True,
    )
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False, default="XOF")
    status: Mapped[str] = mapped_column(String(20), nullable=False)
    payment_method: Mapped[str] = mapped_column(String(50), nullable=False)
    reference: Mapped[str] = mapped_column(String(128), unique=True, nullable=False)
    payment_metadata: Mapped[dict | None] = mapped_column("metadata", JSON, nullable=True)

    def __repr__(self) -> str:
        return f"<Payment(reference={self.reference!r}, amount={self.amount}, status={self.status})>"
