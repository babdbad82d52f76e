"""Pydantic v2 schemas for payment status checks and member payment history."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

from elverra.billing.references import PaymentKind


class VerifyPaymentRequest(BaseModel):
    """Reference returned by checkout; ``gateway`` is informational only."""

    model_config = ConfigDict(populate_by_name=True)

    reference: str = Field(..., min_length=1, alias="paymentId")
    gateway: str | None = None


class PaymentSummaryResponse(BaseModel):
    id: uuid.UUID
    amount: int
    currency: str
    status: str
    created_at: datetime | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentStatusResponse(BaseModel):
    reference: str
    kind: PaymentKind | None = None
    status: str
    payment: PaymentSummaryResponse | None = None

    model_config = ConfigDict(from_attributes=True)


class HistoryEntryResponse(BaseModel):
    id: uuid.UUID
    type: str
    amount: int
    description: str
    date: datetime
    category: str
    merchant: str
    status: str
    payment_method: str | None = None
    reference: str | None = None

    model_config = ConfigDict(from_attributes=True)


class PaymentHistoryResponse(BaseModel):
    transactions: list[HistoryEntryResponse]
    total_paid: int
    transaction_count: int

    model_config = ConfigDict(from_attributes=True)
