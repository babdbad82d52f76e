"""Pydantic v2 request/response schemas for Ô Secours token endpoints."""

import uuid
from datetime import datetime

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Request schemas
# ---------------------------------------------------------------------------


class TokenSubscriptionCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID = Field(..., alias="userId")
    service_type: str = Field(..., min_length=1, alias="serviceType")
    initial_tokens: int = Field(0, ge=0, alias="initialTokens")


class TokenPurchaseRequest(BaseModel):
    """Buy tokens for one service through SAMA Money."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID = Field(..., alias="userId")
    service_type: str = Field(..., min_length=1, alias="serviceType")
    tokens: int = Field(..., ge=1)
    phone: str = Field(..., min_length=8, max_length=20)


class RescueRequestCreate(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID = Field(..., alias="userId")
    service_type: str = Field(..., min_length=1, alias="serviceType")
    tokens_requested: int = Field(..., alias="tokensRequested")
    description: str = Field("", max_length=2000)


class RescueDecision(BaseModel):
    accept: bool
    reason: str | None = Field(None, max_length=500)


# ---------------------------------------------------------------------------
# Response schemas
# ---------------------------------------------------------------------------


class TokenSubscriptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    service_type: str = Field(validation_alias=AliasChoices("plan", "service_type"))
    token_balance: int
    status: str
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenTransactionResponse(BaseModel):
    id: uuid.UUID
    subscription_id: uuid.UUID
    transaction_type: str
    token_amount: int
    token_value_fcfa: int
    payment_method: str | None = None
    payment_status: str
    reference: str | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class TokenPurchaseResponse(BaseModel):
    reference: str
    service_type: str
    tokens: int
    amount_fcfa: int
    status: str


class RescueRequestResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    subscription_id: uuid.UUID
    service_type: str
    tokens_requested: int
    request_description: str | None = None
    rescue_value_fcfa: int
    status: str
    rejection_reason: str | None = None
    processed_at: datetime | None = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class BalanceAuditResponse(BaseModel):
    subscription_id: uuid.UUID
    stored_balance: int
    ledger_balance: int
    drift: int
    consistent: bool

    model_config = ConfigDict(from_attributes=True)
