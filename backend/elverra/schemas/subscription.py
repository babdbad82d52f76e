"""Pydantic v2 request/response schemas for membership subscription endpoints."""

import uuid
from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field

# --- Request schemas ---


class ActivateSubscriptionRequest(BaseModel):
    """Activate a subscription and move its owner to ``plan``."""

    model_config = ConfigDict(populate_by_name=True)

    subscription_id: uuid.UUID = Field(..., alias="subscriptionId")
    user_id: uuid.UUID = Field(..., alias="userId")
    plan: str = Field(..., min_length=1)


class CreateSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: uuid.UUID = Field(..., alias="userId")
    plan: str = Field(..., min_length=1)
    status: str = Field("pending", pattern="^(active|inactive|cancelled|pending)$")


class UpdateSubscriptionRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    subscription_id: uuid.UUID = Field(..., alias="subscriptionId")
    status: str = Field(..., pattern="^(active|inactive|cancelled|pending)$")


class InitiateSubscriptionPaymentRequest(BaseModel):
    """Start a SAMA Money payment for a pending subscription."""

    model_config = ConfigDict(populate_by_name=True)

    subscription_id: uuid.UUID = Field(..., alias="subscriptionId")
    user_id: uuid.UUID = Field(..., alias="userId")
    plan: str = Field(..., min_length=1)
    phone: str = Field(..., min_length=8, max_length=20)
    include_registration: bool = Field(False, alias="includeRegistration")


# --- Response schemas ---


class SubscriptionResponse(BaseModel):
    id: uuid.UUID
    user_id: uuid.UUID
    plan: str
    status: str
    start_date: datetime | None = None
    end_date: datetime | None = None
    is_recurring: bool
    activated_at: datetime | None = None
    created_at: datetime
    updated_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanResponse(BaseModel):
    """Membership tier pricing for display."""

    name: str
    display_name: str
    registration_fee_fcfa: int
    monthly_price_fcfa: int

    model_config = ConfigDict(from_attributes=True)


class PaymentInitiationResponse(BaseModel):
    reference: str
    amount_fcfa: int
    status: str
