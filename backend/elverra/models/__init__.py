"""SQLAlchemy models for Elverra.

All models are imported here so that Alembic's autogenerate can discover
them via Base.metadata. If you add a new model, import it in this file.
"""

from elverra.models.affiliate import AffiliateReward, Agent, Referral
from elverra.models.payment import Payment, PaymentAttempt
from elverra.models.secours import RescueRequest, TokenSubscription, TokenTransaction
from elverra.models.subscription import Subscription
from elverra.models.tier_sync import TierSyncTask
from elverra.models.user import User

__all__ = [
    "AffiliateReward",
    "Agent",
    "Payment",
    "PaymentAttempt",
    "Referral",
    "RescueRequest",
    "Subscription",
    "TierSyncTask",
    "TokenSubscription",
    "TokenTransaction",
    "User",
]
