"""Member payment history — subscription payments and Ô Secours token purchases."""

import uuid
from dataclasses import dataclass, field
from datetime import datetime

from sqlalchemy.ext.asyncio import AsyncSession

from elverra.billing.plans import get_plan
from elverra.services.payment_attempts import list_user_payments
from elverra.services.token_ledger import list_token_subscriptions, list_transactions

HISTORY_SIZE = 20

MERCHANTS = {
    "sama_money": "SAMA Money",
    "orange_money": "Orange Money",
    "cinetpay": "CinetPay",
}


@dataclass
class HistoryEntry:
    id: uuid.UUID
    type: str  # subscription, tokens
    amount: int
    description: str
    date: datetime
    category: str
    merchant: str
    status: str
    payment_method: str | None = None
    reference: str | None = None


@dataclass
class PaymentHistory:
    transactions: list[HistoryEntry] = field(default_factory=list)
    total_paid: int = 0
    transaction_count: int = 0


def _merchant(payment_method: str | None) -> str:
    return MERCHANTS.get(payment_method or "", "Payment")


async def get_payment_history(
    db: AsyncSession, user_id: uuid.UUID, limit: int = HISTORY_SIZE
) -> PaymentHistory:
    """Newest ``limit`` payments across memberships and token purchases.

    ``total_paid`` and ``transaction_count`` cover the whole history, not
    just the returned page. Token purchases are valued at the unit price
    recorded on the ledger entry.
    """
    entries: list[HistoryEntry] = []

    for payment in await list_user_payments(db, user_id):
        plan = get_plan((payment.payment_metadata or {}).get("planType", ""))
        label = f"{plan.display_name} membership" if plan else "Membership"
        entries.append(
            HistoryEntry(
                id=payment.id,
                type="subscription",
                amount=payment.amount,
                description=f"{label} - {_merchant(payment.payment_method)}",
                date=payment.created_at,
                category="Subscription",
                merchant=_merchant(payment.payment_method),
                status=payment.status,
                payment_method=payment.payment_method,
                reference=payment.reference,
            )
        )

    services = {a.id: a.plan for a in await list_token_subscriptions(db, user_id)}
    for transaction in await list_transactions(db, user_id=user_id):
        if transaction.transaction_type != "purchase":
            continue
        service_type = services.get(transaction.subscription_id, "Ô Secours")
        entries.append(
            HistoryEntry(
                id=transaction.id,
                type="tokens",
                amount=transaction.token_amount * transaction.token_value_fcfa,
                description=f"{transaction.token_amount} {service_type} tokens",
                date=transaction.created_at,
                category="Ô Secours tokens",
                merchant=_merchant(transaction.payment_method),
                status=transaction.payment_status,
                payment_method=transaction.payment_method,
                reference=transaction.reference,
            )
        )

    entries.sort(key=lambda e: e.date, reverse=True)
    return PaymentHistory(
        transactions=entries[:limit],
        total_paid=sum(e.amount for e in entries if e.status == "completed"),
        transaction_count=len(entries),
    )
