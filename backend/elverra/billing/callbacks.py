"""Normalize mobile-money gateway callback payloads.

Each gateway posts its own field names. The parsers below reduce them to a
:class:`GatewayCallback` that the reconciliation handlers understand.
"""

import enum
import logging
import uuid
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from elverra.billing.references import PaymentKind, classify_reference, parse_token_reference

logger = logging.getLogger(__name__)


class CallbackOutcome(str, enum.Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class GatewayCallback:
    """A provider-neutral view of one payment status callback."""

    provider: str
    reference: str | None
    outcome: CallbackOutcome
    amount: int = 0
    user_id: uuid.UUID | None = None
    service_type: str | None = None

    @property
    def kind(self) -> PaymentKind | None:
        return classify_reference(self.reference)


def _first(payload: dict[str, Any], *keys: str) -> Any:
    """Return the first truthy value among ``keys``."""
    for key in keys:
        value = payload.get(key)
        if value not in (None, ""):
            return value
    return None


def _to_amount(value: Any) -> int:
    """Parse a gateway amount; unparseable amounts count as zero."""
    if value is None:
        return 0
    try:
        return int(float(value))
    except (TypeError, ValueError):
        logger.warning("Unparseable callback amount %r", value)
        return 0


def _classify(status: str, success: set[str], failure: set[str]) -> CallbackOutcome:
    if status in success:
        return CallbackOutcome.SUCCESS
    if status in failure:
        return CallbackOutcome.FAILURE
    return CallbackOutcome.UNKNOWN


def parse_sama_money(payload: dict[str, Any]) -> GatewayCallback:
    """SAMA Money: ``idCommande``/``etat``/``montant`` (status may be 1 or 0)."""
    reference = _first(payload, "idCommande", "reference", "orderId")
    raw_status = _first(payload, "status", "etat")
    status = str(raw_status if raw_status is not None else "").strip().lower()
    return GatewayCallback(
        provider="sama_money",
        reference=str(reference) if reference is not None else None,
        outcome=_classify(
            status,
            success={"success", "completed", "1"},
            failure={"failed", "cancelled", "error", "0"},
        ),
        amount=_to_amount(_first(payload, "montant", "amount")),
    )


def parse_orange_money(payload: dict[str, Any]) -> GatewayCallback:
    """Orange Money web payment notification."""
    reference = _first(payload, "order_id", "reference", "ref", "orderId")
    raw_status = _first(payload, "status", "status_code")
    status = str(raw_status if raw_status is not None else "").strip().lower()
    return GatewayCallback(
        provider="orange_money",
        reference=str(reference) if reference is not None else None,
        outcome=_classify(
            status,
            success={"success", "completed", "ok"},
            failure={"failed", "cancelled", "expired"},
        ),
        amount=_to_amount(payload.get("amount")),
    )


def parse_cinetpay(payload: dict[str, Any]) -> GatewayCallback:
    """CinetPay notification; the service and user are encoded in the reference."""
    reference = _first(payload, "transaction_id", "cpm_trans_id", "cpm_trans_id_form")
    reference = str(reference) if reference is not None else None
    raw_status = _first(payload, "status", "cpm_result")
    status = str(raw_status if raw_status is not None else "").strip().upper()

    parsed = parse_token_reference(reference)
    service_type, user_id = parsed if parsed else (None, None)

    return GatewayCallback(
        provider="cinetpay",
        reference=reference,
        outcome=_classify(
            status,
            success={"ACCEPTED"},
            failure={"REFUSED", "FAILED", "CANCELLED"},
        ),
        amount=_to_amount(_first(payload, "amount", "cpm_amount")),
        user_id=user_id,
        service_type=service_type,
    )


CALLBACK_PARSERS: dict[str, Callable[[dict[str, Any]], GatewayCallback]] = {
    "sama-money": parse_sama_money,
    "orange-money": parse_orange_money,
    "cinetpay": parse_cinetpay,
}
