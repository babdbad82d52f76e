"""Payment references — generation and classification.

References double as idempotency keys. Token purchases use
``TOKENS_<service>_<user_id>_<millis>``; subscription payments use
``SUB_<user_id>_<millis>``. Legacy subscription references start with ``ELV``.
"""

import enum
import re
import time
import uuid

TOKENS_PREFIX = "TOKENS_"
SUBSCRIPTION_PREFIXES = ("SUB_", "ELV")

_TOKEN_REFERENCE = re.compile(r"^TOKENS_([a-z_]+)_([^_]+)_\d+$", re.IGNORECASE)


class PaymentKind(str, enum.Enum):
    TOKENS = "tokens"
    SUBSCRIPTION = "subscription"


def _millis() -> int:
    return int(time.time() * 1000)


def build_token_reference(service_type: str, user_id: uuid.UUID) -> str:
    return f"{TOKENS_PREFIX}{service_type}_{user_id}_{_millis()}"


def build_subscription_reference(user_id: uuid.UUID) -> str:
    return f"SUB_{user_id}_{_millis()}"


def classify_reference(reference: str | None) -> PaymentKind | None:
    """Tell token purchases from subscription payments by prefix."""
    if not reference:
        return None
    if reference.startswith(TOKENS_PREFIX):
        return PaymentKind.TOKENS
    if reference.startswith(SUBSCRIPTION_PREFIXES):
        return PaymentKind.SUBSCRIPTION
    return None


def parse_token_reference(reference: str | None) -> tuple[str, uuid.UUID] | None:
    """Extract (service_type, user_id) from a token reference, if well-formed."""
    if not reference:
        return None
    match = _TOKEN_REFERENCE.match(reference)
    if match is None:
        return None
    try:
        user_id = uuid.UUID(match.group(2))
    except ValueError:
        return None
    return match.group(1).lower(), user_id
