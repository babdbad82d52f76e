"""Plan definitions — membership tiers and Ô Secours token prices."""

from dataclasses import dataclass


@dataclass(frozen=True)
class MembershipPlan:
    """Pricing for a membership card tier (amounts in FCFA)."""

    name: str
    display_name: str
    registration_fee_fcfa: int
    monthly_price_fcfa: int


PLANS: dict[str, MembershipPlan] = {
    "essential": MembershipPlan(
        name="essential",
        display_name="Essential",
        registration_fee_fcfa=10000,
        monthly_price_fcfa=1000,
    ),
    "premium": MembershipPlan(
        name="premium",
        display_name="Premium",
        registration_fee_fcfa=10000,
        monthly_price_fcfa=2000,
    ),
    "elite": MembershipPlan(
        name="elite",
        display_name="Elite",
        registration_fee_fcfa=10000,
        monthly_price_fcfa=5000,
    ),
}

VALID_PLAN_NAMES: set[str] = set(PLANS.keys())

# FCFA value of one token, per Ô Secours service type
TOKEN_VALUES: dict[str, int] = {
    "auto": 750,
    "cata_catanis": 500,
    "school_fees": 500,
    "motors": 250,
    "telephone": 250,
    "first_aid": 250,
}

MIN_PURCHASE_PER_SERVICE = 10
MAX_MONTHLY_PURCHASE_PER_SERVICE = 60


def get_plan(plan_name: str) -> MembershipPlan | None:
    """Get a membership plan by name. Returns None if unknown."""
    return PLANS.get(plan_name)


def get_token_value(service_type: str | None) -> int:
    """FCFA value of one token for a service; 0 for unknown services."""
    if not service_type:
        return 0
    return TOKEN_VALUES.get(service_type, 0)


def compute_tokens(amount_fcfa: int | None, service_type: str | None) -> int:
    """Whole tokens bought by ``amount_fcfa``. Unknown services buy nothing."""
    token_value = get_token_value(service_type)
    if not token_value or not amount_fcfa or amount_fcfa < 0:
        return 0
    return amount_fcfa // token_value
