"""Tests for payment references and plan pricing."""

import uuid

from elverra.billing.plans import PLANS, compute_tokens, get_plan, get_token_value
from elverra.billing.references import (
    PaymentKind,
    build_subscription_reference,
    build_token_reference,
    classify_reference,
    parse_token_reference,
)


class TestReferences:
    def test_token_reference_round_trips_user_and_service(self):
        user_id = uuid.uuid4()
        reference = build_token_reference("cata_catanis", user_id)
        assert reference.startswith("TOKENS_cata_catanis_")
        assert parse_token_reference(reference) == ("cata_catanis", user_id)

    def test_subscription_reference_prefix(self):
        reference = build_subscription_reference(uuid.uuid4())
        assert classify_reference(reference) is PaymentKind.SUBSCRIPTION

    def test_classify(self):
        assert classify_reference("TOKENS_auto_x_1") is PaymentKind.TOKENS
        assert classify_reference("SUB_x_1") is PaymentKind.SUBSCRIPTION
        assert classify_reference("ELV-2024-0001") is PaymentKind.SUBSCRIPTION
        assert classify_reference("PAY_123") is None
        assert classify_reference("") is None
        assert classify_reference(None) is None

    def test_parse_rejects_other_references(self):
        assert parse_token_reference("SUB_x_1") is None
        assert parse_token_reference(None) is None


class TestPlans:
    def test_membership_prices(self):
        assert PLANS["essential"].monthly_price_fcfa == 1000
        assert PLANS["premium"].monthly_price_fcfa == 2000
        assert PLANS["elite"].monthly_price_fcfa == 5000
        assert all(p.registration_fee_fcfa == 10000 for p in PLANS.values())

    def test_get_plan_unknown(self):
        assert get_plan("platinum") is None

    def test_token_values(self):
        assert get_token_value("auto") == 750
        assert get_token_value("school_fees") == 500
        assert get_token_value("first_aid") == 250
        assert get_token_value("unknown") == 0
        assert get_token_value(None) == 0

    def test_compute_tokens_floors(self):
        assert compute_tokens(7500, "auto") == 10
        assert compute_tokens(7600, "auto") == 10
        assert compute_tokens(749, "auto") == 0

    def test_compute_tokens_unknown_service_is_zero(self):
        assert compute_tokens(5000, "spa") == 0
        assert compute_tokens(None, "auto") == 0
