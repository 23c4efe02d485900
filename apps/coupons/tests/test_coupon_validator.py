"""Coupon eligibility checks, discount math and the validate endpoint."""

from __future__ import annotations

from datetime import date, datetime, timedelta, timezone

import pytest
from django.db import IntegrityError, transaction
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.coupons.domain.entities import (
    Coupon,
    CouponApplication,
    DiscountRule,
    DiscountType,
    RejectionReason,
)
from apps.coupons.domain.validator import CouponContext, CouponValidator
from apps.coupons.models import Coupon as CouponModel
from apps.pricing.domain.engine import PricingEngine
from apps.pricing.domain.entities import ServiceKind, ServiceSelection
from apps.pricing.rates import RateCard
from shared.domain.value_objects import DateRange

NOW = datetime(2030, 1, 15, 12, 0, tzinfo=timezone.utc)
CONTEXT = CouponContext(category="room", contact_id="9876543210")


class InMemoryCoupons:

    def __init__(self, *coupons, usage=None):
        self.coupons = {coupon.code: coupon for coupon in coupons}
        self.usage = usage or {}

    def get_by_code(self, code):
        return self.coupons.get(code)

    def usage_count(self, code, contact_id):
        return self.usage.get((code, contact_id), 0)


def example_quote():
    card = RateCard.from_mapping({"meal_plan_per_adult_per_day": 150, "airport_pickup_flat": 1500})
    cart = [
        ServiceSelection(kind=ServiceKind.STAY_NIGHT, unit_price=3500),
        ServiceSelection(kind=ServiceKind.MEAL_PLAN),
        ServiceSelection(kind=ServiceKind.AIRPORT_PICKUP),
    ]
    return PricingEngine(card).quote(cart, DateRange(date(2030, 2, 1), date(2030, 2, 3)), [30, 29])


SAVE10 = Coupon(code="SAVE10", rule=DiscountRule(DiscountType.PERCENTAGE, 10, cap=500))
MIN20000 = Coupon(code="MIN20000", rule=DiscountRule(DiscountType.FLAT, 1000), min_order_value=20000)


def validate(code, *coupons, context=CONTEXT, usage=None):
    validator = CouponValidator(InMemoryCoupons(*coupons, usage=usage), clock=lambda: NOW)
    return validator.validate(code, example_quote(), context)


def test_percentage_coupon_is_capped():
    application = validate("SAVE10", SAVE10)
    quote = example_quote().with_coupon(application)

    assert application.accepted
    assert application.discount_amount == 500
    assert quote.subtotal == 9100
    assert quote.discount == 500
    assert quote.final_total == 8600


def test_codes_match_case_insensitively():
    assert validate("  save10 ", SAVE10).accepted


def test_minimum_order_value_rejection_leaves_total_unchanged():
    application = validate("MIN20000", MIN20000)
    quote = example_quote().with_coupon(application)

    assert not application.accepted
    assert application.reason is RejectionReason.BELOW_MINIMUM
    assert application.reason_text == "order value below minimum"
    assert quote.final_total == 9100


@pytest.mark.parametrize(
    "coupon, reason",
    [
        (None, RejectionReason.NOT_FOUND),
        (Coupon(code="OFF", rule=SAVE10.rule, enabled=False), RejectionReason.DISABLED),
        (Coupon(code="OFF", rule=SAVE10.rule, valid_from=NOW + timedelta(days=1)), RejectionReason.NOT_STARTED),
        (Coupon(code="OFF", rule=SAVE10.rule, valid_until=NOW - timedelta(days=1)), RejectionReason.EXPIRED),
        (Coupon(code="OFF", rule=SAVE10.rule, scopes=frozenset({"yoga"})), RejectionReason.OUT_OF_SCOPE),
    ],
)
def test_each_failed_check_has_its_own_reason(coupon, reason):
    coupons = [coupon] if coupon else []

    application = validate("OFF", *coupons)

    assert not application.accepted
    assert application.reason is reason
    assert application.discount_amount == 0


def test_checks_short_circuit_in_order():
    coupon = Coupon(
        code="OFF",
        rule=SAVE10.rule,
        enabled=False,
        valid_until=NOW - timedelta(days=1),
        min_order_value=10 ** 9,
    )

    assert validate("OFF", coupon).reason is RejectionReason.DISABLED


def test_usage_limit_per_contact():
    coupon = Coupon(code="ONCE", rule=SAVE10.rule, max_uses_per_contact=1)

    first = validate("ONCE", coupon)
    second = validate("ONCE", coupon, usage={("ONCE", CONTEXT.contact_id): 1})
    other_contact = validate(
        "ONCE",
        coupon,
        context=CouponContext(category="room", contact_id="9000000000"),
        usage={("ONCE", CONTEXT.contact_id): 1},
    )

    assert first.accepted
    assert second.reason is RejectionReason.USAGE_LIMIT_REACHED
    assert other_contact.accepted


def test_zero_max_uses_means_unlimited():
    coupon = Coupon(code="ALWAYS", rule=SAVE10.rule, max_uses_per_contact=0)

    assert validate("ALWAYS", coupon, usage={("ALWAYS", CONTEXT.contact_id): 50}).accepted


@pytest.mark.parametrize(
    "rule, subtotal, expected",
    [
        (DiscountRule(DiscountType.PERCENTAGE, 10), 9105, 910),
        (DiscountRule(DiscountType.PERCENTAGE, 100, cap=None), 9100, 9100),
        (DiscountRule(DiscountType.FLAT, 20000), 9100, 9100),
        (DiscountRule(DiscountType.FLAT, 300), 9100, 300),
        (DiscountRule(DiscountType.FLAT, 300), 0, 0),
    ],
)
def test_discount_never_exceeds_subtotal(rule, subtotal, expected):
    assert rule.discount_for(subtotal) == expected


def test_flat_coupon_larger_than_order_floors_total_at_zero():
    coupon = Coupon(code="BIG", rule=DiscountRule(DiscountType.FLAT, 50000))

    quote = example_quote().with_coupon(validate("BIG", coupon))

    assert quote.discount == quote.subtotal
    assert quote.final_total == 0


def test_rejected_application_round_trips():
    application = CouponApplication.reject("NOPE", RejectionReason.EXPIRED)

    assert CouponApplication.from_dict(application.to_dict()) == application


class CouponValidateAPITests(APITestCase):

    def setUp(self) -> None:
        self.url = reverse("coupon-validate")
        CouponModel.objects.create(
            code="save10",
            discount_type=CouponModel.DiscountType.PERCENTAGE,
            discount_value=10,
            max_discount=50000,
            scopes=["all"],
        )
        CouponModel.objects.create(
            code="YOGA20",
            discount_type=CouponModel.DiscountType.PERCENTAGE,
            discount_value=20,
            scopes=["yoga"],
        )
        self.check_in = date.today() + timedelta(days=7)

    def _payload(self, code: str, category: str = "room") -> dict:
        return {
            "code": code,
            "category": category,
            "phone": "+91 98765 43210",
            "check_in": str(self.check_in),
            "check_out": str(self.check_in + timedelta(days=2)),
            "cart": [{"kind": "stay-night", "unit_price": 350000}],
        }

    def test_accepted_coupon_returns_discounted_quote(self) -> None:
        response = self.client.post(self.url, self._payload("SAVE10"), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertTrue(response.data["accepted"])
        self.assertEqual(response.data["discount_amount"], 50000)
        self.assertEqual(response.data["quote"]["final_total"], 700000 - 50000)

    def test_out_of_scope_coupon_is_rejected_with_reason(self) -> None:
        response = self.client.post(self.url, self._payload("YOGA20"), format="json")

        self.assertEqual(response.status_code, status.HTTP_422_UNPROCESSABLE_ENTITY)
        self.assertFalse(response.data["accepted"])
        self.assertEqual(response.data["reason"], "coupon does not apply to this service")
        self.assertEqual(response.data["quote"]["final_total"], 700000)

    def test_contact_is_required(self) -> None:
        payload = self._payload("SAVE10")
        payload["phone"] = ""

        response = self.client.post(self.url, payload, format="json")

        self.assertEqual(response.status_code, status.HTTP_400_BAD_REQUEST)

    def test_out_of_range_percentage_cannot_be_stored(self) -> None:
        for value in (0, 150):
            with self.assertRaises(IntegrityError), transaction.atomic():
                CouponModel.objects.create(
                    code=f"BROKEN{value}",
                    discount_type=CouponModel.DiscountType.PERCENTAGE,
                    discount_value=value,
                )

        CouponModel.objects.create(
            code="FLAT2000",
            discount_type=CouponModel.DiscountType.FLAT,
            discount_value=200000,
        )
        response = self.client.post(self.url, self._payload("FLAT2000"), format="json")

        self.assertEqual(response.status_code, status.HTTP_200_OK, response.data)
        self.assertEqual(response.data["discount_amount"], 200000)
