"""Tests for the payment gateway adapter and payment API endpoints."""

from __future__ import annotations

import itertools
import json
from datetime import date, timedelta
from unittest.mock import MagicMock, patch

from django.core import mail
from django.test import TestCase, override_settings
from django.urls import reverse
from rest_framework import status
from rest_framework.test import APITestCase

from apps.bookings.application.command_handlers import (
    CancelBookingCommand,
    CancelBookingHandler,
    CreateBookingCommand,
    CreateBookingHandler,
)
from apps.bookings.domain.entities import BookingCategory, BookingStatus, PaymentStatus
from apps.bookings.repositories import DjangoBookingRepository
from apps.coupons.models import Coupon
from apps.coupons.repositories import DjangoCouponRepository
from apps.payments.gateway import GatewayOrder, GatewayPayment, gateway_config
from apps.payments.models import PaymentSession
from apps.payments.services import PaymentGatewayAdapter
from apps.payments.signatures import checkout_signature, webhook_signature
from apps.pricing.domain.entities import ServiceSelection
from shared.domain.exceptions import AmountMismatch, GatewayUnavailable, InputError, SignatureInvalid
from shared.domain.value_objects import DateRange

KEY_SECRET = "test-key-secret"
WEBHOOK_SECRET = "test-webhook-secret"


def create_booking(phone: str = "9876543210", coupon_code: str = ""):
    check_in = date.today() + timedelta(days=14)
    command = CreateBookingCommand(
        category=BookingCategory.ROOM,
        details={"room_id": "deluxe-1", "room_type": "Deluxe"},
        guest={"name": "Asha Rao", "email": "asha@example.com", "phone": phone},
        cart=[ServiceSelection.from_dict({"kind": "stay-night", "unit_price": 430000})],
        date_range=DateRange(check_in, check_in + timedelta(days=2)),
        coupon_code=coupon_code,
    )
    return CreateBookingHandler(DjangoBookingRepository(), DjangoCouponRepository()).handle(command).booking


def fake_gateway():
    numbers = itertools.count(1)
    gateway = MagicMock()
    gateway.create_order.side_effect = lambda amount, currency, receipt, notes=None: GatewayOrder(
        id=f"order_{next(numbers)}",
        amount=amount,
        currency=currency,
        receipt=receipt,
    )
    return gateway


def captured_event(order_id: str, amount: int, payment_id: str = "pay_wh_1") -> bytes:
    return json.dumps(
        {
            "event": "payment.captured",
            "payload": {"payment": {"entity": {
                "id": payment_id,
                "order_id": order_id,
                "amount": amount,
                "currency": "INR",
                "status": "captured",
            }}},
        }
    ).encode("utf-8")


class PaymentSessionTests(TestCase):

    def setUp(self) -> None:
        self.booking = create_booking()
        self.gateway = fake_gateway()
        self.adapter = PaymentGatewayAdapter(gateway=self.gateway)

    def test_session_amount_is_final_total(self) -> None:
        session = self.adapter.open_session(self.booking.id)

        self.assertEqual(session.amount, 860000)
        self.assertEqual(session.status, PaymentSession.Status.CREATED)
        kwargs = self.gateway.create_order.call_args.kwargs
        self.assertEqual(kwargs["amount"], 860000)
        self.assertEqual(kwargs["receipt"], self.booking.booking_code)

    def test_open_session_is_reused(self) -> None:
        first = self.adapter.open_session(self.booking.id)
        second = self.adapter.open_session(self.booking.id)

        self.assertEqual(first.pk, second.pk)
        self.assertEqual(self.gateway.create_order.call_count, 1)

    def test_amount_must_match_quote(self) -> None:
        with self.assertRaises(AmountMismatch):
            self.adapter.open_session(self.booking.id, amount=100)

        self.assertFalse(PaymentSession.objects.exists())
        self.gateway.create_order.assert_not_called()

    def test_gateway_order_for_wrong_amount_is_refused(self) -> None:
        self.gateway.create_order.side_effect = None
        self.gateway.create_order.return_value = GatewayOrder(id="order_bad", amount=1, currency="INR")

        with self.assertRaises(AmountMismatch):
            self.adapter.open_session(self.booking.id)
        self.assertFalse(PaymentSession.objects.exists())

    def test_zero_total_needs_no_payment(self) -> None:
        Coupon.objects.create(
            code="FREESTAY",
            discount_type=Coupon.DiscountType.FLAT,
            discount_value=10_000_000,
            scopes=["room"],
        )
        booking = create_booking(phone="9000000009", coupon_code="FREESTAY")
        self.assertEqual(booking.final_total, 0)

        with self.assertRaises(InputError):
            self.adapter.open_session(booking.id)

    def test_gateway_outage_leaves_booking_pending(self) -> None:
        self.gateway.create_order.side_effect = GatewayUnavailable("timeout")

        with self.assertRaises(GatewayUnavailable):
            self.adapter.open_session(self.booking.id)

        booking = DjangoBookingRepository().get_by_id(self.booking.id)
        self.assertIs(booking.status, BookingStatus.PENDING)
        self.assertIs(booking.payment_status, PaymentStatus.PENDING)
        self.assertFalse(PaymentSession.objects.exists())


class PaymentCallbackTests(TestCase):

    def setUp(self) -> None:
        self.booking = create_booking()
        self.gateway = fake_gateway()
        self.adapter = PaymentGatewayAdapter(gateway=self.gateway)
        self.session = self.adapter.open_session(self.booking.id)
        self.order_id = self.session.gateway_order_id

    def _callback(self, payment_id: str = "pay_1", signature: str = None):
        payload = {"order_id": self.order_id, "payment_id": payment_id}
        if signature is None:
            signature = checkout_signature(self.order_id, payment_id, KEY_SECRET)
        return self.adapter.handle_callback(payload, signature)

    def _reload(self):
        return DjangoBookingRepository().get_by_id(self.booking.id)

    def test_valid_signature_confirms_booking_once(self) -> None:
        with self.captureOnCommitCallbacks(execute=True):
            result, booking = self._callback()
        with self.captureOnCommitCallbacks(execute=True):
            duplicate, _ = self._callback()

        self.assertTrue(result.is_valid)
        self.assertTrue(duplicate.is_valid)
        booking = self._reload()
        self.assertIs(booking.status, BookingStatus.CONFIRMED)
        self.assertIs(booking.payment_status, PaymentStatus.PAID)
        self.assertEqual(booking.payment_reference, "pay_1")
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn(self.booking.booking_code, mail.outbox[0].subject)
        session = PaymentSession.objects.get()
        self.assertEqual(session.status, PaymentSession.Status.CAPTURED)
        self.assertIsNotNone(session.closed_at)

    def test_tampered_signature_never_marks_paid(self) -> None:
        result, booking = self._callback(signature="0" * 64)

        self.assertFalse(result.is_valid)
        self.assertEqual(result.reason, "signature mismatch")
        self.assertIs(booking.payment_status, PaymentStatus.FAILED)
        self.assertIs(booking.status, BookingStatus.PENDING)
        self.assertEqual(mail.outbox, [])

    def test_signature_for_another_payment_is_rejected(self) -> None:
        signature = checkout_signature(self.order_id, "pay_other", KEY_SECRET)

        result, _ = self._callback(payment_id="pay_1", signature=signature)

        self.assertFalse(result.is_valid)
        self.assertIsNot(self._reload().payment_status, PaymentStatus.PAID)

    def test_unknown_order_touches_nothing(self) -> None:
        result, booking = self.adapter.handle_callback({"order_id": "order_missing", "payment_id": "pay_1"}, "x")

        self.assertEqual(result.reason, "unknown order")
        self.assertIsNone(booking)
        self.assertIs(self._reload().payment_status, PaymentStatus.PENDING)

    def test_failure_after_success_is_ignored(self) -> None:
        self._callback()
        self._callback(signature="bad")

        booking = self._reload()
        self.assertIs(booking.payment_status, PaymentStatus.PAID)
        self.assertEqual(booking.payment_failure_reason, "")

    def test_success_after_failure_wins(self) -> None:
        self._callback(signature="bad")
        self._callback()

        booking = self._reload()
        self.assertIs(booking.payment_status, PaymentStatus.PAID)
        self.assertIs(booking.status, BookingStatus.CONFIRMED)

    def test_reopening_after_failed_callback_resets_payment(self) -> None:
        self._callback(signature="forged")
        self.assertIs(self._reload().payment_status, PaymentStatus.FAILED)

        reopened = self.adapter.open_session(self.booking.id)

        self.assertEqual(reopened.pk, self.session.pk)
        self.assertEqual(self.gateway.create_order.call_count, 1)
        booking = self._reload()
        self.assertIs(booking.payment_status, PaymentStatus.PENDING)
        self.assertIs(booking.status, BookingStatus.PENDING)

    @override_settings(ADMINS=[("Front desk", "frontdesk@example.com")])
    def test_payment_after_cancellation_needs_reconciliation(self) -> None:
        CancelBookingHandler(DjangoBookingRepository(), DjangoCouponRepository()).handle(
            CancelBookingCommand(self.booking.id, reason="changed plans")
        )

        with self.captureOnCommitCallbacks(execute=True):
            result, booking = self._callback()

        self.assertTrue(result.is_valid)
        self.assertIs(booking.status, BookingStatus.CANCELLED)
        self.assertIs(booking.payment_status, PaymentStatus.PAID)
        self.assertTrue(booking.needs_reconciliation)
        self.assertEqual(len(mail.outbox), 1)
        self.assertIn("Refund needed", mail.outbox[0].subject)

    def test_api_confirmation_checks_captured_amount(self) -> None:
        config = {**gateway_config(), "CONFIRM_WITH_API": True}
        adapter = PaymentGatewayAdapter(gateway=self.gateway, config=config)
        self.gateway.fetch_payment.return_value = GatewayPayment(
            id="pay_1", order_id=self.order_id, amount=100, currency="INR", status="captured",
        )
        payload = {"order_id": self.order_id, "payment_id": "pay_1"}
        signature = checkout_signature(self.order_id, "pay_1", KEY_SECRET)

        short = adapter.verify_callback(payload, signature)
        self.gateway.fetch_payment.return_value = GatewayPayment(
            id="pay_1", order_id=self.order_id, amount=860000, currency="INR", status="captured",
        )
        exact = adapter.verify_callback(payload, signature)

        self.assertFalse(short.is_valid)
        self.assertTrue(exact.is_valid)
        self.assertEqual(exact.payment.amount, 860000)


class PaymentWebhookTests(TestCase):

    def setUp(self) -> None:
        self.booking = create_booking()
        self.gateway = fake_gateway()
        self.adapter = PaymentGatewayAdapter(gateway=self.gateway)
        self.order_id = self.adapter.open_session(self.booking.id).gateway_order_id

    def _deliver(self, body: bytes, signature: str = None):
        if signature is None:
            signature = webhook_signature(body, WEBHOOK_SECRET)
        return self.adapter.handle_webhook(body, signature)

    def test_captured_event_confirms_booking(self) -> None:
        booking = self._deliver(captured_event(self.order_id, 860000))

        self.assertIs(booking.payment_status, PaymentStatus.PAID)
        self.assertEqual(booking.payment_reference, "pay_wh_1")

    def test_bad_signature_is_rejected_without_side_effects(self) -> None:
        with self.assertRaises(SignatureInvalid):
            self._deliver(captured_event(self.order_id, 860000), signature="forged")

        booking = DjangoBookingRepository().get_by_id(self.booking.id)
        self.assertIs(booking.payment_status, PaymentStatus.PENDING)

    def test_captured_amount_mismatch_fails_payment(self) -> None:
        booking = self._deliver(captured_event(self.order_id, 1000))

        self.assertIs(booking.payment_status, PaymentStatus.FAILED)

    def test_failed_event_allows_retry_with_new_order(self) -> None:
        body = json.dumps(
            {
                "event": "payment.failed",
                "payload": {"payment": {"entity": {
                    "id": "pay_declined",
                    "order_id": self.order_id,
                    "amount": 860000,
                    "error_description": "card declined",
                }}},
            }
        ).encode("utf-8")

        failed = self._deliver(body)
        retry = self.adapter.open_session(self.booking.id)

        self.assertIs(failed.payment_status, PaymentStatus.FAILED)
        self.assertEqual(failed.payment_failure_reason, "card declined")
        self.assertNotEqual(retry.gateway_order_id, self.order_id)
        booking = DjangoBookingRepository().get_by_id(self.booking.id)
        self.assertIs(booking.payment_status, PaymentStatus.PENDING)

        confirmed = self._deliver(captured_event(retry.gateway_order_id, 860000, payment_id="pay_2"))
        self.assertIs(confirmed.status, BookingStatus.CONFIRMED)

    def test_unrelated_events_are_ignored(self) -> None:
        body = json.dumps({"event": "order.paid", "payload": {}}).encode("utf-8")

        self.assertIsNone(self._deliver(body))
        self.assertIsNone(self._deliver(captured_event("order_elsewhere", 860000)))


class PaymentAPITests(APITestCase):

    def setUp(self) -> None:
        self.booking = create_booking()
        self.gateway = fake_gateway()
        patcher = patch("apps.payments.services.RazorpayGateway.from_settings", return_value=self.gateway)
        patcher.start()
        self.addCleanup(patcher.stop)

    def _open(self):
        return self.client.post(reverse("payment-session"), {"booking_id": str(self.booking.id)}, format="json")

    def test_open_session(self) -> None:
        response = self._open()

        self.assertEqual(response.status_code, status.HTTP_201_CREATED, response.data)
        self.assertEqual(response.data["order_id"], "order_1")
        self.assertEqual(response.data["amount"], 860000)
        self.assertEqual(response.data["key_id"], "rzp_test_key")

    def test_gateway_outage_asks_client_to_retry(self) -> None:
        self.gateway.create_order.side_effect = GatewayUnavailable("timeout")

        response = self._open()

        self.assertEqual(response.status_code, status.HTTP_503_SERVICE_UNAVAILABLE)
        self.assertEqual(response["Retry-After"], "30")

    def test_cancelled_booking_cannot_be_paid(self) -> None:
        CancelBookingHandler(DjangoBookingRepository(), DjangoCouponRepository()).handle(
            CancelBookingCommand(self.booking.id)
        )

        response = self._open()

        self.assertEqual(response.status_code, status.HTTP_409_CONFLICT)

    def test_verify_endpoint(self) -> None:
        order_id = self._open().data["order_id"]
        url = reverse("payment-verify")

        forged = self.client.post(
            url, {"order_id": order_id, "payment_id": "pay_1", "signature": "forged"}, format="json",
        )
        verified = self.client.post(
            url,
            {
                "order_id": order_id,
                "payment_id": "pay_1",
                "signature": checkout_signature(order_id, "pay_1", KEY_SECRET),
            },
            format="json",
        )

        self.assertEqual(forged.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(forged.data["status"], "invalid")
        self.assertEqual(verified.status_code, status.HTTP_200_OK, verified.data)
        self.assertEqual(verified.data["booking"]["status"], "confirmed")

    def test_webhook_endpoint(self) -> None:
        order_id = self._open().data["order_id"]
        body = captured_event(order_id, 860000)
        url = reverse("payment-webhook")

        forged = self.client.post(url, body, content_type="application/json", HTTP_X_RAZORPAY_SIGNATURE="forged")
        accepted = self.client.post(
            url,
            body,
            content_type="application/json",
            HTTP_X_RAZORPAY_SIGNATURE=webhook_signature(body, WEBHOOK_SECRET),
        )

        self.assertEqual(forged.status_code, status.HTTP_400_BAD_REQUEST)
        self.assertEqual(accepted.status_code, status.HTTP_200_OK)
        self.assertEqual(accepted.data["booking_id"], str(self.booking.id))
