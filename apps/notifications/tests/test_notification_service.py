"""Tests for booking notifications."""

from __future__ import annotations

import uuid
from datetime import date, timedelta
from unittest.mock import patch

from django.core import mail
from django.test import TestCase, override_settings
from django.utils import timezone
from twilio.base.exceptions import TwilioException

from apps.bookings.models import Booking
from apps.notifications import services
from apps.notifications.tasks import send_booking_confirmation

TWILIO = {
    "TWILIO_ACCOUNT_SID": "AC123",
    "TWILIO_AUTH_TOKEN": "token",
    "TWILIO_FROM_NUMBER": "+15005550006",
}


def make_booking(**overrides) -> Booking:
    now = timezone.now()
    check_in = date.today() + timedelta(days=7)
    fields = {
        "booking_code": "LT7Q2K9M",
        "category": Booking.Category.ROOM,
        "guest_name": "Asha Rao",
        "guest_email": "asha@example.com",
        "guest_phone": "9876543210",
        "contact_id": "9876543210",
        "check_in": check_in,
        "check_out": check_in + timedelta(days=2),
        "price_quote": {},
        "subtotal": 860000,
        "final_total": 860000,
        "status": Booking.Status.CONFIRMED,
        "payment_status": Booking.PaymentStatus.PAID,
        "payment_reference": "pay_1",
        "idempotency_key": f"client:{uuid.uuid4()}",
        "created_at": now,
        "updated_at": now,
    }
    fields.update(overrides)
    return Booking.objects.create(**fields)


class BookingConfirmationTests(TestCase):

    def test_format_amount(self) -> None:
        self.assertEqual(services.format_amount(860000), "INR 8,600.00")
        self.assertEqual(services.format_amount(5, "USD"), "USD 0.05")

    def test_confirmation_email_without_sms(self) -> None:
        booking = make_booking(coupon_code="SAVE10")

        sent = services.send_booking_confirmation(booking)

        self.assertEqual(sent, {"email": True, "sms": False})
        self.assertEqual(len(mail.outbox), 1)
        message = mail.outbox[0]
        self.assertEqual(message.to, ["asha@example.com"])
        self.assertIn("LT7Q2K9M", message.subject)
        self.assertIn("INR 8,600.00", message.body)
        self.assertIn("Coupon applied: SAVE10", message.body)

    @override_settings(**TWILIO)
    @patch("apps.notifications.services.Client")
    def test_confirmation_sms(self, client_class) -> None:
        client_class.return_value.messages.create.return_value.sid = "SM1"
        booking = make_booking()

        sent = services.send_booking_confirmation(booking)

        self.assertTrue(sent["sms"])
        client_class.assert_called_once_with("AC123", "token")
        kwargs = client_class.return_value.messages.create.call_args.kwargs
        self.assertEqual(kwargs["to"], "+919876543210")
        self.assertEqual(kwargs["from_"], "+15005550006")

    @override_settings(**TWILIO)
    @patch("apps.notifications.services.Client")
    def test_sms_failure_is_reported_not_raised(self, client_class) -> None:
        client_class.return_value.messages.create.side_effect = TwilioException("unreachable")

        self.assertFalse(services.send_sms_notification("9876543210", "hello"))

    def test_task_skips_missing_booking(self) -> None:
        result = send_booking_confirmation(str(uuid.uuid4()))

        self.assertEqual(result, {"email": False, "sms": False})
        self.assertEqual(mail.outbox, [])

    def test_task_sends_for_stored_booking(self) -> None:
        booking = make_booking()

        result = send_booking_confirmation.delay(str(booking.id)).get()

        self.assertTrue(result["email"])
        self.assertEqual(len(mail.outbox), 1)


class ReconciliationAlertTests(TestCase):

    @override_settings(ADMINS=[("Front desk", "frontdesk@example.com")])
    def test_alert_goes_to_admins(self) -> None:
        booking = make_booking(
            status=Booking.Status.CANCELLED,
            needs_reconciliation=True,
            cancellation_source=Booking.CancellationSource.SYSTEM,
            cancellation_reason="payment not completed in time",
        )

        services.send_reconciliation_alert(booking, "pay_late", 860000)

        self.assertEqual(len(mail.outbox), 1)
        self.assertEqual(mail.outbox[0].to, ["frontdesk@example.com"])
        self.assertIn("pay_late", mail.outbox[0].body)
        self.assertIn("INR 8,600.00", mail.outbox[0].body)
