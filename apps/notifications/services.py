"""Notification services for sending emails and SMS."""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from django.conf import settings  # type: ignore
from django.core.mail import mail_admins, send_mail  # type: ignore
from twilio.base.exceptions import TwilioException  # type: ignore
from twilio.rest import Client  # type: ignore

if TYPE_CHECKING:  # pragma: no cover
    from apps.bookings.models import Booking

logger = logging.getLogger(__name__)


def format_amount(amount: int, currency: str = "INR") -> str:
    """Minor units to a display string: 860000 -> "INR 8,600.00"."""

    return f"{currency} {amount / 100:,.2f}"


# ============================================================================
# EMAIL NOTIFICATIONS
# ============================================================================

def send_email_notification(recipient_email: str, subject: str, message: str) -> bool:
    """
    Send a plain-text email.

    Returns:
        bool: True if the message was handed to the mail backend
    """
    try:
        send_mail(
            subject=subject,
            message=message,
            from_email=settings.DEFAULT_FROM_EMAIL,
            recipient_list=[recipient_email],
            fail_silently=False,
        )
    except Exception as e:
        logger.error(f"Failed to send email to {recipient_email}: {e}", exc_info=True)
        return False

    logger.info(f"Email sent successfully to {recipient_email}: {subject}")
    return True


# ============================================================================
# SMS NOTIFICATIONS
# ============================================================================

def get_sms_client() -> Client | None:
    account_sid = getattr(settings, "TWILIO_ACCOUNT_SID", "")
    auth_token = getattr(settings, "TWILIO_AUTH_TOKEN", "")
    if not account_sid or not auth_token:
        return None
    return Client(account_sid, auth_token)


def send_sms_notification(phone_number: str, message: str) -> bool:
    client = get_sms_client()
    from_number = getattr(settings, "TWILIO_FROM_NUMBER", "")
    if client is None or not from_number:
        logger.info(f"SMS disabled, skipping message to {phone_number}")
        return False

    to_number = phone_number if phone_number.startswith("+") else f"+91{phone_number[-10:]}"
    try:
        sent = client.messages.create(body=message, from_=from_number, to=to_number)
    except TwilioException as e:
        logger.error(f"Failed to send SMS to {to_number}: {e}")
        return False

    logger.info(f"SMS {sent.sid} sent to {to_number}")
    return True


# ============================================================================
# BOOKING NOTIFICATIONS
# ============================================================================

def send_booking_confirmation(booking: "Booking") -> dict[str, bool]:
    """Confirmation email and SMS to the guest; neither failure is raised."""

    total = format_amount(booking.final_total, booking.currency)
    subject = f"Booking #{booking.booking_code} confirmed"
    lines = [
        f"Hello {booking.guest_name},",
        "",
        f"Your {booking.get_category_display().lower()} booking is confirmed.",
        f"Booking code: {booking.booking_code}",
        f"Dates: {booking.check_in:%d %b %Y} - {booking.check_out:%d %b %Y}",
        f"Amount paid: {total}",
        f"Payment reference: {booking.payment_reference}",
    ]
    if booking.coupon_code:
        lines.append(f"Coupon applied: {booking.coupon_code}")

    return {
        "email": send_email_notification(booking.guest_email, subject, "\n".join(lines)),
        "sms": send_sms_notification(
            booking.guest_phone,
            f"Booking {booking.booking_code} confirmed. Paid {total}. Ref {booking.payment_reference}.",
        ),
    }


def send_reconciliation_alert(booking: "Booking", payment_id: str, amount: int) -> None:
    """Tell staff a payment landed on a cancelled booking and needs a refund."""

    mail_admins(
        subject=f"Refund needed: payment on cancelled booking {booking.booking_code}",
        message=(
            f"Payment {payment_id} of {format_amount(amount, booking.currency)} was captured "
            f"for booking {booking.booking_code} after it was cancelled "
            f"({booking.cancellation_source or 'unknown'}: {booking.cancellation_reason or 'no reason'}).\n"
            f"Guest: {booking.guest_name} <{booking.guest_email}>, {booking.guest_phone}"
        ),
        fail_silently=True,
    )
    logger.warning(f"Reconciliation alert sent for booking {booking.booking_code}")
