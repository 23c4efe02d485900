"""Celery tasks for notifications."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore

from apps.bookings.models import Booking

from . import services

logger = logging.getLogger(__name__)


@shared_task(name="notifications.send_booking_confirmation")
def send_booking_confirmation(booking_id: str) -> dict[str, bool]:
    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        logger.warning(f"Confirmation skipped, booking {booking_id} not found")
        return {"email": False, "sms": False}
    return services.send_booking_confirmation(booking)


@shared_task(name="notifications.send_reconciliation_alert")
def send_reconciliation_alert(booking_id: str, payment_id: str, amount: int) -> None:
    booking = Booking.objects.filter(pk=booking_id).first()
    if booking is None:
        logger.warning(f"Reconciliation alert skipped, booking {booking_id} not found")
        return
    services.send_reconciliation_alert(booking, payment_id, amount)
