"""Message bus subscribers; each one only queues a Celery task."""

from __future__ import annotations

import logging

from apps.bookings.domain.events import BookingConfirmed, PaymentReceivedAfterCancellation
from shared.application.message_bus import message_bus

logger = logging.getLogger(__name__)


def on_booking_confirmed(event: BookingConfirmed) -> None:
    from .tasks import send_booking_confirmation

    send_booking_confirmation.delay(str(event.booking_id))


def on_payment_after_cancellation(event: PaymentReceivedAfterCancellation) -> None:
    from .tasks import send_reconciliation_alert

    send_reconciliation_alert.delay(str(event.booking_id), event.payment_id, event.amount)


def register_handlers() -> None:
    message_bus.register_event_handler(BookingConfirmed, on_booking_confirmed)
    message_bus.register_event_handler(PaymentReceivedAfterCancellation, on_payment_after_cancellation)
    logger.debug("Notification handlers registered")
