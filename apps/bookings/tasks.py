"""Celery tasks for the booking domain."""

from __future__ import annotations

import logging

from celery import shared_task  # type: ignore
from django.utils import timezone  # type: ignore

from apps.coupons.repositories import DjangoCouponRepository
from shared.domain.exceptions import DomainError

from .application.command_handlers import ExpireBookingCommand, ExpireBookingHandler
from .repositories import DjangoBookingRepository
from .services import pending_ttl

logger = logging.getLogger(__name__)


# ============================================================================
# PERIODIC TASKS (run by Celery Beat)
# ============================================================================

@shared_task(name="bookings.expire_pending_bookings")
def expire_pending_bookings() -> dict[str, int]:
    """
    Cancel pending bookings whose payment never completed.

    A booking qualifies when it is still PENDING, not PAID and older than
    BOOKING_PENDING_TTL_MINUTES. Each candidate is re-checked under its
    row lock, so a payment landing mid-sweep wins.

    Returns:
        dict: {"expired": cancelled count, "skipped": candidates left alone}
    """
    now = timezone.now()
    ttl = pending_ttl()
    repo = DjangoBookingRepository()
    handler = ExpireBookingHandler(repo, DjangoCouponRepository())

    expired_count = 0
    skipped_count = 0
    for booking_id in repo.stale_pending_ids(now - ttl):
        try:
            booking = handler.handle(ExpireBookingCommand(booking_id=booking_id, now=now, ttl=ttl))
        except DomainError as exc:
            logger.warning(f"Could not expire booking {booking_id}: {exc}")
            skipped_count += 1
            continue
        if booking is None:
            skipped_count += 1
        else:
            expired_count += 1

    if expired_count:
        logger.info(f"Expired {expired_count} pending bookings")
    return {"expired": expired_count, "skipped": skipped_count}
