"""Maps Booking aggregates to rows and back."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Iterator, Optional
from uuid import UUID

from django.db.models import F  # type: ignore

from apps.pricing.domain.entities import PriceQuote
from shared.domain.exceptions import BookingNotFound, ConcurrentModification
from shared.domain.value_objects import DateRange

from .domain.entities import (
    Booking,
    BookingCategory,
    BookingStatus,
    CancellationSource,
    Guest,
    GuestContact,
    PaymentStatus,
    details_from_dict,
    details_to_dict,
)
from .models import Booking as BookingModel
from .services import _lock_queryset_if_possible

logger = logging.getLogger(__name__)

def to_domain(model: BookingModel) -> Booking:
    category = BookingCategory(model.category)
    return Booking(
        id=model.id,
        created_at=model.created_at,
        updated_at=model.updated_at,
        version=model.version,
        booking_code=model.booking_code,
        category=category,
        details=details_from_dict(category, model.details),
        guest=GuestContact(
            name=model.guest_name,
            email=model.guest_email,
            phone=model.guest_phone,
            address=model.guest_address,
            city=model.guest_city,
            state=model.guest_state,
            pincode=model.guest_pincode,
        ),
        guests=tuple(Guest(**guest) for guest in model.guests or ()),
        dates=DateRange(model.check_in, model.check_out),
        price_quote=PriceQuote.from_dict(model.price_quote),
        idempotency_key=model.idempotency_key,
        special_requests=model.special_requests,
        status=BookingStatus(model.status),
        payment_status=PaymentStatus(model.payment_status),
        payment_reference=model.payment_reference,
        payment_failure_reason=model.payment_failure_reason,
        needs_reconciliation=model.needs_reconciliation,
        cancellation_source=(
            CancellationSource(model.cancellation_source) if model.cancellation_source else None
        ),
        cancellation_reason=model.cancellation_reason,
        confirmed_at=model.confirmed_at,
        paid_at=model.paid_at,
        cancelled_at=model.cancelled_at,
        checked_in_at=model.checked_in_at,
        checked_out_at=model.checked_out_at,
    )


def to_row(booking: Booking) -> dict:
    quote = booking.price_quote
    application = quote.coupon_application
    return {
        "booking_code": booking.booking_code,
        "category": booking.category.value,
        "details": details_to_dict(booking.details),
        "guest_name": booking.guest.name,
        "guest_email": booking.guest.email,
        "guest_phone": booking.guest.phone,
        "guest_address": booking.guest.address,
        "guest_city": booking.guest.city,
        "guest_state": booking.guest.state,
        "guest_pincode": booking.guest.pincode,
        "guests": [guest.to_dict() for guest in booking.guests],
        "contact_id": booking.contact_id,
        "special_requests": booking.special_requests,
        "check_in": booking.dates.start_date,
        "check_out": booking.dates.end_date,
        "price_quote": quote.to_dict(),
        "subtotal": quote.subtotal,
        "discount_amount": quote.discount,
        "final_total": quote.final_total,
        "currency": quote.currency,
        "coupon_code": application.code if application is not None and application.accepted else "",
        "status": booking.status.value,
        "payment_status": booking.payment_status.value,
        "payment_reference": booking.payment_reference,
        "payment_failure_reason": booking.payment_failure_reason,
        "needs_reconciliation": booking.needs_reconciliation,
        "idempotency_key": booking.idempotency_key,
        "cancellation_source": booking.cancellation_source.value if booking.cancellation_source else "",
        "cancellation_reason": booking.cancellation_reason,
        "confirmed_at": booking.confirmed_at,
        "paid_at": booking.paid_at,
        "cancelled_at": booking.cancelled_at,
        "checked_in_at": booking.checked_in_at,
        "checked_out_at": booking.checked_out_at,
        "created_at": booking.created_at,
        "updated_at": booking.updated_at,
    }


class DjangoBookingRepository:
    """
    Booking persistence with optimistic concurrency

    Updates only land when the stored version still equals the version
    the aggregate was loaded at; otherwise ConcurrentModification.
    """

    def get_by_id(self, booking_id: UUID, lock: bool = False) -> Booking:
        queryset = BookingModel.objects.filter(pk=booking_id)
        if lock:
            queryset = _lock_queryset_if_possible(queryset)
        model = queryset.first()
        if model is None:
            raise BookingNotFound(f"Booking {booking_id} not found")
        return to_domain(model)

    def find_by_idempotency_key(self, key: str) -> Optional[Booking]:
        model = BookingModel.objects.filter(idempotency_key=key).first()
        return to_domain(model) if model else None

    def add(self, booking: Booking) -> None:
        BookingModel.objects.create(id=booking.id, version=booking.version, **to_row(booking))

    def save(self, booking: Booking) -> None:
        updated = BookingModel.objects.filter(
            pk=booking.id,
            version=booking.version,
        ).update(version=F("version") + 1, **to_row(booking))
        if not updated:
            logger.warning(f"Stale write rejected for booking {booking.booking_code} (v{booking.version})")
            raise ConcurrentModification(
                f"Booking {booking.booking_code} was modified concurrently"
            )
        booking.version += 1

    def stale_pending_ids(self, created_before: datetime, limit: int = 500) -> Iterator[UUID]:
        return iter(
            BookingModel.objects.filter(
                status=BookingModel.Status.PENDING,
                created_at__lte=created_before,
            )
            .exclude(payment_status=BookingModel.PaymentStatus.PAID)
            .order_by("created_at")
            .values_list("id", flat=True)[:limit]
        )
