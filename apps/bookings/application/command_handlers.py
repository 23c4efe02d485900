"""
Booking Command Handlers

These are the use cases for the booking domain.
They orchestrate domain operations within transactions.

Commands:
- CreateBookingCommand: Quote a cart, apply a coupon, persist a pending booking
- MarkPaidCommand: Apply a verified gateway payment
- MarkFailedCommand: Record a failed payment attempt
- PreparePaymentCommand: Make a pending booking ready for a (new) payment attempt
- CancelBookingCommand: Cancel a booking
- ExpireBookingCommand: Cancel a stale pending booking (expiry sweep)
- CheckInBookingCommand / CheckOutBookingCommand: Staff lifecycle steps
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Callable, List, Optional, Sequence
from uuid import UUID
import logging

from django.db import IntegrityError

from apps.bookings.domain.entities import (
    Booking,
    BookingCategory,
    CancellationSource,
    Guest,
    GuestContact,
    PaymentStatus,
    VerifiedPayment,
    details_from_dict,
)
from apps.bookings.services import derive_idempotency_key
from apps.coupons.domain.validator import CouponContext, CouponValidator
from apps.pricing.domain.engine import PricingEngine, default_engine
from apps.pricing.domain.entities import ServiceSelection
from shared.application.uow import DjangoUnitOfWork
from shared.domain.base import utcnow
from shared.domain.exceptions import ConcurrentModification, CouponRejected, InputError
from shared.domain.value_objects import DateRange

logger = logging.getLogger(__name__)

MAX_SAVE_ATTEMPTS = 3


# ===== Commands =====

@dataclass
class CreateBookingCommand:
    """
    Command to create a new booking

    `guest` carries GuestContact fields, `details` the category-specific
    resource references.
    """
    category: BookingCategory
    details: dict
    guest: dict
    cart: Sequence[ServiceSelection]
    date_range: DateRange
    guests: List[dict] = field(default_factory=list)
    coupon_code: str = ''
    special_requests: str = ''
    idempotency_key: Optional[str] = None
    require_coupon: bool = False


@dataclass
class BookingCreation:
    booking: Booking
    created: bool


@dataclass
class MarkPaidCommand:
    """Only the payment adapter issues this, after signature verification"""
    booking_id: UUID
    payment: VerifiedPayment


@dataclass
class MarkFailedCommand:
    booking_id: UUID
    reason: str


@dataclass
class PreparePaymentCommand:
    booking_id: UUID


@dataclass
class CancelBookingCommand:
    """Command to cancel a booking"""
    booking_id: UUID
    reason: str = ''
    source: CancellationSource = CancellationSource.GUEST


@dataclass
class ExpireBookingCommand:
    booking_id: UUID
    now: datetime
    ttl: timedelta


@dataclass
class CheckInBookingCommand:
    """Command to check in a guest"""
    booking_id: UUID


@dataclass
class CheckOutBookingCommand:
    """Command to check out a guest"""
    booking_id: UUID


# ===== Command Handlers =====

class CreateBookingHandler:
    """
    Handler for CreateBooking command

    Strategy:
    1. Validate guest and details (InputError before any persistence)
    2. Quote the cart with PricingEngine
    3. Derive the idempotency key; an existing booking is returned as-is
    4. Validate the coupon and freeze the final quote
    5. Insert booking and coupon redemption in one transaction
    6. A concurrent duplicate insert hits the unique key and resolves
       to the row that won
    """

    def __init__(self, booking_repo, coupon_repo, engine: PricingEngine = None,
                 clock: Callable[[], datetime] = None):
        self.booking_repo = booking_repo
        self.coupon_repo = coupon_repo
        self.engine = engine or default_engine()
        self.validator = CouponValidator(coupon_repo, clock=clock)
        self.clock = clock or utcnow

    def handle(self, command: CreateBookingCommand) -> BookingCreation:
        category = BookingCategory(command.category)
        details = details_from_dict(category, command.details)
        guest = GuestContact(**command.guest)
        try:
            guests = tuple(Guest(**entry) for entry in command.guests)
        except TypeError as exc:
            raise InputError(f"Invalid guest entry: {exc}") from None
        self._check_dates(command.date_range)

        quote = self.engine.quote(
            command.cart,
            command.date_range,
            [entry.age for entry in guests],
        )

        key = derive_idempotency_key(
            contact_id=guest.contact_id,
            cart_fingerprint=quote.fingerprint(),
            date_range=command.date_range,
            coupon_code=command.coupon_code,
            client_key=command.idempotency_key,
            now=self.clock(),
        )
        existing = self.booking_repo.find_by_idempotency_key(key)
        if existing is not None:
            logger.info(f"Duplicate submission resolved to booking {existing.booking_code}")
            return BookingCreation(existing, created=False)

        if command.coupon_code:
            application = self.validator.validate(
                command.coupon_code,
                quote,
                CouponContext(category=category.value, contact_id=guest.contact_id),
            )
            if not application.accepted and command.require_coupon:
                raise CouponRejected(application.reason_text, application.code)
            quote = quote.with_coupon(application)

        booking = Booking.place(
            category=category,
            details=details,
            guest=guest,
            guests=guests,
            dates=command.date_range,
            price_quote=quote,
            idempotency_key=key,
            special_requests=command.special_requests,
        )

        logger.info(
            f"Creating {category.value} booking {booking.booking_code} for {guest.contact_id}, "
            f"dates {command.date_range}, total {quote.final_total}"
        )

        try:
            with DjangoUnitOfWork() as uow:
                self.booking_repo.add(booking)
                application = quote.coupon_application
                if application is not None and application.accepted:
                    self.coupon_repo.record_redemption(
                        application.code,
                        guest.contact_id,
                        booking.id,
                        quote.discount,
                    )
                uow.collect_events(booking)
        except IntegrityError:
            existing = self.booking_repo.find_by_idempotency_key(key)
            if existing is None:
                raise
            logger.info(f"Concurrent duplicate resolved to booking {existing.booking_code}")
            return BookingCreation(existing, created=False)

        logger.info(f"Booking created successfully: {booking.booking_code} (ID: {booking.id})")
        return BookingCreation(booking, created=True)

    def _check_dates(self, date_range: DateRange):
        if not isinstance(date_range, DateRange):
            raise InputError("A stay period is required")
        start = date_range.start_date
        today = self.clock().date()
        if (start.date() if isinstance(start, datetime) else start) < today:
            raise InputError("Check-in date cannot be in the past")


class _BookingTransitionHandler:
    """
    Load under lock, mutate, save conditionally on version

    A ConcurrentModification reloads and reapplies the transition; the
    domain methods are idempotent so a reapplied no-op stays a no-op.
    """

    def __init__(self, booking_repo):
        self.booking_repo = booking_repo

    def _transition(self, booking_id: UUID, mutate: Callable[[Booking], None]) -> Booking:
        for attempt in range(1, MAX_SAVE_ATTEMPTS + 1):
            try:
                with DjangoUnitOfWork() as uow:
                    booking = self.booking_repo.get_by_id(booking_id, lock=True)
                    touched_at = booking.updated_at
                    mutate(booking)
                    # every state change goes through Aggregate.touch()
                    if booking.updated_at is not touched_at:
                        self.booking_repo.save(booking)
                    uow.collect_events(booking)
                return booking
            except ConcurrentModification:
                if attempt == MAX_SAVE_ATTEMPTS:
                    raise
                logger.info(f"Retrying transition on booking {booking_id} (attempt {attempt})")
        raise ConcurrentModification(f"Booking {booking_id} could not be saved")


class MarkPaidHandler(_BookingTransitionHandler):
    """Compare-and-swap of payment_status onto paid"""

    def handle(self, command: MarkPaidCommand) -> Booking:
        logger.info(
            f"Applying payment {command.payment.payment_id} to booking {command.booking_id}"
        )
        applied = []

        def mutate(booking: Booking):
            applied.append(booking.mark_paid(command.payment))

        booking = self._transition(command.booking_id, mutate)
        if applied and applied[-1]:
            logger.info(f"Booking {booking.booking_code} marked paid ({booking.status.value})")
        else:
            logger.info(f"Booking {booking.booking_code} already paid, callback ignored")
        return booking


class MarkFailedHandler(_BookingTransitionHandler):

    def handle(self, command: MarkFailedCommand) -> Booking:
        booking = self._transition(
            command.booking_id,
            lambda booking: booking.mark_failed(command.reason),
        )
        logger.info(
            f"Payment failure recorded for booking {booking.booking_code}: {command.reason}"
        )
        return booking


class PreparePaymentHandler(_BookingTransitionHandler):
    """Reset FAILED -> PENDING so a new payment session can be opened"""

    def handle(self, command: PreparePaymentCommand) -> Booking:
        return self._transition(
            command.booking_id,
            lambda booking: booking.prepare_payment_retry(),
        )


class CancelBookingHandler(_BookingTransitionHandler):
    """Handler for cancelling booking"""

    def __init__(self, booking_repo, coupon_repo):
        super().__init__(booking_repo)
        self.coupon_repo = coupon_repo

    def handle(self, command: CancelBookingCommand) -> Booking:
        logger.info(f"Cancelling booking {command.booking_id}, reason: {command.reason}")

        def mutate(booking: Booking):
            booking.cancel(command.reason, command.source)
            if booking.payment_status is not PaymentStatus.PAID:
                self.coupon_repo.void_redemption(booking.id)

        booking = self._transition(command.booking_id, mutate)
        if booking.needs_reconciliation:
            logger.warning(f"Paid booking {booking.booking_code} cancelled, refund required")
        logger.info(f"Booking {booking.booking_code} cancelled successfully")
        return booking


class ExpireBookingHandler(CancelBookingHandler):
    """Cancels a pending booking only if it is still stale under the lock"""

    def handle(self, command: ExpireBookingCommand) -> Optional[Booking]:
        expired = []

        def mutate(booking: Booking):
            if not booking.is_stale(command.now, command.ttl):
                return
            booking.cancel("payment not completed in time", CancellationSource.SYSTEM)
            self.coupon_repo.void_redemption(booking.id)
            expired.append(booking.id)

        booking = self._transition(command.booking_id, mutate)
        if not expired:
            return None
        logger.info(f"Booking {booking.booking_code} expired")
        return booking


class CheckInBookingHandler(_BookingTransitionHandler):
    """Handler for checking in guest"""

    def handle(self, command: CheckInBookingCommand) -> Booking:
        logger.info(f"Checking in booking {command.booking_id}")
        booking = self._transition(command.booking_id, lambda booking: booking.check_in())
        logger.info(f"Booking {booking.booking_code} checked in successfully")
        return booking


class CheckOutBookingHandler(_BookingTransitionHandler):
    """Handler for checking out guest"""

    def handle(self, command: CheckOutBookingCommand) -> Booking:
        logger.info(f"Checking out booking {command.booking_id}")
        booking = self._transition(command.booking_id, lambda booking: booking.check_out())
        logger.info(f"Booking {booking.booking_code} checked out successfully")
        return booking
