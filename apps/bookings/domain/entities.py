"""
Booking Domain Entities

Core business entities for the booking domain:
- Booking: Aggregate root, the reservation of record
- BookingStatus / PaymentStatus: the two lifecycle state machines
- GuestContact: who booked and how to reach them
- RoomDetails | YogaDetails | TransportDetails | ServiceDetails:
  category-specific resource references, keyed by BookingCategory
- VerifiedPayment: proof of a signature-checked gateway payment
"""

import re
import secrets
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Optional, Tuple, Union

from apps.bookings.domain.events import (
    BookingCancelled,
    BookingCheckedIn,
    BookingCheckedOut,
    BookingConfirmed,
    BookingCreated,
    BookingPaymentFailed,
    PaymentReceivedAfterCancellation,
)
from apps.pricing.domain.entities import PriceQuote
from shared.domain.base import Aggregate, ValueObject, utcnow
from shared.domain.exceptions import InputError, InvalidStateTransition
from shared.domain.value_objects import DateRange


class BookingCategory(Enum):
    ROOM = 'room'
    YOGA = 'yoga'
    TRANSPORT = 'transport'
    ADVENTURE = 'adventure'
    MIXED_SERVICE = 'mixed_service'


class BookingStatus(Enum):
    """
    Booking Status Finite State Machine

    - PENDING -> CONFIRMED (verified payment)
    - PENDING -> CANCELLED (guest, staff or expiry sweep)
    - CONFIRMED -> CHECKED_IN
    - CONFIRMED -> CANCELLED
    - CHECKED_IN -> CHECKED_OUT
    """
    PENDING = 'pending'
    CONFIRMED = 'confirmed'
    CHECKED_IN = 'checked_in'
    CHECKED_OUT = 'checked_out'
    CANCELLED = 'cancelled'


class PaymentStatus(Enum):
    """
    Payment status

    - PENDING -> PAID | FAILED
    - FAILED -> PENDING (retry) | PAID (late success)
    - PAID -> REFUNDED
    """
    PENDING = 'pending'
    PAID = 'paid'
    FAILED = 'failed'
    REFUNDED = 'refunded'


class CancellationSource(Enum):
    GUEST = 'guest'
    STAFF = 'staff'
    SYSTEM = 'system'


STATUS_TRANSITIONS = {
    BookingStatus.PENDING: {BookingStatus.CONFIRMED, BookingStatus.CANCELLED},
    BookingStatus.CONFIRMED: {BookingStatus.CHECKED_IN, BookingStatus.CANCELLED},
    BookingStatus.CHECKED_IN: {BookingStatus.CHECKED_OUT},
    BookingStatus.CHECKED_OUT: set(),
    BookingStatus.CANCELLED: set(),
}

PAYMENT_TRANSITIONS = {
    PaymentStatus.PENDING: {PaymentStatus.PAID, PaymentStatus.FAILED},
    PaymentStatus.FAILED: {PaymentStatus.PENDING, PaymentStatus.PAID},
    PaymentStatus.PAID: {PaymentStatus.REFUNDED},
    PaymentStatus.REFUNDED: set(),
}


# ===== Guest =====

@dataclass(frozen=True)
class GuestContact(ValueObject):
    name: str
    email: str
    phone: str
    address: str = ''
    city: str = ''
    state: str = ''
    pincode: str = ''

    def __post_init__(self):
        if not (self.name or '').strip():
            raise InputError("Guest name is required")
        if not (self.email or '').strip() or not (self.phone or '').strip():
            raise InputError("Guest email and phone are required")
        if not normalize_phone(self.phone):
            raise InputError(f"Invalid phone number: {self.phone!r}")

    @property
    def contact_id(self) -> str:
        """Stable identifier for usage limits and duplicate detection"""
        return normalize_phone(self.phone) or self.email.strip().lower()

    def to_dict(self) -> dict:
        return {
            'name': self.name,
            'email': self.email,
            'phone': self.phone,
            'address': self.address,
            'city': self.city,
            'state': self.state,
            'pincode': self.pincode,
        }


def normalize_phone(phone: str) -> str:
    digits = re.sub(r'\D', '', phone or '')
    # Indian numbers are stored without the country code
    if len(digits) == 12 and digits.startswith('91'):
        digits = digits[2:]
    return digits


@dataclass(frozen=True)
class Guest(ValueObject):
    name: str = ''
    age: int = 0
    gender: str = ''

    def to_dict(self) -> dict:
        return {'name': self.name, 'age': self.age, 'gender': self.gender}


# ===== Category details =====

@dataclass(frozen=True)
class RoomDetails(ValueObject):
    room_id: str
    room_number: str = ''
    room_type: str = ''

    def __post_init__(self):
        if not self.room_id:
            raise InputError("Room bookings require a room_id")


@dataclass(frozen=True)
class YogaDetails(ValueObject):
    session_id: str
    session_type: str = ''
    participants: int = 1

    def __post_init__(self):
        if not self.session_id:
            raise InputError("Yoga bookings require a session_id")
        if self.participants < 1:
            raise InputError("Yoga bookings need at least one participant")


@dataclass(frozen=True)
class FlightDetails(ValueObject):
    flight_number: str = ''
    time: str = ''
    terminal: str = ''


@dataclass(frozen=True)
class TransportDetails(ValueObject):
    pickup: Optional[FlightDetails] = None
    drop: Optional[FlightDetails] = None
    vehicle_id: str = ''

    def __post_init__(self):
        if self.pickup is None and self.drop is None:
            raise InputError("Transport bookings need a pickup or a drop")


@dataclass(frozen=True)
class ServiceDetails(ValueObject):
    service_ids: Tuple[str, ...] = ()
    notes: str = ''


BookingDetails = Union[RoomDetails, YogaDetails, TransportDetails, ServiceDetails]

DETAILS_BY_CATEGORY = {
    BookingCategory.ROOM: RoomDetails,
    BookingCategory.YOGA: YogaDetails,
    BookingCategory.TRANSPORT: TransportDetails,
    BookingCategory.ADVENTURE: ServiceDetails,
    BookingCategory.MIXED_SERVICE: ServiceDetails,
}


def details_from_dict(category: BookingCategory, data: dict) -> BookingDetails:
    data = dict(data or {})
    details_class = DETAILS_BY_CATEGORY[category]
    try:
        if details_class is TransportDetails:
            return TransportDetails(
                pickup=FlightDetails(**data['pickup']) if data.get('pickup') else None,
                drop=FlightDetails(**data['drop']) if data.get('drop') else None,
                vehicle_id=data.get('vehicle_id', ''),
            )
        if details_class is ServiceDetails:
            return ServiceDetails(
                service_ids=tuple(str(value) for value in data.get('service_ids', ())),
                notes=data.get('notes', ''),
            )
        return details_class(**data)
    except TypeError as exc:
        raise InputError(f"Invalid {category.value} details: {exc}") from None


def details_to_dict(details: BookingDetails) -> dict:
    if isinstance(details, TransportDetails):
        return {
            'pickup': details.pickup.__dict__.copy() if details.pickup else None,
            'drop': details.drop.__dict__.copy() if details.drop else None,
            'vehicle_id': details.vehicle_id,
        }
    if isinstance(details, ServiceDetails):
        return {'service_ids': list(details.service_ids), 'notes': details.notes}
    return details.__dict__.copy()


# ===== Payment proof =====

@dataclass(frozen=True)
class VerifiedPayment(ValueObject):
    """
    A gateway payment whose callback signature has been checked

    Only the payment adapter constructs these.
    """
    gateway_order_id: str
    payment_id: str
    amount: int


def generate_booking_code() -> str:
    return secrets.token_hex(4).upper()


# ===== Aggregate =====

@dataclass(kw_only=True, eq=False)
class Booking(Aggregate):
    """
    Booking Aggregate Root

    Key invariants:
    - price_quote is frozen at creation and never recomputed
    - status only reaches CONFIRMED through a verified payment
    - a failed payment leaves the booking PENDING for retry
    - a payment arriving after cancellation is recorded as PAID but the
      booking stays CANCELLED and is flagged for reconciliation
    """

    booking_code: str = field(default_factory=generate_booking_code)
    category: BookingCategory
    details: BookingDetails
    guest: GuestContact
    guests: Tuple[Guest, ...] = ()
    dates: DateRange
    price_quote: PriceQuote
    idempotency_key: str
    special_requests: str = ''

    status: BookingStatus = BookingStatus.PENDING
    payment_status: PaymentStatus = PaymentStatus.PENDING
    payment_reference: str = ''
    payment_failure_reason: str = ''
    needs_reconciliation: bool = False

    cancellation_source: Optional[CancellationSource] = None
    cancellation_reason: str = ''

    confirmed_at: Optional[datetime] = None
    paid_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    checked_in_at: Optional[datetime] = None
    checked_out_at: Optional[datetime] = None

    def __post_init__(self):
        expected = DETAILS_BY_CATEGORY[self.category]
        if not isinstance(self.details, expected):
            raise InputError(
                f"{self.category.value} bookings need {expected.__name__}, "
                f"got {type(self.details).__name__}"
            )

    @classmethod
    def place(cls, **kwargs) -> 'Booking':
        """Create a new pending booking and record BookingCreated"""
        booking = cls(**kwargs)
        booking.add_event(BookingCreated(
            aggregate_id=booking.id,
            booking_id=booking.id,
            category=booking.category.value,
            contact_id=booking.guest.contact_id,
            final_total=booking.final_total,
        ))
        return booking

    @property
    def final_total(self) -> int:
        return self.price_quote.final_total

    @property
    def contact_id(self) -> str:
        return self.guest.contact_id

    # ----- payment transitions -----

    def mark_paid(self, payment: VerifiedPayment) -> bool:
        """
        Apply a verified payment

        Returns False (no-op) when the booking is already paid, so
        duplicate gateway callbacks are harmless.
        """
        if not isinstance(payment, VerifiedPayment):
            raise TypeError("mark_paid requires a VerifiedPayment")
        if self.payment_status is PaymentStatus.PAID:
            return False
        self._move_payment(PaymentStatus.PAID)

        now = utcnow()
        self.payment_reference = payment.payment_id
        self.payment_failure_reason = ''
        self.paid_at = now

        if self.status is BookingStatus.CANCELLED:
            self.needs_reconciliation = True
            self.add_event(PaymentReceivedAfterCancellation(
                aggregate_id=self.id,
                booking_id=self.id,
                payment_id=payment.payment_id,
                amount=payment.amount,
            ))
        else:
            self._move_status(BookingStatus.CONFIRMED)
            self.confirmed_at = now
            self.add_event(BookingConfirmed(
                aggregate_id=self.id,
                booking_id=self.id,
                payment_id=payment.payment_id,
                final_total=self.final_total,
            ))
        self.touch()
        return True

    def mark_failed(self, reason: str) -> bool:
        """Record a failed payment; the booking stays bookable for retry"""
        if self.payment_status in (PaymentStatus.PAID, PaymentStatus.REFUNDED):
            return False
        if self.payment_status is PaymentStatus.FAILED and self.payment_failure_reason == reason:
            return False
        if self.payment_status is PaymentStatus.PENDING:
            self._move_payment(PaymentStatus.FAILED)
        self.payment_failure_reason = reason
        self.add_event(BookingPaymentFailed(
            aggregate_id=self.id,
            booking_id=self.id,
            reason=reason,
        ))
        self.touch()
        return True

    def prepare_payment_retry(self):
        """FAILED -> PENDING before a new payment attempt"""
        if self.status is not BookingStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot take payment for a booking in status {self.status.value}"
            )
        if self.payment_status is PaymentStatus.FAILED:
            self._move_payment(PaymentStatus.PENDING)
            self.touch()
        elif self.payment_status is not PaymentStatus.PENDING:
            raise InvalidStateTransition(
                f"Cannot take payment when payment status is {self.payment_status.value}"
            )

    def mark_refunded(self):
        """Manual refund recorded by staff; clears the reconciliation flag"""
        self._move_payment(PaymentStatus.REFUNDED)
        self.needs_reconciliation = False
        self.touch()

    # ----- lifecycle transitions -----

    def cancel(self, reason: str = '', source: CancellationSource = CancellationSource.GUEST):
        if self.status not in (BookingStatus.PENDING, BookingStatus.CONFIRMED):
            raise InvalidStateTransition(
                f"Cannot cancel booking with status {self.status.value}"
            )
        self._move_status(BookingStatus.CANCELLED)
        self.cancellation_source = source
        self.cancellation_reason = reason
        self.cancelled_at = utcnow()

        was_paid = self.payment_status is PaymentStatus.PAID
        if was_paid:
            # Refunds are handled by staff outside the system
            self.needs_reconciliation = True

        self.add_event(BookingCancelled(
            aggregate_id=self.id,
            booking_id=self.id,
            reason=reason,
            source=source.value,
            was_paid=was_paid,
        ))
        self.touch()

    def check_in(self):
        self._move_status(BookingStatus.CHECKED_IN)
        self.checked_in_at = utcnow()
        self.add_event(BookingCheckedIn(aggregate_id=self.id, booking_id=self.id))
        self.touch()

    def check_out(self):
        self._move_status(BookingStatus.CHECKED_OUT)
        self.checked_out_at = utcnow()
        self.add_event(BookingCheckedOut(aggregate_id=self.id, booking_id=self.id))
        self.touch()

    # ----- queries -----

    def can_open_payment(self) -> bool:
        return (self.status is BookingStatus.PENDING and
                self.payment_status in (PaymentStatus.PENDING, PaymentStatus.FAILED))

    def is_stale(self, now: datetime, ttl: timedelta) -> bool:
        """Pending, unpaid and older than ttl"""
        return (self.status is BookingStatus.PENDING and
                self.payment_status is not PaymentStatus.PAID and
                self.created_at + ttl <= now)

    def _move_status(self, target: BookingStatus):
        if target not in STATUS_TRANSITIONS[self.status]:
            raise InvalidStateTransition(
                f"Booking {self.booking_code}: {self.status.value} -> {target.value} is not allowed"
            )
        self.status = target

    def _move_payment(self, target: PaymentStatus):
        if target not in PAYMENT_TRANSITIONS[self.payment_status]:
            raise InvalidStateTransition(
                f"Booking {self.booking_code}: payment {self.payment_status.value} -> "
                f"{target.value} is not allowed"
            )
        self.payment_status = target

    def __str__(self):
        return f"Booking {self.booking_code} ({self.status.value}/{self.payment_status.value})"

    def __repr__(self):
        return (
            f"Booking(id={self.id}, booking_code={self.booking_code}, "
            f"status={self.status.value}, payment_status={self.payment_status.value})"
        )
