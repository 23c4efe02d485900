"""
Booking Domain Events

Events that represent things that have happened in the booking domain.
These are published after successful transaction commits.
"""

from dataclasses import dataclass
from uuid import UUID

from shared.domain.base import DomainEvent


@dataclass(kw_only=True)
class BookingCreated(DomainEvent):
    """
    Event: A new pending booking was created

    Triggers:
    - Expiry sweep picks it up if it is never paid
    """
    booking_id: UUID
    category: str
    contact_id: str
    final_total: int


@dataclass(kw_only=True)
class BookingConfirmed(DomainEvent):
    """
    Event: Verified payment moved the booking PENDING -> CONFIRMED

    Triggers:
    - Confirmation email and SMS to the guest
    """
    booking_id: UUID
    payment_id: str
    final_total: int


@dataclass(kw_only=True)
class BookingPaymentFailed(DomainEvent):
    """Event: The gateway reported a failed payment; booking stays PENDING"""
    booking_id: UUID
    reason: str = ''


@dataclass(kw_only=True)
class BookingCancelled(DomainEvent):
    """
    Event: Booking was cancelled

    `was_paid` bookings need a manual refund.
    """
    booking_id: UUID
    reason: str = ''
    source: str = 'guest'
    was_paid: bool = False


@dataclass(kw_only=True)
class BookingCheckedIn(DomainEvent):
    booking_id: UUID


@dataclass(kw_only=True)
class BookingCheckedOut(DomainEvent):
    booking_id: UUID


@dataclass(kw_only=True)
class PaymentReceivedAfterCancellation(DomainEvent):
    """
    Event: A verified payment landed on a cancelled booking

    The booking stays cancelled and is flagged for reconciliation.
    """
    booking_id: UUID
    payment_id: str
    amount: int
