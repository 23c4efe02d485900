"""Optimistic concurrency on booking saves."""

from __future__ import annotations

from datetime import date, timedelta

from django.core import mail
from django.test import TestCase

from apps.bookings.application.command_handlers import (
    MAX_SAVE_ATTEMPTS,
    CreateBookingCommand,
    CreateBookingHandler,
    MarkPaidCommand,
    MarkPaidHandler,
)
from apps.bookings.domain.entities import (
    BookingCategory,
    BookingStatus,
    CancellationSource,
    PaymentStatus,
    VerifiedPayment,
)
from apps.bookings.models import Booking as BookingModel
from apps.bookings.repositories import DjangoBookingRepository
from apps.coupons.repositories import DjangoCouponRepository
from apps.pricing.domain.entities import ServiceSelection
from shared.domain.exceptions import ConcurrentModification
from shared.domain.value_objects import DateRange


class StaleFirstReadRepository(DjangoBookingRepository):
    """Hands out a snapshot taken before someone else's write, then reads normally."""

    def __init__(self, snapshot):
        self.snapshot = snapshot
        self.reads = 0

    def get_by_id(self, booking_id, lock=False):
        self.reads += 1
        if self.snapshot is not None:
            booking, self.snapshot = self.snapshot, None
            return booking
        return super().get_by_id(booking_id, lock=lock)


class AlwaysConflictingRepository(DjangoBookingRepository):

    def __init__(self):
        self.reads = 0

    def get_by_id(self, booking_id, lock=False):
        self.reads += 1
        return super().get_by_id(booking_id, lock=lock)

    def save(self, booking):
        raise ConcurrentModification(f"Booking {booking.booking_code} was modified concurrently")


class BookingConcurrencyTests(TestCase):

    def setUp(self) -> None:
        check_in = date.today() + timedelta(days=14)
        command = CreateBookingCommand(
            category=BookingCategory.ROOM,
            details={"room_id": "deluxe-1"},
            guest={"name": "Asha Rao", "email": "asha@example.com", "phone": "9876543210"},
            cart=[ServiceSelection.from_dict({"kind": "stay-night", "unit_price": 430000})],
            date_range=DateRange(check_in, check_in + timedelta(days=2)),
        )
        self.repo = DjangoBookingRepository()
        booking = CreateBookingHandler(self.repo, DjangoCouponRepository()).handle(command).booking
        self.booking_id = booking.id
        self.payment = VerifiedPayment(gateway_order_id="order_1", payment_id="pay_1", amount=860000)

    def test_save_of_stale_version_is_rejected(self) -> None:
        first = self.repo.get_by_id(self.booking_id)
        second = self.repo.get_by_id(self.booking_id)

        first.mark_paid(self.payment)
        self.repo.save(first)
        second.cancel("changed plans", CancellationSource.GUEST)

        with self.assertRaises(ConcurrentModification):
            self.repo.save(second)

        stored = BookingModel.objects.get(pk=self.booking_id)
        self.assertEqual(stored.version, 1)
        self.assertEqual(stored.status, BookingModel.Status.CONFIRMED)
        self.assertEqual(first.version, 1)

    def test_mark_paid_reloads_after_conflict_and_applies_once(self) -> None:
        snapshot = self.repo.get_by_id(self.booking_id)
        with self.captureOnCommitCallbacks(execute=True):
            MarkPaidHandler(DjangoBookingRepository()).handle(MarkPaidCommand(self.booking_id, self.payment))

        racing_repo = StaleFirstReadRepository(snapshot)
        with self.captureOnCommitCallbacks(execute=True) as callbacks:
            booking = MarkPaidHandler(racing_repo).handle(MarkPaidCommand(self.booking_id, self.payment))

        self.assertEqual(racing_repo.reads, 2)
        self.assertEqual(callbacks, [])
        self.assertIs(booking.payment_status, PaymentStatus.PAID)
        self.assertIs(booking.status, BookingStatus.CONFIRMED)
        self.assertEqual(BookingModel.objects.get(pk=self.booking_id).version, 1)
        self.assertEqual(len(mail.outbox), 1)

    def test_persistent_conflict_gives_up(self) -> None:
        repo = AlwaysConflictingRepository()

        with self.assertRaises(ConcurrentModification):
            MarkPaidHandler(repo).handle(MarkPaidCommand(self.booking_id, self.payment))

        self.assertEqual(repo.reads, MAX_SAVE_ATTEMPTS)
        stored = BookingModel.objects.get(pk=self.booking_id)
        self.assertEqual(stored.payment_status, BookingModel.PaymentStatus.PENDING)
        self.assertEqual(stored.version, 0)
