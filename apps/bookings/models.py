"""Booking persistence models for Lotus checkout."""

from __future__ import annotations

import uuid

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Booking(models.Model):
    """Reservation of record: one row per checkout."""

    class Category(models.TextChoices):
        ROOM = "room", _("Room")
        YOGA = "yoga", _("Yoga")
        TRANSPORT = "transport", _("Transport")
        ADVENTURE = "adventure", _("Adventure")
        MIXED_SERVICE = "mixed_service", _("Mixed services")

    class Status(models.TextChoices):
        PENDING = "pending", _("Pending payment")
        CONFIRMED = "confirmed", _("Confirmed")
        CHECKED_IN = "checked_in", _("Checked in")
        CHECKED_OUT = "checked_out", _("Checked out")
        CANCELLED = "cancelled", _("Cancelled")

    class PaymentStatus(models.TextChoices):
        PENDING = "pending", _("Awaiting payment")
        PAID = "paid", _("Paid")
        FAILED = "failed", _("Payment failed")
        REFUNDED = "refunded", _("Refunded")

    class CancellationSource(models.TextChoices):
        GUEST = "guest", _("Guest")
        STAFF = "staff", _("Staff")
        SYSTEM = "system", _("System")

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    booking_code = models.CharField(max_length=12, unique=True, editable=False)
    category = models.CharField(max_length=20, choices=Category.choices)
    details = models.JSONField(default=dict, blank=True)

    guest_name = models.CharField(max_length=255)
    guest_email = models.EmailField()
    guest_phone = models.CharField(max_length=32)
    guest_address = models.CharField(max_length=255, blank=True)
    guest_city = models.CharField(max_length=100, blank=True)
    guest_state = models.CharField(max_length=100, blank=True)
    guest_pincode = models.CharField(max_length=12, blank=True)
    guests = models.JSONField(default=list, blank=True)
    contact_id = models.CharField(max_length=255, db_index=True)
    special_requests = models.TextField(blank=True)

    check_in = models.DateField()
    check_out = models.DateField()

    price_quote = models.JSONField(help_text=_("Quote frozen at booking time."))
    subtotal = models.PositiveIntegerField(default=0)
    discount_amount = models.PositiveIntegerField(default=0)
    final_total = models.PositiveIntegerField(default=0)
    currency = models.CharField(max_length=3, default="INR")
    coupon_code = models.CharField(max_length=50, blank=True)

    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.PENDING,
    )
    payment_status = models.CharField(
        max_length=20,
        choices=PaymentStatus.choices,
        default=PaymentStatus.PENDING,
    )
    payment_reference = models.CharField(max_length=100, blank=True)
    payment_failure_reason = models.CharField(max_length=255, blank=True)
    needs_reconciliation = models.BooleanField(
        default=False,
        help_text=_("Paid booking that was cancelled; needs a manual refund."),
    )
    idempotency_key = models.CharField(max_length=128, unique=True)

    cancellation_source = models.CharField(
        max_length=20,
        choices=CancellationSource.choices,
        blank=True,
    )
    cancellation_reason = models.CharField(max_length=255, blank=True)

    confirmed_at = models.DateTimeField(null=True, blank=True)
    paid_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)
    checked_in_at = models.DateTimeField(null=True, blank=True)
    checked_out_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField()
    updated_at = models.DateTimeField()
    version = models.PositiveIntegerField(default=0)

    class Meta:
        verbose_name = _("Booking")
        verbose_name_plural = _("Bookings")
        ordering = ["-created_at"]
        constraints = [
            models.CheckConstraint(
                condition=models.Q(check_out__gt=models.F("check_in")),
                name="booking_valid_dates",
            ),
        ]
        indexes = [
            models.Index(fields=["status", "payment_status", "created_at"]),
            models.Index(fields=["booking_code"]),
            models.Index(fields=["needs_reconciliation"]),
        ]

    def __str__(self) -> str:
        return f"Booking #{self.booking_code} ({self.category})"
