"""Payment session persistence."""

from __future__ import annotations

from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class PaymentSession(models.Model):
    """Gateway order opened for exactly one booking's frozen total."""

    class Status(models.TextChoices):
        CREATED = "created", _("Created")
        CAPTURED = "captured", _("Captured")
        FAILED = "failed", _("Failed")

    gateway_order_id = models.CharField(max_length=100, unique=True)
    booking = models.ForeignKey(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="payment_sessions",
    )
    amount = models.PositiveIntegerField()
    currency = models.CharField(max_length=3, default="INR")
    status = models.CharField(
        max_length=20,
        choices=Status.choices,
        default=Status.CREATED,
    )
    gateway_payment_id = models.CharField(max_length=100, blank=True)
    gateway_signature_payload = models.JSONField(default=dict, blank=True)
    failure_reason = models.CharField(max_length=255, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    closed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = _("Payment session")
        verbose_name_plural = _("Payment sessions")
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["booking", "status"]),
        ]

    def __str__(self) -> str:
        return f"PaymentSession {self.gateway_order_id} ({self.status})"
