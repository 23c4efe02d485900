"""Coupon models: administrator-defined coupons and the usage ledger."""

from __future__ import annotations

from django.core.exceptions import ValidationError  # type: ignore
from django.db import models  # type: ignore
from django.utils.translation import gettext_lazy as _  # type: ignore


class Coupon(models.Model):
    """Discount coupon. Created and edited through the admin only."""

    class DiscountType(models.TextChoices):
        PERCENTAGE = "percentage", _("Percentage with cap")
        FLAT = "flat", _("Flat amount")

    code = models.CharField(max_length=32, unique=True)
    description = models.CharField(max_length=255, blank=True)
    discount_type = models.CharField(max_length=16, choices=DiscountType.choices)
    discount_value = models.PositiveIntegerField(
        help_text=_("Percent (1-100) for percentage coupons, amount in paise for flat coupons."),
    )
    max_discount = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text=_("Cap in paise for percentage coupons."),
    )
    scopes = models.JSONField(
        default=list,
        blank=True,
        help_text=_('Booking categories the coupon applies to, or ["all"].'),
    )
    min_order_value = models.PositiveIntegerField(default=0)
    max_uses_per_contact = models.PositiveIntegerField(
        default=1,
        help_text=_("0 means unlimited."),
    )
    valid_from = models.DateTimeField(null=True, blank=True)
    valid_until = models.DateTimeField(null=True, blank=True)
    is_enabled = models.BooleanField(default=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["code"]
        constraints = [
            models.CheckConstraint(
                condition=(
                    models.Q(discount_type="flat")
                    | models.Q(discount_value__gte=1, discount_value__lte=100)
                ),
                name="coupon_percentage_in_range",
            ),
        ]

    def __str__(self) -> str:
        return self.code

    def clean(self) -> None:
        if self.discount_type == self.DiscountType.PERCENTAGE and not 0 < self.discount_value <= 100:
            raise ValidationError(_("Percentage must be between 1 and 100."))
        if self.valid_from and self.valid_until and self.valid_from >= self.valid_until:
            raise ValidationError(_("Coupon must end after it starts."))

    def save(self, *args, **kwargs):  # type: ignore
        self.code = self.code.strip().upper()
        super().save(*args, **kwargs)


class CouponRedemption(models.Model):
    """Usage ledger entry: one coupon used by one contact for one booking."""

    coupon = models.ForeignKey(Coupon, on_delete=models.PROTECT, related_name="redemptions")
    contact_id = models.CharField(max_length=128, db_index=True)
    booking = models.OneToOneField(
        "bookings.Booking",
        on_delete=models.PROTECT,
        related_name="coupon_redemption",
    )
    discount_amount = models.PositiveIntegerField()
    voided_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        indexes = [models.Index(fields=["coupon", "contact_id"])]

    def __str__(self) -> str:
        return f"{self.coupon.code} by {self.contact_id}"
