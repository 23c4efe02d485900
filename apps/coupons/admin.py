"""Admin registration for coupons."""

from __future__ import annotations

from django.contrib import admin

from .models import Coupon, CouponRedemption


@admin.register(Coupon)
class CouponAdmin(admin.ModelAdmin):
    list_display = (
        "code",
        "discount_type",
        "discount_value",
        "max_discount",
        "min_order_value",
        "max_uses_per_contact",
        "valid_from",
        "valid_until",
        "is_enabled",
    )
    list_filter = ("discount_type", "is_enabled")
    search_fields = ("code", "description")


@admin.register(CouponRedemption)
class CouponRedemptionAdmin(admin.ModelAdmin):
    list_display = ("coupon", "contact_id", "booking", "discount_amount", "voided_at", "created_at")
    search_fields = ("coupon__code", "contact_id")
    readonly_fields = ("coupon", "contact_id", "booking", "discount_amount", "voided_at", "created_at")
