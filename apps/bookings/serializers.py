"""Serializers for the booking domain."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.pricing.serializers import QuoteRequestSerializer

from .domain.entities import BookingCategory
from .models import Booking


class GuestContactSerializer(serializers.Serializer):
    name = serializers.CharField(max_length=255)
    email = serializers.EmailField()
    phone = serializers.CharField(max_length=32)
    address = serializers.CharField(required=False, allow_blank=True, default="")
    city = serializers.CharField(required=False, allow_blank=True, default="")
    state = serializers.CharField(required=False, allow_blank=True, default="")
    pincode = serializers.CharField(required=False, allow_blank=True, default="")


class BookingCreateSerializer(QuoteRequestSerializer):
    """Checkout submission: cart, stay, guest contact and optional coupon."""

    category = serializers.ChoiceField(choices=[category.value for category in BookingCategory])
    details = serializers.DictField(required=False, default=dict)
    contact = GuestContactSerializer()
    coupon_code = serializers.CharField(required=False, allow_blank=True, default="")
    require_coupon = serializers.BooleanField(required=False, default=False)
    special_requests = serializers.CharField(required=False, allow_blank=True, default="")


class BookingCancelSerializer(serializers.Serializer):
    reason = serializers.CharField(required=False, allow_blank=True, default="", max_length=255)


class BookingSerializer(serializers.ModelSerializer):
    """Read-only projection of the stored booking, including the frozen quote."""

    class Meta:
        model = Booking
        fields = [
            "id",
            "booking_code",
            "category",
            "details",
            "guest_name",
            "guest_email",
            "guest_phone",
            "guests",
            "special_requests",
            "check_in",
            "check_out",
            "price_quote",
            "subtotal",
            "discount_amount",
            "final_total",
            "currency",
            "coupon_code",
            "status",
            "payment_status",
            "payment_reference",
            "needs_reconciliation",
            "cancellation_source",
            "cancellation_reason",
            "confirmed_at",
            "paid_at",
            "cancelled_at",
            "checked_in_at",
            "checked_out_at",
            "created_at",
            "updated_at",
        ]
        read_only_fields = fields
