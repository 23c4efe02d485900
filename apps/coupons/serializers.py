"""Serializers for the coupon API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from apps.bookings.domain.entities import BookingCategory
from apps.pricing.serializers import QuoteRequestSerializer


class CouponValidateSerializer(QuoteRequestSerializer):
    """Coupon code plus the cart it should discount."""

    code = serializers.CharField(max_length=50)
    category = serializers.ChoiceField(choices=[category.value for category in BookingCategory])
    phone = serializers.CharField(required=False, allow_blank=True, default="")
    email = serializers.EmailField(required=False, allow_blank=True, default="")

    def validate(self, attrs):  # type: ignore
        attrs = super().validate(attrs)
        if not attrs["phone"] and not attrs["email"]:
            raise serializers.ValidationError("A phone number or email is required.")
        return attrs
