"""Serializers for the payments API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from .models import PaymentSession


class OpenSessionSerializer(serializers.Serializer):
    booking_id = serializers.UUIDField()
    amount = serializers.IntegerField(required=False, allow_null=True, min_value=0)


class VerifyPaymentSerializer(serializers.Serializer):
    order_id = serializers.CharField(max_length=100)
    payment_id = serializers.CharField(max_length=100, required=False, allow_blank=True, default="")
    signature = serializers.CharField(max_length=256, required=False, allow_blank=True, default="")


class PaymentSessionSerializer(serializers.ModelSerializer):
    order_id = serializers.CharField(source="gateway_order_id", read_only=True)
    booking_code = serializers.CharField(source="booking.booking_code", read_only=True)

    class Meta:
        model = PaymentSession
        fields = [
            "order_id",
            "booking",
            "booking_code",
            "amount",
            "currency",
            "status",
            "created_at",
        ]
        read_only_fields = fields
