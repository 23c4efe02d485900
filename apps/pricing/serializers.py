"""Serializers for the pricing API."""

from __future__ import annotations

from rest_framework import serializers  # type: ignore

from shared.domain.exceptions import InputError
from shared.domain.value_objects import DateRange

from .domain.entities import ServiceKind, ServiceSelection


class CartEntrySerializer(serializers.Serializer):
    """One cart entry."""

    kind = serializers.ChoiceField(choices=[kind.value for kind in ServiceKind])
    quantity = serializers.IntegerField(min_value=1, default=1)
    days = serializers.IntegerField(min_value=1, required=False, allow_null=True)
    unit_price = serializers.IntegerField(min_value=0, required=False, allow_null=True)
    session_type = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    label = serializers.CharField(required=False, allow_blank=True, default="")


class GuestSerializer(serializers.Serializer):
    name = serializers.CharField(required=False, allow_blank=True, default="")
    age = serializers.IntegerField(min_value=0, max_value=130)
    gender = serializers.CharField(required=False, allow_blank=True, default="")


class QuoteRequestSerializer(serializers.Serializer):
    """Cart, stay period and guest list; shared by quote, coupon and booking requests."""

    check_in = serializers.DateField()
    check_out = serializers.DateField()
    cart = CartEntrySerializer(many=True)
    guests = GuestSerializer(many=True, required=False, default=list)

    def validate(self, attrs):  # type: ignore
        try:
            attrs["date_range"] = DateRange(attrs["check_in"], attrs["check_out"])
            attrs["selections"] = [
                ServiceSelection.from_dict(dict(entry)) for entry in attrs["cart"]
            ]
        except InputError as exc:
            raise serializers.ValidationError(str(exc))
        if not attrs["selections"]:
            raise serializers.ValidationError({"cart": ["Cart is empty"]})
        attrs["guest_ages"] = [guest["age"] for guest in attrs.get("guests", [])]
        return attrs

