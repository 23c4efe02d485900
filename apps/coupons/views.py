"""API views for coupon validation."""

from __future__ import annotations

from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.domain.entities import normalize_phone
from apps.pricing.domain.engine import default_engine
from shared.domain.exceptions import InputError

from .domain.validator import CouponContext, CouponValidator
from .repositories import DjangoCouponRepository
from .serializers import CouponValidateSerializer


class CouponValidateView(APIView):
    """Quote the cart and check the coupon against it; never records usage."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = CouponValidateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            quote = default_engine().quote(data["selections"], data["date_range"], data["guest_ages"])
        except InputError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)

        contact_id = normalize_phone(data["phone"]) or data["email"].strip().lower()
        application = CouponValidator(DjangoCouponRepository()).validate(
            data["code"],
            quote,
            CouponContext(category=data["category"], contact_id=contact_id),
        )
        quote = quote.with_coupon(application)
        payload = {
            "accepted": application.accepted,
            "code": application.code,
            "discount_amount": application.discount_amount,
            "reason": application.reason_text,
            "quote": quote.to_dict(),
        }
        if not application.accepted:
            return Response(payload, status=status.HTTP_422_UNPROCESSABLE_ENTITY)
        return Response(payload)
