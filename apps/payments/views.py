"""API views for payment sessions and gateway callbacks."""

from __future__ import annotations

import logging

from rest_framework import permissions, status  # type: ignore
from rest_framework.response import Response  # type: ignore
from rest_framework.views import APIView  # type: ignore

from apps.bookings.models import Booking
from apps.bookings.serializers import BookingSerializer
from shared.domain.exceptions import (
    AmountMismatch,
    BookingNotFound,
    ConcurrentModification,
    GatewayUnavailable,
    InputError,
    InvalidStateTransition,
    SignatureInvalid,
)

from .gateway import GatewayRequestError, gateway_config
from .serializers import OpenSessionSerializer, PaymentSessionSerializer, VerifyPaymentSerializer
from .services import PaymentGatewayAdapter

logger = logging.getLogger(__name__)

SIGNATURE_HEADER = "HTTP_X_RAZORPAY_SIGNATURE"
RETRY_AFTER_SECONDS = "30"


def _booking_payload(booking_id):
    return BookingSerializer(Booking.objects.get(pk=booking_id)).data


class PaymentSessionView(APIView):
    """Open a gateway order for a pending booking."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = OpenSessionSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            session = PaymentGatewayAdapter().open_session(data["booking_id"], data.get("amount"))
        except BookingNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except InputError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except AmountMismatch as exc:
            return Response(
                {"detail": str(exc), "expected": exc.expected, "actual": exc.actual},
                status=status.HTTP_409_CONFLICT,
            )
        except (InvalidStateTransition, ConcurrentModification) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        except GatewayUnavailable as exc:
            return Response(
                {"detail": str(exc), "retry": True},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
                headers={"Retry-After": RETRY_AFTER_SECONDS},
            )
        except GatewayRequestError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_502_BAD_GATEWAY)

        payload = PaymentSessionSerializer(session).data
        payload["key_id"] = gateway_config()["KEY_ID"]
        return Response(payload, status=status.HTTP_201_CREATED)


class VerifyPaymentView(APIView):
    """Checkout widget callback: signature decides, nothing else."""

    permission_classes = [permissions.AllowAny]

    def post(self, request, *args, **kwargs):  # type: ignore
        serializer = VerifyPaymentSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        try:
            result, booking = PaymentGatewayAdapter().handle_callback(
                {"order_id": data["order_id"], "payment_id": data["payment_id"]},
                data["signature"],
            )
        except GatewayUnavailable as exc:
            return Response(
                {"detail": str(exc), "retry": True},
                status=status.HTTP_503_SERVICE_UNAVAILABLE,
                headers={"Retry-After": RETRY_AFTER_SECONDS},
            )
        except (InvalidStateTransition, ConcurrentModification) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        if not result.is_valid:
            return Response(
                {"status": result.status, "reason": result.reason},
                status=status.HTTP_400_BAD_REQUEST,
            )
        return Response({"status": result.status, "booking": _booking_payload(booking.id)})


class PaymentWebhookView(APIView):
    """Server-to-server gateway events, signed over the raw body."""

    permission_classes = [permissions.AllowAny]
    authentication_classes = []

    def post(self, request, *args, **kwargs):  # type: ignore
        raw_body = request.body
        try:
            booking = PaymentGatewayAdapter().handle_webhook(raw_body, request.META.get(SIGNATURE_HEADER, ""))
        except SignatureInvalid as exc:
            return Response({"status": "invalid", "detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except InputError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except InvalidStateTransition as exc:
            logger.warning(f"Webhook acknowledged without effect: {exc}")
            return Response({"status": "ignored", "detail": str(exc)})
        except ConcurrentModification as exc:
            # the gateway redelivers non-2xx webhooks
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)

        return Response({"status": "ok", "booking_id": str(booking.id) if booking else None})
