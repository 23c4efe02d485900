"""API views for the booking domain."""

from __future__ import annotations

import logging

from rest_framework import mixins, permissions, status, viewsets  # type: ignore
from rest_framework.decorators import action  # type: ignore
from rest_framework.response import Response  # type: ignore

from apps.coupons.repositories import DjangoCouponRepository
from shared.domain.exceptions import (
    BookingNotFound,
    ConcurrentModification,
    CouponRejected,
    InputError,
    InvalidStateTransition,
)

from .application.command_handlers import (
    CancelBookingCommand,
    CancelBookingHandler,
    CheckInBookingCommand,
    CheckInBookingHandler,
    CheckOutBookingCommand,
    CheckOutBookingHandler,
    CreateBookingCommand,
    CreateBookingHandler,
)
from .domain.entities import BookingCategory, CancellationSource
from .models import Booking
from .repositories import DjangoBookingRepository
from .serializers import BookingCancelSerializer, BookingCreateSerializer, BookingSerializer

logger = logging.getLogger(__name__)

IDEMPOTENCY_HEADER = "HTTP_IDEMPOTENCY_KEY"


class BookingViewSet(
    mixins.ListModelMixin,
    mixins.RetrieveModelMixin,
    viewsets.GenericViewSet,
):
    """
    Checkout bookings.

    Guests create, read and cancel by booking id; listing and
    check-in/check-out are staff operations.
    """

    queryset = Booking.objects.all()
    serializer_class = BookingSerializer
    permission_classes = [permissions.AllowAny]
    filterset_fields = ["status", "payment_status", "category", "needs_reconciliation"]

    def get_permissions(self):  # type: ignore
        if self.action in ("list", "check_in", "check_out"):
            return [permissions.IsAdminUser()]
        return super().get_permissions()

    def create(self, request, *args, **kwargs):  # type: ignore
        serializer = BookingCreateSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        command = CreateBookingCommand(
            category=BookingCategory(data["category"]),
            details=data["details"],
            guest=dict(data["contact"]),
            cart=data["selections"],
            date_range=data["date_range"],
            guests=[dict(guest) for guest in data.get("guests", [])],
            coupon_code=data["coupon_code"],
            special_requests=data["special_requests"],
            idempotency_key=request.META.get(IDEMPOTENCY_HEADER),
            require_coupon=data["require_coupon"],
        )
        handler = CreateBookingHandler(DjangoBookingRepository(), DjangoCouponRepository())
        try:
            result = handler.handle(command)
        except InputError as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_400_BAD_REQUEST)
        except CouponRejected as exc:
            return Response(
                {"detail": "Coupon rejected", "code": exc.code, "reason": exc.reason},
                status=status.HTTP_422_UNPROCESSABLE_ENTITY,
            )

        booking = Booking.objects.get(pk=result.booking.id)
        return Response(
            BookingSerializer(booking).data,
            status=status.HTTP_201_CREATED if result.created else status.HTTP_200_OK,
        )

    @action(detail=True, methods=["patch"])
    def cancel(self, request, pk=None):  # type: ignore
        serializer = BookingCancelSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        source = CancellationSource.STAFF if request.user.is_staff else CancellationSource.GUEST
        handler = CancelBookingHandler(DjangoBookingRepository(), DjangoCouponRepository())
        return self._run(
            lambda booking_id: handler.handle(
                CancelBookingCommand(
                    booking_id=booking_id,
                    reason=serializer.validated_data["reason"],
                    source=source,
                )
            )
        )

    @action(detail=True, methods=["post"], url_path="check-in")
    def check_in(self, request, pk=None):  # type: ignore
        handler = CheckInBookingHandler(DjangoBookingRepository())
        return self._run(lambda booking_id: handler.handle(CheckInBookingCommand(booking_id)))

    @action(detail=True, methods=["post"], url_path="check-out")
    def check_out(self, request, pk=None):  # type: ignore
        handler = CheckOutBookingHandler(DjangoBookingRepository())
        return self._run(lambda booking_id: handler.handle(CheckOutBookingCommand(booking_id)))

    def _run(self, operation):
        booking = self.get_object()
        try:
            operation(booking.pk)
        except BookingNotFound as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_404_NOT_FOUND)
        except (InvalidStateTransition, ConcurrentModification) as exc:
            return Response({"detail": str(exc)}, status=status.HTTP_409_CONFLICT)
        booking.refresh_from_db()
        return Response(BookingSerializer(booking).data)
