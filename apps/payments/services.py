"""
Payment Gateway Adapter

The only path from the gateway to a paid booking:

- open_session(): order at the gateway for the booking's frozen final total
- verify_callback(): checkout-widget signature check (plus optional API
  confirmation of the captured amount)
- handle_callback() / handle_webhook(): route a verified result to
  MarkPaid and anything else to MarkFailed

Client-reported success carries no weight; only a matching HMAC does.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from typing import Optional
from uuid import UUID

import structlog
from django.db import transaction
from django.utils import timezone

from apps.bookings.application.command_handlers import (
    MarkFailedCommand,
    MarkFailedHandler,
    MarkPaidCommand,
    MarkPaidHandler,
    PreparePaymentCommand,
    PreparePaymentHandler,
)
from apps.bookings.domain.entities import Booking, VerifiedPayment
from apps.bookings.repositories import DjangoBookingRepository
from shared.domain.exceptions import AmountMismatch, InputError, InvalidStateTransition, SignatureInvalid

from .gateway import RazorpayGateway, gateway_config
from .models import PaymentSession
from .signatures import checkout_signature, signatures_match, webhook_signature

logger = logging.getLogger(__name__)
security_logger = structlog.get_logger("security")

VALID = "valid"
INVALID = "invalid"


@dataclass(frozen=True)
class PaymentVerificationResult:
    status: str
    reason: str = ""
    session_id: Optional[int] = None
    booking_id: Optional[UUID] = None
    payment: Optional[VerifiedPayment] = None

    @property
    def is_valid(self) -> bool:
        return self.status == VALID

    @classmethod
    def invalid(cls, reason: str, session: Optional[PaymentSession] = None) -> "PaymentVerificationResult":
        return cls(
            status=INVALID,
            reason=reason,
            session_id=session.pk if session else None,
            booking_id=session.booking_id if session else None,
        )


class PaymentGatewayAdapter:

    def __init__(self, gateway: Optional[RazorpayGateway] = None, booking_repo=None, config: Optional[dict] = None):
        self.config = config or gateway_config()
        self.gateway = gateway or RazorpayGateway.from_settings()
        self.booking_repo = booking_repo or DjangoBookingRepository()

    # ------------------------------------------------------------------
    # Sessions
    # ------------------------------------------------------------------

    def open_session(self, booking_id: UUID, amount: Optional[int] = None) -> PaymentSession:
        """
        Open (or reuse) a gateway order for the booking's final total.

        The gateway is contacted outside the booking lock; if it is
        unavailable the booking is left pending and GatewayUnavailable
        propagates to the caller.
        """

        booking = self.booking_repo.get_by_id(booking_id)
        self._check_payable(booking, amount)
        # a failed attempt is reset to pending whether or not the order is reused
        booking = PreparePaymentHandler(self.booking_repo).handle(PreparePaymentCommand(booking.id))

        reusable = (
            PaymentSession.objects.filter(
                booking_id=booking.id,
                status=PaymentSession.Status.CREATED,
                closed_at__isnull=True,
                amount=booking.final_total,
            )
            .order_by("-created_at")
            .first()
        )
        if reusable is not None:
            logger.info(f"Reusing payment session {reusable.gateway_order_id} for booking {booking.booking_code}")
            return reusable

        order = self.gateway.create_order(
            amount=booking.final_total,
            currency=booking.price_quote.currency,
            receipt=booking.booking_code,
            notes={"booking_id": str(booking.id), "category": booking.category.value},
        )
        if order.amount != booking.final_total:
            security_logger.warning(
                "payment.order_amount_mismatch",
                booking_id=str(booking.id),
                order_id=order.id,
                expected=booking.final_total,
                actual=order.amount,
            )
            raise AmountMismatch(booking.final_total, order.amount)

        with transaction.atomic():
            PaymentSession.objects.filter(
                booking_id=booking.id,
                status=PaymentSession.Status.CREATED,
            ).update(
                status=PaymentSession.Status.FAILED,
                failure_reason="superseded",
                closed_at=timezone.now(),
            )
            session = PaymentSession.objects.create(
                gateway_order_id=order.id,
                booking_id=booking.id,
                amount=booking.final_total,
                currency=order.currency,
            )
        logger.info(f"Payment session {order.id} opened for booking {booking.booking_code}, amount {session.amount}")
        return session

    def _check_payable(self, booking: Booking, amount: Optional[int]) -> None:
        if not booking.can_open_payment():
            raise InvalidStateTransition(
                f"Booking {booking.booking_code} is {booking.status.value}/"
                f"{booking.payment_status.value}; no payment can be taken"
            )
        if booking.final_total <= 0:
            raise InputError("Nothing to pay: booking total is zero")
        if amount is not None and int(amount) != booking.final_total:
            security_logger.warning(
                "payment.amount_mismatch",
                booking_id=str(booking.id),
                expected=booking.final_total,
                actual=amount,
            )
            raise AmountMismatch(booking.final_total, int(amount))

    # ------------------------------------------------------------------
    # Checkout widget callback
    # ------------------------------------------------------------------

    def verify_callback(self, payload: dict, signature: str) -> PaymentVerificationResult:
        order_id = str(payload.get("order_id") or "")
        payment_id = str(payload.get("payment_id") or "")
        session = PaymentSession.objects.filter(gateway_order_id=order_id).first() if order_id else None
        if session is None:
            security_logger.warning("payment.unknown_order", order_id=order_id, payment_id=payment_id)
            return PaymentVerificationResult.invalid("unknown order")

        expected = checkout_signature(order_id, payment_id, self.config["KEY_SECRET"])
        if not payment_id or not signatures_match(expected, signature):
            security_logger.warning(
                "payment.signature_invalid",
                order_id=order_id,
                payment_id=payment_id,
                booking_id=str(session.booking_id),
            )
            return PaymentVerificationResult.invalid("signature mismatch", session)

        amount = session.amount
        if self.config.get("CONFIRM_WITH_API"):
            payment = self.gateway.fetch_payment(payment_id)
            if payment.order_id != order_id or not payment.is_captured:
                security_logger.warning(
                    "payment.not_captured",
                    order_id=order_id,
                    payment_id=payment_id,
                    gateway_order_id=payment.order_id,
                    gateway_status=payment.status,
                )
                return PaymentVerificationResult.invalid("payment not captured for this order", session)
            if payment.amount != session.amount:
                security_logger.warning(
                    "payment.amount_mismatch",
                    order_id=order_id,
                    payment_id=payment_id,
                    expected=session.amount,
                    actual=payment.amount,
                )
                return PaymentVerificationResult.invalid("captured amount differs from session amount", session)
            amount = payment.amount

        return PaymentVerificationResult(
            status=VALID,
            session_id=session.pk,
            booking_id=session.booking_id,
            payment=VerifiedPayment(gateway_order_id=order_id, payment_id=payment_id, amount=amount),
        )

    def handle_callback(self, payload: dict, signature: str) -> tuple[PaymentVerificationResult, Optional[Booking]]:
        """Verify and apply; an invalid callback can only ever fail the payment."""

        result = self.verify_callback(payload, signature)
        if result.is_valid:
            return result, self._apply_success(result, {"payload": payload, "signature": signature})
        if result.booking_id is None:
            return result, None
        booking = MarkFailedHandler(self.booking_repo).handle(
            MarkFailedCommand(result.booking_id, f"verification failed: {result.reason}")
        )
        return result, booking

    # ------------------------------------------------------------------
    # Server-to-server webhook
    # ------------------------------------------------------------------

    def handle_webhook(self, raw_body: bytes, signature: str) -> Optional[Booking]:
        expected = webhook_signature(raw_body, self.config["WEBHOOK_SECRET"])
        if not self.config["WEBHOOK_SECRET"] or not signatures_match(expected, signature):
            security_logger.warning("payment.webhook_signature_invalid", body_length=len(raw_body))
            raise SignatureInvalid("Webhook signature mismatch")

        try:
            event = json.loads(raw_body.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise InputError("Webhook body is not valid JSON") from None

        event_type = event.get("event", "")
        entity = ((event.get("payload") or {}).get("payment") or {}).get("entity") or {}
        order_id = entity.get("order_id") or ""
        session = PaymentSession.objects.filter(gateway_order_id=order_id).first() if order_id else None

        if event_type not in ("payment.captured", "payment.failed"):
            logger.info(f"Ignoring webhook event {event_type or '<none>'}")
            return None
        if session is None:
            logger.warning(f"Webhook {event_type} for unknown order {order_id or '<none>'}")
            return None

        if event_type == "payment.failed":
            reason = entity.get("error_description") or "payment failed"
            self._close_session(session.pk, PaymentSession.Status.FAILED, entity.get("id", ""), {"webhook": event}, reason)
            return MarkFailedHandler(self.booking_repo).handle(MarkFailedCommand(session.booking_id, reason))

        amount = int(entity.get("amount") or 0)
        if amount != session.amount:
            security_logger.warning(
                "payment.amount_mismatch",
                order_id=order_id,
                payment_id=entity.get("id"),
                expected=session.amount,
                actual=amount,
            )
            return MarkFailedHandler(self.booking_repo).handle(
                MarkFailedCommand(session.booking_id, "captured amount differs from session amount")
            )

        result = PaymentVerificationResult(
            status=VALID,
            session_id=session.pk,
            booking_id=session.booking_id,
            payment=VerifiedPayment(gateway_order_id=order_id, payment_id=entity.get("id", ""), amount=amount),
        )
        return self._apply_success(result, {"webhook": event})

    # ------------------------------------------------------------------

    def _apply_success(self, result: PaymentVerificationResult, signature_payload: dict) -> Booking:
        self._close_session(
            result.session_id,
            PaymentSession.Status.CAPTURED,
            result.payment.payment_id,
            signature_payload,
        )
        booking = MarkPaidHandler(self.booking_repo).handle(MarkPaidCommand(result.booking_id, result.payment))
        if booking.needs_reconciliation and booking.paid_at and booking.cancelled_at:
            security_logger.warning(
                "payment.after_cancellation",
                booking_id=str(booking.id),
                booking_code=booking.booking_code,
                payment_id=result.payment.payment_id,
                amount=result.payment.amount,
            )
        return booking

    @staticmethod
    def _close_session(session_id, status: str, payment_id: str, signature_payload: dict, reason: str = "") -> None:
        """First verified result closes the session; later ones leave it alone."""

        PaymentSession.objects.filter(pk=session_id, closed_at__isnull=True).update(
            status=status,
            gateway_payment_id=payment_id,
            gateway_signature_payload=signature_payload,
            failure_reason=reason,
            closed_at=timezone.now(),
        )
