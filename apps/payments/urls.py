"""URL routing for payments."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import PaymentSessionView, PaymentWebhookView, VerifyPaymentView

urlpatterns = [
    path("sessions/", PaymentSessionView.as_view(), name="payment-session"),
    path("verify/", VerifyPaymentView.as_view(), name="payment-verify"),
    path("webhook/", PaymentWebhookView.as_view(), name="payment-webhook"),
]
