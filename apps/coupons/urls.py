"""URL routing for coupons."""

from __future__ import annotations

from django.urls import path  # type: ignore

from .views import CouponValidateView

urlpatterns = [
    path("validate/", CouponValidateView.as_view(), name="coupon-validate"),
]
