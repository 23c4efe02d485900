"""Admin registration for payment sessions."""

from __future__ import annotations

from django.contrib import admin

from .models import PaymentSession


@admin.register(PaymentSession)
class PaymentSessionAdmin(admin.ModelAdmin):
    list_display = ("gateway_order_id", "booking", "amount", "currency", "status", "created_at", "closed_at")
    list_filter = ("status", "currency")
    search_fields = ("gateway_order_id", "gateway_payment_id", "booking__booking_code")
    readonly_fields = [field.name for field in PaymentSession._meta.fields]

    def has_add_permission(self, request):  # type: ignore
        return False
