"""Admin registration for bookings."""

from __future__ import annotations

from django.contrib import admin, messages
from django.db import transaction

from shared.domain.exceptions import DomainError

from .models import Booking
from .repositories import DjangoBookingRepository


@admin.register(Booking)
class BookingAdmin(admin.ModelAdmin):
    list_display = (
        "booking_code",
        "category",
        "guest_name",
        "status",
        "payment_status",
        "needs_reconciliation",
        "check_in",
        "check_out",
        "final_total",
        "created_at",
    )
    list_filter = ("category", "status", "payment_status", "needs_reconciliation", "check_in")
    search_fields = ("booking_code", "guest_name", "guest_email", "guest_phone", "payment_reference")
    readonly_fields = [field.name for field in Booking._meta.fields]
    actions = ["mark_refunded"]

    def has_add_permission(self, request):  # type: ignore
        return False

    def has_delete_permission(self, request, obj=None):  # type: ignore
        return False

    @admin.action(description="Record manual refund for cancelled paid bookings")
    def mark_refunded(self, request, queryset):  # type: ignore
        repo = DjangoBookingRepository()
        refunded = 0
        for booking_id in queryset.filter(needs_reconciliation=True).values_list("id", flat=True):
            try:
                with transaction.atomic():
                    booking = repo.get_by_id(booking_id, lock=True)
                    booking.mark_refunded()
                    repo.save(booking)
            except DomainError as exc:
                self.message_user(request, f"{booking_id}: {exc}", messages.WARNING)
                continue
            refunded += 1
        self.message_user(request, f"{refunded} booking(s) marked refunded.")
