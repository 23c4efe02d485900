"""Django-backed coupon repository and usage ledger."""

from __future__ import annotations

import logging
from typing import Optional

from django.utils import timezone  # type: ignore

from .domain.entities import ALL_SCOPES, Coupon, DiscountRule, DiscountType
from .models import Coupon as CouponModel, CouponRedemption

logger = logging.getLogger(__name__)


def to_domain(model: CouponModel) -> Coupon:
    return Coupon(
        code=model.code,
        rule=DiscountRule(
            type=DiscountType(model.discount_type),
            value=model.discount_value,
            cap=model.max_discount,
        ),
        scopes=frozenset(model.scopes or [ALL_SCOPES]),
        min_order_value=model.min_order_value,
        max_uses_per_contact=model.max_uses_per_contact,
        valid_from=model.valid_from,
        valid_until=model.valid_until,
        enabled=model.is_enabled,
        description=model.description,
    )


class DjangoCouponRepository:
    """Read access to coupons plus the per-contact usage ledger."""

    def get_by_code(self, code: str) -> Optional[Coupon]:
        model = CouponModel.objects.filter(code=code).first()
        return to_domain(model) if model else None

    def usage_count(self, code: str, contact_id: str) -> int:
        return CouponRedemption.objects.filter(
            coupon__code=code,
            contact_id=contact_id,
            voided_at__isnull=True,
        ).count()

    def record_redemption(self, code: str, contact_id: str, booking_id, discount_amount: int) -> None:
        coupon = CouponModel.objects.get(code=code)
        CouponRedemption.objects.get_or_create(
            booking_id=booking_id,
            defaults={
                "coupon": coupon,
                "contact_id": contact_id,
                "discount_amount": discount_amount,
            },
        )
        logger.info(f"Coupon {code} redeemed by {contact_id} for booking {booking_id}")

    def void_redemption(self, booking_id) -> None:
        updated = CouponRedemption.objects.filter(
            booking_id=booking_id,
            voided_at__isnull=True,
        ).update(voided_at=timezone.now())
        if updated:
            logger.info(f"Coupon redemption for booking {booking_id} voided")
