"""
Coupon Validator

validate(code, quote, context) -> CouponApplication

Checks run in order and stop at the first failure:
1. coupon exists
2. coupon is enabled
3. now is inside the active window
4. context category is in the coupon's scopes
5. quote subtotal >= minimum order value
6. contact's usage count < max uses per contact

The validator never mutates the coupon or the quote; callers apply the
result with PriceQuote.with_coupon().
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Optional, Protocol

from apps.coupons.domain.entities import Coupon, CouponApplication, RejectionReason

logger = logging.getLogger(__name__)


class CouponRepository(Protocol):
    def get_by_code(self, code: str) -> Optional[Coupon]:
        ...

    def usage_count(self, code: str, contact_id: str) -> int:
        ...


@dataclass(frozen=True)
class CouponContext:
    category: str
    contact_id: str


def normalize_code(code: str) -> str:
    return (code or '').strip().upper()


class CouponValidator:

    def __init__(self, repository: CouponRepository, clock: Callable[[], datetime] = None):
        self.repository = repository
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def validate(self, code: str, quote, context: CouponContext) -> CouponApplication:
        code = normalize_code(code)
        coupon = self.repository.get_by_code(code) if code else None
        reason = self._first_failure(coupon, quote, context)
        if reason is not None:
            logger.info(f"Coupon {code or '<empty>'} rejected for {context.category}: {reason.value}")
            return CouponApplication.reject(code, reason)

        discount = coupon.rule.discount_for(quote.subtotal)
        logger.info(f"Coupon {code} accepted, discount {discount}")
        return CouponApplication.accept(coupon, discount)

    def _first_failure(self, coupon: Optional[Coupon], quote, context: CouponContext) -> Optional[RejectionReason]:
        if coupon is None:
            return RejectionReason.NOT_FOUND
        if not coupon.enabled:
            return RejectionReason.DISABLED

        now = self.clock()
        if coupon.valid_from and now < coupon.valid_from:
            return RejectionReason.NOT_STARTED
        if coupon.valid_until and now > coupon.valid_until:
            return RejectionReason.EXPIRED

        if not coupon.applies_to(context.category):
            return RejectionReason.OUT_OF_SCOPE
        if quote.subtotal < coupon.min_order_value:
            return RejectionReason.BELOW_MINIMUM

        if coupon.max_uses_per_contact:
            used = self.repository.usage_count(coupon.code, context.contact_id)
            if used >= coupon.max_uses_per_contact:
                return RejectionReason.USAGE_LIMIT_REACHED
        return None
