"""
Coupon Domain Entities

- Coupon: read-only snapshot of an administrator-defined coupon
- DiscountRule: percentage-with-cap or flat amount
- RejectionReason: why a coupon was not applied
- CouponApplication: result of validating one coupon against one quote
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional

from shared.domain.base import ValueObject

ALL_SCOPES = 'all'


class DiscountType(Enum):
    PERCENTAGE = 'percentage'
    FLAT = 'flat'


class RejectionReason(Enum):
    """Distinct, caller-visible reasons, in check order"""
    NOT_FOUND = 'coupon not found'
    DISABLED = 'coupon is disabled'
    NOT_STARTED = 'coupon is not active yet'
    EXPIRED = 'coupon has expired'
    OUT_OF_SCOPE = 'coupon does not apply to this service'
    BELOW_MINIMUM = 'order value below minimum'
    USAGE_LIMIT_REACHED = 'usage limit reached for this contact'


@dataclass(frozen=True)
class DiscountRule(ValueObject):
    """
    percentage: min(subtotal * percent / 100, cap), floored to whole units
    flat: min(amount, subtotal)
    """
    type: DiscountType
    value: int
    cap: Optional[int] = None

    def __post_init__(self):
        if self.value < 0:
            raise ValueError("Discount value cannot be negative")
        if self.type is DiscountType.PERCENTAGE and not 0 < self.value <= 100:
            raise ValueError("Percentage must be between 1 and 100")
        if self.cap is not None and self.cap < 0:
            raise ValueError("Discount cap cannot be negative")

    def discount_for(self, subtotal: int) -> int:
        if self.type is DiscountType.PERCENTAGE:
            discount = subtotal * self.value // 100
            if self.cap is not None:
                discount = min(discount, self.cap)
        else:
            discount = self.value
        return max(min(discount, subtotal), 0)

    def to_dict(self) -> dict:
        return {'type': self.type.value, 'value': self.value, 'cap': self.cap}


@dataclass(frozen=True)
class Coupon(ValueObject):
    code: str
    rule: DiscountRule
    scopes: FrozenSet[str] = frozenset({ALL_SCOPES})
    min_order_value: int = 0
    max_uses_per_contact: int = 0
    valid_from: Optional[datetime] = None
    valid_until: Optional[datetime] = None
    enabled: bool = True
    description: str = ''

    def applies_to(self, category: str) -> bool:
        return ALL_SCOPES in self.scopes or category in self.scopes

    def snapshot(self) -> dict:
        return {
            'code': self.code,
            'description': self.description,
            'rule': self.rule.to_dict(),
            'scopes': sorted(self.scopes),
            'min_order_value': self.min_order_value,
        }


@dataclass(frozen=True)
class CouponApplication(ValueObject):
    """
    Advisory result of a validation

    Accepted: discount_amount and coupon_snapshot are set.
    Rejected: reason is set and discount_amount is zero.
    """
    accepted: bool
    code: str
    discount_amount: int = 0
    coupon_snapshot: dict = field(default_factory=dict, compare=False)
    reason: Optional[RejectionReason] = None

    @classmethod
    def accept(cls, coupon: Coupon, discount_amount: int) -> 'CouponApplication':
        return cls(accepted=True, code=coupon.code, discount_amount=discount_amount,
                   coupon_snapshot=coupon.snapshot())

    @classmethod
    def reject(cls, code: str, reason: RejectionReason) -> 'CouponApplication':
        return cls(accepted=False, code=code, reason=reason)

    @property
    def reason_text(self) -> str:
        return self.reason.value if self.reason else ''

    def to_dict(self) -> dict:
        return {
            'accepted': self.accepted,
            'code': self.code,
            'discount_amount': self.discount_amount,
            'coupon': self.coupon_snapshot or None,
            'reason': self.reason_text or None,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'CouponApplication':
        reason = data.get('reason')
        return cls(
            accepted=bool(data['accepted']),
            code=data.get('code', ''),
            discount_amount=int(data.get('discount_amount') or 0),
            coupon_snapshot=data.get('coupon') or {},
            reason=RejectionReason(reason) if reason else None,
        )
