"""
Pricing Domain Entities

- ServiceKind: every sellable service, in line-item output order
- ServiceSelection: one entry of the client's cart
- ServiceLineItem: one priced component of a quote
- PriceQuote: the itemized quote (value object)
"""

import hashlib
import json
from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Optional, Tuple

from shared.domain.base import ValueObject
from shared.domain.exceptions import InputError


class ServiceKind(Enum):
    """
    Sellable services

    Declaration order is the line-item order of every quote.
    """
    STAY_NIGHT = 'stay-night'
    MEAL_PLAN = 'meal-plan'
    BREAKFAST_PLAN = 'breakfast-plan'
    AIRPORT_PICKUP = 'airport-pickup'
    AIRPORT_DROP = 'airport-drop'
    BIKE_RENTAL = 'bike-rental'
    YOGA_PROGRAM = 'yoga-program'
    YOGA_SINGLE_SESSION = 'yoga-single-session'
    SIGHTSEEING = 'sightseeing'
    SURFING = 'surfing'
    VEHICLE_RENTAL = 'vehicle-rental'
    GENERIC_ADD_ON = 'generic-add-on'

    @classmethod
    def parse(cls, value: Any) -> 'ServiceKind':
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            raise InputError(f"Unknown service kind: {value!r}") from None

    @property
    def position(self) -> int:
        return _KIND_ORDER[self]


_KIND_ORDER = {kind: index for index, kind in enumerate(ServiceKind)}


@dataclass(frozen=True)
class ServiceSelection(ValueObject):
    """
    One cart entry as submitted by the client

    quantity: rooms, bikes, vehicles, participants or add-on units
    days: rental days for bike/vehicle rental (defaults to the stay's nights)
    unit_price: nightly price for stay-night (from the availability
        service), price for generic-add-on, optional daily rate override
        for vehicle-rental
    session_type: yoga program variant ('200hr', '300hr')
    """
    kind: ServiceKind
    quantity: int = 1
    days: Optional[int] = None
    unit_price: Optional[int] = None
    session_type: Optional[str] = None
    label: str = ''

    def __post_init__(self):
        object.__setattr__(self, 'kind', ServiceKind.parse(self.kind))
        _require_int('quantity', self.quantity, minimum=1)
        if self.days is not None:
            _require_int('days', self.days, minimum=1)
        if self.unit_price is not None:
            _require_int('unit_price', self.unit_price, minimum=0)

    @classmethod
    def from_dict(cls, data: dict) -> 'ServiceSelection':
        if not isinstance(data, dict) or 'kind' not in data:
            raise InputError("Each cart entry must be an object with a 'kind'")
        return cls(
            kind=data['kind'],
            quantity=data.get('quantity', 1),
            days=data.get('days'),
            unit_price=data.get('unit_price'),
            session_type=data.get('session_type'),
            label=data.get('label') or '',
        )

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'quantity': self.quantity,
            'days': self.days,
            'unit_price': self.unit_price,
            'session_type': self.session_type,
            'label': self.label,
        }


def _require_int(name: str, value: Any, minimum: int):
    if isinstance(value, bool) or not isinstance(value, int):
        raise InputError(f"{name} must be an integer")
    if value < minimum:
        raise InputError(f"{name} must be at least {minimum}")


@dataclass(frozen=True)
class ServiceLineItem(ValueObject):
    """
    One priced component

    subtotal = unit_price * multiplier, fixed at construction.
    """
    kind: ServiceKind
    unit_price: int
    multiplier: int
    label: str = ''
    subtotal: int = field(init=False)

    def __post_init__(self):
        object.__setattr__(self, 'subtotal', self.unit_price * self.multiplier)

    def to_dict(self) -> dict:
        return {
            'kind': self.kind.value,
            'label': self.label,
            'unit_price': self.unit_price,
            'multiplier': self.multiplier,
            'subtotal': self.subtotal,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'ServiceLineItem':
        item = cls(
            kind=ServiceKind(data['kind']),
            unit_price=int(data['unit_price']),
            multiplier=int(data['multiplier']),
            label=data.get('label', ''),
        )
        if 'subtotal' in data and int(data['subtotal']) != item.subtotal:
            raise ValueError(f"Stored subtotal for {item.kind.value} is inconsistent")
        return item


@dataclass(frozen=True)
class PriceQuote(ValueObject):
    """
    Itemized price for a cart at a point in time

    finalTotal = subtotal - discount, floored at zero. A rejected coupon
    application may be attached for the record; it never changes totals.
    """
    line_items: Tuple[ServiceLineItem, ...]
    nights: int
    currency: str = 'INR'
    coupon_application: Optional[Any] = None
    cart_fingerprint: str = ''

    @property
    def subtotal(self) -> int:
        return sum(item.subtotal for item in self.line_items)

    @property
    def discount(self) -> int:
        application = self.coupon_application
        if application is None or not application.accepted:
            return 0
        return min(application.discount_amount, self.subtotal)

    @property
    def final_total(self) -> int:
        return max(self.subtotal - self.discount, 0)

    def with_coupon(self, application) -> 'PriceQuote':
        """Return a new quote carrying the coupon application"""
        return replace(self, coupon_application=application)

    def fingerprint(self) -> str:
        return self.cart_fingerprint

    def to_dict(self) -> dict:
        application = self.coupon_application
        return {
            'currency': self.currency,
            'nights': self.nights,
            'line_items': [item.to_dict() for item in self.line_items],
            'subtotal': self.subtotal,
            'discount': self.discount,
            'final_total': self.final_total,
            'coupon': application.to_dict() if application is not None else None,
            'cart_fingerprint': self.cart_fingerprint,
        }

    @classmethod
    def from_dict(cls, data: dict) -> 'PriceQuote':
        from apps.coupons.domain.entities import CouponApplication

        coupon = data.get('coupon')
        quote = cls(
            line_items=tuple(ServiceLineItem.from_dict(item) for item in data['line_items']),
            nights=int(data['nights']),
            currency=data.get('currency', 'INR'),
            coupon_application=CouponApplication.from_dict(coupon) if coupon else None,
            cart_fingerprint=data.get('cart_fingerprint', ''),
        )
        if quote.final_total != int(data['final_total']):
            raise ValueError("Stored price quote totals are inconsistent")
        return quote


def cart_fingerprint(selections, date_range, guest_ages) -> str:
    """SHA-256 over the canonical cart, stay dates and guest ages"""
    canonical = {
        'cart': sorted(
            (selection.to_dict() for selection in selections),
            key=lambda entry: json.dumps(entry, sort_keys=True),
        ),
        'dates': date_range.to_dict(),
        'guest_ages': sorted(guest_ages),
    }
    payload = json.dumps(canonical, sort_keys=True, separators=(',', ':'))
    return hashlib.sha256(payload.encode('utf-8')).hexdigest()
