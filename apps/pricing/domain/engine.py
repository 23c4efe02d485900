"""
Pricing Engine

quote(cart, date_range, guest_ages) -> PriceQuote

Pure function of its inputs: the same cart, dates and guests always
produce byte-identical line items and totals. Line items are ordered by
ServiceKind declaration order; entries of the same kind keep cart order.
"""

from typing import Iterable, List, Sequence

from apps.pricing.domain.entities import (
    PriceQuote,
    ServiceKind,
    ServiceLineItem,
    ServiceSelection,
    cart_fingerprint,
)
from shared.domain.exceptions import InputError
from shared.domain.value_objects import DateRange


class PricingEngine:
    """
    Prices a cart against a rate card

    Per-kind rules:
    - stay-night: price per night x nights (x rooms)
    - meal-plan / breakfast-plan: rate x adults x nights
    - airport-pickup / airport-drop: flat fee each
    - bike-rental: rate x bikes x days
    - yoga-program / yoga-single-session: rate(session type) x participants
    - sightseeing / surfing: rate x adults
    - vehicle-rental: daily rate x vehicles x days
    - generic-add-on: unit price x quantity
    """

    def __init__(self, rate_card):
        self.rates = rate_card

    def quote(
        self,
        cart: Sequence[ServiceSelection],
        date_range: DateRange,
        guest_ages: Iterable[int] = (),
    ) -> PriceQuote:
        if not cart:
            raise InputError("Cart is empty")
        if not isinstance(date_range, DateRange):
            raise InputError("A stay period is required")

        ages = self._validate_ages(guest_ages)
        nights = date_range.nights
        adults = self.adult_count(ages)

        ordered = sorted(enumerate(cart), key=lambda pair: (pair[1].kind.position, pair[0]))
        line_items = [self._price(selection, nights, adults) for _, selection in ordered]

        return PriceQuote(
            line_items=tuple(line_items),
            nights=nights,
            currency=self.rates.currency,
            cart_fingerprint=cart_fingerprint(cart, date_range, ages),
        )

    def adult_count(self, guest_ages: Sequence[int]) -> int:
        """Guests at or above the child age threshold; at least one"""
        adults = sum(1 for age in guest_ages if age >= self.rates.child_age_threshold)
        return adults or 1

    @staticmethod
    def _validate_ages(guest_ages: Iterable[int]) -> List[int]:
        ages = list(guest_ages or ())
        for age in ages:
            if isinstance(age, bool) or not isinstance(age, int) or age < 0:
                raise InputError(f"Invalid guest age: {age!r}")
        return ages

    def _price(self, selection: ServiceSelection, nights: int, adults: int) -> ServiceLineItem:
        kind = selection.kind
        rates = self.rates

        if kind is ServiceKind.STAY_NIGHT:
            unit = self._required_unit_price(selection, "nightly price")
            multiplier = nights * selection.quantity
        elif kind is ServiceKind.MEAL_PLAN:
            unit, multiplier = rates.meal_plan_per_adult_per_day, adults * nights
        elif kind is ServiceKind.BREAKFAST_PLAN:
            unit, multiplier = rates.breakfast_plan_per_adult_per_day, adults * nights
        elif kind is ServiceKind.AIRPORT_PICKUP:
            unit, multiplier = rates.airport_pickup_flat, 1
        elif kind is ServiceKind.AIRPORT_DROP:
            unit, multiplier = rates.airport_drop_flat, 1
        elif kind is ServiceKind.BIKE_RENTAL:
            unit = rates.bike_rental_per_bike_per_day
            multiplier = selection.quantity * (selection.days or nights)
        elif kind is ServiceKind.YOGA_PROGRAM:
            unit = self._yoga_program_rate(selection.session_type)
            multiplier = selection.quantity
        elif kind is ServiceKind.YOGA_SINGLE_SESSION:
            unit, multiplier = rates.yoga_single_session_per_participant, selection.quantity
        elif kind is ServiceKind.SIGHTSEEING:
            unit, multiplier = rates.sightseeing_per_adult, adults
        elif kind is ServiceKind.SURFING:
            unit, multiplier = rates.surfing_per_adult, adults
        elif kind is ServiceKind.VEHICLE_RENTAL:
            unit = selection.unit_price if selection.unit_price is not None else rates.vehicle_rental_per_vehicle_per_day
            multiplier = selection.quantity * (selection.days or nights)
        elif kind is ServiceKind.GENERIC_ADD_ON:
            unit = self._required_unit_price(selection, "add-on price")
            multiplier = selection.quantity
        else:  # pragma: no cover - every ServiceKind is handled above
            raise InputError(f"Unknown service kind: {kind}")

        return ServiceLineItem(kind=kind, unit_price=unit, multiplier=multiplier, label=selection.label)

    @staticmethod
    def _required_unit_price(selection: ServiceSelection, what: str) -> int:
        if selection.unit_price is None:
            raise InputError(f"{selection.kind.value} requires a {what}")
        return selection.unit_price

    def _yoga_program_rate(self, session_type) -> int:
        programs = self.rates.yoga_program_per_participant
        if session_type not in programs:
            raise InputError(
                f"Unknown yoga program {session_type!r}; expected one of {sorted(programs)}"
            )
        return programs[session_type]


def default_engine() -> PricingEngine:
    from apps.pricing.rates import rate_card_from_settings

    return PricingEngine(rate_card_from_settings())
