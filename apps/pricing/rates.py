"""Rate card configuration for the pricing engine."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping

from django.conf import settings  # type: ignore

# Integer paise.
DEFAULT_RATES = {
    "meal_plan_per_adult_per_day": 15000,
    "breakfast_plan_per_adult_per_day": 20000,
    "airport_pickup_flat": 150000,
    "airport_drop_flat": 150000,
    "bike_rental_per_bike_per_day": 50000,
    "yoga_program_per_participant": {"200hr": 1500000, "300hr": 2000000},
    "yoga_single_session_per_participant": 50000,
    "sightseeing_per_adult": 150000,
    "surfing_per_adult": 200000,
    "vehicle_rental_per_vehicle_per_day": 250000,
}


@dataclass(frozen=True)
class RateCard:
    """Unit prices for every service the engine prices from configuration."""

    meal_plan_per_adult_per_day: int
    breakfast_plan_per_adult_per_day: int
    airport_pickup_flat: int
    airport_drop_flat: int
    bike_rental_per_bike_per_day: int
    yoga_program_per_participant: Mapping[str, int]
    yoga_single_session_per_participant: int
    sightseeing_per_adult: int
    surfing_per_adult: int
    vehicle_rental_per_vehicle_per_day: int
    currency: str = "INR"
    child_age_threshold: int = 5

    @classmethod
    def from_mapping(cls, rates: Mapping, **options) -> "RateCard":
        merged = {**DEFAULT_RATES, **dict(rates)}
        known = {name for name in cls.__dataclass_fields__ if name not in ("currency", "child_age_threshold")}
        return cls(**{name: merged[name] for name in known}, **options)


def rate_card_from_settings() -> RateCard:
    config = getattr(settings, "PRICING", {})
    return RateCard.from_mapping(
        config.get("RATES", {}),
        currency=config.get("CURRENCY", "INR"),
        child_age_threshold=config.get("CHILD_AGE_THRESHOLD", 5),
    )
