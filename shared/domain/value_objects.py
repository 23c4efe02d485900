"""
Common Value Objects

Value objects used across contexts:
- DateRange: Stay period from check-in to check-out
"""

import math
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import Union

from shared.domain.base import ValueObject
from shared.domain.exceptions import InputError

DateLike = Union[date, datetime]


def _as_datetime(value: DateLike) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime(value.year, value.month, value.day)


@dataclass(frozen=True)
class DateRange(ValueObject):
    """
    Date range value object

    start_date is inclusive, end_date is exclusive. Either end may be a
    date or a datetime; a partial day counts as a full night.
    """
    start_date: DateLike
    end_date: DateLike

    def __post_init__(self):
        if self.start_date is None or self.end_date is None:
            raise InputError("Both check-in and check-out are required")
        if type(self.start_date) is not type(self.end_date):
            raise InputError("Check-in and check-out must both be dates or both be datetimes")
        if _as_datetime(self.end_date) <= _as_datetime(self.start_date):
            raise InputError(
                f"Check-out ({self.end_date}) must be after check-in ({self.start_date})"
            )

    @property
    def nights(self) -> int:
        """ceil((end - start) / 1 day)"""
        delta = _as_datetime(self.end_date) - _as_datetime(self.start_date)
        return math.ceil(delta / timedelta(days=1))

    def to_dict(self) -> dict:
        return {'start': self.start_date.isoformat(), 'end': self.end_date.isoformat()}

    def __str__(self):
        return f"{self.start_date.isoformat()} - {self.end_date.isoformat()}"

    def __repr__(self):
        return f"DateRange({self.start_date!r}, {self.end_date!r})"
