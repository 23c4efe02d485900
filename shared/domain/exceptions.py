"""
Domain Error Taxonomy

Errors raised by the checkout core. Views translate them into HTTP
responses; nothing below this layer knows about HTTP.

- InputError: malformed cart, non-positive date range, unknown service kind
- CouponRejected: a coupon failed an eligibility check (non-fatal)
- GatewayUnavailable: the payment gateway timed out or returned 5xx
- SignatureInvalid: a payment callback failed signature verification
- AmountMismatch: an attempted charge differs from the quoted amount
- InvalidStateTransition: a lifecycle operation is not allowed from the current state
- BookingNotFound: no booking with the given identifier
- ConcurrentModification: the booking row changed underneath a save
"""


class DomainError(Exception):
    """Base class for all checkout domain errors"""


class InputError(DomainError, ValueError):
    """Rejected before any persistence, surfaced verbatim to the caller"""


class CouponRejected(DomainError):
    """A coupon did not pass eligibility checks"""

    def __init__(self, reason: str, code: str = ''):
        super().__init__(reason)
        self.reason = reason
        self.code = code


class GatewayUnavailable(DomainError):
    """The payment gateway could not be reached; the caller should retry later"""


class SignatureInvalid(DomainError):
    """A payment callback signature did not match"""


class AmountMismatch(DomainError):
    """Charge amount differs from the booking's frozen final total"""

    def __init__(self, expected: int, actual: int):
        super().__init__(f"Attempted charge {actual} does not match quoted total {expected}")
        self.expected = expected
        self.actual = actual


class InvalidStateTransition(DomainError):
    """A booking cannot move from its current state to the requested one"""


class BookingNotFound(DomainError, LookupError):
    """No booking exists for the given identifier"""


class ConcurrentModification(DomainError):
    """The stored booking version no longer matches the loaded one"""
