"""HMAC signatures used by the payment gateway."""

from __future__ import annotations

import hashlib
import hmac
from typing import Union


def _hmac_hex(secret: str, message: Union[str, bytes]) -> str:
    if isinstance(message, str):
        message = message.encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def checkout_signature(order_id: str, payment_id: str, secret: str) -> str:
    """Signature the checkout widget returns: HMAC-SHA256 of "order_id|payment_id"."""

    return _hmac_hex(secret, f"{order_id}|{payment_id}")


def webhook_signature(raw_body: bytes, secret: str) -> str:
    return _hmac_hex(secret, raw_body)


def signatures_match(expected: str, provided: str) -> bool:
    """Constant-time comparison; empty values never match."""

    if not expected or not provided:
        return False
    return hmac.compare_digest(expected.encode("utf-8"), str(provided).strip().encode("utf-8"))
