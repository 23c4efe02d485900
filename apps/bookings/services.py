"""Domain services for booking workflows."""

from __future__ import annotations

import hashlib
import json
from datetime import datetime, timedelta
from typing import Optional

from django.conf import settings  # type: ignore
from django.db import transaction  # type: ignore
from django.db.utils import NotSupportedError  # type: ignore
from django.utils import timezone  # type: ignore

DEFAULT_IDEMPOTENCY_WINDOW_SECONDS = 600
DEFAULT_PENDING_TTL_MINUTES = 120


def _lock_queryset_if_possible(queryset):
    """Apply select_for_update when inside transaction.atomic()."""

    if not transaction.get_connection().in_atomic_block:
        return queryset

    try:
        return queryset.select_for_update()
    except NotSupportedError:
        return queryset


def idempotency_window_seconds() -> int:
    return int(getattr(settings, "BOOKING_IDEMPOTENCY_WINDOW_SECONDS", DEFAULT_IDEMPOTENCY_WINDOW_SECONDS))


def pending_ttl() -> timedelta:
    minutes = getattr(settings, "BOOKING_PENDING_TTL_MINUTES", DEFAULT_PENDING_TTL_MINUTES)
    return timedelta(minutes=int(minutes))


def derive_idempotency_key(
    *,
    contact_id: str,
    cart_fingerprint: str,
    date_range,
    coupon_code: str = "",
    client_key: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Key identifying one logical checkout.

    A client-supplied key wins, scoped to the contact so two guests
    sending the same header value never share a booking. Otherwise the
    same contact submitting the same cart, dates and coupon inside one
    time bucket maps to one key.
    """

    if client_key:
        scoped = f"{contact_id}|{client_key.strip()}"
        return "client:" + hashlib.sha256(scoped.encode("utf-8")).hexdigest()

    now = now or timezone.now()
    bucket = int(now.timestamp()) // idempotency_window_seconds()
    payload = json.dumps(
        {
            "contact": contact_id,
            "cart": cart_fingerprint,
            "dates": date_range.to_dict(),
            "coupon": (coupon_code or "").strip().upper(),
            "bucket": bucket,
        },
        sort_keys=True,
        separators=(",", ":"),
    )
    return "auto:" + hashlib.sha256(payload.encode("utf-8")).hexdigest()
