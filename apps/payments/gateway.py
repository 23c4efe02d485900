"""
Razorpay-style payment gateway client

Only two calls are needed by checkout: create an order for an exact
amount and fetch a payment to confirm what was captured. Requests carry
a timeout; timeouts, connection errors and 5xx responses are retried
with exponential backoff and surface as GatewayUnavailable once the
attempts run out.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Optional

import requests
from django.conf import settings

from shared.domain.exceptions import DomainError, GatewayUnavailable

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.razorpay.com/v1/"


class GatewayRequestError(DomainError):
    """The gateway answered but refused the request (4xx)"""

    def __init__(self, message: str, status_code: int = 0):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class GatewayOrder:
    id: str
    amount: int
    currency: str
    receipt: str = ""
    status: str = "created"


@dataclass(frozen=True)
class GatewayPayment:
    id: str
    order_id: str
    amount: int
    currency: str
    status: str
    error_description: str = ""
    raw: dict = field(default_factory=dict, compare=False)

    @property
    def is_captured(self) -> bool:
        return self.status in ("captured", "authorized")


def gateway_config() -> dict:
    config = {
        "KEY_ID": "",
        "KEY_SECRET": "",
        "WEBHOOK_SECRET": "",
        "BASE_URL": DEFAULT_BASE_URL,
        "TIMEOUT_SECONDS": 10,
        "MAX_RETRIES": 2,
        "BACKOFF_FACTOR": 0.5,
        "CONFIRM_WITH_API": False,
    }
    config.update(getattr(settings, "PAYMENT_GATEWAY", {}) or {})
    return config


class RazorpayGateway:

    def __init__(
        self,
        key_id: str,
        key_secret: str,
        base_url: str = DEFAULT_BASE_URL,
        timeout: float = 10,
        max_retries: int = 2,
        backoff_factor: float = 0.5,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.timeout = timeout
        self.max_retries = max_retries
        self.backoff_factor = backoff_factor
        self.session = session or requests.Session()
        self.session.auth = (key_id, key_secret)
        self._sleep = sleep

    @classmethod
    def from_settings(cls, **overrides) -> "RazorpayGateway":
        config = gateway_config()
        options = {
            "key_id": config["KEY_ID"],
            "key_secret": config["KEY_SECRET"],
            "base_url": config["BASE_URL"],
            "timeout": config["TIMEOUT_SECONDS"],
            "max_retries": config["MAX_RETRIES"],
            "backoff_factor": config["BACKOFF_FACTOR"],
        }
        options.update(overrides)
        return cls(**options)

    def create_order(self, amount: int, currency: str, receipt: str, notes: Optional[dict] = None) -> GatewayOrder:
        """Create a gateway order; the receipt makes retries collapse on the gateway side."""

        data = self._request(
            "POST",
            "orders",
            json={
                "amount": amount,
                "currency": currency,
                "receipt": receipt,
                "notes": notes or {},
            },
        )
        order = GatewayOrder(
            id=data["id"],
            amount=int(data["amount"]),
            currency=data.get("currency", currency),
            receipt=data.get("receipt", receipt),
            status=data.get("status", "created"),
        )
        logger.info(f"Gateway order {order.id} created for {amount} {currency} (receipt {receipt})")
        return order

    def fetch_payment(self, payment_id: str) -> GatewayPayment:
        data = self._request("GET", f"payments/{payment_id}")
        return GatewayPayment(
            id=data["id"],
            order_id=data.get("order_id") or "",
            amount=int(data.get("amount") or 0),
            currency=data.get("currency", ""),
            status=data.get("status", ""),
            error_description=data.get("error_description") or "",
            raw=data,
        )

    def _request(self, method: str, path: str, **kwargs) -> dict:
        url = self.base_url + path
        attempts = self.max_retries + 1
        last_error = ""
        for attempt in range(attempts):
            try:
                response = self.session.request(method, url, timeout=self.timeout, **kwargs)
            except (requests.exceptions.Timeout, requests.exceptions.ConnectionError) as exc:
                last_error = f"{exc.__class__.__name__}: {exc}"
            else:
                if response.status_code < 500:
                    return self._parse(response, method, path)
                last_error = f"HTTP {response.status_code}"

            if attempt + 1 < attempts:
                wait_time = self.backoff_factor * (2 ** attempt)
                logger.warning(
                    f"Gateway {method} {path} failed ({last_error}), "
                    f"retrying in {wait_time}s ({attempt + 1}/{attempts})"
                )
                self._sleep(wait_time)

        logger.error(f"Gateway {method} {path} unavailable after {attempts} attempts: {last_error}")
        raise GatewayUnavailable(f"Payment gateway unavailable: {last_error}")

    @staticmethod
    def _parse(response, method: str, path: str) -> dict:
        try:
            data = response.json()
        except ValueError:
            data = {}
        if response.status_code >= 400:
            description = (data.get("error") or {}).get("description") or response.reason
            logger.error(f"Gateway {method} {path} rejected: {response.status_code} {description}")
            raise GatewayRequestError(description, response.status_code)
        return data
