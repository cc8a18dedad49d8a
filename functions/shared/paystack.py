"""
Paystack REST client.

Thin wrapper over the three Paystack endpoints the product uses. Every
Paystack response is an envelope {status: bool, message: str, data: ...};
anything other than a 2xx with status true becomes an UpstreamError that
carries Paystack's own message.
"""

import logging
import time
from typing import Any, Optional

import httpx

from shared import http_client
from shared.constants import PAYSTACK_API
from shared.errors import ConfigurationError, UpstreamError
from shared.logging_utils import log_external_call

logger = logging.getLogger(__name__)


class PaystackClient:
    """Synchronous Paystack client authenticated with the secret key."""

    def __init__(self, secret_key: Optional[str], base_url: str = PAYSTACK_API, client: Optional[httpx.Client] = None):
        if not secret_key:
            raise ConfigurationError("Paystack secret key is not configured")
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.headers = {
            "Authorization": f"Bearer {secret_key}",
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        }

    def _request(self, method: str, endpoint: str, operation: str, payload: Optional[dict] = None) -> Any:
        client = self._client or http_client.get_http_client()
        start = time.time()
        try:
            response = client.request(
                method,
                f"{self.base_url}/{endpoint}",
                headers=self.headers,
                json=payload,
            )
        except httpx.HTTPError as e:
            log_external_call(logger, "paystack", operation, False, (time.time() - start) * 1000, str(e))
            raise UpstreamError(f"Could not reach Paystack: {type(e).__name__}") from e

        latency_ms = (time.time() - start) * 1000

        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        if not response.is_success or not body.get("status"):
            message = body.get("message") or f"Paystack {operation} failed (HTTP {response.status_code})"
            log_external_call(logger, "paystack", operation, False, latency_ms, message)
            raise UpstreamError(message, upstream_status=response.status_code)

        log_external_call(logger, "paystack", operation, True, latency_ms)
        return body.get("data")

    def initialize_transaction(
        self,
        email: str,
        plan_code: str,
        callback_url: str,
        metadata: dict,
    ) -> dict:
        """Start a subscription checkout; returns {authorization_url, access_code, reference}."""
        data = self._request(
            "POST",
            "transaction/initialize",
            "initialize_transaction",
            {
                "email": email,
                "plan": plan_code,
                "callback_url": callback_url,
                "metadata": metadata,
            },
        )
        if not isinstance(data, dict) or not data.get("authorization_url"):
            raise UpstreamError("Paystack did not return a checkout URL")
        return data

    def fetch_subscription(self, code: str) -> dict:
        """Fetch a subscription by code."""
        data = self._request("GET", f"subscription/{code}", "fetch_subscription")
        return data if isinstance(data, dict) else {}

    def disable_subscription(self, code: str, email_token: str) -> None:
        """Cancel a subscription immediately."""
        self._request(
            "POST",
            "subscription/disable",
            "disable_subscription",
            {"code": code, "token": email_token},
        )
