"""
Caller authentication.

Bearer tokens are access tokens issued by Supabase Auth. They are verified
by asking the auth server who the token belongs to; the returned user id is
the only identity the handlers trust.
"""

import logging
import time
from dataclasses import dataclass
from typing import Optional

import httpx

from shared import http_client
from shared.config import AppConfig
from shared.errors import ConfigurationError, UnauthenticatedError, UpstreamError
from shared.logging_utils import log_external_call
from shared.request_utils import get_header

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Identity:
    user_id: str
    email: Optional[str] = None


def get_bearer_token(event: dict) -> Optional[str]:
    """Extract the token from an `Authorization: Bearer <token>` header."""
    auth_header = get_header(event, "authorization") or ""
    scheme, _, token = auth_header.partition(" ")
    if scheme.lower() != "bearer":
        return None
    token = token.strip()
    return token or None


def verify_token(token: Optional[str], config: AppConfig) -> Identity:
    """Resolve a bearer token to the user it was issued to.

    Raises:
        UnauthenticatedError: token missing, expired or rejected
        ConfigurationError: Supabase URL or service key not configured
        UpstreamError: auth server unreachable or erroring
    """
    if not token:
        raise UnauthenticatedError()

    if not config.supabase_url or not config.supabase_service_key:
        raise ConfigurationError("Supabase URL or service key is not configured")

    start = time.time()
    try:
        response = http_client.get_http_client().get(
            f"{config.supabase_url.rstrip('/')}/auth/v1/user",
            headers={
                "apikey": config.supabase_service_key,
                "Authorization": f"Bearer {token}",
            },
        )
    except httpx.HTTPError as e:
        log_external_call(logger, "supabase", "get_user", False, (time.time() - start) * 1000, str(e))
        raise UpstreamError("Authentication service unavailable", service="supabase") from e

    latency_ms = (time.time() - start) * 1000

    if response.status_code in (400, 401, 403, 404):
        log_external_call(logger, "supabase", "get_user", False, latency_ms, f"HTTP {response.status_code}")
        raise UnauthenticatedError()

    if response.status_code >= 300:
        log_external_call(logger, "supabase", "get_user", False, latency_ms, f"HTTP {response.status_code}")
        raise UpstreamError(
            "Authentication service unavailable",
            service="supabase",
            upstream_status=response.status_code,
        )

    try:
        user = response.json()
    except ValueError:
        user = None

    user_id = user.get("id") if isinstance(user, dict) else None
    if not user_id:
        log_external_call(logger, "supabase", "get_user", False, latency_ms, "empty user")
        raise UnauthenticatedError()

    log_external_call(logger, "supabase", "get_user", True, latency_ms)
    return Identity(user_id=user_id, email=user.get("email"))


def authenticate(event: dict, config: AppConfig) -> Identity:
    """Verify the request's bearer token."""
    return verify_token(get_bearer_token(event), config)
