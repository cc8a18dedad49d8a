"""
Shared HTTP Client with Connection Pooling.

Provides a reusable httpx.Client shared by the Paystack, Supabase auth and
Gemini calls so a warm Lambda execution context reuses its connections.

Usage:
    from shared import http_client

    client = http_client.get_http_client()
    response = client.post("https://api.example.com/data", json=payload)

Testing:
    Set USE_CONNECTION_POOLING=false in test fixtures to disable connection
    pooling. This creates a new client per call for test isolation; tests
    patch get_http_client() to hand out a client backed by
    httpx.MockTransport.
"""

import logging
import os
from typing import Optional

import httpx

from shared.constants import DEFAULT_TIMEOUT as DEFAULT_TIMEOUT_SECONDS

logger = logging.getLogger(__name__)

# Global client instance (lazy-initialized)
_client: Optional[httpx.Client] = None

# Configuration
DEFAULT_TIMEOUT = httpx.Timeout(
    DEFAULT_TIMEOUT_SECONDS,  # Total timeout
    connect=10.0,  # Connection timeout
)

DEFAULT_LIMITS = httpx.Limits(
    max_connections=20,
    max_keepalive_connections=5,
    keepalive_expiry=30.0,
)


def _use_connection_pooling() -> bool:
    """Check if connection pooling is enabled (runtime check)."""
    return os.environ.get("USE_CONNECTION_POOLING", "true").lower() == "true"


def _new_client() -> httpx.Client:
    return httpx.Client(
        timeout=DEFAULT_TIMEOUT,
        limits=DEFAULT_LIMITS,
        follow_redirects=False,
    )


def get_http_client() -> httpx.Client:
    """
    Get an HTTP client for making requests.

    In production (USE_CONNECTION_POOLING=true):
        Returns a shared client kept for the life of the execution context.

    In tests (USE_CONNECTION_POOLING=false):
        Creates a new client per call to allow proper test isolation.
    """
    global _client

    if not _use_connection_pooling():
        return _new_client()

    if _client is None or _client.is_closed:
        logger.debug("Initializing shared HTTP client with connection pooling")
        _client = _new_client()

    return _client


def close_http_client() -> None:
    """Close the shared HTTP client."""
    global _client

    if _client is not None:
        _client.close()
        _client = None
        logger.debug("Closed shared HTTP client")
