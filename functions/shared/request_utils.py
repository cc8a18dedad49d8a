"""Shared request utilities for API handlers."""

import base64
import binascii
import json
import logging
from typing import Optional

from shared.errors import InvalidRequestError

logger = logging.getLogger(__name__)


def get_method(event: dict) -> str:
    """HTTP method for both REST (v1) and HTTP API (v2) event shapes."""
    method = event.get("httpMethod") or ((event.get("requestContext") or {}).get("http") or {}).get("method")
    return (method or "").upper()


def get_header(event: dict, name: str) -> Optional[str]:
    """Case-insensitive header lookup on an API Gateway event."""
    headers = event.get("headers") or {}
    wanted = name.lower()
    for key, value in headers.items():
        if key.lower() == wanted:
            return value
    return None


def get_raw_body(event: dict) -> bytes:
    """Return the request body exactly as API Gateway received it.

    Binary media types arrive base64 encoded with isBase64Encoded set.
    An undecodable base64 body yields b"" so signature checks fail closed.
    """
    body = event.get("body")
    if body is None:
        return b""

    if event.get("isBase64Encoded"):
        try:
            return base64.b64decode(body, validate=True)
        except (binascii.Error, ValueError):
            logger.warning("Request body flagged as base64 but could not be decoded")
            return b""

    if isinstance(body, bytes):
        return body
    return body.encode("utf-8")


def parse_json_body(event: dict) -> dict:
    """Parse a JSON object body.

    Raises:
        InvalidRequestError: body is not a JSON object
    """
    raw_body = get_raw_body(event)
    if not raw_body.strip():
        return {}
    try:
        body = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        raise InvalidRequestError("Request body must be valid JSON", code="invalid_json")
    if not isinstance(body, dict):
        raise InvalidRequestError("Request body must be a JSON object", code="invalid_json")
    return body
