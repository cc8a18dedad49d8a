"""
Health Check Endpoint - GET /health

Returns API status, which configuration pieces are present, and - when a
bearer token is sent - whether it validates. Never returns secret values.
No authentication required.
"""

import json
import logging
import time
from datetime import datetime, timezone

from shared.config import AppConfig, load_config
from shared.errors import APIError
from shared.identity import get_bearer_token, verify_token
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id

logger = logging.getLogger(__name__)


def handler(event, context):
    """Lambda handler for health check."""
    configure_structured_logging()
    set_request_id(event, context)
    return handle_health(event, load_config())


def handle_health(event: dict, config: AppConfig) -> dict:
    """
    Returns:
        200 with status information
    """
    start_time = time.time()

    body = {
        "status": "healthy",
        "version": "1.0.0",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "configuration": config.describe(),
    }

    user_id = None
    token = get_bearer_token(event)
    if token:
        try:
            identity = verify_token(token, config)
            user_id = identity.user_id
            body["auth"] = {"valid": True, "user_id": identity.user_id}
        except APIError as e:
            body["auth"] = {"valid": False, "error": e.code}

    response = {
        "statusCode": 200,
        "headers": {
            "Content-Type": "application/json",
            "Cache-Control": "no-cache",
        },
        "body": json.dumps(body),
    }

    latency_ms = (time.time() - start_time) * 1000
    log_api_request(logger, "GET", "/health", 200, latency_ms, user_id)

    return response
