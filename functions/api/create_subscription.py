"""
Create Subscription Endpoint - POST /subscriptions/create

Starts a Paystack checkout for a paid plan.
Requires a Supabase bearer token (logged-in user).
"""

import logging
import time
from typing import Optional

from shared.config import AppConfig, load_config
from shared.errors import APIError, ConfigurationError, InvalidRequestError
from shared.identity import authenticate
from shared.logging_utils import configure_structured_logging, log_api_request, mask_email, set_request_id
from shared.metrics import emit_error_metric
from shared.paystack import PaystackClient
from shared.request_utils import get_method, parse_json_body
from shared.response_utils import error_response, get_origin, method_not_allowed, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """Lambda handler for POST /subscriptions/create."""
    configure_structured_logging()
    set_request_id(event, context)
    return handle_create_subscription(event, load_config())


def handle_create_subscription(event: dict, config: AppConfig, paystack: Optional[PaystackClient] = None) -> dict:
    """
    Request body:
    {
        "plan": "paid_single" | "paid_family" | "paid_ultra"
    }

    Returns:
    {
        "checkoutUrl": "https://checkout.paystack.com/...",
        "reference": "..."
    }
    """
    start_time = time.time()
    origin = get_origin(event)

    if get_method(event) != "POST":
        return method_not_allowed("POST", origin=origin)

    user_id = None
    try:
        # Plan validation needs no network, so bad plans fail before any call
        body = parse_json_body(event)
        plan = config.plans.for_checkout(body.get("plan"))
        paystack = paystack or PaystackClient(config.paystack_secret_key)

        identity = authenticate(event, config)
        user_id = identity.user_id
        if not identity.email:
            raise InvalidRequestError("Your account has no email address on file", code="missing_email")

        transaction = paystack.initialize_transaction(
            email=identity.email,
            plan_code=plan.provider_code,
            callback_url=config.callback_url,
            metadata={
                "user_id": identity.user_id,
                "profile_limit": plan.profile_limit,
                "plan": plan.name,
                "custom_fields": [
                    {
                        "display_name": "Subscription Plan",
                        "variable_name": "subscription_plan",
                        "value": plan.name,
                    }
                ],
            },
        )
    except ConfigurationError as e:
        logger.error(f"Subscription checkout misconfigured: {e}")
        emit_error_metric("configuration", handler="create_subscription")
        return _finish(e.to_response(origin=origin), start_time, user_id)
    except APIError as e:
        if e.status_code >= 500:
            logger.error(f"Subscription checkout failed: {e.message}")
            emit_error_metric(e.code, service=getattr(e, "service", None), handler="create_subscription")
        return _finish(e.to_response(origin=origin), start_time, user_id)
    except Exception as e:
        logger.error(f"Error creating subscription checkout: {e}", exc_info=True)
        return _finish(error_response(500, "internal_error", "An error occurred", origin=origin), start_time, user_id)

    logger.info(f"Created {plan.name} checkout for user {user_id} ({mask_email(identity.email)})")

    return _finish(
        success_response(
            {
                "checkoutUrl": transaction["authorization_url"],
                "reference": transaction.get("reference"),
            },
            origin=origin,
        ),
        start_time,
        user_id,
    )


def _finish(response: dict, start_time: float, user_id: Optional[str]) -> dict:
    log_api_request(
        logger, "POST", "/subscriptions/create", response["statusCode"], (time.time() - start_time) * 1000, user_id
    )
    return response
