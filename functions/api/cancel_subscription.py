"""
Cancel Subscription Endpoint - POST /subscriptions/cancel

Cancels the caller's Paystack subscription and downgrades the account to
the free tier. Requires a Supabase bearer token.

Paystack is the source of truth: once it confirms the cancellation the
request succeeds, even if the local downgrade fails (the
subscription.disable webhook will apply it).
"""

import logging
import time
import uuid
from typing import Optional

from shared.accounts import AccountStore
from shared.billing_events import USER_CANCELLED, record_billing_event
from shared.config import AppConfig, load_config
from shared.errors import APIError, NoActiveSubscriptionError, UpstreamError
from shared.identity import authenticate
from shared.logging_utils import configure_structured_logging, log_api_request, set_request_id
from shared.metrics import emit_error_metric
from shared.paystack import PaystackClient
from shared.request_utils import get_method
from shared.response_utils import error_response, get_origin, method_not_allowed, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)

CANCELLED_MESSAGE = "Subscription successfully cancelled. You have been downgraded to the free tier."


def handler(event, context):
    """Lambda handler for POST /subscriptions/cancel."""
    configure_structured_logging()
    set_request_id(event, context)
    return handle_cancel_subscription(event, load_config())


def handle_cancel_subscription(
    event: dict,
    config: AppConfig,
    store: Optional[AccountStore] = None,
    paystack: Optional[PaystackClient] = None,
) -> dict:
    start_time = time.time()
    origin = get_origin(event)

    if get_method(event) != "POST":
        return method_not_allowed("POST", origin=origin)

    store = store or AccountStore(config.accounts_table)
    user_id = None
    try:
        identity = authenticate(event, config)
        user_id = identity.user_id

        account = store.get(user_id)
        if account is None or not account.has_subscription:
            raise NoActiveSubscriptionError()

        paystack = paystack or PaystackClient(config.paystack_secret_key)
        email_token = account.subscription_token or _fetch_email_token(paystack, account.subscription_id)
        paystack.disable_subscription(account.subscription_id, email_token)
    except APIError as e:
        if e.status_code >= 500:
            logger.error(f"Subscription cancel failed for {user_id or 'unknown user'}: {e}")
            emit_error_metric(e.code, service=getattr(e, "service", None), handler="cancel_subscription")
        return _finish(e.to_response(origin=origin), start_time, user_id)
    except Exception as e:
        logger.error(f"Error cancelling subscription: {e}", exc_info=True)
        return _finish(error_response(500, "internal_error", "An error occurred", origin=origin), start_time, user_id)

    logger.info(f"Paystack subscription {account.subscription_id} disabled for user {user_id}")

    # Audit first (best-effort, never raises), then the downgrade regardless
    record_billing_event(
        config.billing_events_table,
        f"cancel:{user_id}:{uuid.uuid4().hex}",
        "subscription.cancel_requested",
        USER_CANCELLED,
        user_id=user_id,
        reason=f"subscription {account.subscription_id}",
    )

    try:
        store.downgrade_to_free(user_id)
    except APIError as e:
        logger.error(f"Local downgrade failed after Paystack cancel for {user_id}: {e}")
        emit_error_metric("store", handler="cancel_subscription")

    return _finish(success_response({"message": CANCELLED_MESSAGE}, origin=origin), start_time, user_id)


def _fetch_email_token(paystack: PaystackClient, subscription_code: str) -> str:
    """Look up the subscription's email token when we never stored it."""
    subscription = paystack.fetch_subscription(subscription_code)
    email_token = subscription.get("email_token")
    if not email_token:
        raise UpstreamError("Paystack did not return a token for this subscription")
    return email_token


def _finish(response: dict, start_time: float, user_id: Optional[str]) -> dict:
    log_api_request(
        logger, "POST", "/subscriptions/cancel", response["statusCode"], (time.time() - start_time) * 1000, user_id
    )
    return response
