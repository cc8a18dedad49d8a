"""
Paystack Webhook Endpoint - POST /webhooks/paystack

Handles Paystack webhook events for subscription management.
Uses Paystack signature verification instead of caller auth.

Response policy:
- 200 for everything accepted or deliberately ignored, including bad
  signatures (Paystack retries anything else, and a forged request must
  not learn anything from the response).
- 500 only when the account write failed after a verified event, so the
  Paystack retry can re-apply it.
"""

import json
import logging
from dataclasses import dataclass
from typing import Optional

from shared.accounts import AccountStore
from shared.billing_events import (
    FAILED,
    IGNORED,
    PROCESSED,
    SIGNATURE_MISMATCH,
    UNVERIFIABLE,
    event_fingerprint,
    publish_alert,
    record_billing_event,
)
from shared.config import AppConfig, load_config
from shared.constants import ACTIVATION_EVENTS, CANCELLATION_EVENTS, PAYSTACK_SIGNATURE_HEADER
from shared.errors import StoreError
from shared.logging_utils import configure_structured_logging, log_webhook_outcome, set_request_id
from shared.metrics import emit_error_metric, emit_webhook_metric
from shared.response_utils import error_response, method_not_allowed, webhook_ack
from shared.request_utils import get_header, get_method, get_raw_body
from shared.signature import verify_signature

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


@dataclass(frozen=True)
class WebhookOutcome:
    status: str
    user_id: Optional[str] = None
    reason: Optional[str] = None


def handler(event, context):
    """Lambda handler for Paystack webhooks."""
    configure_structured_logging()
    set_request_id(event, context)
    return handle_webhook(event, load_config())


def handle_webhook(event: dict, config: AppConfig, store: Optional[AccountStore] = None) -> dict:
    """
    Verify and apply one Paystack webhook delivery.

    Handles:
    - charge.success / subscription.create: upgrade account to the paid tier
    - subscription.disable / subscription.expire: downgrade to free
    Everything else is acknowledged and ignored.
    """
    if get_method(event) != "POST":
        return method_not_allowed("POST")

    raw_body = get_raw_body(event)
    event_key = event_fingerprint(raw_body)
    signature = get_header(event, PAYSTACK_SIGNATURE_HEADER)

    if not config.paystack_secret_key or not signature:
        reason = "missing signature header" if config.paystack_secret_key else "Paystack secret not configured"
        return _reject_unverified(config, event_key, UNVERIFIABLE, reason)

    if not verify_signature(raw_body, signature, config.paystack_secret_key):
        return _reject_unverified(config, event_key, SIGNATURE_MISMATCH, "signature mismatch")

    try:
        payload = json.loads(raw_body)
    except (json.JSONDecodeError, UnicodeDecodeError):
        payload = None
    if not isinstance(payload, dict):
        log_webhook_outcome(logger, "unknown", IGNORED, event_key, reason="invalid JSON payload")
        record_billing_event(config.billing_events_table, event_key, "unknown", IGNORED, reason="invalid JSON payload")
        emit_webhook_metric("unknown", IGNORED)
        return webhook_ack(processed=False)

    event_type = payload.get("event")
    if not isinstance(event_type, str) or not event_type:
        event_type = "unknown"
    data = payload.get("data") if isinstance(payload.get("data"), dict) else {}

    store = store or AccountStore(config.accounts_table)

    try:
        if event_type in ACTIVATION_EVENTS:
            outcome = _handle_activation(data, config, store)
        elif event_type in CANCELLATION_EVENTS:
            outcome = _handle_cancellation(data, store)
        else:
            outcome = WebhookOutcome(IGNORED, reason="unhandled event type")
    except StoreError as e:
        # Store failures are transient - let Paystack retry
        record_billing_event(config.billing_events_table, event_key, event_type, FAILED, reason=str(e))
        emit_error_metric("store", handler="paystack_webhook")
        logger.error(f"Store error handling {event_type}: {e}")
        return error_response(500, "temporary_error", "Temporary error, please retry")
    except Exception as e:
        record_billing_event(config.billing_events_table, event_key, event_type, FAILED, reason=str(e))
        emit_error_metric("internal", handler="paystack_webhook")
        logger.error(f"Unexpected error handling {event_type}: {e}", exc_info=True)
        return error_response(500, "processing_failed", "Processing failed")

    log_webhook_outcome(logger, event_type, outcome.status, event_key, user_id=outcome.user_id, reason=outcome.reason)
    record_billing_event(
        config.billing_events_table,
        event_key,
        event_type,
        outcome.status,
        user_id=outcome.user_id,
        reason=outcome.reason,
    )
    emit_webhook_metric(event_type, outcome.status)
    return webhook_ack(processed=outcome.status == PROCESSED)


def _reject_unverified(config: AppConfig, event_key: str, status: str, reason: str) -> dict:
    """Acknowledge without processing and flag the delivery for audit."""
    log_webhook_outcome(logger, "unverified", status, event_key, reason=reason)
    record_billing_event(config.billing_events_table, event_key, "unverified", status, reason=reason)
    emit_webhook_metric("unverified", status)
    if status == SIGNATURE_MISMATCH:
        publish_alert(
            config.alert_topic_arn,
            "Learner Genie: Paystack signature mismatch",
            (
                "A webhook delivery failed Paystack signature verification and was not processed.\n\n"
                f"Delivery fingerprint: {event_key}\n\n"
                "Repeated alerts may indicate forged requests or a rotated secret key."
            ),
        )
    return webhook_ack(processed=False)


def _extract_metadata(data: dict) -> dict:
    """Checkout metadata echoed back by Paystack.

    Arrives as an object, a JSON-encoded string, or an empty string.
    """
    metadata = data.get("metadata")
    if isinstance(metadata, str):
        try:
            metadata = json.loads(metadata) if metadata.strip() else {}
        except json.JSONDecodeError:
            return {}
    return metadata if isinstance(metadata, dict) else {}


def _extract_user_id(data: dict) -> Optional[str]:
    """Our own user id from checkout metadata. Paystack customer fields are never used."""
    user_id = _extract_metadata(data).get("user_id")
    if isinstance(user_id, str) and user_id.strip():
        return user_id.strip()
    return None


def _extract_plan_code(data: dict) -> Optional[str]:
    plan = data.get("plan")
    if isinstance(plan, dict):
        return plan.get("plan_code") or None
    if isinstance(plan, str):
        return plan or None
    return None


def _extract_subscription_code(data: dict) -> Optional[str]:
    code = data.get("subscription_code")
    if not code:
        subscription = data.get("subscription")
        if isinstance(subscription, dict):
            code = subscription.get("subscription_code")
        elif isinstance(subscription, str):
            code = subscription
    return code or None


def _handle_activation(data: dict, config: AppConfig, store: AccountStore) -> WebhookOutcome:
    """Successful payment or new subscription - upgrade to the paid tier."""
    user_id = _extract_user_id(data)
    if not user_id:
        return WebhookOutcome(IGNORED, reason="missing user id in metadata")

    plan_code = _extract_plan_code(data)
    profile_limit_hint = _extract_metadata(data).get("profile_limit")
    plan = config.plans.resolve(plan_code, profile_limit_hint)
    if plan is None:
        logger.warning(f"Could not resolve tier for user {user_id}: plan_code={plan_code}, profile_limit={profile_limit_hint}")
        return WebhookOutcome(IGNORED, user_id=user_id, reason="unresolved plan")

    subscription_code = _extract_subscription_code(data)
    written = store.activate(
        user_id,
        plan,
        subscription_id=subscription_code,
        subscription_token=data.get("email_token") or None,
    )
    if not written:
        logger.warning(f"No account row for user {user_id}; upgrade to {plan.tier} skipped")
        return WebhookOutcome(IGNORED, user_id=user_id, reason="account not found")

    logger.info(f"User {user_id} upgraded to {plan.tier} (profile limit {plan.profile_limit})")
    return WebhookOutcome(PROCESSED, user_id=user_id)


def _handle_cancellation(data: dict, store: AccountStore) -> WebhookOutcome:
    """Subscription disabled or expired - downgrade to free.

    When the event names a subscription, only the account still holding
    that subscription (or none) is downgraded; a late event for a
    subscription the user already replaced is ignored.
    """
    user_id = _extract_user_id(data)
    if not user_id:
        return WebhookOutcome(IGNORED, reason="missing user id in metadata")

    subscription_code = _extract_subscription_code(data)
    written = store.downgrade_to_free(user_id, expected_subscription_id=subscription_code)
    if not written:
        return WebhookOutcome(IGNORED, user_id=user_id, reason="account not found or subscription superseded")

    logger.info(f"User {user_id} downgraded to free tier")
    return WebhookOutcome(PROCESSED, user_id=user_id)
