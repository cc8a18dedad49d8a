"""
Billing Event Audit Trail

Every webhook delivery and user-initiated cancellation leaves one record in
the billing events table. Recording is best-effort: failures are logged and
never change the response the caller gets.
"""

import hashlib
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from shared.aws_clients import get_dynamodb, get_sns
from shared.constants import BILLING_EVENT_TTL_DAYS

logger = logging.getLogger(__name__)

# Audit statuses
PROCESSED = "processed"
IGNORED = "ignored"
FAILED = "failed"
SIGNATURE_MISMATCH = "signature_mismatch"
UNVERIFIABLE = "unverifiable"
USER_CANCELLED = "user_cancelled"


def event_fingerprint(raw_body: bytes) -> str:
    """Stable id for a webhook delivery.

    Paystack events carry no event id, so identical redeliveries are keyed
    by the digest of their raw body.
    """
    return hashlib.sha256(raw_body).hexdigest()


def record_billing_event(
    table_name: str,
    event_key: str,
    event_type: str,
    status: str,
    user_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    """Record an event for the audit trail (best-effort).

    Args:
        table_name: Billing events table
        event_key: Fingerprint of the delivery (partition key)
        event_type: Provider event type or an internal action name
        status: One of the audit statuses above
        user_id: Account the event applied to, when known
        reason: Why it was ignored or failed
    """
    now = datetime.now(timezone.utc)
    item = {
        "pk": event_key,
        "sk": event_type or "unknown",
        "status": status,
        "processed_at": now.isoformat(),
        "ttl": int((now + timedelta(days=BILLING_EVENT_TTL_DAYS)).timestamp()),
    }
    if user_id:
        item["user_id"] = user_id
    if reason:
        item["reason"] = reason[:500]

    try:
        get_dynamodb().Table(table_name).put_item(Item=item)
    except Exception as e:
        logger.error(f"Failed to record billing event {event_key[:12]} ({status}): {e}")


def publish_alert(topic_arn: Optional[str], subject: str, message: str) -> None:
    """Notify admins via SNS if a topic is configured (best-effort)."""
    if not topic_arn:
        logger.debug("ALERT_TOPIC_ARN not configured, skipping alert")
        return

    try:
        get_sns().publish(
            TopicArn=topic_arn,
            Subject=subject[:100],
            Message=message,
        )
        logger.info(f"Alert sent: {subject}")
    except Exception as e:
        logger.error(f"Failed to send alert '{subject}': {e}")
