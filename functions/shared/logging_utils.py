"""
Structured logging for the Learner Genie Lambdas.

Every line is one JSON object so CloudWatch Logs Insights can filter on
request_id, user_id, event_type and outcome without parsing messages.
"""

import json
import logging
import os
import uuid
from contextvars import ContextVar
from typing import Optional

# Correlates every line written while handling one invocation
request_id_var: ContextVar[str] = ContextVar("request_id", default="")

# Attributes every LogRecord carries; anything else came in via `extra=`
_RESERVED_ATTRS = frozenset(vars(logging.makeLogRecord({}))) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Render a record as a single JSON line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "request_id": request_id_var.get(""),
            "function_name": os.environ.get("AWS_LAMBDA_FUNCTION_NAME", ""),
        }
        log_entry.update((k, v) for k, v in vars(record).items() if k not in _RESERVED_ATTRS)

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_entry, default=str)


def configure_structured_logging() -> logging.Logger:
    """
    Route the root logger through StructuredFormatter.

    Warm Lambda containers call this on every invocation; once our handler
    is installed later calls leave the root logger untouched. Handlers the
    runtime installed before the first call are replaced.
    """
    root_logger = logging.getLogger()
    if any(isinstance(h.formatter, StructuredFormatter) for h in root_logger.handlers):
        return root_logger

    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)

    handler = logging.StreamHandler()
    handler.setFormatter(StructuredFormatter())
    root_logger.addHandler(handler)
    root_logger.setLevel(logging.INFO)
    return root_logger


def set_request_id(event: dict, context=None) -> str:
    """
    Bind the invocation's request id for the log formatter.

    Prefers the API Gateway request id (it matches the access logs), then
    the Lambda invocation id, and only generates one when neither exists.
    """
    request_id = (event.get("requestContext") or {}).get("requestId")
    if not request_id:
        request_id = getattr(context, "aws_request_id", None)
    if not request_id:
        request_id = str(uuid.uuid4())

    request_id_var.set(request_id)
    return request_id


def mask_email(email: Optional[str]) -> str:
    """Keep enough of an email to correlate logs without storing it."""
    if not email or "@" not in email:
        return "***"
    local, _, domain = email.partition("@")
    return f"{local[:3]}***@{domain}"


def log_api_request(
    logger: logging.Logger,
    method: str,
    path: str,
    status_code: int,
    latency_ms: float,
    user_id: Optional[str] = None,
) -> None:
    """Log API request with standard fields."""
    logger.info(
        f"{method} {path} -> {status_code}",
        extra={
            "http_method": method,
            "path": path,
            "status_code": status_code,
            "latency_ms": round(latency_ms, 1),
            "user_id": user_id or "anonymous",
        },
    )


def log_external_call(
    logger: logging.Logger,
    service: str,
    operation: str,
    success: bool,
    latency_ms: float,
    error: Optional[str] = None,
) -> None:
    """Log one call to Paystack, Supabase or Gemini."""
    logger.log(
        logging.INFO if success else logging.WARNING,
        f"{service}.{operation} {'ok' if success else 'failed'}",
        extra={
            "service": service,
            "operation": operation,
            "success": success,
            "latency_ms": round(latency_ms, 1),
            "error": error,
        },
    )


def log_webhook_outcome(
    logger: logging.Logger,
    event_type: str,
    outcome: str,
    event_key: str,
    user_id: Optional[str] = None,
    reason: Optional[str] = None,
) -> None:
    """Log how a webhook delivery was handled.

    Outcomes other than processed are warnings so ignored deliveries
    stand out next to the billing-events audit record.
    """
    logger.log(
        logging.INFO if outcome == "processed" else logging.WARNING,
        f"Paystack {event_type} -> {outcome}" + (f" ({reason})" if reason else ""),
        extra={
            "event_type": event_type,
            "outcome": outcome,
            "event_key": event_key[:12],
            "user_id": user_id,
            "reason": reason,
        },
    )
