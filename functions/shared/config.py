"""
Runtime configuration for the Lambda handlers.

Handlers never read the environment themselves: the entry point calls
load_config() and passes the resulting AppConfig to the handle_* function.
Secrets come from Secrets Manager and are cached per ARN with a TTL.
"""

import json
import logging
import os
import time
from dataclasses import dataclass, field
from typing import Optional

from botocore.exceptions import ClientError

from shared.aws_clients import get_secretsmanager
from shared.constants import DEFAULT_IMAGE_MODEL, DEFAULT_TEXT_MODEL
from shared.plans import PLAN_CODE_ENV_VARS, PlanTable

logger = logging.getLogger(__name__)

DEFAULT_ACCOUNTS_TABLE = "learnergenie-accounts"
DEFAULT_BILLING_EVENTS_TABLE = "learnergenie-billing-events"
DEFAULT_BASE_URL = "https://learnergenie.app"

# Cached secret values with TTL, keyed by ARN
_secret_cache: dict[str, tuple[str, float]] = {}
SECRET_CACHE_TTL = 300  # 5 minutes


@dataclass(frozen=True)
class AppConfig:
    """Everything a handler needs from its environment."""

    accounts_table: str = DEFAULT_ACCOUNTS_TABLE
    billing_events_table: str = DEFAULT_BILLING_EVENTS_TABLE
    supabase_url: Optional[str] = None
    supabase_service_key: Optional[str] = None
    paystack_secret_key: Optional[str] = None
    google_api_key: Optional[str] = None
    plans: PlanTable = field(default_factory=lambda: PlanTable.from_codes({}))
    base_url: str = DEFAULT_BASE_URL
    alert_topic_arn: Optional[str] = None
    text_model: str = DEFAULT_TEXT_MODEL
    image_model: str = DEFAULT_IMAGE_MODEL

    @property
    def callback_url(self) -> str:
        return f"{self.base_url.rstrip('/')}/payment-success.html"

    def describe(self) -> dict:
        """Which pieces are configured, without exposing any values."""
        return {
            "supabase_url": bool(self.supabase_url),
            "supabase_service_key": bool(self.supabase_service_key),
            "paystack_secret_key": bool(self.paystack_secret_key),
            "google_api_key": bool(self.google_api_key),
            "plans": {plan.name: bool(plan.provider_code) for plan in self.plans},
        }


def get_secret(arn: Optional[str], json_field: str) -> Optional[str]:
    """Retrieve a secret string from Secrets Manager (cached with TTL).

    Secrets may be stored as a JSON object, in which case json_field is
    extracted, or as the raw value.
    """
    if not arn:
        return None

    cached = _secret_cache.get(arn)
    if cached and (time.time() - cached[1]) < SECRET_CACHE_TTL:
        return cached[0]

    try:
        response = get_secretsmanager().get_secret_value(SecretId=arn)
    except ClientError as e:
        logger.error(f"Failed to retrieve secret {arn}: {e}")
        return None

    secret_value = response.get("SecretString", "")
    try:
        secret_json = json.loads(secret_value)
        value = secret_json.get(json_field) if isinstance(secret_json, dict) else None
        value = value or secret_value
    except json.JSONDecodeError:
        value = secret_value

    if value:
        _secret_cache[arn] = (value, time.time())
    return value or None


def clear_secret_cache():
    """Drop cached secrets. Used in tests for clean state."""
    _secret_cache.clear()


def load_config() -> AppConfig:
    """Build AppConfig from the environment and Secrets Manager."""
    env = os.environ
    # Use `or` to handle empty string env vars (deploy fallback sets "")
    plan_codes = {name: env.get(var) or None for name, var in PLAN_CODE_ENV_VARS.items()}

    return AppConfig(
        accounts_table=env.get("ACCOUNTS_TABLE") or DEFAULT_ACCOUNTS_TABLE,
        billing_events_table=env.get("BILLING_EVENTS_TABLE") or DEFAULT_BILLING_EVENTS_TABLE,
        supabase_url=env.get("SUPABASE_URL") or None,
        supabase_service_key=get_secret(env.get("SUPABASE_SECRET_ARN"), "service_key"),
        paystack_secret_key=get_secret(env.get("PAYSTACK_SECRET_ARN"), "key"),
        google_api_key=get_secret(env.get("GOOGLE_API_KEY_SECRET_ARN"), "key"),
        plans=PlanTable.from_codes(plan_codes),
        base_url=env.get("BASE_URL") or DEFAULT_BASE_URL,
        alert_topic_arn=env.get("ALERT_TOPIC_ARN") or None,
        text_model=env.get("GEMINI_TEXT_MODEL") or DEFAULT_TEXT_MODEL,
        image_model=env.get("GEMINI_IMAGE_MODEL") or DEFAULT_IMAGE_MODEL,
    )
