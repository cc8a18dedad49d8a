"""
Shared pytest fixtures for Learner Genie function tests.
"""

import base64
import json
import os
import sys
from unittest.mock import MagicMock, patch

import boto3
import httpx
import pytest
from moto import mock_aws

# Add functions directory to Python path for imports
sys.path.insert(0, os.path.join(os.path.dirname(__file__), "..", "functions"))

TEST_PAYSTACK_SECRET = "sk_test_0123456789abcdef"
TEST_USER_ID = "3f1c2a9e-7d4b-4c55-9d1e-8a2b6c0f1e77"
TEST_EMAIL = "learner@example.com"
VALID_TOKEN = "valid-access-token"
PLAN_CODES = {
    "paid_single": "PLN_single123",
    "paid_family": "PLN_family456",
    "paid_ultra": "PLN_ultra789",
}


def pytest_configure(config):
    """Set AWS credentials before test collection.

    This runs before test collection starts, ensuring boto3 resource
    creation during imports doesn't fail with NoRegionError.
    """
    os.environ.setdefault("AWS_ACCESS_KEY_ID", "testing")
    os.environ.setdefault("AWS_SECRET_ACCESS_KEY", "testing")
    os.environ.setdefault("AWS_DEFAULT_REGION", "us-east-1")
    os.environ.setdefault("AWS_REGION", "us-east-1")

    # New HTTP client per call so tests can swap in httpx.MockTransport
    os.environ["USE_CONNECTION_POOLING"] = "false"


@pytest.fixture(autouse=True)
def aws_credentials():
    """Set fake AWS credentials for all tests."""
    os.environ["AWS_ACCESS_KEY_ID"] = "testing"
    os.environ["AWS_SECRET_ACCESS_KEY"] = "testing"
    os.environ["AWS_DEFAULT_REGION"] = "us-east-1"
    os.environ["AWS_REGION"] = "us-east-1"


@pytest.fixture(autouse=True)
def reset_aws_clients():
    """Reset shared AWS client singletons and cached secrets between tests."""
    yield
    from shared.aws_clients import reset_clients
    from shared.config import clear_secret_cache

    reset_clients()
    clear_secret_cache()


@pytest.fixture(autouse=True)
def mock_cloudwatch():
    """Keep metric emission off the network; tests can assert on the mock."""
    cloudwatch = MagicMock()
    with patch("shared.metrics.get_cloudwatch", return_value=cloudwatch):
        yield cloudwatch


def create_dynamodb_tables(dynamodb):
    """Create the accounts and billing events tables."""
    dynamodb.create_table(
        TableName="learnergenie-accounts",
        KeySchema=[{"AttributeName": "id", "KeyType": "HASH"}],
        AttributeDefinitions=[{"AttributeName": "id", "AttributeType": "S"}],
        BillingMode="PAY_PER_REQUEST",
    )

    # Billing events table for webhook audit trail
    dynamodb.create_table(
        TableName="learnergenie-billing-events",
        KeySchema=[
            {"AttributeName": "pk", "KeyType": "HASH"},   # delivery fingerprint
            {"AttributeName": "sk", "KeyType": "RANGE"},  # event type
        ],
        AttributeDefinitions=[
            {"AttributeName": "pk", "AttributeType": "S"},
            {"AttributeName": "sk", "AttributeType": "S"},
        ],
        BillingMode="PAY_PER_REQUEST",
    )


@pytest.fixture
def mock_dynamodb():
    """Provide mocked DynamoDB with tables."""
    with mock_aws():
        dynamodb = boto3.resource("dynamodb", region_name="us-east-1")
        create_dynamodb_tables(dynamodb)
        yield dynamodb


@pytest.fixture
def accounts_table(mock_dynamodb):
    return mock_dynamodb.Table("learnergenie-accounts")


@pytest.fixture
def billing_events_table(mock_dynamodb):
    return mock_dynamodb.Table("learnergenie-billing-events")


@pytest.fixture
def seeded_account(accounts_table):
    """Accounts table with a free-tier test user."""
    accounts_table.put_item(
        Item={
            "id": TEST_USER_ID,
            "active_tier": "free",
            "subscription_status": "cancelled",
            "profile_limit": 1,
        }
    )
    return accounts_table


@pytest.fixture
def paid_account(accounts_table):
    """Accounts table with a paid_family user holding a subscription."""
    accounts_table.put_item(
        Item={
            "id": TEST_USER_ID,
            "active_tier": "paid_family",
            "subscription_id": "SUB_family001",
            "subscription_token": "tok_family001",
            "subscription_status": "active",
            "profile_limit": 2,
        }
    )
    return accounts_table


@pytest.fixture
def app_config():
    """Fully configured AppConfig for handler tests."""
    from shared.config import AppConfig
    from shared.plans import PlanTable

    return AppConfig(
        supabase_url="https://project.supabase.co",
        supabase_service_key="service-role-key",
        paystack_secret_key=TEST_PAYSTACK_SECRET,
        google_api_key="google-api-key",
        plans=PlanTable.from_codes(PLAN_CODES),
        base_url="https://learnergenie.app",
    )


@pytest.fixture
def api_gateway_event():
    """Base API Gateway event for Lambda handler tests."""
    return {
        "httpMethod": "POST",
        "headers": {},
        "pathParameters": {},
        "queryStringParameters": {},
        "body": None,
        "isBase64Encoded": False,
        "requestContext": {
            "requestId": "test-request-id",
            "identity": {"sourceIp": "127.0.0.1"},
        },
    }


@pytest.fixture
def authed_event(api_gateway_event):
    """API Gateway event carrying a valid bearer token."""
    api_gateway_event["headers"]["Authorization"] = f"Bearer {VALID_TOKEN}"
    return api_gateway_event


@pytest.fixture
def webhook_event(api_gateway_event):
    """Factory for signed Paystack webhook events.

    Signs the body exactly as it will be delivered unless a signature is
    given explicitly.
    """
    from shared.signature import compute_signature

    def _make(payload, secret=TEST_PAYSTACK_SECRET, signature=None, base64_encode=False):
        body = payload if isinstance(payload, str) else json.dumps(payload)
        event = dict(api_gateway_event)
        event["headers"] = {"Content-Type": "application/json"}
        if signature is None:
            signature = compute_signature(body.encode("utf-8"), secret)
        if signature:
            event["headers"]["x-paystack-signature"] = signature
        if base64_encode:
            event["body"] = base64.b64encode(body.encode("utf-8")).decode("ascii")
            event["isBase64Encoded"] = True
        else:
            event["body"] = body
        return event

    return _make


class FakeUpstream:
    """Routes httpx requests to canned responses and records them."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.routes = {}

    def add(self, method, path, status=200, json_body=None, handler=None):
        self.routes[(method, path)] = handler or (status, json_body)

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        route = self.routes.get((request.method, request.url.path))
        if route is None:
            return httpx.Response(404, json={"status": False, "message": f"No route for {request.url.path}"})
        if callable(route):
            return route(request)
        status, body = route
        return httpx.Response(status, json=body)

    def calls(self, host=None, path=None) -> list[httpx.Request]:
        return [
            r for r in self.requests
            if (host is None or r.url.host == host) and (path is None or r.url.path == path)
        ]

    @staticmethod
    def json_of(request: httpx.Request) -> dict:
        return json.loads(request.content)


def _supabase_user(request: httpx.Request) -> httpx.Response:
    if request.headers.get("Authorization") == f"Bearer {VALID_TOKEN}":
        return httpx.Response(200, json={"id": TEST_USER_ID, "email": TEST_EMAIL, "aud": "authenticated"})
    return httpx.Response(401, json={"code": 401, "msg": "invalid JWT"})


@pytest.fixture
def fake_upstream():
    """Patch the shared HTTP client with a MockTransport-backed one.

    Supabase token verification is routed by default.
    """
    upstream = FakeUpstream()
    upstream.add("GET", "/auth/v1/user", handler=_supabase_user)

    with patch(
        "shared.http_client.get_http_client",
        side_effect=lambda: httpx.Client(transport=httpx.MockTransport(upstream)),
    ):
        yield upstream
