"""
Tests for the create subscription (checkout) handler.
"""

import json
from dataclasses import replace

import httpx

from conftest import PLAN_CODES, TEST_EMAIL, TEST_PAYSTACK_SECRET, TEST_USER_ID

PAYSTACK_INIT_PATH = "/transaction/initialize"


def _init_ok(reference="ref_7PVGX8MEk85tgeEpVDtD"):
    return {
        "status": True,
        "message": "Authorization URL created",
        "data": {
            "authorization_url": f"https://checkout.paystack.com/{reference}",
            "access_code": "0peioxfhpn",
            "reference": reference,
        },
    }


def _request(event, plan="paid_single"):
    event["body"] = json.dumps({"plan": plan})
    return event


class TestCreateSubscription:
    """Tests for handle_create_subscription."""

    def test_returns_checkout_url(self, authed_event, app_config, fake_upstream):
        """Should initialize a transaction and return the checkout URL."""
        from api.create_subscription import handle_create_subscription

        fake_upstream.add("POST", PAYSTACK_INIT_PATH, json_body=_init_ok())

        result = handle_create_subscription(_request(authed_event), app_config)

        assert result["statusCode"] == 200
        body = json.loads(result["body"])
        assert body["checkoutUrl"] == "https://checkout.paystack.com/ref_7PVGX8MEk85tgeEpVDtD"
        assert body["reference"] == "ref_7PVGX8MEk85tgeEpVDtD"

    def test_sends_plan_and_metadata_to_paystack(self, authed_event, app_config, fake_upstream):
        """Should tag the checkout with the caller's user id and profile limit."""
        from api.create_subscription import handle_create_subscription

        fake_upstream.add("POST", PAYSTACK_INIT_PATH, json_body=_init_ok())

        handle_create_subscription(_request(authed_event, "paid_single"), app_config)

        [request] = fake_upstream.calls(host="api.paystack.co")
        assert request.url.path == PAYSTACK_INIT_PATH
        assert request.headers["Authorization"] == f"Bearer {TEST_PAYSTACK_SECRET}"

        sent = fake_upstream.json_of(request)
        assert sent["email"] == TEST_EMAIL
        assert sent["plan"] == PLAN_CODES["paid_single"]
        assert sent["callback_url"] == "https://learnergenie.app/payment-success.html"
        assert sent["metadata"]["user_id"] == TEST_USER_ID
        assert sent["metadata"]["profile_limit"] == 1
        assert sent["metadata"]["custom_fields"][0]["value"] == "paid_single"

    def test_family_plan_profile_limit(self, authed_event, app_config, fake_upstream):
        """Should send profile_limit 2 for the family plan."""
        from api.create_subscription import handle_create_subscription

        fake_upstream.add("POST", PAYSTACK_INIT_PATH, json_body=_init_ok())

        handle_create_subscription(_request(authed_event, "paid_family"), app_config)

        [request] = fake_upstream.calls(host="api.paystack.co")
        sent = fake_upstream.json_of(request)
        assert sent["plan"] == PLAN_CODES["paid_family"]
        assert sent["metadata"]["profile_limit"] == 2

    def test_invalid_plan_makes_no_calls(self, authed_event, app_config, fake_upstream):
        """Should return 400 invalid_plan before any network call."""
        from api.create_subscription import handle_create_subscription

        result = handle_create_subscription(_request(authed_event, "paid_platinum"), app_config)

        assert result["statusCode"] == 400
        body = json.loads(result["body"])
        assert body["error"]["code"] == "invalid_plan"
        assert body["error"]["details"]["plan"] == "paid_platinum"
        assert fake_upstream.requests == []

    def test_missing_plan(self, authed_event, app_config, fake_upstream):
        """Should reject a body with no plan."""
        from api.create_subscription import handle_create_subscription

        authed_event["body"] = "{}"

        result = handle_create_subscription(authed_event, app_config)

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "invalid_plan"

    def test_free_tier_is_not_a_plan(self, authed_event, app_config, fake_upstream):
        """Should not sell the free tier."""
        from api.create_subscription import handle_create_subscription

        result = handle_create_subscription(_request(authed_event, "free"), app_config)

        assert result["statusCode"] == 400

    def test_unconfigured_plan_code(self, authed_event, app_config, fake_upstream):
        """Should return a generic 500 when the plan has no Paystack code."""
        from api.create_subscription import handle_create_subscription
        from shared.plans import PlanTable

        config = replace(app_config, plans=PlanTable.from_codes({"paid_single": PLAN_CODES["paid_single"]}))

        result = handle_create_subscription(_request(authed_event, "paid_ultra"), config)

        assert result["statusCode"] == 500
        body = json.loads(result["body"])
        assert body["error"]["code"] == "configuration_error"
        assert "PAYSTACK" not in body["error"]["message"]
        assert "paid_ultra" not in body["error"]["message"]
        assert fake_upstream.requests == []

    def test_missing_paystack_secret(self, authed_event, app_config, fake_upstream):
        """Should return 500 configuration_error when the secret key is missing."""
        from api.create_subscription import handle_create_subscription

        result = handle_create_subscription(_request(authed_event), replace(app_config, paystack_secret_key=None))

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"]["code"] == "configuration_error"

    def test_requires_bearer_token(self, api_gateway_event, app_config, fake_upstream):
        """Should return 401 and call nothing without a token."""
        from api.create_subscription import handle_create_subscription

        result = handle_create_subscription(_request(api_gateway_event), app_config)

        assert result["statusCode"] == 401
        assert json.loads(result["body"])["error"]["code"] == "unauthenticated"
        assert fake_upstream.requests == []

    def test_rejected_token_makes_no_paystack_call(self, api_gateway_event, app_config, fake_upstream):
        """Should return 401 when Supabase rejects the token."""
        from api.create_subscription import handle_create_subscription

        api_gateway_event["headers"]["Authorization"] = "Bearer expired-token"

        result = handle_create_subscription(_request(api_gateway_event), app_config)

        assert result["statusCode"] == 401
        assert fake_upstream.calls(host="api.paystack.co") == []

    def test_paystack_error_message_is_surfaced(self, authed_event, app_config, fake_upstream):
        """Should return 500 carrying Paystack's error message."""
        from api.create_subscription import handle_create_subscription

        fake_upstream.add(
            "POST", PAYSTACK_INIT_PATH, status=400, json_body={"status": False, "message": "Plan not found"}
        )

        result = handle_create_subscription(_request(authed_event), app_config)

        assert result["statusCode"] == 500
        body = json.loads(result["body"])
        assert body["error"]["code"] == "upstream_error"
        assert body["error"]["message"] == "Plan not found"

    def test_status_false_with_200(self, authed_event, app_config, fake_upstream):
        """Should treat status false as a failure even on HTTP 200."""
        from api.create_subscription import handle_create_subscription

        fake_upstream.add("POST", PAYSTACK_INIT_PATH, json_body={"status": False, "message": "Invalid key"})

        result = handle_create_subscription(_request(authed_event), app_config)

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"]["message"] == "Invalid key"

    def test_paystack_unreachable(self, authed_event, app_config, fake_upstream):
        """Should return 500 upstream_error on transport failures."""
        from api.create_subscription import handle_create_subscription

        def _refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        fake_upstream.add("POST", PAYSTACK_INIT_PATH, handler=_refuse)

        result = handle_create_subscription(_request(authed_event), app_config)

        assert result["statusCode"] == 500
        assert json.loads(result["body"])["error"]["code"] == "upstream_error"

    def test_invalid_json_body(self, authed_event, app_config, fake_upstream):
        """Should return 400 invalid_json for malformed bodies."""
        from api.create_subscription import handle_create_subscription

        authed_event["body"] = "{plan:"

        result = handle_create_subscription(authed_event, app_config)

        assert result["statusCode"] == 400
        assert json.loads(result["body"])["error"]["code"] == "invalid_json"

    def test_rejects_get(self, authed_event, app_config, fake_upstream):
        """Should return 405 for non-POST methods."""
        from api.create_subscription import handle_create_subscription

        authed_event["httpMethod"] = "GET"

        result = handle_create_subscription(authed_event, app_config)

        assert result["statusCode"] == 405
        assert fake_upstream.requests == []

    def test_cors_headers_for_allowed_origin(self, authed_event, app_config, fake_upstream):
        """Should echo CORS headers for the production origin."""
        from api.create_subscription import handle_create_subscription

        fake_upstream.add("POST", PAYSTACK_INIT_PATH, json_body=_init_ok())
        authed_event["headers"]["Origin"] = "https://learnergenie.app"

        result = handle_create_subscription(_request(authed_event), app_config)

        assert result["headers"]["Access-Control-Allow-Origin"] == "https://learnergenie.app"
