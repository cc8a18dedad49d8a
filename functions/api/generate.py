"""
Generate Endpoint - POST /generate

Proxies text, multimodal and image generation requests to the Gemini API
so the Google API key never reaches the browser. Requires a Supabase
bearer token; the upstream JSON is returned unchanged.
"""

import logging
import time

import httpx

from shared import http_client
from shared.config import AppConfig, load_config
from shared.constants import GEMINI_API, GENERATE_TIMEOUT
from shared.errors import APIError, ConfigurationError, InvalidRequestError, UpstreamError
from shared.identity import authenticate
from shared.logging_utils import configure_structured_logging, log_api_request, log_external_call, set_request_id
from shared.request_utils import get_method, parse_json_body
from shared.response_utils import error_response, get_origin, method_not_allowed, success_response

logger = logging.getLogger(__name__)
logger.setLevel(logging.INFO)


def handler(event, context):
    """Lambda handler for POST /generate."""
    configure_structured_logging()
    set_request_id(event, context)
    return handle_generate(event, load_config())


def handle_generate(event: dict, config: AppConfig) -> dict:
    """
    Request body:
    {
        "requestType": "image" | "text",
        "prompt": "...",
        "isJson": false,
        "imageData": "<base64 png>"   (optional, text requests only)
    }
    """
    start_time = time.time()
    origin = get_origin(event)

    if get_method(event) != "POST":
        return method_not_allowed("POST", origin=origin)

    user_id = None
    try:
        if not config.google_api_key:
            raise ConfigurationError("GOOGLE_API_KEY is not configured")

        identity = authenticate(event, config)
        user_id = identity.user_id

        body = parse_json_body(event)
        prompt = body.get("prompt")
        if not isinstance(prompt, str) or not prompt.strip():
            raise InvalidRequestError("A prompt is required")

        if body.get("requestType") == "image":
            model, operation = config.image_model, "predict"
            payload = build_image_payload(prompt)
        else:
            model, operation = config.text_model, "generateContent"
            payload = build_text_payload(prompt, body.get("imageData"), bool(body.get("isJson")))

        result = _call_gemini(config, model, operation, payload)
    except ConfigurationError as e:
        logger.error(f"Generate misconfigured: {e}")
        return _finish(e.to_response(origin=origin), start_time, user_id)
    except APIError as e:
        return _finish(e.to_response(origin=origin), start_time, user_id)
    except Exception as e:
        logger.error(f"Generate function error: {e}", exc_info=True)
        return _finish(error_response(500, "internal_error", "Internal Server Error", origin=origin), start_time, user_id)

    return _finish(success_response(result, origin=origin), start_time, user_id)


def build_image_payload(prompt: str) -> dict:
    return {
        "instances": [{"prompt": prompt}],
        "parameters": {"sampleCount": 1},
    }


def build_text_payload(prompt: str, image_data=None, is_json: bool = False) -> dict:
    parts = [{"text": prompt}]
    if image_data:
        parts.append(
            {
                "inlineData": {
                    "mimeType": "image/png",
                    "data": image_data,
                }
            }
        )

    payload = {"contents": [{"role": "user", "parts": parts}]}
    if is_json:
        payload["generationConfig"] = {"responseMimeType": "application/json"}
    return payload


def _call_gemini(config: AppConfig, model: str, operation: str, payload: dict) -> dict:
    """POST to a Gemini model endpoint and return its JSON body."""
    start = time.time()
    try:
        response = http_client.get_http_client().post(
            f"{GEMINI_API}/models/{model}:{operation}",
            headers={"x-goog-api-key": config.google_api_key},
            json=payload,
            timeout=GENERATE_TIMEOUT,
        )
    except httpx.HTTPError as e:
        log_external_call(logger, "gemini", operation, False, (time.time() - start) * 1000, str(e))
        raise UpstreamError(f"Could not reach the generation API: {type(e).__name__}", service="gemini") from e

    latency_ms = (time.time() - start) * 1000
    try:
        body = response.json()
    except ValueError:
        body = {}

    if not response.is_success:
        upstream_message = None
        if isinstance(body, dict) and isinstance(body.get("error"), dict):
            upstream_message = body["error"].get("message")
        message = f"{'Image' if operation == 'predict' else 'Text/Multimodal'} API request failed: {upstream_message or 'Unknown error'}"
        log_external_call(logger, "gemini", operation, False, latency_ms, message)
        raise UpstreamError(message, service="gemini", upstream_status=response.status_code)

    log_external_call(logger, "gemini", operation, True, latency_ms)
    return body


def _finish(response: dict, start_time: float, user_id) -> dict:
    log_api_request(logger, "POST", "/generate", response["statusCode"], (time.time() - start_time) * 1000, user_id)
    return response
