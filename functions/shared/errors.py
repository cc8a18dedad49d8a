"""
Standardized error types for the API.

Handlers raise these from service code and convert them to a Lambda
response exactly once, at the handler boundary.
"""

from typing import Optional

from shared.response_utils import error_response


class APIError(Exception):
    """Base class for API errors."""

    def __init__(
        self,
        code: str,
        message: str,
        status_code: int = 400,
        details: Optional[dict] = None,
    ):
        self.code = code
        self.message = message
        self.status_code = status_code
        self.details = details or {}
        super().__init__(message)

    def to_response(self, origin: Optional[str] = None) -> dict:
        """Convert to API Gateway response format."""
        return error_response(
            self.status_code,
            self.code,
            self.message,
            details=self.details or None,
            origin=origin,
        )


class UnauthenticatedError(APIError):
    """Raised when the bearer token is missing or rejected."""

    def __init__(self, message: str = "You must be logged in."):
        super().__init__(
            code="unauthenticated",
            message=message,
            status_code=401,
        )


class InvalidPlanError(APIError):
    """Raised when the requested plan name is not one we sell."""

    def __init__(self, plan, supported: list[str] = None):
        supported = supported or []
        super().__init__(
            code="invalid_plan",
            message=f"Invalid plan specified. Choose: {', '.join(supported)}" if supported else "Invalid plan specified.",
            status_code=400,
            details={"plan": plan} if isinstance(plan, str) else None,
        )
        self.plan = plan


class InvalidRequestError(APIError):
    """Raised for general invalid request errors."""

    def __init__(self, message: str, code: str = "invalid_request", details: Optional[dict] = None):
        super().__init__(
            code=code,
            message=message,
            status_code=400,
            details=details,
        )


class ConfigurationError(APIError):
    """Raised when server-side configuration is missing.

    The internal reason is kept on the exception for logging; callers only
    ever see the generic message.
    """

    def __init__(self, reason: str, message: str = "Server configuration error. Please try again later."):
        super().__init__(
            code="configuration_error",
            message=message,
            status_code=500,
        )
        self.reason = reason

    def __str__(self) -> str:
        return self.reason


class UpstreamError(APIError):
    """Raised when a provider API call fails or reports non-success."""

    def __init__(self, message: str, service: str = "paystack", upstream_status: Optional[int] = None):
        super().__init__(
            code="upstream_error",
            message=message,
            status_code=500,
        )
        self.service = service
        self.upstream_status = upstream_status


class NoActiveSubscriptionError(APIError):
    """Raised when a cancel is requested but no subscription is stored."""

    def __init__(self, message: str = "No active subscription found to cancel."):
        super().__init__(
            code="no_active_subscription",
            message=message,
            status_code=400,
        )


class StoreError(APIError):
    """Raised when the account store cannot be read or updated."""

    def __init__(self, message: str = "Account update failed"):
        super().__init__(
            code="store_error",
            message=message,
            status_code=500,
        )
