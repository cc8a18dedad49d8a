# Shared utilities package
from .constants import TIER_PROFILE_LIMITS
from .errors import APIError
from .response_utils import error_response, success_response

__all__ = [
    "TIER_PROFILE_LIMITS",
    "error_response",
    "success_response",
    "APIError",
]
