"""
Shared constants for Learner Genie functions.
"""

# Tier configuration (profile limit per tier)
TIER_PROFILE_LIMITS = {
    "free": 1,
    "paid_single": 1,
    "paid_family": 2,
    "paid_ultra": 4,
}

PAID_TIERS = ("paid_single", "paid_family", "paid_ultra")

# Subscription status values stored on the account
STATUS_ACTIVE = "active"
STATUS_CANCELLED = "cancelled"

# Paystack
PAYSTACK_API = "https://api.paystack.co"
PAYSTACK_SIGNATURE_HEADER = "x-paystack-signature"
ACTIVATION_EVENTS = ("charge.success", "subscription.create")
CANCELLATION_EVENTS = ("subscription.disable", "subscription.expire")

# Generative AI
GEMINI_API = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TEXT_MODEL = "gemini-2.0-flash"
DEFAULT_IMAGE_MODEL = "imagen-3.0-generate-002"

# Timeouts
DEFAULT_TIMEOUT = 30.0
GENERATE_TIMEOUT = 60.0

# Audit records expire after this many days
BILLING_EVENT_TTL_DAYS = 90
