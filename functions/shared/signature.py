"""
Webhook signature verification.

Paystack signs every webhook with an HMAC-SHA512 of the raw request body,
keyed with the account's secret key, and sends the hex digest in the
x-paystack-signature header. The digest must be computed over the bytes
exactly as delivered (see request_utils.get_raw_body); parsing and
re-serializing the JSON changes them.
"""

import hashlib
import hmac
from typing import Optional


def compute_signature(raw_body: bytes, secret: str) -> str:
    """Hex HMAC-SHA512 of the raw body."""
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: Optional[str], secret: Optional[str]) -> bool:
    """Check a provided signature against the raw body in constant time.

    Returns False when the secret or signature is missing, so callers can
    treat "unverifiable" and "mismatch" the same way.
    """
    if not secret or not signature:
        return False

    expected = compute_signature(raw_body, secret)
    return hmac.compare_digest(expected.encode("ascii"), signature.strip().lower().encode("utf-8"))
