from __future__ import annotations

import hashlib
import hmac


def sign(raw_body: bytes, secret: str) -> str:
    return hmac.new(secret.encode("utf-8"), raw_body, hashlib.sha512).hexdigest()


def verify_signature(raw_body: bytes, signature: str | None, secret: str | None) -> bool:
    """Check an ``x-paystack-signature`` header against the exact request bytes."""
    if not signature or not secret:
        return False
    return hmac.compare_digest(sign(raw_body, secret), signature.strip().lower())
