"""HMAC-SHA256 signing and verification for inbound webhooks."""

from __future__ import annotations

import hashlib
import hmac
from typing import Optional, Union

from pydantic import BaseModel

SIGNATURE_HEADER = "X-Webhook-Signature"

Payload = Union[bytes, str]


def _as_bytes(value: Payload) -> bytes:
    return value.encode("utf-8") if isinstance(value, str) else value


def create_signature(payload: Payload, secret: str) -> str:
    """Return the hex HMAC-SHA256 digest of ``payload`` under ``secret``."""
    return hmac.new(_as_bytes(secret), _as_bytes(payload), hashlib.sha256).hexdigest()


class SignatureCheck(BaseModel):
    is_valid: bool
    error: Optional[str] = None


def verify_signature(payload: Payload, signature: Optional[str], secret: Optional[str]) -> SignatureCheck:
    """Check ``signature`` against the digest of the raw ``payload`` bytes.

    The comparison is constant time. A missing signature or secret is never
    valid.
    """
    if not secret:
        return SignatureCheck(is_valid=False, error="Webhook secret not configured")
    if not signature:
        return SignatureCheck(is_valid=False, error="Missing signature")

    expected = create_signature(payload, secret).encode("ascii")
    provided = signature.strip().encode("utf-8")
    if len(provided) != len(expected):
        return SignatureCheck(is_valid=False, error="Signature length mismatch")
    if not hmac.compare_digest(provided, expected):
        return SignatureCheck(is_valid=False, error="Invalid signature")
    return SignatureCheck(is_valid=True)
