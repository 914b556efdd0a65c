"""Signing and token utilities."""
from __future__ import annotations

import hashlib
import hmac
from datetime import timedelta
from typing import Any

from jose import jwt

from redeem_guard.core.settings import settings
from redeem_guard.db.time import utcnow

SIGNATURE_PREFIX = "sha256="

ROLE_MERCHANT = "merchant"
ROLE_ADMIN = "admin"


def sign_payload(secret: str, body: bytes) -> str:
    """Return an HMAC-SHA256 signature header value for `body`.

    Args:
        secret: Shared secret known to the sender and receiver.
        body: Exact bytes placed on the wire.

    Returns:
        The signature formatted as ``sha256=<hex digest>``.
    """
    digest = hmac.new(secret.encode("utf-8"), body, hashlib.sha256).hexdigest()
    return f"{SIGNATURE_PREFIX}{digest}"


def verify_payload_signature(secret: str, body: bytes, signature: str | None) -> bool:
    """Return True if `signature` matches `body` under `secret`.

    The comparison runs in constant time; a missing or malformed header is
    simply a mismatch.
    """
    if not signature:
        return False
    expected = sign_payload(secret, body)
    return hmac.compare_digest(expected.encode("utf-8"), signature.strip().encode("utf-8"))


def create_access_token(
    subject: str,
    *,
    role: str = ROLE_MERCHANT,
    expires_minutes: int | None = None,
) -> str:
    """Issue a signed JWT for a merchant or admin principal."""
    lifetime = expires_minutes or settings.access_token_expire_minutes
    expire = utcnow() + timedelta(minutes=lifetime)
    payload: dict[str, Any] = {"sub": subject, "role": role, "exp": expire}
    return jwt.encode(payload, settings.secret_key, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode a JWT issued by :func:`create_access_token`.

    Raises:
        jose.JWTError: If the token is malformed, expired or badly signed.
    """
    return jwt.decode(token, settings.secret_key, algorithms=[settings.jwt_algorithm])
