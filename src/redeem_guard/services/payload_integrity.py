"""Structural and content checks for inbound redemption payloads."""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any, Final

CODE_INVALID_FORMAT: Final[str] = "INVALID_FORMAT"
CODE_TAMPERED_PAYLOAD: Final[str] = "TAMPERED_PAYLOAD"
CODE_INVALID_LENGTH: Final[str] = "INVALID_LENGTH"

DEFAULT_MIN_LENGTH: Final[int] = 3
DEFAULT_MAX_LENGTH: Final[int] = 500

_DANGEROUS_PATTERNS: Final[tuple[re.Pattern[str], ...]] = (
    re.compile(r"[\x00-\x08\x0B\x0C\x0E-\x1F\x7F]"),  # non-printable control characters
    re.compile(r"[<>\"'&]"),
    re.compile(r"javascript:", re.IGNORECASE),
    re.compile(r"data:", re.IGNORECASE),
    re.compile(r"vbscript:", re.IGNORECASE),
)


@dataclass(frozen=True)
class PayloadViolation:
    """Why a payload was rejected, in API-ready form."""

    code: str
    error: str


def check_payload(
    value: Any,
    *,
    min_length: int = DEFAULT_MIN_LENGTH,
    max_length: int = DEFAULT_MAX_LENGTH,
) -> PayloadViolation | None:
    """Return the first violation found in `value`, or None if it is acceptable.

    Tamper patterns are evaluated before length so that an oversized injection
    attempt is still reported as tampering.
    """
    if not isinstance(value, str) or not value:
        return PayloadViolation(code=CODE_INVALID_FORMAT, error="Invalid QR data format")

    for pattern in _DANGEROUS_PATTERNS:
        if pattern.search(value):
            return PayloadViolation(
                code=CODE_TAMPERED_PAYLOAD,
                error="Invalid or tampered QR code detected",
            )

    if len(value) > max_length:
        return PayloadViolation(code=CODE_INVALID_LENGTH, error="QR data too long")
    if len(value) < min_length:
        return PayloadViolation(code=CODE_INVALID_LENGTH, error="QR data too short")
    return None
