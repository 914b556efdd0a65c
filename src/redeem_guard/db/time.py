# src/redeem_guard/db/time.py
"""Time utilities for database models."""

from datetime import UTC, datetime


def utcnow() -> datetime:
    """Return the current UTC time as a timezone-aware datetime."""
    return datetime.now(UTC)


def utcnow_naive() -> datetime:
    """Return the current UTC time without tzinfo, matching stored column values."""
    return datetime.now(UTC).replace(tzinfo=None)
