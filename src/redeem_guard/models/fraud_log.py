# src/redeem_guard/models/fraud_log.py
"""Append-only log of fraud-relevant redemption events."""

from datetime import datetime
from enum import Enum

from sqlalchemy import DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from redeem_guard.db.session import Base
from redeem_guard.db.time import utcnow_naive


class FraudReason(str, Enum):
    """Machine-readable reasons recorded against a fraud log entry."""

    RATE_LIMIT_IP = "rate_limit_ip_violation"
    RATE_LIMIT_DEVICE = "rate_limit_device_violation"
    RATE_LIMIT_MERCHANT = "rate_limit_merchant_violation"
    REUSED_CODE = "reused_code_attempt"
    DEVICE_FINGERPRINT = "device_fingerprint_violation"
    MULTIPLE_IPS = "suspicious_pattern_multiple_ips"
    INVALID_CODE = "invalid_code"
    REDEMPTION_FAILED = "redemption_failed"
    INACTIVE_CARD = "inactive_card"
    SYSTEM_ERROR = "system_error"


class FraudLog(Base):
    """One immutable fraud event; rows are only ever inserted."""

    __tablename__ = "fraud_logs"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    gan: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    ip_address: Mapped[str] = mapped_column(Text, nullable=False, index=True)
    merchant_id: Mapped[str | None] = mapped_column(Text, nullable=True, index=True)
    user_agent: Mapped[str] = mapped_column(Text, nullable=False, default="")
    reason: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime, nullable=False, default=utcnow_naive, index=True
    )
