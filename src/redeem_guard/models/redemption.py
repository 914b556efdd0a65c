# src/redeem_guard/models/redemption.py
"""Audit trail of redemption attempts made through the merchant QR flow."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from redeem_guard.db.session import Base
from redeem_guard.db.time import utcnow_naive


class CardRedemption(Base):
    """A single redemption attempt, successful or not."""

    __tablename__ = "card_redemptions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    # 0 when the attempt never resolved to a known card.
    card_id: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    merchant_id: Mapped[str] = mapped_column(Text, nullable=False)
    gift_card_gan: Mapped[str] = mapped_column(Text, nullable=False)
    amount: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    ip_address: Mapped[str] = mapped_column(Text, nullable=False)
    device_fingerprint: Mapped[str] = mapped_column(Text, nullable=False)
    user_agent: Mapped[str] = mapped_column(Text, nullable=False)
    success: Mapped[bool] = mapped_column(Boolean, nullable=False)
    failure_reason: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow_naive)
