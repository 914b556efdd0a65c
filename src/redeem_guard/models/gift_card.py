# src/redeem_guard/models/gift_card.py
"""SQLAlchemy models for gift cards and the orders that reference them."""

from datetime import datetime

from sqlalchemy import Boolean, DateTime, Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from redeem_guard.db.session import Base
from redeem_guard.db.time import utcnow_naive

GIFT_CARD_STATUS_ACTIVE = "ACTIVE"
GIFT_CARD_STATUS_PENDING = "PENDING"
GIFT_CARD_STATUS_DEACTIVATED = "DEACTIVATED"


class GiftCard(Base):
    """A merchant-issued gift card identified by its GAN.

    Amounts are stored in cents.
    """

    __tablename__ = "gift_cards"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    merchant_id: Mapped[str] = mapped_column(Text, nullable=False)
    gan: Mapped[str] = mapped_column(Text, nullable=False, unique=True, index=True)
    amount: Mapped[int] = mapped_column(Integer, nullable=False)
    balance: Mapped[int] = mapped_column(Integer, nullable=False)
    # PENDING, ACTIVE, DEACTIVATED
    status: Mapped[str] = mapped_column(Text, nullable=False, default=GIFT_CARD_STATUS_ACTIVE)
    redeemed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    redeemed_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_redemption_amount: Mapped[int | None] = mapped_column(Integer, nullable=True)
    expires_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow_naive)


class GiftCardOrder(Base):
    """Public purchase order; QR payloads may carry its id instead of a GAN."""

    __tablename__ = "gift_card_orders"

    id: Mapped[str] = mapped_column(Text, primary_key=True)
    gift_card_gan: Mapped[str | None] = mapped_column(Text, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, nullable=False, default=utcnow_naive)
