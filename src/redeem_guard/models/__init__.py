# src/redeem_guard/models/__init__.py
"""SQLAlchemy models for the Redeem Guard service."""

from .alert_delivery import AlertDeliveryLog
from .fraud_log import FraudLog, FraudReason
from .gift_card import GiftCard, GiftCardOrder
from .redemption import CardRedemption

__all__ = [
    "AlertDeliveryLog",
    "CardRedemption",
    "FraudLog", "FraudReason",
    "GiftCard", "GiftCardOrder",
]
