"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .fraud import (
    FraudAlertPayload,
    FraudLogListResponse,
    FraudLogResponse,
    FraudStatistics,
    FraudStatisticsResponse,
    ReasonCount,
)
from .redemption import (
    GiftCardRedeemRequest,
    GiftCardSummary,
    QRRedeemRequest,
    QRValidateResponse,
    RedemptionResponse,
)

__all__ = [
    "FraudAlertPayload",
    "FraudLogListResponse", "FraudLogResponse",
    "FraudStatistics", "FraudStatisticsResponse", "ReasonCount",
    "GiftCardRedeemRequest", "GiftCardSummary",
    "QRRedeemRequest", "QRValidateResponse",
    "RedemptionResponse",
]
