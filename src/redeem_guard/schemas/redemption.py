"""Redemption-related Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class QRRedeemRequest(BaseModel):
    """Body of a merchant QR redemption or validation request."""

    model_config = ConfigDict(populate_by_name=True)

    qr_data: str = Field(..., alias="qrData", description="GAN or order URL encoded in the QR code")
    amount: int | None = Field(
        None, gt=0, description="Amount to redeem in cents; defaults to the full balance"
    )
    customer_email: str | None = Field(None, alias="customerEmail")


class GiftCardRedeemRequest(BaseModel):
    """Body of the public redemption endpoint."""

    model_config = ConfigDict(populate_by_name=True)

    code: str = Field(..., min_length=1, description="Gift card GAN")
    redeemed_by: str = Field(..., min_length=1, alias="redeemedBy")
    amount: int | None = Field(None, gt=0)
    merchant_id: str | None = Field(None, alias="merchantId")


class GiftCardSummary(BaseModel):
    """Gift card fields safe to return to a merchant."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    gan: str
    merchant_id: str
    amount: int
    balance: int
    status: str
    redeemed: bool
    redeemed_at: datetime | None = None
    last_redemption_amount: int | None = None
    expires_at: datetime | None = None


class QRValidateResponse(BaseModel):
    success: bool = True
    card: GiftCardSummary
    message: str = "Gift card is valid for redemption"


class RedemptionResponse(BaseModel):
    """Result of a successful redemption."""

    success: bool = True
    message: str = "Gift card redeemed successfully"
    gan: str
    amount_redeemed: int
    remaining_balance: int
    fully_redeemed: bool
    risk_level: str = "low"
