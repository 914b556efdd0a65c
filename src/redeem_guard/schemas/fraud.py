"""Fraud monitoring Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class FraudLogResponse(BaseModel):
    """A fraud log row as shown on the admin dashboard."""

    model_config = ConfigDict(from_attributes=True)

    id: int
    gan: str
    ip_address: str
    merchant_id: str | None
    user_agent: str
    reason: str
    created_at: datetime


class FraudLogListResponse(BaseModel):
    success: bool = True
    fraud_logs: list[FraudLogResponse]
    total: int


class ReasonCount(BaseModel):
    reason: str
    count: int


class FraudStatistics(BaseModel):
    """Aggregates over the most recent fraud logs."""

    total_attempts: int = Field(..., description="Logs in the most recent sample of 1000")
    last_24_hours: int
    top_reasons: list[ReasonCount]
    unique_ips: int = Field(..., description="Distinct IPs seen in the last 24 hours")


class FraudStatisticsResponse(BaseModel):
    success: bool = True
    statistics: FraudStatistics


class FraudAlertPayload(BaseModel):
    """Alert body as sent by the alert dispatcher."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    type: str
    severity: str
    message: str
    timestamp: str
    ip: str | None = None
    merchant_id: str | None = Field(None, alias="merchantId")
    gan: str | None = None
    reason: str | None = None
    failed_attempts: int | None = Field(None, alias="failedAttempts")
