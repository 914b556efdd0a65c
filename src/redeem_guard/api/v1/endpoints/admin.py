"""Admin fraud monitoring endpoints."""

from typing import Annotated

from fastapi import APIRouter, Query

from redeem_guard.schemas.fraud import (
    FraudLogListResponse,
    FraudLogResponse,
    FraudStatistics,
    FraudStatisticsResponse,
)

from ..dependencies import AdminDep, FraudServiceDep

router = APIRouter(prefix="/admin", tags=["admin", "fraud"])


@router.get("/fraud-logs", response_model=FraudLogListResponse)
def list_fraud_logs(
    _admin: AdminDep,
    fraud_service: FraudServiceDep,
    limit: Annotated[int, Query(ge=1, le=1000)] = 50,
) -> FraudLogListResponse:
    """Return the most recent fraud log entries, newest first."""
    logs = fraud_service.get_recent_fraud_logs(limit)
    return FraudLogListResponse(
        fraud_logs=[FraudLogResponse.model_validate(log) for log in logs],
        total=len(logs),
    )


@router.get("/fraud-statistics", response_model=FraudStatisticsResponse)
def fraud_statistics(_admin: AdminDep, fraud_service: FraudServiceDep) -> FraudStatisticsResponse:
    """Summarize recent fraud activity for the dashboard."""
    return FraudStatisticsResponse(
        statistics=FraudStatistics.model_validate(fraud_service.get_fraud_statistics())
    )
