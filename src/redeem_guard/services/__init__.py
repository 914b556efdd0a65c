"""Fraud detection services for gift-card redemptions."""

from .alerts import AlertDispatcher, FraudAlert
from .fraud_detection import FraudCheckResult, FraudDetectionService, RedemptionAttemptContext
from .guard import FraudGuard, get_fraud_guard
from .rate_limiter import RateLimiter
from .sweeper import CacheSweepWorker

__all__ = [
    "AlertDispatcher", "FraudAlert",
    "FraudCheckResult", "FraudDetectionService", "RedemptionAttemptContext",
    "FraudGuard", "get_fraud_guard",
    "RateLimiter",
    "CacheSweepWorker",
]
