"""Data access layer for the Redeem Guard service."""

from .fraud_repo import (
    FraudLogEntry,
    FraudRepository,
    RedemptionConflictError,
    RedemptionValidation,
)

__all__ = [
    "FraudLogEntry",
    "FraudRepository",
    "RedemptionConflictError",
    "RedemptionValidation",
]
