"""Fraud check orchestration for gift-card redemptions.

A single call to :meth:`FraudDetectionService.check_redemption_fraud` runs the
in-memory rate limits and the fraud-log pattern checks in a fixed order and
returns the first block it finds. Every block is written to the fraud log,
counted against the caller's IP and, when enabled, sent as an alert.

Storage errors inside a check are logged and the check is skipped, so a
database outage degrades detection instead of rejecting every redemption.
"""

from __future__ import annotations

import logging
from collections import Counter
from dataclasses import dataclass
from datetime import timedelta
from typing import Any, Final

from sqlalchemy.exc import SQLAlchemyError

from redeem_guard.db.time import utcnow_naive
from redeem_guard.models import FraudLog, FraudReason
from redeem_guard.repositories.fraud_repo import FraudLogEntry, FraudRepository
from redeem_guard.services.guard import FraudGuard
from redeem_guard.services.rate_limiter import POLICY_IP, POLICY_MERCHANT

logger = logging.getLogger(__name__)

RISK_LOW: Final[str] = "low"
RISK_MEDIUM: Final[str] = "medium"
RISK_HIGH: Final[str] = "high"

MESSAGE_ALREADY_REDEEMED: Final[str] = "This gift card has already been redeemed."
MESSAGE_DEVICE_FAILURES: Final[str] = (
    "Too many failed attempts from this device. Please try again later."
)
MESSAGE_MULTIPLE_IPS: Final[str] = "Suspicious activity detected for this gift card."

STATISTICS_SAMPLE_SIZE: Final[int] = 1000
STATISTICS_TOP_REASONS: Final[int] = 5

_DEVICE_FAILURE_REASONS: Final[frozenset[str]] = frozenset(
    {FraudReason.INVALID_CODE.value, FraudReason.REDEMPTION_FAILED.value}
)


@dataclass(frozen=True)
class RedemptionAttemptContext:
    """Who is attempting a redemption, taken from the inbound request."""

    ip_address: str
    user_agent: str = ""
    device_fingerprint: str = ""
    merchant_id: str | None = None


@dataclass(frozen=True)
class FraudCheckResult:
    is_blocked: bool
    risk_level: str
    reason: str | None = None
    code: str | None = None
    retry_after: int | None = None

    @classmethod
    def allow(cls) -> FraudCheckResult:
        return cls(is_blocked=False, risk_level=RISK_LOW)


class FraudDetectionService:
    """Run the ordered fraud checks for one redemption attempt."""

    def __init__(self, guard: FraudGuard, repo: FraudRepository) -> None:
        self.guard = guard
        self.repo = repo
        self.config = guard.config

    def check_redemption_fraud(
        self,
        context: RedemptionAttemptContext,
        gan: str,
        merchant_id: str | None = None,
    ) -> FraudCheckResult:
        """Return the first block found for this attempt, or an allow decision."""
        merchant = merchant_id if merchant_id is not None else context.merchant_id

        ip_decision = self.guard.limiter.check(POLICY_IP, context.ip_address)
        if not ip_decision.allowed:
            policy = self.guard.limiter.policy(POLICY_IP)
            return self._block(
                context,
                gan,
                merchant,
                reason=policy.reason,
                message=policy.message,
                retry_after=ip_decision.retry_after,
                attempt_count=ip_decision.count,
            )

        if self._already_redeemed(gan):
            return self._block(
                context,
                gan,
                merchant,
                reason=FraudReason.REUSED_CODE,
                message=MESSAGE_ALREADY_REDEEMED,
            )

        if merchant:
            merchant_decision = self.guard.limiter.check(POLICY_MERCHANT, merchant)
            if not merchant_decision.allowed:
                policy = self.guard.limiter.policy(POLICY_MERCHANT)
                return self._block(
                    context,
                    gan,
                    merchant,
                    reason=policy.reason,
                    message=policy.message,
                    retry_after=merchant_decision.retry_after,
                    attempt_count=merchant_decision.count,
                )

        device_failures = self._device_failure_count(context)
        if device_failures >= self.config.device_failure_max:
            return self._block(
                context,
                gan,
                merchant,
                reason=FraudReason.DEVICE_FINGERPRINT,
                message=MESSAGE_DEVICE_FAILURES,
                attempt_count=device_failures,
            )

        unique_ips = self._unique_ips_for_gan(gan, context.ip_address)
        if unique_ips > self.config.pattern_max_unique_ips:
            return self._block(
                context,
                gan,
                merchant,
                reason=FraudReason.MULTIPLE_IPS,
                message=MESSAGE_MULTIPLE_IPS,
                attempt_count=unique_ips,
            )

        return FraudCheckResult.allow()

    # --- Individual checks ----------------------------------------------------------
    def _already_redeemed(self, gan: str) -> bool:
        try:
            card = self.repo.find_gift_card_by_identifier(gan)
        except SQLAlchemyError:
            logger.exception("Redeemed-card lookup failed for %s; skipping check", gan)
            self._rollback()
            return False
        return card is not None and card.redeemed

    def _device_failure_count(self, context: RedemptionAttemptContext) -> int:
        try:
            logs = self.repo.query_fraud_events(
                ip=context.ip_address,
                since_minutes=self.config.device_failure_window_minutes,
            )
        except SQLAlchemyError:
            logger.exception(
                "Device failure lookup failed for %s; skipping check", context.ip_address
            )
            self._rollback()
            return 0
        return sum(
            1
            for log in logs
            if log.user_agent == context.user_agent and log.reason in _DEVICE_FAILURE_REASONS
        )

    def _unique_ips_for_gan(self, gan: str, current_ip: str) -> int:
        try:
            logs = self.repo.query_fraud_events(
                gan=gan, since_minutes=self.config.pattern_window_minutes
            )
        except SQLAlchemyError:
            logger.exception("Pattern lookup failed for %s; skipping check", gan)
            self._rollback()
            return 0
        if not logs:
            return 0
        return len({log.ip_address for log in logs} | {current_ip})

    # --- Recording ------------------------------------------------------------------
    def _block(
        self,
        context: RedemptionAttemptContext,
        gan: str,
        merchant_id: str | None,
        *,
        reason: FraudReason,
        message: str,
        retry_after: int | None = None,
        attempt_count: int = 1,
    ) -> FraudCheckResult:
        logger.warning(
            "Blocked redemption of %s from %s: %s", gan, context.ip_address, reason.value
        )
        self._log_fraud_attempt(context, gan, merchant_id, reason)
        self.guard.record_failure(context.ip_address)
        self.guard.alert_blocked(
            reason=reason.value,
            message=message,
            ip=context.ip_address,
            gan=gan,
            merchant_id=merchant_id,
            attempt_count=attempt_count,
        )
        return FraudCheckResult(
            is_blocked=True,
            risk_level=RISK_HIGH,
            reason=message,
            code=reason.value,
            retry_after=retry_after,
        )

    def _log_fraud_attempt(
        self,
        context: RedemptionAttemptContext,
        gan: str,
        merchant_id: str | None,
        reason: FraudReason | str,
    ) -> FraudLog | None:
        entry = FraudLogEntry(
            gan=gan,
            ip_address=context.ip_address,
            reason=reason,
            user_agent=context.user_agent,
            merchant_id=merchant_id,
        )
        try:
            return self.repo.record_fraud_event(entry)
        except SQLAlchemyError:
            logger.exception("Failed to log fraud attempt %s for %s", entry.reason_value, gan)
            self._rollback()
            return None

    def _rollback(self) -> None:
        try:
            self.repo.session.rollback()
        except SQLAlchemyError:
            logger.debug("Rollback after storage failure also failed", exc_info=True)

    def log_redemption_failure(
        self,
        context: RedemptionAttemptContext,
        gan: str,
        merchant_id: str | None = None,
        reason: FraudReason | str = FraudReason.REDEMPTION_FAILED,
    ) -> FraudLog | None:
        """Record a failed redemption so that device and pattern checks see it."""
        merchant = merchant_id if merchant_id is not None else context.merchant_id
        return self._log_fraud_attempt(context, gan, merchant, reason)

    # --- Read side ------------------------------------------------------------------
    def get_recent_fraud_logs(self, limit: int = 50) -> list[FraudLog]:
        return self.repo.recent_fraud_logs(limit)

    def get_fraud_statistics(self) -> dict[str, Any]:
        """Summarize the most recent fraud logs for dashboards."""
        recent = self.repo.recent_fraud_logs(STATISTICS_SAMPLE_SIZE)
        cutoff = utcnow_naive() - timedelta(hours=24)
        last_day = [log for log in recent if log.created_at > cutoff]
        reasons = Counter(log.reason for log in last_day)
        return {
            "total_attempts": len(recent),
            "last_24_hours": len(last_day),
            "top_reasons": [
                {"reason": reason, "count": count}
                for reason, count in reasons.most_common(STATISTICS_TOP_REASONS)
            ],
            "unique_ips": len({log.ip_address for log in last_day}),
        }
