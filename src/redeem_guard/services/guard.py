"""Process-wide owner of the fraud core's in-memory state."""

from __future__ import annotations

import logging

from redeem_guard.core.settings import Settings, settings
from redeem_guard.db.session import SessionLocal
from redeem_guard.services.alerts import (
    ALERT_TYPE_BLOCKED,
    AlertDispatcher,
    FraudAlert,
    calculate_threat_severity,
)
from redeem_guard.services.rate_limiter import RateLimiter, default_policies
from redeem_guard.services.signal_aggregator import FraudSignalAggregator
from redeem_guard.services.window_counter import Clock

logger = logging.getLogger(__name__)


class FraudGuard:
    """Bundle the rate limiter, signal aggregator and alert dispatcher.

    One instance is shared by every request in the process. Tests build their
    own with an injected clock and dispatcher.
    """

    def __init__(
        self,
        limiter: RateLimiter,
        aggregator: FraudSignalAggregator,
        dispatcher: AlertDispatcher,
        *,
        config: Settings | None = None,
        alert_on_block: bool | None = None,
    ) -> None:
        self.config = config or settings
        self.limiter = limiter
        self.aggregator = aggregator
        self.dispatcher = dispatcher
        self.alert_on_block = (
            self.config.fraud_alert_on_block if alert_on_block is None else alert_on_block
        )

    @classmethod
    def build(
        cls,
        config: Settings | None = None,
        *,
        dispatcher: AlertDispatcher | None = None,
        clock: Clock | None = None,
        alert_on_block: bool | None = None,
    ) -> FraudGuard:
        """Assemble a guard from settings."""
        cfg = config or settings
        dispatcher = dispatcher or AlertDispatcher.from_settings(cfg, session_factory=SessionLocal)
        return cls(
            RateLimiter(default_policies(cfg), clock=clock),
            FraudSignalAggregator.from_settings(dispatcher, cfg, clock=clock),
            dispatcher,
            config=cfg,
            alert_on_block=alert_on_block,
        )

    def record_failure(self, ip: str) -> None:
        """Feed one failed attempt into the suspicious-activity tracker."""
        self.aggregator.record_failure(ip)

    def alert_blocked(
        self,
        *,
        reason: str,
        message: str,
        ip: str,
        gan: str | None = None,
        merchant_id: str | None = None,
        attempt_count: int = 1,
    ) -> None:
        """Emit a blocked-redemption alert when block alerting is enabled."""
        if not self.alert_on_block:
            return
        self.dispatcher.emit(
            FraudAlert(
                type=ALERT_TYPE_BLOCKED,
                severity=calculate_threat_severity(reason, attempt_count=attempt_count),
                message=message,
                ip=ip,
                gan=gan,
                merchant_id=merchant_id,
                reason=reason,
                failed_attempts=attempt_count,
            )
        )

    def sweep(self) -> int:
        """Drop expired counters and stale suspicious records."""
        removed = self.limiter.sweep() + self.aggregator.sweep()
        if removed:
            logger.debug("Fraud guard sweep removed %d entries", removed)
        return removed

    def reset(self) -> None:
        for name in self.limiter.policies:
            self.limiter.counter(name).reset()
        self.aggregator.reset()


class _FraudGuardSingleton:
    """Singleton wrapper for FraudGuard."""

    _instance: FraudGuard | None = None

    @classmethod
    def get_instance(cls) -> FraudGuard:
        """Get or create the singleton FraudGuard instance."""
        if cls._instance is None:
            cls._instance = FraudGuard.build()
        return cls._instance


def get_fraud_guard() -> FraudGuard:
    """Return the process-wide fraud guard."""
    return _FraudGuardSingleton.get_instance()
