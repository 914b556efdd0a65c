"""Named rate-limit policies built on fixed-window counters."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from redeem_guard.core.settings import Settings, settings
from redeem_guard.models.fraud_log import FraudReason
from redeem_guard.services.window_counter import Clock, WindowCounter

logger = logging.getLogger(__name__)

POLICY_DEVICE = "device"
POLICY_IP = "ip"
POLICY_MERCHANT = "merchant"


@dataclass(frozen=True)
class RateLimitPolicy:
    """A window length, an attempt ceiling and the reason logged when it trips."""

    name: str
    window_seconds: float
    max_attempts: int
    reason: FraudReason
    message: str


@dataclass(frozen=True)
class RateLimitDecision:
    """Result of counting one attempt against a policy."""

    policy: str
    allowed: bool
    count: int
    limit: int
    retry_after: int | None = None


class UnknownPolicyError(KeyError):
    """Raised when a caller references a policy that was never registered."""


class RateLimiter:
    """Holds one window counter per registered policy."""

    def __init__(self, policies: list[RateLimitPolicy], *, clock: Clock | None = None) -> None:
        self._clock = clock
        self._policies: dict[str, RateLimitPolicy] = {}
        self._counters: dict[str, WindowCounter] = {}
        for policy in policies:
            self.register(policy)

    def register(self, policy: RateLimitPolicy) -> None:
        """Add or replace a policy; replacing discards its counter state."""
        self._policies[policy.name] = policy
        self._counters[policy.name] = WindowCounter(policy.window_seconds, clock=self._clock)

    def policy(self, name: str) -> RateLimitPolicy:
        try:
            return self._policies[name]
        except KeyError as err:
            raise UnknownPolicyError(name) from err

    def counter(self, name: str) -> WindowCounter:
        try:
            return self._counters[name]
        except KeyError as err:
            raise UnknownPolicyError(name) from err

    def check(self, name: str, key: str) -> RateLimitDecision:
        """Count an attempt for `key` under policy `name`.

        The attempt is blocked once the count within the current window exceeds
        the policy's ``max_attempts``.
        """
        policy = self.policy(name)
        counter = self._counters[name]
        entry = counter.record(key)
        if entry.count <= policy.max_attempts:
            return RateLimitDecision(
                policy=name, allowed=True, count=entry.count, limit=policy.max_attempts
            )

        retry_after = counter.retry_after(entry)
        logger.warning(
            "Rate limit %s exceeded for %s - %d attempts (retry in %ds)",
            name,
            key,
            entry.count,
            retry_after,
        )
        return RateLimitDecision(
            policy=name,
            allowed=False,
            count=entry.count,
            limit=policy.max_attempts,
            retry_after=retry_after,
        )

    def sweep(self, now: float | None = None) -> int:
        """Sweep every policy's counter; return the total number of dropped keys."""
        return sum(counter.sweep(now) for counter in self._counters.values())

    @property
    def policies(self) -> dict[str, RateLimitPolicy]:
        return dict(self._policies)


def default_policies(config: Settings | None = None) -> list[RateLimitPolicy]:
    """Build the device, IP and merchant policies from configuration."""
    cfg = config or settings
    return [
        RateLimitPolicy(
            name=POLICY_DEVICE,
            window_seconds=cfg.device_rate_limit_window_seconds,
            max_attempts=cfg.device_rate_limit_max_attempts,
            reason=FraudReason.RATE_LIMIT_DEVICE,
            message="Too many redemption attempts. Please try again later.",
        ),
        RateLimitPolicy(
            name=POLICY_IP,
            window_seconds=cfg.ip_rate_limit_window_seconds,
            max_attempts=cfg.ip_rate_limit_max_attempts,
            reason=FraudReason.RATE_LIMIT_IP,
            message="Too many attempts from this IP address. Please try again later.",
        ),
        RateLimitPolicy(
            name=POLICY_MERCHANT,
            window_seconds=cfg.merchant_rate_limit_window_seconds,
            max_attempts=cfg.merchant_rate_limit_max_attempts,
            reason=FraudReason.RATE_LIMIT_MERCHANT,
            message="Too many redemptions for this merchant. Please try again later.",
        ),
    ]
