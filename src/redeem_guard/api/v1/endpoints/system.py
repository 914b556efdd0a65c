"""System and configuration endpoints for the Redeem Guard API."""

from __future__ import annotations

from fastapi import APIRouter

from redeem_guard.core.settings import settings

from ..dependencies import FraudGuardDep

router = APIRouter(prefix="/system", tags=["system"])


@router.get("/config")
async def get_public_config(guard: FraudGuardDep) -> dict[str, object]:
    """Return a sanitized snapshot of the fraud guard configuration.

    Excludes secrets and connection strings.
    """
    cfg = guard.config
    return {
        "app": {
            "name": settings.app_name,
            "version": settings.app_version,
            "debug": settings.debug,
        },
        "rate_limits": {
            name: {
                "window_seconds": policy.window_seconds,
                "max_attempts": policy.max_attempts,
                "reason": policy.reason.value,
            }
            for name, policy in guard.limiter.policies.items()
        },
        "patterns": {
            "device_failure_window_minutes": cfg.device_failure_window_minutes,
            "device_failure_max": cfg.device_failure_max,
            "pattern_window_minutes": cfg.pattern_window_minutes,
            "pattern_max_unique_ips": cfg.pattern_max_unique_ips,
        },
        "suspicious_activity": {
            "window_seconds": guard.aggregator.window_seconds,
            "threshold": guard.aggregator.threshold,
            "high_severity_at": guard.aggregator.high_severity_at,
            "tracked_ips": len(guard.aggregator),
        },
        "payload": {
            "min_length": cfg.payload_min_length,
            "max_length": cfg.payload_max_length,
        },
        "alerts": {
            "alert_on_block": guard.alert_on_block,
            "max_attempts": guard.dispatcher.max_attempts,
            "retry_delays": list(guard.dispatcher.retry_delays),
            "timeout_seconds": guard.dispatcher.timeout_seconds,
            "metrics": guard.dispatcher.get_metrics(),
        },
        "sweep_interval_seconds": cfg.sweep_interval_seconds,
    }
