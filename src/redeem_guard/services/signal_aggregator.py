"""Per-IP tracking of failed redemption signals."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from threading import Lock

from redeem_guard.core.settings import Settings, settings
from redeem_guard.services.alerts import (
    ALERT_TYPE_SUSPICIOUS,
    SEVERITY_HIGH,
    SEVERITY_MEDIUM,
    AlertDispatcher,
    FraudAlert,
)
from redeem_guard.services.window_counter import Clock

logger = logging.getLogger(__name__)


@dataclass
class SuspiciousActivityRecord:
    ip: str
    failed_attempts: int
    last_failure: float


class FraudSignalAggregator:
    """Count failures per client IP and alert once they look coordinated.

    The window is measured from the most recent failure: a gap longer than
    ``window_seconds`` starts the count again at 1. Every failure at or above
    the threshold emits an alert.
    """

    def __init__(
        self,
        dispatcher: AlertDispatcher | None = None,
        *,
        window_seconds: float = 300,
        threshold: int = 3,
        high_severity_at: int = 5,
        clock: Clock | None = None,
    ) -> None:
        self.dispatcher = dispatcher
        self.window_seconds = float(window_seconds)
        self.threshold = threshold
        self.high_severity_at = high_severity_at
        self._clock = clock or time.time
        self._records: dict[str, SuspiciousActivityRecord] = {}
        self._lock = Lock()

    @classmethod
    def from_settings(
        cls,
        dispatcher: AlertDispatcher | None = None,
        config: Settings | None = None,
        *,
        clock: Clock | None = None,
    ) -> FraudSignalAggregator:
        cfg = config or settings
        return cls(
            dispatcher,
            window_seconds=cfg.suspicious_window_seconds,
            threshold=cfg.suspicious_threshold,
            high_severity_at=cfg.suspicious_high_severity_at,
            clock=clock,
        )

    def record_failure(self, ip: str) -> SuspiciousActivityRecord:
        """Count one failure for `ip`, emitting an alert at or above the threshold."""
        now = self._clock()
        with self._lock:
            record = self._records.get(ip)
            if record is None or now - record.last_failure > self.window_seconds:
                record = SuspiciousActivityRecord(ip=ip, failed_attempts=1, last_failure=now)
                self._records[ip] = record
            else:
                record.failed_attempts += 1
                record.last_failure = now
            snapshot = SuspiciousActivityRecord(
                ip=record.ip,
                failed_attempts=record.failed_attempts,
                last_failure=record.last_failure,
            )

        if snapshot.failed_attempts >= self.threshold:
            self._alert(snapshot)
        return snapshot

    def _alert(self, record: SuspiciousActivityRecord) -> None:
        severity = (
            SEVERITY_HIGH if record.failed_attempts >= self.high_severity_at else SEVERITY_MEDIUM
        )
        logger.warning(
            "Suspicious redemption activity from %s: %d failed attempts",
            record.ip,
            record.failed_attempts,
        )
        if self.dispatcher is None:
            return
        self.dispatcher.emit(
            FraudAlert(
                type=ALERT_TYPE_SUSPICIOUS,
                severity=severity,
                ip=record.ip,
                failed_attempts=record.failed_attempts,
                message=(
                    f"Suspicious activity detected: {record.failed_attempts} "
                    f"failed redemption attempts from IP {record.ip}"
                ),
            )
        )

    def get(self, ip: str) -> SuspiciousActivityRecord | None:
        with self._lock:
            record = self._records.get(ip)
            if record is None:
                return None
            return SuspiciousActivityRecord(record.ip, record.failed_attempts, record.last_failure)

    def sweep(self, now: float | None = None) -> int:
        """Drop records idle for longer than the window; return how many were removed."""
        current = self._clock() if now is None else now
        with self._lock:
            expired = [
                ip
                for ip, record in self._records.items()
                if current - record.last_failure > self.window_seconds
            ]
            for ip in expired:
                del self._records[ip]
        return len(expired)

    def reset(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)
