"""Fraud alert delivery.

This module provides the AlertDispatcher class that pushes fraud alerts to an
external webhook sink. It includes:

- A fire-and-forget ``emit`` that is safe to call from request handlers
- A background worker owning the outbound HTTP client
- HMAC-SHA256 payload signing so receivers can authenticate the origin
- Bounded retries (tenacity) with backoff for 5xx and network failures
- Delivery metrics and optional persistence of each final outcome
"""

from __future__ import annotations

import asyncio
import json
import logging
import threading
import time
from collections import defaultdict
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass, field
from typing import Any, ContextManager, Final

import httpx
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_result,
    stop_after_attempt,
    wait_chain,
    wait_fixed,
)

from redeem_guard.core.security import sign_payload, verify_payload_signature
from redeem_guard.core.settings import Settings, settings
from redeem_guard.db.time import utcnow
from redeem_guard.models.fraud_log import FraudReason
from redeem_guard.repositories.fraud_repo import FraudRepository

# Configure logger for this module
logger = logging.getLogger(__name__)

SIGNATURE_HEADER: Final[str] = "X-Guard-Signature"
EVENT_HEADER: Final[str] = "X-Guard-Event"
ERROR_MESSAGE_LIMIT: Final[int] = 200

ALERT_TYPE_SUSPICIOUS: Final[str] = "redemption-suspicious"
ALERT_TYPE_BLOCKED: Final[str] = "redemption-blocked"

SEVERITY_LOW: Final[str] = "low"
SEVERITY_MEDIUM: Final[str] = "medium"
SEVERITY_HIGH: Final[str] = "high"

SessionFactory = Callable[[], ContextManager[Session]]
Sleeper = Callable[[float], Awaitable[None]]

_STOP = object()


class AlertDeliveryError(RuntimeError):
    """Raised when a delivery is requested but no sink is configured."""


@dataclass(frozen=True)
class FraudAlert:
    """A fraud alert as delivered to the external sink."""

    type: str
    severity: str
    message: str
    ip: str | None = None
    merchant_id: str | None = None
    gan: str | None = None
    reason: str | None = None
    failed_attempts: int | None = None
    timestamp: str = field(default_factory=lambda: utcnow().isoformat())

    def to_payload(self) -> dict[str, Any]:
        """Return the wire representation, omitting unset identifiers."""
        payload: dict[str, Any] = {
            "type": self.type,
            "ip": self.ip,
            "merchantId": self.merchant_id,
            "gan": self.gan,
            "reason": self.reason,
            "failedAttempts": self.failed_attempts,
            "timestamp": self.timestamp,
            "severity": self.severity,
            "message": self.message,
        }
        return {key: value for key, value in payload.items() if value is not None}


@dataclass(frozen=True)
class DeliveryResult:
    """Final outcome of delivering one alert."""

    success: bool
    attempts: int
    retry_count: int
    response_time_ms: int
    status_code: int | None = None
    error_message: str | None = None


@dataclass(frozen=True)
class _AttemptOutcome:
    status_code: int | None
    error: str | None
    elapsed_ms: int

    def retryable(self) -> bool:
        """Only 5xx responses and transport failures (no status) are retried."""
        return self.error is not None and (self.status_code is None or self.status_code >= 500)


@dataclass
class DispatchMetrics:
    """Counters describing dispatcher activity.

    ``emit`` runs on request threads while deliveries run on the worker loop,
    so every update goes through the lock.
    """

    emitted: int = 0
    dropped: int = 0
    delivered: int = 0
    failed: int = 0
    attempts: int = 0
    total_response_time_ms: int = 0
    error_counts_by_type: dict[str, int] = field(default_factory=lambda: defaultdict(int))
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def increment(self, counter: str) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + 1)

    def record_attempt(self, response_time_ms: int, error_type: str | None = None) -> None:
        with self._lock:
            self.attempts += 1
            self.total_response_time_ms += response_time_ms
            if error_type:
                self.error_counts_by_type[error_type] += 1

    def snapshot(self) -> dict[str, Any]:
        with self._lock:
            return {
                "emitted": self.emitted,
                "dropped": self.dropped,
                "delivered": self.delivered,
                "failed": self.failed,
                "attempts": self.attempts,
                "average_response_time_ms": (
                    self.total_response_time_ms / self.attempts if self.attempts > 0 else 0.0
                ),
                "error_counts_by_type": dict(self.error_counts_by_type),
            }


def calculate_threat_severity(
    reason: str | FraudReason,
    *,
    attempt_count: int = 1,
    is_repeated: bool = False,
) -> str:
    """Map a fraud reason and its context onto an alert severity."""
    value = reason.value if isinstance(reason, FraudReason) else reason
    if is_repeated or attempt_count >= 5:
        return SEVERITY_HIGH
    if value in (FraudReason.REUSED_CODE.value, FraudReason.DEVICE_FINGERPRINT.value):
        return SEVERITY_HIGH
    if value == FraudReason.RATE_LIMIT_IP.value and attempt_count >= 3:
        return SEVERITY_MEDIUM
    if value == FraudReason.RATE_LIMIT_MERCHANT.value:
        return SEVERITY_MEDIUM
    return SEVERITY_LOW


def _truncate(message: str | None) -> str | None:
    if message is None or len(message) <= ERROR_MESSAGE_LIMIT:
        return message
    return message[: ERROR_MESSAGE_LIMIT - 3] + "..."


class AlertDispatcher:
    """Deliver fraud alerts to a webhook without ever blocking the caller."""

    def __init__(
        self,
        *,
        url: str | None = None,
        secret: str | None = None,
        max_attempts: int = 3,
        retry_delays: Sequence[float] = (1.0, 3.0, 9.0),
        timeout_seconds: float = 10.0,
        queue_size: int = 1000,
        transport: httpx.AsyncBaseTransport | None = None,
        session_factory: SessionFactory | None = None,
        sleep: Sleeper | None = None,
    ) -> None:
        self.url = url
        self._secret = secret
        self.max_attempts = max(1, int(max_attempts))
        self.retry_delays = tuple(float(delay) for delay in retry_delays) or (0.0,)
        self.timeout_seconds = float(timeout_seconds)
        self._queue_size = max(1, int(queue_size))
        self._transport = transport
        self._session_factory = session_factory
        self._sleep = sleep or asyncio.sleep

        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()
        self._queue: asyncio.Queue[Any] | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._inflight: set[asyncio.Task[DeliveryResult]] = set()
        self._metrics = DispatchMetrics()

    @classmethod
    def from_settings(
        cls,
        config: Settings | None = None,
        *,
        session_factory: SessionFactory | None = None,
    ) -> AlertDispatcher:
        """Build a dispatcher from application settings."""
        cfg = config or settings
        return cls(
            url=cfg.fraud_alert_webhook_url,
            secret=cfg.fraud_alert_signing_secret,
            max_attempts=cfg.fraud_alert_max_attempts,
            retry_delays=cfg.fraud_alert_retry_delays,
            timeout_seconds=cfg.fraud_alert_timeout_seconds,
            queue_size=cfg.fraud_alert_queue_size,
            session_factory=session_factory,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.url)

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    @property
    def target(self) -> str:
        """Sink identifier safe for logs (no query string)."""
        if not self.url:
            return "<unconfigured>"
        url = httpx.URL(self.url)
        return f"{url.scheme}://{url.netloc.decode('ascii')}{url.path}"

    # --- Request path -----------------------------------------------------------------
    def emit(self, alert: FraudAlert) -> bool:
        """Queue an alert for background delivery.

        Never raises. Returns True if the alert was handed to the worker. A
        dispatcher without a sink silently ignores alerts.
        """
        if not self.enabled:
            return False

        loop, queue = self._loop, self._queue
        if not self.running or loop is None or queue is None:
            self._metrics.increment("dropped")
            logger.warning(
                "Alert dispatcher not running; dropping %s alert (%s)",
                alert.type,
                alert.severity,
            )
            return False

        try:
            loop.call_soon_threadsafe(self._enqueue, queue, alert)
        except RuntimeError:
            self._metrics.increment("dropped")
            logger.warning("Alert dispatcher loop closed; dropping %s alert", alert.type)
            return False
        self._metrics.increment("emitted")
        return True

    def _enqueue(self, queue: asyncio.Queue[Any], alert: FraudAlert) -> None:
        try:
            queue.put_nowait(alert)
        except asyncio.QueueFull:
            self._metrics.increment("dropped")
            logger.warning("Alert queue full; dropping %s alert", alert.type)

    # --- Worker lifecycle -----------------------------------------------------------
    async def start(self) -> None:
        """Start the background delivery worker on the running loop."""
        if not self.enabled:
            return

        if self._task is None or self._task.done():
            self._loop = asyncio.get_running_loop()
            self._queue = asyncio.Queue(maxsize=self._queue_size)
            self._task = asyncio.create_task(self._run(self._queue))
            logger.info("Alert dispatcher started for %s", self.target)

    async def stop(self, timeout: float = 5.0) -> None:
        """Stop the worker, giving in-flight deliveries `timeout` seconds to finish."""
        if self._task is None:
            await self.close()
            return

        if self._queue is not None:
            # Let enqueue callbacks already scheduled by emit() run first.
            await asyncio.sleep(0)
            await self._queue.put(_STOP)
        try:
            await asyncio.wait_for(self._task, timeout=timeout)
        except TimeoutError:
            self._task.cancel()
        self._task = None

        pending = list(self._inflight)
        if pending:
            _, still_running = await asyncio.wait(pending, timeout=timeout)
            for task in still_running:
                task.cancel()
        await self.close()

    async def _run(self, queue: asyncio.Queue[Any]) -> None:
        while True:
            item = await queue.get()
            if item is _STOP:
                return
            task = asyncio.create_task(self.deliver(item))
            self._inflight.add(task)
            task.add_done_callback(self._inflight.discard)

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_seconds),
                    transport=self._transport,
                )
        return self._client

    async def close(self) -> None:
        """Clean up underlying HTTP client resources."""
        async with self._client_lock:
            if self._client is not None:
                await self._client.aclose()
                self._client = None

    # --- Delivery -------------------------------------------------------------------
    def _build_request(self, alert: FraudAlert) -> tuple[bytes, dict[str, str]]:
        body = json.dumps(alert.to_payload(), sort_keys=True, separators=(",", ":")).encode()
        headers = {
            "Content-Type": "application/json",
            "User-Agent": f"RedeemGuard-FraudAlerts/{settings.app_version}",
            EVENT_HEADER: alert.type,
        }
        if self._secret:
            headers[SIGNATURE_HEADER] = sign_payload(self._secret, body)
        return body, headers

    def _retry_policy(self, alert: FraudAlert) -> AsyncRetrying:
        """Retry 5xx responses and transport failures with the configured delays."""

        def log_retry(retry_state: RetryCallState) -> None:
            delay = retry_state.next_action.sleep if retry_state.next_action else 0.0
            logger.info(
                "Retrying %s alert to %s (attempt %d/%d) in %.1fs",
                alert.type,
                self.target,
                retry_state.attempt_number + 1,
                self.max_attempts,
                delay,
            )

        return AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_chain(*(wait_fixed(max(0.0, delay)) for delay in self.retry_delays)),
            retry=retry_if_result(_AttemptOutcome.retryable),
            sleep=self._sleep,
            before_sleep=log_retry,
            # Out of attempts: hand back the last outcome instead of raising RetryError.
            retry_error_callback=lambda retry_state: retry_state.outcome.result(),
        )

    async def _send_once(self, body: bytes, headers: dict[str, str]) -> _AttemptOutcome:
        client = await self._ensure_client()
        start_time = time.monotonic()
        try:
            response = await client.post(self.url or "", content=body, headers=headers)
        except httpx.TimeoutException:
            elapsed = int((time.monotonic() - start_time) * 1000)
            self._metrics.record_attempt(elapsed, "timeout")
            return _AttemptOutcome(
                None, f"Timeout after {int(self.timeout_seconds * 1000)}ms", elapsed
            )
        except httpx.HTTPError as exc:
            elapsed = int((time.monotonic() - start_time) * 1000)
            self._metrics.record_attempt(elapsed, "network_error")
            return _AttemptOutcome(None, f"Network error: {exc}", elapsed)

        elapsed = int((time.monotonic() - start_time) * 1000)
        if response.is_success:
            self._metrics.record_attempt(elapsed)
            return _AttemptOutcome(response.status_code, None, elapsed)
        self._metrics.record_attempt(elapsed, f"http_{response.status_code}")
        return _AttemptOutcome(
            response.status_code,
            f"HTTP {response.status_code}: {response.reason_phrase}",
            elapsed,
        )

    async def deliver(self, alert: FraudAlert) -> DeliveryResult:
        """Deliver one alert with retries and return the final outcome.

        Raises:
            AlertDeliveryError: If no sink URL is configured.
        """
        if not self.enabled:
            raise AlertDeliveryError("No fraud alert sink configured")

        body, headers = self._build_request(alert)
        outcomes: list[_AttemptOutcome] = []

        async def attempt() -> _AttemptOutcome:
            outcome = await self._send_once(body, headers)
            outcomes.append(outcome)
            if outcome.error is not None:
                logger.debug(
                    "Alert attempt %d to %s failed: %s",
                    len(outcomes),
                    self.target,
                    _truncate(outcome.error),
                )
            return outcome

        last_error: str | None = None
        try:
            last_error = (await self._retry_policy(alert)(attempt)).error
        except Exception as exc:  # pragma: no cover - never let delivery crash the worker
            logger.exception("Unexpected error delivering %s alert", alert.type)
            last_error = f"Critical error: {exc}"

        attempts = len(outcomes)
        result = DeliveryResult(
            success=last_error is None,
            attempts=attempts,
            retry_count=max(0, attempts - 1),
            response_time_ms=sum(outcome.elapsed_ms for outcome in outcomes),
            status_code=outcomes[-1].status_code if outcomes else None,
            error_message=_truncate(last_error),
        )
        self._log_outcome(alert, result)
        await self._persist(alert, body, result)
        return result

    def _log_outcome(self, alert: FraudAlert, result: DeliveryResult) -> None:
        if result.success:
            self._metrics.increment("delivered")
            logger.info(
                "Alert delivered target=%s type=%s elapsed_ms=%d retries=%d status=success",
                self.target,
                alert.type,
                result.response_time_ms,
                result.retry_count,
            )
        else:
            self._metrics.increment("failed")
            logger.error(
                "Alert delivery failed target=%s type=%s elapsed_ms=%d retries=%d "
                "status=fail error=%s",
                self.target,
                alert.type,
                result.response_time_ms,
                result.retry_count,
                result.error_message,
            )

    async def _persist(self, alert: FraudAlert, body: bytes, result: DeliveryResult) -> None:
        if self._session_factory is None:
            return
        await asyncio.to_thread(
            self._write_delivery_log, self._session_factory, alert, body.decode(), result
        )

    def _write_delivery_log(
        self,
        session_factory: SessionFactory,
        alert: FraudAlert,
        payload: str,
        result: DeliveryResult,
    ) -> None:
        try:
            with session_factory() as db:
                FraudRepository(db).record_alert_delivery(
                    target=self.target,
                    alert_type=alert.type,
                    success=result.success,
                    attempts=result.attempts,
                    retry_count=result.retry_count,
                    response_time_ms=result.response_time_ms,
                    error_message=result.error_message,
                    payload=payload,
                )
        except SQLAlchemyError:
            logger.exception("Failed to record alert delivery for %s", self.target)

    # --- Receivers and monitoring ---------------------------------------------------
    def verify_signature(self, body: bytes, signature: str | None) -> bool:
        """Return True if `signature` was produced for `body` with this dispatcher's secret."""
        if not self._secret:
            return False
        return verify_payload_signature(self._secret, body, signature)

    def get_metrics(self) -> dict[str, Any]:
        """Get dispatcher metrics."""
        return {
            "enabled": self.enabled,
            "running": self.running,
            "target": self.target,
            **self._metrics.snapshot(),
        }
