"""Request steps guarding the merchant QR redemption routes.

Each step is a FastAPI dependency that either hands its result to the next
step or raises :class:`RedemptionBlockedError`. Chaining them through
``Depends`` fixes the order: payload integrity, then the per-device rate
limit, then the replay check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Annotated, Any

from fastapi import Depends, Request, status
from fastapi.exceptions import RequestValidationError
from pydantic import ValidationError
from sqlalchemy.exc import SQLAlchemyError

from redeem_guard.api.errors import RedemptionBlockedError
from redeem_guard.models import GiftCard
from redeem_guard.repositories import FraudLogEntry, FraudRepository
from redeem_guard.schemas.redemption import QRRedeemRequest
from redeem_guard.services.fraud_detection import RedemptionAttemptContext
from redeem_guard.services.payload_integrity import check_payload
from redeem_guard.services.rate_limiter import POLICY_DEVICE
from redeem_guard.services.replay_guard import REPLAY_FAILURE_REASON

from .dependencies import (
    AttemptContextDep,
    FraudGuardDep,
    FraudRepositoryDep,
    MerchantIdDep,
    ReplayGuardDep,
)

logger = logging.getLogger(__name__)

CODE_RATE_LIMITED = "RATE_LIMIT_EXCEEDED"
CODE_REPLAY_DETECTED = "REPLAY_DETECTED"
QR_FIELD = "qrData"


@dataclass(frozen=True)
class ResolvedRedemption:
    """A QR redemption request that passed every step, with its resolved GAN."""

    gan: str
    request: QRRedeemRequest
    card: GiftCard | None = None


def record_attempt(
    repo: FraudRepository,
    context: RedemptionAttemptContext,
    *,
    merchant_id: str,
    gan: str,
    amount: int | None,
    success: bool,
    card_id: int = 0,
    failure_reason: str | None = None,
) -> None:
    """Write a CardRedemption audit row; storage errors are logged, not raised."""
    try:
        repo.record_redemption_attempt(
            card_id=card_id,
            merchant_id=merchant_id,
            gan=gan,
            amount=amount or 0,
            ip_address=context.ip_address,
            device_fingerprint=context.device_fingerprint,
            user_agent=context.user_agent,
            success=success,
            failure_reason=failure_reason,
        )
    except SQLAlchemyError:
        logger.exception("Failed to record redemption attempt for %s", gan)
        repo.session.rollback()


def _record_fraud_event(repo: FraudRepository, entry: FraudLogEntry) -> None:
    try:
        repo.record_fraud_event(entry)
    except SQLAlchemyError:
        logger.exception("Failed to log fraud event %s for %s", entry.reason_value, entry.gan)
        repo.session.rollback()


async def _read_json(request: Request) -> Any:
    try:
        return await request.json()
    except ValueError:
        return None


async def verify_payload_integrity(
    request: Request,
    context: AttemptContextDep,
    guard: FraudGuardDep,
) -> QRRedeemRequest:
    """Reject malformed, tampered or out-of-bounds QR payloads with a 400."""
    body = await _read_json(request)
    qr_data = body.get(QR_FIELD) if isinstance(body, dict) else None
    violation = check_payload(
        qr_data,
        min_length=guard.config.payload_min_length,
        max_length=guard.config.payload_max_length,
    )
    if violation is not None:
        logger.warning(
            "Rejected QR payload from %s: %s (%r)",
            context.ip_address,
            violation.code,
            str(qr_data)[:50],
        )
        guard.record_failure(context.ip_address)
        raise RedemptionBlockedError(
            violation.error, violation.code, status_code=status.HTTP_400_BAD_REQUEST
        )

    try:
        return QRRedeemRequest.model_validate(body)
    except ValidationError as err:
        raise RequestValidationError(err.errors()) from err


ValidPayloadDep = Annotated[QRRedeemRequest, Depends(verify_payload_integrity)]


def enforce_device_rate_limit(
    payload: ValidPayloadDep,
    merchant_id: MerchantIdDep,
    context: AttemptContextDep,
    guard: FraudGuardDep,
    repo: FraudRepositoryDep,
) -> QRRedeemRequest:
    """Limit attempts per client IP and device fingerprint pair."""
    key = f"{context.ip_address}-{context.device_fingerprint}"
    decision = guard.limiter.check(POLICY_DEVICE, key)
    if decision.allowed:
        return payload

    policy = guard.limiter.policy(POLICY_DEVICE)
    _record_fraud_event(
        repo,
        FraudLogEntry(
            gan=payload.qr_data,
            ip_address=context.ip_address,
            reason=policy.reason,
            user_agent=context.user_agent,
            merchant_id=merchant_id,
        ),
    )
    guard.record_failure(context.ip_address)
    raise RedemptionBlockedError(
        policy.message, CODE_RATE_LIMITED, retry_after=decision.retry_after
    )


RateLimitedPayloadDep = Annotated[QRRedeemRequest, Depends(enforce_device_rate_limit)]


def prevent_replay(
    payload: RateLimitedPayloadDep,
    merchant_id: MerchantIdDep,
    context: AttemptContextDep,
    guard: FraudGuardDep,
    replay_guard: ReplayGuardDep,
) -> ResolvedRedemption:
    """Resolve the payload to a GAN and reject cards that are already redeemed."""
    gan = replay_guard.resolve_gan(payload.qr_data)
    check = replay_guard.check(gan)
    if not check.is_replay:
        return ResolvedRedemption(gan=gan, request=payload, card=check.card)

    record_attempt(
        replay_guard.repo,
        context,
        merchant_id=merchant_id,
        gan=gan,
        amount=payload.amount,
        success=False,
        card_id=check.card.id if check.card is not None else 0,
        failure_reason=REPLAY_FAILURE_REASON,
    )
    logger.warning("Replay attack detected for GAN %s from IP %s", gan, context.ip_address)
    guard.record_failure(context.ip_address)
    raise RedemptionBlockedError(
        "Gift card has already been redeemed",
        CODE_REPLAY_DETECTED,
        status_code=status.HTTP_409_CONFLICT,
    )


ResolvedRedemptionDep = Annotated[ResolvedRedemption, Depends(prevent_replay)]
