"""Gift card redemption endpoints for the Redeem Guard API."""

import logging

from fastapi import APIRouter, status
from sqlalchemy.exc import SQLAlchemyError

from redeem_guard.api.errors import RedemptionBlockedError, RedemptionError
from redeem_guard.models import FraudReason
from redeem_guard.models.gift_card import GIFT_CARD_STATUS_ACTIVE
from redeem_guard.repositories.fraud_repo import (
    ERROR_ALREADY_REDEEMED,
    ERROR_NOT_ACTIVE,
    RedemptionConflictError,
)
from redeem_guard.schemas.redemption import (
    GiftCardRedeemRequest,
    GiftCardSummary,
    QRValidateResponse,
    RedemptionResponse,
)
from redeem_guard.services.fraud_detection import FraudDetectionService, RedemptionAttemptContext
from redeem_guard.services.replay_guard import REPLAY_FAILURE_REASON

from ..dependencies import AttemptContextDep, FraudServiceDep, MerchantIdDep, ReplayGuardDep
from ..redemption_steps import (
    CODE_REPLAY_DETECTED,
    ResolvedRedemptionDep,
    ValidPayloadDep,
    record_attempt,
)

logger = logging.getLogger(__name__)

CODE_FRAUD_DETECTED = "FRAUD_DETECTED"
CODE_CARD_NOT_FOUND = "CARD_NOT_FOUND"
CODE_CARD_INVALID = "CARD_INVALID"
CODE_ALREADY_REDEEMED = "ALREADY_REDEEMED"
CODE_CARD_INACTIVE = "CARD_INACTIVE"
CODE_INSUFFICIENT_BALANCE = "INSUFFICIENT_BALANCE"
CODE_REDEMPTION_FAILED = "REDEMPTION_FAILED"
CODE_SYSTEM_ERROR = "SYSTEM_ERROR"

router = APIRouter(tags=["redemptions"])


def _conflict() -> RedemptionBlockedError:
    return RedemptionBlockedError(
        ERROR_ALREADY_REDEEMED,
        CODE_REPLAY_DETECTED,
        status_code=status.HTTP_409_CONFLICT,
    )


@router.post("/merchant/validate-qr", response_model=QRValidateResponse)
def validate_qr(
    merchant_id: MerchantIdDep,
    payload: ValidPayloadDep,
    replay_guard: ReplayGuardDep,
) -> QRValidateResponse:
    """Check whether the scanned card could be redeemed right now."""
    gan = replay_guard.resolve_gan(payload.qr_data)
    validation = replay_guard.repo.validate_gift_card_for_redemption(gan)
    if validation.card is None:
        raise RedemptionError(
            status.HTTP_404_NOT_FOUND, validation.error or "Gift card not found", CODE_CARD_NOT_FOUND
        )
    if not validation.valid:
        raise RedemptionError(
            status.HTTP_400_BAD_REQUEST, validation.error or "Invalid gift card", CODE_CARD_INVALID
        )
    logger.debug("Merchant %s validated card %s", merchant_id, gan)
    return QRValidateResponse(card=GiftCardSummary.model_validate(validation.card))


@router.post("/merchant/redeem-qr", response_model=RedemptionResponse)
def redeem_qr(
    merchant_id: MerchantIdDep,
    redemption: ResolvedRedemptionDep,
    context: AttemptContextDep,
    fraud_service: FraudServiceDep,
) -> RedemptionResponse:
    """Redeem a scanned gift card after the request steps and fraud checks pass."""
    repo = fraud_service.repo
    gan = redemption.gan
    requested = redemption.request.amount

    fraud = fraud_service.check_redemption_fraud(context, gan, merchant_id)
    if fraud.is_blocked:
        record_attempt(
            repo,
            context,
            merchant_id=merchant_id,
            gan=gan,
            amount=requested,
            success=False,
            failure_reason=f"Fraud detected: {fraud.reason or 'Security violation'}",
        )
        raise RedemptionBlockedError(
            "Redemption blocked for security reasons",
            fraud.code or CODE_FRAUD_DETECTED,
            retry_after=fraud.retry_after,
            risk_level=fraud.risk_level,
        )

    validation = repo.validate_gift_card_for_redemption(gan)
    if not validation.valid or validation.card is None:
        card_id = validation.card.id if validation.card is not None else 0
        record_attempt(
            repo,
            context,
            merchant_id=merchant_id,
            gan=gan,
            amount=requested,
            success=False,
            card_id=card_id,
            failure_reason=validation.error,
        )
        if validation.card is None:
            fraud_service.log_redemption_failure(
                context, gan, merchant_id, FraudReason.INVALID_CODE
            )
            raise RedemptionError(
                status.HTTP_404_NOT_FOUND,
                validation.error or "Gift card not found",
                CODE_CARD_NOT_FOUND,
            )
        fraud_service.log_redemption_failure(context, gan, merchant_id)
        raise RedemptionError(
            status.HTTP_400_BAD_REQUEST, validation.error or "Invalid gift card", CODE_CARD_INVALID
        )

    card = validation.card
    amount = requested or card.balance
    if amount > card.balance:
        record_attempt(
            repo,
            context,
            merchant_id=merchant_id,
            gan=gan,
            amount=amount,
            success=False,
            card_id=card.id,
            failure_reason="Insufficient balance",
        )
        raise RedemptionError(
            status.HTTP_400_BAD_REQUEST,
            "Insufficient balance on gift card",
            CODE_INSUFFICIENT_BALANCE,
        )

    try:
        card = repo.redeem_gift_card(card, amount)
    except RedemptionConflictError as err:
        record_attempt(
            repo,
            context,
            merchant_id=merchant_id,
            gan=gan,
            amount=amount,
            success=False,
            card_id=card.id,
            failure_reason=REPLAY_FAILURE_REASON,
        )
        logger.warning("Concurrent redemption of GAN %s from IP %s", gan, context.ip_address)
        fraud_service.guard.record_failure(context.ip_address)
        raise _conflict() from err
    record_attempt(
        repo,
        context,
        merchant_id=merchant_id,
        gan=gan,
        amount=amount,
        success=True,
        card_id=card.id,
    )
    logger.info("Merchant %s redeemed %d from card %s", merchant_id, amount, gan)
    return RedemptionResponse(
        gan=gan,
        amount_redeemed=amount,
        remaining_balance=card.balance,
        fully_redeemed=card.redeemed,
        risk_level=fraud.risk_level,
    )


def _redeem_public(
    body: GiftCardRedeemRequest,
    context: RedemptionAttemptContext,
    fraud_service: FraudDetectionService,
) -> RedemptionResponse:
    repo = fraud_service.repo
    merchant_id = body.merchant_id

    fraud = fraud_service.check_redemption_fraud(context, body.code, merchant_id)
    if fraud.is_blocked:
        raise RedemptionBlockedError(
            fraud.reason or "Redemption blocked due to suspicious activity",
            fraud.code or CODE_FRAUD_DETECTED,
            retry_after=fraud.retry_after,
            risk_level=fraud.risk_level,
        )

    card = repo.find_gift_card_by_identifier(body.code)
    if card is None:
        fraud_service.log_redemption_failure(
            context, body.code, merchant_id, FraudReason.INVALID_CODE
        )
        raise RedemptionError(
            status.HTTP_404_NOT_FOUND, "Gift card not found", CODE_CARD_NOT_FOUND
        )
    if card.redeemed:
        raise RedemptionError(
            status.HTTP_400_BAD_REQUEST, ERROR_ALREADY_REDEEMED, CODE_ALREADY_REDEEMED
        )
    if card.status != GIFT_CARD_STATUS_ACTIVE:
        fraud_service.log_redemption_failure(
            context, body.code, merchant_id, FraudReason.INACTIVE_CARD
        )
        raise RedemptionError(status.HTTP_400_BAD_REQUEST, ERROR_NOT_ACTIVE, CODE_CARD_INACTIVE)

    try:
        card = repo.redeem_gift_card(card, body.amount)
    except RedemptionConflictError as err:
        logger.warning("Concurrent redemption of GAN %s from IP %s", card.gan, context.ip_address)
        fraud_service.guard.record_failure(context.ip_address)
        raise _conflict() from err
    except ValueError as err:
        fraud_service.log_redemption_failure(context, body.code, merchant_id)
        raise RedemptionError(
            status.HTTP_400_BAD_REQUEST, str(err), CODE_REDEMPTION_FAILED
        ) from err

    amount = card.last_redemption_amount or body.amount or 0
    logger.info("Gift card %s redeemed by %s for %d", body.code, body.redeemed_by, amount)
    return RedemptionResponse(
        gan=card.gan,
        amount_redeemed=amount,
        remaining_balance=card.balance,
        fully_redeemed=card.redeemed,
        risk_level=fraud.risk_level,
    )


@router.post("/gift-cards/redeem", response_model=RedemptionResponse)
def redeem_gift_card(
    body: GiftCardRedeemRequest,
    context: AttemptContextDep,
    fraud_service: FraudServiceDep,
) -> RedemptionResponse:
    """Redeem a gift card by code, recording failures for fraud tracking."""
    try:
        return _redeem_public(body, context, fraud_service)
    except SQLAlchemyError as err:
        logger.exception("Error redeeming gift card %s", body.code)
        fraud_service.repo.session.rollback()
        fraud_service.log_redemption_failure(
            context, body.code, body.merchant_id, FraudReason.SYSTEM_ERROR
        )
        raise RedemptionError(
            status.HTTP_500_INTERNAL_SERVER_ERROR, "Failed to redeem gift card", CODE_SYSTEM_ERROR
        ) from err
