"""Data access helpers for fraud logs, gift cards and redemption attempts."""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timedelta

from sqlalchemy import case, false, select, true, update
from sqlalchemy.orm import Session

from redeem_guard.db.time import utcnow_naive
from redeem_guard.models import (
    AlertDeliveryLog,
    CardRedemption,
    FraudLog,
    FraudReason,
    GiftCard,
    GiftCardOrder,
)
from redeem_guard.models.gift_card import GIFT_CARD_STATUS_ACTIVE

__all__ = [
    "FraudLogEntry",
    "FraudRepository",
    "RedemptionConflictError",
    "RedemptionValidation",
]

ERROR_CARD_NOT_FOUND = "Gift card not found"
ERROR_ALREADY_REDEEMED = "Gift card has already been redeemed"
ERROR_NOT_ACTIVE = "Gift card is not active"
ERROR_NO_BALANCE = "Gift card has no remaining balance"
ERROR_EXPIRED = "Gift card has expired"


class RedemptionConflictError(Exception):
    """Raised when a card changed underneath a redemption and nothing was debited."""

    def __init__(self, gan: str) -> None:
        super().__init__(f"Gift card {gan} was redeemed by a concurrent request")
        self.gan = gan


@dataclass(frozen=True)
class FraudLogEntry:
    """Insert shape for the fraud log; persisted rows are never updated."""

    gan: str
    ip_address: str
    reason: str
    user_agent: str = ""
    merchant_id: str | None = None
    created_at: datetime | None = None

    @property
    def reason_value(self) -> str:
        return self.reason.value if isinstance(self.reason, FraudReason) else str(self.reason)


@dataclass(frozen=True)
class RedemptionValidation:
    """Outcome of checking whether a card can be redeemed right now."""

    valid: bool
    card: GiftCard | None = None
    error: str | None = None
    details: dict[str, object] = field(default_factory=dict)


class FraudRepository:
    """Thin wrapper around database access for the fraud core."""

    def __init__(self, session: Session) -> None:
        """Initialize the repository with a SQLAlchemy session."""
        self.session = session

    # --- Gift cards -----------------------------------------------------------------
    def find_gift_card_by_identifier(self, gan: str) -> GiftCard | None:
        """Return the gift card with the given GAN, if any."""
        return self.session.execute(
            select(GiftCard).where(GiftCard.gan == gan)
        ).scalars().first()

    def resolve_order_reference_to_gan(self, order_id: str) -> str | None:
        """Return the GAN attached to a purchase order reference."""
        order = self.session.get(GiftCardOrder, order_id)
        if order is None or not order.gift_card_gan:
            return None
        return order.gift_card_gan

    def validate_gift_card_for_redemption(self, gan: str) -> RedemptionValidation:
        """Check existence, redemption state, status, balance and expiry in that order."""
        card = self.find_gift_card_by_identifier(gan)
        if card is None:
            return RedemptionValidation(valid=False, error=ERROR_CARD_NOT_FOUND)
        if card.redeemed:
            return RedemptionValidation(valid=False, card=card, error=ERROR_ALREADY_REDEEMED)
        if card.status != GIFT_CARD_STATUS_ACTIVE:
            return RedemptionValidation(valid=False, card=card, error=ERROR_NOT_ACTIVE)
        if card.balance <= 0:
            return RedemptionValidation(valid=False, card=card, error=ERROR_NO_BALANCE)
        if card.expires_at is not None and utcnow_naive() > card.expires_at:
            return RedemptionValidation(valid=False, card=card, error=ERROR_EXPIRED)
        return RedemptionValidation(valid=True, card=card)

    def redeem_gift_card(self, card: GiftCard, amount: int | None = None) -> GiftCard:
        """Debit `amount` (default: full balance) and mark the card redeemed when empty.

        The debit is a single conditional UPDATE, so of two requests racing on
        the same card only one can take the balance they both read.

        Raises:
            ValueError: If the amount is not positive or exceeds the balance.
            RedemptionConflictError: If the card was redeemed or debited by
                another request after it was loaded.
        """
        redemption_amount = card.balance if amount is None else amount
        if redemption_amount <= 0:
            raise ValueError("Redemption amount must be positive")
        if redemption_amount > card.balance:
            raise ValueError("Insufficient balance on gift card")

        remaining = GiftCard.balance - redemption_amount
        stmt = (
            update(GiftCard)
            .where(
                GiftCard.id == card.id,
                GiftCard.redeemed.is_(False),
                GiftCard.balance >= redemption_amount,
            )
            .values(
                balance=remaining,
                last_redemption_amount=redemption_amount,
                redeemed=case((remaining <= 0, true()), else_=false()),
                redeemed_at=case((remaining <= 0, utcnow_naive()), else_=GiftCard.redeemed_at),
            )
            .execution_options(synchronize_session=False)
        )
        if self.session.execute(stmt).rowcount != 1:
            raise RedemptionConflictError(card.gan)
        self.session.commit()
        self.session.refresh(card)
        return card

    # --- Fraud log ------------------------------------------------------------------
    def record_fraud_event(self, entry: FraudLogEntry) -> FraudLog:
        """Append a fraud log row and return it."""
        row = FraudLog(
            gan=entry.gan,
            ip_address=entry.ip_address,
            merchant_id=entry.merchant_id,
            user_agent=entry.user_agent or "",
            reason=entry.reason_value,
            created_at=entry.created_at or utcnow_naive(),
        )
        self.session.add(row)
        self.session.commit()
        return row

    def query_fraud_events(
        self,
        *,
        ip: str | None = None,
        gan: str | None = None,
        merchant_id: str | None = None,
        since_minutes: float | None = None,
    ) -> list[FraudLog]:
        """Return fraud logs matching every supplied filter, newest first."""
        stmt = select(FraudLog)
        if ip is not None:
            stmt = stmt.where(FraudLog.ip_address == ip)
        if gan is not None:
            stmt = stmt.where(FraudLog.gan == gan)
        if merchant_id is not None:
            stmt = stmt.where(FraudLog.merchant_id == merchant_id)
        if since_minutes is not None:
            cutoff = utcnow_naive() - timedelta(minutes=since_minutes)
            stmt = stmt.where(FraudLog.created_at >= cutoff)
        stmt = stmt.order_by(FraudLog.created_at.desc(), FraudLog.id.desc())
        return list(self.session.execute(stmt).scalars())

    def recent_fraud_logs(self, limit: int = 50) -> list[FraudLog]:
        """Return the most recent fraud logs."""
        stmt = (
            select(FraudLog)
            .order_by(FraudLog.created_at.desc(), FraudLog.id.desc())
            .limit(limit)
        )
        return list(self.session.execute(stmt).scalars())

    # --- Redemption audit -----------------------------------------------------------
    def record_redemption_attempt(
        self,
        *,
        card_id: int,
        merchant_id: str,
        gan: str,
        amount: int,
        ip_address: str,
        device_fingerprint: str,
        user_agent: str,
        success: bool,
        failure_reason: str | None = None,
    ) -> CardRedemption:
        """Persist one redemption attempt."""
        row = CardRedemption(
            card_id=card_id,
            merchant_id=merchant_id,
            gift_card_gan=gan,
            amount=amount,
            ip_address=ip_address,
            device_fingerprint=device_fingerprint,
            user_agent=user_agent,
            success=success,
            failure_reason=failure_reason,
        )
        self.session.add(row)
        self.session.commit()
        return row

    # --- Alert deliveries -----------------------------------------------------------
    def record_alert_delivery(
        self,
        *,
        target: str,
        alert_type: str,
        success: bool,
        attempts: int,
        retry_count: int,
        response_time_ms: int,
        payload: str,
        error_message: str | None = None,
    ) -> AlertDeliveryLog:
        """Persist the final outcome of an alert delivery."""
        row = AlertDeliveryLog(
            target=target,
            alert_type=alert_type,
            status="success" if success else "fail",
            attempts=attempts,
            retry_count=retry_count,
            response_time_ms=response_time_ms,
            error_message=error_message,
            payload=payload,
        )
        self.session.add(row)
        self.session.commit()
        return row
