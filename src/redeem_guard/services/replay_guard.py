"""Replay protection for gift-card redemptions."""

from __future__ import annotations

import logging
from dataclasses import dataclass

from sqlalchemy.exc import SQLAlchemyError

from redeem_guard.models import GiftCard
from redeem_guard.repositories.fraud_repo import FraudRepository

logger = logging.getLogger(__name__)

REPLAY_FAILURE_REASON = "Replay attack - card already redeemed"


@dataclass(frozen=True)
class ReplayCheck:
    is_replay: bool
    gan: str
    card: GiftCard | None = None


class ReplayGuard:
    """Reject redemptions of cards that are already marked redeemed."""

    def __init__(self, repo: FraudRepository) -> None:
        self.repo = repo

    def resolve_gan(self, payload: str) -> str:
        """Map an order-reference payload (``.../<order id>``) to its GAN.

        Payloads without a ``/`` are treated as a GAN already. Unknown order
        references fall back to the raw payload.
        """
        if "/" not in payload:
            return payload
        order_id = payload.rstrip("/").rsplit("/", 1)[-1]
        if not order_id:
            return payload
        try:
            gan = self.repo.resolve_order_reference_to_gan(order_id)
        except SQLAlchemyError:
            logger.exception("Order lookup failed for %s", order_id)
            return payload
        return gan or payload

    def check(self, gan: str) -> ReplayCheck:
        """Return whether redeeming `gan` would replay a completed redemption.

        Storage errors are logged and treated as "not a replay".
        """
        try:
            card = self.repo.find_gift_card_by_identifier(gan)
        except SQLAlchemyError:
            logger.exception("Replay check failed for %s; allowing request", gan)
            return ReplayCheck(is_replay=False, gan=gan)

        if card is not None and card.redeemed:
            logger.warning("Replay attempt detected for redeemed card %s", gan)
            return ReplayCheck(is_replay=True, gan=gan, card=card)
        return ReplayCheck(is_replay=False, gan=gan, card=card)
