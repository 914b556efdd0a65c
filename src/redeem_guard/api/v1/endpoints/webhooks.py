"""Inbound receiver for signed fraud alerts."""

import json
import logging

from fastapi import APIRouter, HTTPException, Request, status
from pydantic import ValidationError

from redeem_guard.schemas.fraud import FraudAlertPayload
from redeem_guard.services.alerts import SIGNATURE_HEADER

from ..dependencies import FraudGuardDep

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


@router.post("/fraud-alert")
async def receive_fraud_alert(request: Request, guard: FraudGuardDep) -> dict[str, object]:
    """Accept a fraud alert whose signature matches the shared secret.

    Raises:
        HTTPException: 401 if the signature is missing or wrong, 400 if the
            body is not a valid alert
    """
    body = await request.body()
    if not guard.dispatcher.verify_signature(body, request.headers.get(SIGNATURE_HEADER)):
        logger.warning("Rejected fraud alert with invalid signature")
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid signature")

    try:
        alert = FraudAlertPayload.model_validate(json.loads(body))
    except (ValueError, ValidationError) as err:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="Invalid fraud alert payload"
        ) from err

    logger.warning(
        "Fraud alert received: %s (%s) ip=%s gan=%s merchant=%s - %s",
        alert.type,
        alert.severity,
        alert.ip,
        alert.gan,
        alert.merchant_id,
        alert.message,
    )
    return {"success": True, "message": "Fraud alert processed"}
