"""Shared API dependencies for authentication and common functionality."""

from typing import Annotated, Any

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError
from sqlalchemy.orm import Session

from redeem_guard.core.security import ROLE_ADMIN, ROLE_MERCHANT, decode_access_token
from redeem_guard.db.session import get_db
from redeem_guard.repositories import FraudRepository
from redeem_guard.services.fraud_detection import FraudDetectionService, RedemptionAttemptContext
from redeem_guard.services.guard import FraudGuard, get_fraud_guard
from redeem_guard.services.replay_guard import ReplayGuard

UNKNOWN_CLIENT = "unknown"
DEVICE_FINGERPRINT_HEADER = "X-Device-Fingerprint"

# HTTP Bearer scheme for JWT authentication
bearer_scheme = HTTPBearer()

# Type alias for database session dependency
SessionDep = Annotated[Session, Depends(get_db)]


def _credentials_exception(detail: str = "Could not validate credentials") -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail=detail,
        headers={"WWW-Authenticate": "Bearer"},
    )


def _decode_claims(credentials: HTTPAuthorizationCredentials) -> dict[str, Any]:
    try:
        payload = decode_access_token(credentials.credentials)
    except JWTError as err:
        raise _credentials_exception() from err
    if not payload.get("sub"):
        raise _credentials_exception()
    return payload


def get_current_merchant_id(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> str:
    """Return the merchant id carried in the caller's JWT.

    Raises:
        HTTPException: If the token is invalid or not issued to a merchant
    """
    payload = _decode_claims(credentials)
    if payload.get("role", ROLE_MERCHANT) not in (ROLE_MERCHANT, ROLE_ADMIN):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Merchant access required")
    return str(payload["sub"])


def require_admin(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(bearer_scheme)],
) -> dict[str, Any]:
    """Return the claims of an admin caller or reject the request."""
    payload = _decode_claims(credentials)
    if payload.get("role") != ROLE_ADMIN:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Admin access required")
    return payload


def get_client_ip(request: Request) -> str:
    """Return the client address.

    Proxy headers are not read here; ProxyHeadersMiddleware rewrites the
    address only when the peer is listed in FORWARDED_ALLOW_IPS.
    """
    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_CLIENT


def get_attempt_context(request: Request) -> RedemptionAttemptContext:
    """Build the fraud context (IP, user agent, device fingerprint) for a request."""
    ip_address = get_client_ip(request)
    user_agent = request.headers.get("user-agent", "")
    fingerprint = (
        request.headers.get(DEVICE_FINGERPRINT_HEADER)
        or user_agent
        or UNKNOWN_CLIENT
    )
    return RedemptionAttemptContext(
        ip_address=ip_address,
        user_agent=user_agent,
        device_fingerprint=fingerprint,
    )


def get_fraud_guard_dep() -> FraudGuard:
    """Return the process-wide fraud guard."""
    return get_fraud_guard()


def get_fraud_repository(db: SessionDep) -> FraudRepository:
    return FraudRepository(db)


FraudGuardDep = Annotated[FraudGuard, Depends(get_fraud_guard_dep)]
FraudRepositoryDep = Annotated[FraudRepository, Depends(get_fraud_repository)]


def get_fraud_service(guard: FraudGuardDep, repo: FraudRepositoryDep) -> FraudDetectionService:
    return FraudDetectionService(guard, repo)


def get_replay_guard(repo: FraudRepositoryDep) -> ReplayGuard:
    return ReplayGuard(repo)


# Type aliases for common dependencies
MerchantIdDep = Annotated[str, Depends(get_current_merchant_id)]
AdminDep = Annotated[dict[str, Any], Depends(require_admin)]
AttemptContextDep = Annotated[RedemptionAttemptContext, Depends(get_attempt_context)]
FraudServiceDep = Annotated[FraudDetectionService, Depends(get_fraud_service)]
ReplayGuardDep = Annotated[ReplayGuard, Depends(get_replay_guard)]
