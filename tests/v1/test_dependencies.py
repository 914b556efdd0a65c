# tests/v1/test_dependencies.py
"""Tests for API dependencies module."""

import pytest
from fastapi import HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials

from redeem_guard.api.v1.dependencies import (
    get_attempt_context,
    get_client_ip,
    get_current_merchant_id,
    require_admin,
)
from redeem_guard.core.security import ROLE_ADMIN, create_access_token


def _request(headers: dict[str, str] | None = None, client: tuple[str, int] | None = None) -> Request:
    scope = {
        "type": "http",
        "method": "POST",
        "path": "/",
        "headers": [
            (key.lower().encode("latin-1"), value.encode("latin-1"))
            for key, value in (headers or {}).items()
        ],
        "client": client,
    }
    return Request(scope)


def _bearer(token: str) -> HTTPAuthorizationCredentials:
    return HTTPAuthorizationCredentials(scheme="Bearer", credentials=token)


class TestClientIp:
    def test_socket_peer_is_used(self):
        assert get_client_ip(_request(client=("198.51.100.5", 5000))) == "198.51.100.5"

    def test_proxy_headers_are_not_read_directly(self):
        request = _request(
            {"X-Forwarded-For": "203.0.113.7", "X-Real-IP": "10.0.0.2"},
            client=("198.51.100.5", 5000),
        )
        assert get_client_ip(request) == "198.51.100.5"

    def test_unknown_without_peer(self):
        assert get_client_ip(_request()) == "unknown"


class TestAttemptContext:
    def test_explicit_fingerprint(self):
        context = get_attempt_context(
            _request(
                {"User-Agent": "scanner/2", "X-Device-Fingerprint": "fp-1"},
                client=("198.51.100.5", 1234),
            )
        )
        assert context.ip_address == "198.51.100.5"
        assert context.user_agent == "scanner/2"
        assert context.device_fingerprint == "fp-1"

    def test_fingerprint_falls_back_to_user_agent(self):
        context = get_attempt_context(_request({"User-Agent": "scanner/2"}))
        assert context.device_fingerprint == "scanner/2"

        context = get_attempt_context(_request())
        assert context.user_agent == ""
        assert context.device_fingerprint == "unknown"


class TestAuth:
    def test_merchant_token(self):
        assert get_current_merchant_id(_bearer(create_access_token("m-9"))) == "m-9"

    def test_admin_token_is_accepted_for_merchant_routes(self):
        token = create_access_token("admin-1", role=ROLE_ADMIN)
        assert get_current_merchant_id(_bearer(token)) == "admin-1"
        assert require_admin(_bearer(token))["sub"] == "admin-1"

    def test_merchant_is_not_admin(self):
        with pytest.raises(HTTPException) as exc_info:
            require_admin(_bearer(create_access_token("m-9")))
        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN

    def test_unknown_role_is_forbidden(self):
        with pytest.raises(HTTPException) as exc_info:
            get_current_merchant_id(_bearer(create_access_token("x", role="shopper")))
        assert exc_info.value.status_code == status.HTTP_403_FORBIDDEN

    @pytest.mark.parametrize("token", ["garbage", ""])
    def test_invalid_token(self, token):
        with pytest.raises(HTTPException) as exc_info:
            get_current_merchant_id(_bearer(token))
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
        assert exc_info.value.headers == {"WWW-Authenticate": "Bearer"}

    def test_expired_token(self):
        token = create_access_token("m-9", expires_minutes=-1)
        with pytest.raises(HTTPException) as exc_info:
            get_current_merchant_id(_bearer(token))
        assert exc_info.value.status_code == status.HTTP_401_UNAUTHORIZED
