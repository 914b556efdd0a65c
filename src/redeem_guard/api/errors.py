"""Structured redemption failures and their JSON rendering."""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request, status
from fastapi.responses import JSONResponse


class RedemptionError(Exception):
    """A redemption request rejected with a machine-readable code."""

    def __init__(
        self,
        status_code: int,
        error: str,
        code: str,
        *,
        retry_after: int | None = None,
        risk_level: str | None = None,
    ) -> None:
        super().__init__(error)
        self.status_code = status_code
        self.error = error
        self.code = code
        self.retry_after = retry_after
        self.risk_level = risk_level

    def to_body(self) -> dict[str, Any]:
        body: dict[str, Any] = {"success": False, "error": self.error, "code": self.code}
        if self.retry_after is not None:
            body["retryAfter"] = self.retry_after
        if self.risk_level is not None:
            body["riskLevel"] = self.risk_level
        return body


class RedemptionBlockedError(RedemptionError):
    """Raised when a fraud control blocks the request."""

    def __init__(
        self,
        error: str,
        code: str,
        *,
        status_code: int = status.HTTP_429_TOO_MANY_REQUESTS,
        retry_after: int | None = None,
        risk_level: str | None = None,
    ) -> None:
        super().__init__(
            status_code, error, code, retry_after=retry_after, risk_level=risk_level
        )


async def redemption_error_handler(request: Request, exc: RedemptionError) -> JSONResponse:
    """Render a RedemptionError as ``{"success": false, "error", "code"}``."""
    headers = {"Retry-After": str(exc.retry_after)} if exc.retry_after is not None else None
    return JSONResponse(status_code=exc.status_code, content=exc.to_body(), headers=headers)


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(RedemptionError, redemption_error_handler)
