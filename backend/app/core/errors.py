"""
Centralised error handling — exception hierarchy + FastAPI handlers.

Provides:
    • Domain-specific exception classes (the SOS error taxonomy)
    • Flat JSON error bodies: {"error": str, "code": str, "requestId": str, ...}
    • X-Request-Id on every error response
    • Redacted logging of every terminal error
    • Error-tracking report for unexpected failures, scheduled after the
      response is sent

Taxonomy:
    ValidationError        400  malformed / incomplete alert request
    RateLimitExceeded      429  client exceeded its quota
    ConfigurationError     500  no usable delivery channel
    ChannelError           —    one channel failed; absorbed by the dispatcher
    DeliveryFailedError    500  every configured channel failed
    UnknownInternalError   500  anything else

Usage:
    from backend.app.core.errors import ValidationError, register_error_handlers

    raise ValidationError([FieldViolation("message", "is required")])
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.background import BackgroundTask

from backend.app.core.error_tracking import report_unexpected_error
from backend.app.core.redaction import redact_fields

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
# Exception Hierarchy
# ═══════════════════════════════════════════════════════════════════════════

class SosAPIError(Exception):
    """Base exception for all application errors."""

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        *,
        status_code: int = 500,
        error_code: str = "INTERNAL_ERROR",
        details: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.error_code = error_code
        self.details = details or {}


@dataclass(frozen=True)
class FieldViolation:
    """One violated field of an alert request."""
    field: str
    reason: str

    def to_dict(self) -> Dict[str, str]:
        return {"field": self.field, "reason": self.reason}


class ValidationError(SosAPIError):
    """Alert request failed validation (400). Carries every violation."""

    def __init__(self, violations: Sequence[FieldViolation]):
        self.violations = list(violations)
        summary = "; ".join(f"{v.field} {v.reason}" for v in self.violations)
        super().__init__(
            message=f"Invalid alert request: {summary}" if summary else "Invalid alert request",
            status_code=400,
            error_code="VALIDATION_ERROR",
            details={"fields": [v.to_dict() for v in self.violations]},
        )


class RateLimitExceeded(SosAPIError):
    """Rate limit exceeded (429)."""

    def __init__(self, retry_after: float = 60.0):
        self.retry_after = max(1, int(round(retry_after)))
        super().__init__(
            message="Too many SOS requests, retry after the rate-limit window",
            status_code=429,
            error_code="RATE_LIMIT_EXCEEDED",
            details={"retryAfterSeconds": self.retry_after},
        )


class ConfigurationError(SosAPIError):
    """No delivery channel can be used without operator action (500)."""

    def __init__(self, message: str = "No notification channel is configured"):
        super().__init__(
            message=message,
            status_code=500,
            error_code="CONFIGURATION_ERROR",
        )


class ChannelError(SosAPIError):
    """
    One channel's send failed (network error, timeout, provider rejection).

    Never reaches the client directly: the dispatcher records it and
    falls through to the next channel.
    """

    def __init__(
        self,
        channel: str,
        error_kind: str,
        message: str = "",
        *,
        status: Optional[int] = None,
        configuration: bool = False,
    ):
        self.channel = channel
        self.error_kind = error_kind
        self.provider_status = status
        self.configuration = configuration
        super().__init__(
            message=f"Channel '{channel}' failed: {message or error_kind}",
            status_code=502,
            error_code="CHANNEL_ERROR",
            details={"channel": channel, "error_kind": error_kind},
        )


class DeliveryFailedError(SosAPIError):
    """Every configured channel failed (500)."""

    def __init__(self, attempts: List[Dict[str, Any]]):
        super().__init__(
            message="Failed to send SOS alert through any channel",
            status_code=500,
            error_code="DELIVERY_FAILED",
            details={"attempts": attempts},
        )


class UnknownInternalError(SosAPIError):
    """Unanticipated failure surfaced as a generic 500."""

    def __init__(self):
        super().__init__(
            message="Internal server error",
            status_code=500,
            error_code="INTERNAL_ERROR",
        )


# ═══════════════════════════════════════════════════════════════════════════
# Error Response Builder
# ═══════════════════════════════════════════════════════════════════════════

def _request_id(request: Request) -> str:
    return getattr(request.state, "request_id", None) or "unknown"


def _build_error_response(
    request: Request,
    exc: SosAPIError,
    *,
    background: Optional[BackgroundTask] = None,
) -> JSONResponse:
    """Build a flat JSON error response carrying the correlation id."""
    request_id = _request_id(request)
    body: Dict[str, Any] = {
        "error": exc.message,
        "code": exc.error_code,
        "requestId": request_id,
    }
    if isinstance(exc, ValidationError):
        body["fields"] = [v.to_dict() for v in exc.violations]
    elif isinstance(exc, DeliveryFailedError):
        body["attempts"] = exc.details.get("attempts", [])

    headers = {"X-Request-Id": request_id}
    if isinstance(exc, RateLimitExceeded):
        headers["Retry-After"] = str(exc.retry_after)

    return JSONResponse(
        status_code=exc.status_code,
        content=body,
        headers=headers,
        background=background,
    )


# ═══════════════════════════════════════════════════════════════════════════
# FastAPI Exception Handlers
# ═══════════════════════════════════════════════════════════════════════════

def register_error_handlers(app: FastAPI) -> None:
    """Register all exception handlers on the FastAPI app."""

    @app.exception_handler(SosAPIError)
    async def handle_sos_error(request: Request, exc: SosAPIError):
        level = logging.WARNING if exc.status_code < 500 else logging.ERROR
        logger.log(
            level,
            "API Error [%s] status=%d",
            exc.error_code, exc.status_code,
            extra={
                "request_id": _request_id(request),
                "error_kind": exc.error_code,
                "status_code": exc.status_code,
                "fields": redact_fields(getattr(request.state, "alert_shape", {}) or {}),
            },
        )
        return _build_error_response(request, exc)

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        violations = [
            FieldViolation(
                ".".join(str(p) for p in err.get("loc", ()) if p != "body") or "body",
                err.get("msg", "is invalid"),
            )
            for err in exc.errors()
        ]
        return await handle_sos_error(request, ValidationError(violations))

    @app.exception_handler(Exception)
    async def handle_unhandled(request: Request, exc: Exception):
        request_id = _request_id(request)
        shape = getattr(request.state, "alert_shape", None) or {}
        # Exception text may quote request content; only its type is logged.
        logger.critical(
            "Unhandled exception: %s",
            type(exc).__name__,
            extra={
                "request_id": request_id,
                "error_kind": type(exc).__name__,
                "status_code": 500,
                "fields": redact_fields(shape),
            },
        )
        task = BackgroundTask(report_unexpected_error, exc, request_id=request_id, shape=shape)
        return _build_error_response(request, UnknownInternalError(), background=task)
