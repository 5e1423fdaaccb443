"""
FastAPI route: SOS alert delivery.

    POST /api/send-sos-email

Request flow:

    client ip ──▶ rate limiter ──▶ JSON body ──▶ validator ──▶ AlertRequest
                      │ 429                         │ 400
                      ▼                             ▼
                RateLimitExceeded            ValidationError

    AlertRequest ──(includeLocation)──▶ + location timeline block
                 ──▶ dispatcher ──▶ 200 {"success", "via", "requestId"}
                                 └─▶ 500 DELIVERY_FAILED / CONFIGURATION_ERROR

Rate limiting, validation and the configured-channel check all finish before
any provider is contacted. The location block comes from the tracker's
retained snapshot; the request path never acquires a fix.
"""

from __future__ import annotations

import dataclasses
import logging

from fastapi import APIRouter, Request

from backend.app.alerts.composer import compose_alert_message
from backend.app.alerts.models import AlertRequest
from backend.app.alerts.validator import validate_alert_request
from backend.app.api.schemas import ErrorResponse, SosRequestExample, SosSuccessResponse
from backend.app.core.errors import (
    ConfigurationError,
    DeliveryFailedError,
    FieldViolation,
    RateLimitExceeded,
    ValidationError,
)
from backend.app.core.redaction import alert_shape, log_operation

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["sos"])


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _with_location(request: Request, alert: AlertRequest) -> AlertRequest:
    """Append the tracked location block; reads snapshots only, no provider call."""
    tracker = getattr(request.app.state, "tracker", None)
    if tracker is None:
        logger.warning(
            "includeLocation requested but location tracking is disabled",
            extra={"request_id": alert.request_id},
        )
        return alert

    current = tracker.current_sample()
    if current is None:
        logger.warning(
            "includeLocation requested but no location fix is available",
            extra={"request_id": alert.request_id},
        )
        return alert

    settings = request.app.state.settings
    block = compose_alert_message(
        current,
        tracker.current_timeline(),
        window_minutes=int(settings.LOCATION_RETENTION_SECONDS // 60),
    )
    return dataclasses.replace(alert, message=f"{alert.message}\n\n{block}")


@router.post(
    "/send-sos-email",
    response_model=SosSuccessResponse,
    response_model_by_alias=True,
    summary="Send an SOS alert to emergency contacts",
    description=(
        "Delivers the alert through the first configured channel that "
        "accepts it, trying channels in priority order."
    ),
    responses={
        400: {"model": ErrorResponse},
        429: {"model": ErrorResponse},
        500: {"model": ErrorResponse},
    },
    openapi_extra={"requestBody": {"content": {"application/json": {
        "schema": SosRequestExample.model_json_schema(),
    }}}},
)
async def send_sos(request: Request):
    state = request.app.state
    settings = state.settings
    request_id = request.state.request_id

    async with log_operation(logger, "rate_limit", request_id) as op:
        decision = await state.rate_limiter.admit(_client_key(request))
        op.add(remaining=decision.remaining)
        if not decision.allowed:
            raise RateLimitExceeded(decision.retry_after_seconds)

    async with log_operation(logger, "validation", request_id) as op:
        try:
            payload = await request.json()
        except ValueError:
            raise ValidationError([FieldViolation("body", "must be valid JSON")]) from None

        if isinstance(payload, dict):
            request.state.alert_shape = alert_shape(
                payload.get("recipients") if isinstance(payload.get("recipients"), list) else [],
                payload.get("message"),
            )

        alert = validate_alert_request(
            payload,
            request_id=request_id,
            min_recipients=settings.MIN_RECIPIENTS,
            max_recipients=settings.MAX_RECIPIENTS,
            max_message_length=settings.MAX_MESSAGE_LENGTH,
        )
        request.state.alert_shape = alert_shape(
            alert.recipients, alert.message, include_location=alert.include_location,
        )
        op.add(**request.state.alert_shape)

    if not state.dispatcher.channels:
        raise ConfigurationError()

    if alert.include_location:
        alert = _with_location(request, alert)

    outcome = await state.dispatcher.dispatch(alert)
    if not outcome.success:
        raise DeliveryFailedError([
            {"channel": a.channel, "outcome": a.outcome.value, "error_kind": a.error_kind}
            for a in outcome.attempts
        ])

    return {"success": True, "via": outcome.channel, "requestId": request_id}
