"""
Error tracking — Sentry reporting of unexpected failures.

Only failures outside the SOS error taxonomy are reported. A report
carries the request id as a tag and the alert's redacted shape as
context; exception values, request bodies, breadcrumbs' data and local
variables are stripped before an event leaves the process.

``report_unexpected_error`` is scheduled as a response background task,
so it runs after the client already has its 500.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, Optional

import sentry_sdk

from backend.app.core.config import Settings
from backend.app.core.redaction import REDACTED, redact_fields

logger = logging.getLogger(__name__)


def scrub_event(event: Dict[str, Any], hint: Dict[str, Any]) -> Optional[Dict[str, Any]]:
    """Sentry ``before_send`` hook: keep exception types, drop content."""
    for exc in (event.get("exception") or {}).get("values", []) or []:
        exc["value"] = REDACTED
        for frame in (exc.get("stacktrace") or {}).get("frames", []) or []:
            frame.pop("vars", None)
    if "request" in event:
        request = event["request"]
        request.pop("data", None)
        request.pop("cookies", None)
        request.pop("query_string", None)
        if "headers" in request:
            request["headers"] = redact_fields(request["headers"])
    if "extra" in event:
        event["extra"] = redact_fields(event["extra"])
    breadcrumbs = event.get("breadcrumbs")
    if isinstance(breadcrumbs, dict):
        for crumb in breadcrumbs.get("values", []) or []:
            crumb.pop("data", None)
            crumb.pop("message", None)
    event.pop("logentry", None)
    return event


def init_error_tracking(settings: Settings) -> bool:
    """Initialise the Sentry SDK when a DSN is configured."""
    if settings.SENTRY_DSN is None:
        logger.info("Error tracking disabled (no SENTRY_DSN)")
        return False
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN.get_secret_value(),
        environment=settings.ENVIRONMENT,
        release=f"{settings.APP_NAME}@{settings.APP_VERSION}",
        send_default_pii=False,
        include_local_variables=False,
        max_breadcrumbs=0,
        traces_sample_rate=settings.SENTRY_TRACES_SAMPLE_RATE,
        before_send=scrub_event,
    )
    logger.info("Error tracking enabled [%s]", settings.ENVIRONMENT)
    return True


def report_unexpected_error(
    exc: BaseException,
    *,
    request_id: str,
    shape: Optional[Mapping[str, Any]] = None,
) -> None:
    """Best-effort report of an unexpected failure; never raises."""
    try:
        with sentry_sdk.new_scope() as scope:
            scope.set_tag("request_id", request_id)
            scope.set_context("alert", redact_fields(shape or {}))
            sentry_sdk.capture_exception(exc)
    except Exception:  # noqa: BLE001
        logger.warning(
            "Error report could not be submitted",
            extra={"request_id": request_id, "error_kind": "error_tracking"},
        )
