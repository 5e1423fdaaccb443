"""
Redaction helpers and per-operation structured logging.

Every alert operation (rate-limit check, validation, dispatch, channel
attempt, location sampling) is wrapped by ``log_operation``, which emits
exactly one structured record carrying:

    request_id · operation · outcome · duration_ms · error_kind (failures)

plus whatever extra fields the caller attaches. Those fields pass through
``redact_fields`` while the record is being built, so recipient
addresses, message text and credential material never reach a handler,
formatter or sink, even a misconfigured one.

What we log about an alert is its *shape*, never its content:

    {"recipient_count": 2, "recipient_kinds": {"email": 2},
     "message_length": 412, "include_location": False}
"""

from __future__ import annotations

import logging
import time
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, Iterable, Mapping, Optional

REDACTED = "[REDACTED]"

# Keys whose values are never allowed into a log record or error report
SENSITIVE_KEYS = frozenset({
    "recipients",
    "recipient",
    "to",
    "address",
    "addresses",
    "email",
    "phone",
    "message",
    "text",
    "body",
    "html",
    "sender_email",
    "senderemail",
    "from",
    "password",
    "app_password",
    "apppassword",
    "api_key",
    "apikey",
    "token",
    "tokens",
    "auth_token",
    "authorization",
    "secret",
    "credentials",
})


# Count maps keyed by recipient kind ("email", "phone", ...); values are ints
COUNT_ONLY_KEYS = frozenset({"recipient_kinds"})


def _is_sensitive(key: str) -> bool:
    return key.lower().replace("-", "_") in SENSITIVE_KEYS


def _counts_only(value: Any) -> Dict[str, int]:
    return {
        str(k): v for k, v in value.items()
        if isinstance(v, int) and not isinstance(v, bool)
    }


def redact_fields(fields: Mapping[str, Any]) -> Dict[str, Any]:
    """Return a copy of *fields* with sensitive values replaced, recursively."""
    clean: Dict[str, Any] = {}
    for key, value in fields.items():
        if _is_sensitive(str(key)):
            clean[key] = REDACTED
        elif key in COUNT_ONLY_KEYS and isinstance(value, Mapping):
            clean[key] = _counts_only(value)
        elif isinstance(value, Mapping):
            clean[key] = redact_fields(value)
        elif isinstance(value, (list, tuple)):
            clean[key] = [
                redact_fields(v) if isinstance(v, Mapping) else v for v in value
            ]
        else:
            clean[key] = value
    return clean


def alert_shape(
    recipients: Iterable[Any],
    message: Optional[str],
    *,
    include_location: bool = False,
) -> Dict[str, Any]:
    """
    Describe an alert by counts only.

    *recipients* may be Recipient objects (counted by kind) or raw strings.
    """
    kinds: Dict[str, int] = {}
    count = 0
    for r in recipients:
        count += 1
        kind = getattr(getattr(r, "kind", None), "value", None) or "unclassified"
        kinds[kind] = kinds.get(kind, 0) + 1
    return {
        "recipient_count": count,
        "recipient_kinds": kinds,
        "message_length": len(message) if isinstance(message, str) else 0,
        "include_location": include_location,
    }


class OperationRecord:
    """Mutable outcome holder yielded by ``log_operation``."""

    __slots__ = ("outcome", "error_kind", "fields")

    def __init__(self) -> None:
        self.outcome = "success"
        self.error_kind: Optional[str] = None
        self.fields: Dict[str, Any] = {}

    def fail(self, error_kind: str, outcome: str = "failure") -> None:
        self.outcome = outcome
        self.error_kind = error_kind

    def add(self, **fields: Any) -> None:
        self.fields.update(fields)


@asynccontextmanager
async def log_operation(
    logger: logging.Logger,
    operation: str,
    request_id: str,
    **fields: Any,
) -> AsyncIterator[OperationRecord]:
    """
    Time an operation and emit one redacted structured record for it.

    An exception escaping the block marks the record as failed with the
    exception's error_code (taxonomy errors) or class name, then propagates.
    """
    record = OperationRecord()
    record.add(**fields)
    start = time.perf_counter()
    try:
        yield record
    except BaseException as exc:
        if record.error_kind is None:
            record.fail(getattr(exc, "error_code", None) or type(exc).__name__)
        raise
    finally:
        duration_ms = (time.perf_counter() - start) * 1000
        level = logging.INFO if record.outcome == "success" else logging.WARNING
        extra: Dict[str, Any] = {
            "request_id": request_id,
            "operation": operation,
            "outcome": record.outcome,
            "duration_ms": round(duration_ms, 2),
            "fields": redact_fields(record.fields),
        }
        if record.error_kind:
            extra["error_kind"] = record.error_kind
        logger.log(
            level,
            "%s → %s (%.1fms)%s",
            operation, record.outcome, duration_ms,
            f" [{record.error_kind}]" if record.error_kind else "",
            extra=extra,
        )
