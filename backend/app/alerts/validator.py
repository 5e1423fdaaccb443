"""
validator.py — Structural and semantic checks for inbound SOS requests.

Validation is pure: no I/O, no clock, no shared state. It collects every
violation before raising, so the client learns about all bad fields in
one round trip.

Rules:
    body              must be a JSON object
    recipients        list of strings; blanks dropped, duplicates collapsed;
                      each entry an email, E.164 phone or device token;
                      MIN_RECIPIENTS ≤ distinct count ≤ MAX_RECIPIENTS
    message           non-empty string, ≤ MAX_MESSAGE_LENGTH characters
    senderEmail       optional; a valid email when present
    includeLocation   optional; a boolean when present
"""

from __future__ import annotations

from typing import Any, List, Optional

from backend.app.alerts.models import AlertRequest, Recipient, classify_address, is_email
from backend.app.core.errors import FieldViolation, ValidationError

DEFAULT_MAX_MESSAGE_LENGTH = 5000


def _validate_recipients(
    raw: Any,
    violations: List[FieldViolation],
    *,
    min_recipients: int,
    max_recipients: int,
) -> List[Recipient]:
    if raw is None:
        violations.append(FieldViolation("recipients", "is required"))
        return []
    if not isinstance(raw, list):
        violations.append(FieldViolation("recipients", "must be an array of addresses"))
        return []

    recipients: List[Recipient] = []
    seen = set()
    for idx, entry in enumerate(raw):
        if not isinstance(entry, str):
            violations.append(FieldViolation(f"recipients[{idx}]", "must be a string"))
            continue
        if not entry.strip():
            continue
        recipient = classify_address(entry)
        if recipient is None:
            violations.append(FieldViolation(
                f"recipients[{idx}]",
                "is not a valid email address, E.164 phone number or device token",
            ))
            continue
        if recipient.address not in seen:
            seen.add(recipient.address)
            recipients.append(recipient)

    already_flagged = any(v.field.startswith("recipients") for v in violations)
    if not recipients and not already_flagged:
        violations.append(FieldViolation("recipients", "must contain at least one address"))
    elif not already_flagged and len(recipients) < min_recipients:
        violations.append(FieldViolation(
            "recipients", f"must contain at least {min_recipients} distinct addresses",
        ))
    if len(recipients) > max_recipients:
        violations.append(FieldViolation(
            "recipients", f"must contain at most {max_recipients} addresses",
        ))
    return recipients


def _validate_message(raw: Any, violations: List[FieldViolation], *, max_length: int) -> Optional[str]:
    if raw is None:
        violations.append(FieldViolation("message", "is required"))
        return None
    if not isinstance(raw, str):
        violations.append(FieldViolation("message", "must be a string"))
        return None
    if not raw.strip():
        violations.append(FieldViolation("message", "must not be empty"))
        return None
    if len(raw) > max_length:
        violations.append(FieldViolation("message", f"must be at most {max_length} characters"))
        return None
    return raw


def validate_alert_request(
    payload: Any,
    *,
    request_id: str,
    min_recipients: int = 1,
    max_recipients: int = 50,
    max_message_length: int = DEFAULT_MAX_MESSAGE_LENGTH,
) -> AlertRequest:
    """
    Validate a decoded JSON body and build an AlertRequest.

    Raises
    ------
    ValidationError
        Listing every violated field.
    """
    if not isinstance(payload, dict):
        raise ValidationError([FieldViolation("body", "must be a JSON object")])

    violations: List[FieldViolation] = []

    recipients = _validate_recipients(
        payload.get("recipients"),
        violations,
        min_recipients=min_recipients,
        max_recipients=max_recipients,
    )
    message = _validate_message(payload.get("message"), violations, max_length=max_message_length)

    sender_email = payload.get("senderEmail")
    if sender_email is not None and not (isinstance(sender_email, str) and is_email(sender_email.strip())):
        violations.append(FieldViolation("senderEmail", "must be a valid email address"))

    include_location = payload.get("includeLocation", False)
    if not isinstance(include_location, bool):
        violations.append(FieldViolation("includeLocation", "must be a boolean"))

    if violations:
        raise ValidationError(violations)

    return AlertRequest(
        recipients=tuple(recipients),
        message=message,
        request_id=request_id,
        sender_email=sender_email.strip() if sender_email else None,
        include_location=include_location,
    )
