"""
models.py — Shared data structures for SOS alert delivery.

Defines:
    • RecipientKind    — channel family inferred from an address
    • Recipient        — one contact address + its kind
    • AlertRequest     — a validated, immutable SOS request
    • AttemptOutcome   — result class of one channel attempt
    • DispatchAttempt  — single channel attempt record
    • DispatchOutcome  — final result of one dispatch
    • ChannelReceipt   — what a channel returns when a provider accepts
    • LocationSample   — one geographic fix

═══════════════════════════════════════════════════════════════════════════
RECIPIENT CLASSIFICATION
═══════════════════════════════════════════════════════════════════════════

    Address form                         Kind            Channels
    ─────────────────────────────────    ────────────    ──────────────
    local@domain.tld                     EMAIL           api, smtp
    +<8–15 digits> (E.164)               PHONE           sms
    ≥32 chars of [A-Za-z0-9_:-]          DEVICE_TOKEN    push

Phone numbers may be written with spaces, dashes, dots or parentheses;
those separators are stripped before matching and the normalised E.164
form is what channels receive.

All request-scoped records are frozen: an AlertRequest is built once at
ingress and every DispatchAttempt is appended, never edited.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional, Tuple


# ═══════════════════════════════════════════════════════════════════════════
# Enums
# ═══════════════════════════════════════════════════════════════════════════

class RecipientKind(str, Enum):
    """Channel family a recipient address belongs to."""
    EMAIL        = "email"
    PHONE        = "phone"
    DEVICE_TOKEN = "device_token"


class AttemptOutcome(str, Enum):
    """Outcome of one channel attempt."""
    SUCCESS             = "success"
    TRANSIENT_FAILURE   = "transient_failure"    # network, timeout, non-2xx
    CONFIGURATION_ERROR = "configuration_error"  # provider rejected credentials


# ═══════════════════════════════════════════════════════════════════════════
# Address Classification
# ═══════════════════════════════════════════════════════════════════════════

_EMAIL_RE = re.compile(r"^[A-Za-z0-9.!#$%&'*+/=?^_`{|}~-]+@[A-Za-z0-9-]+(\.[A-Za-z0-9-]+)*\.[A-Za-z]{2,}$")
_PHONE_RE = re.compile(r"^\+[1-9]\d{7,14}$")
_PHONE_SEPARATORS_RE = re.compile(r"[\s().-]")
_TOKEN_RE = re.compile(r"^[A-Za-z0-9_:-]{32,4096}$")


def is_email(address: str) -> bool:
    return len(address) <= 254 and bool(_EMAIL_RE.match(address))


def classify_address(raw: str) -> Optional["Recipient"]:
    """
    Infer the channel family of *raw*.

    Returns None when the address is not well-formed for any family.
    """
    address = raw.strip()
    if not address:
        return None
    if is_email(address):
        return Recipient(address=address, kind=RecipientKind.EMAIL)
    phone = _PHONE_SEPARATORS_RE.sub("", address)
    if _PHONE_RE.match(phone):
        return Recipient(address=phone, kind=RecipientKind.PHONE)
    if _TOKEN_RE.match(address):
        return Recipient(address=address, kind=RecipientKind.DEVICE_TOKEN)
    return None


# ═══════════════════════════════════════════════════════════════════════════
# Data Structures
# ═══════════════════════════════════════════════════════════════════════════

def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class Recipient:
    """
    A contact address for alert delivery.

    Attributes
    ----------
    address : str
        Normalised address (email, E.164 phone, or device token).
    kind : RecipientKind
        Channel family inferred from the address.
    """
    address: str
    kind: RecipientKind


@dataclass(frozen=True)
class AlertRequest:
    """
    A validated SOS alert. Created at ingress, discarded after dispatch.

    ``recipients`` is de-duplicated and keeps the caller's order.
    """
    recipients: Tuple[Recipient, ...]
    message: str
    request_id: str
    sender_email: Optional[str] = None
    include_location: bool = False

    def recipients_of(self, *kinds: RecipientKind) -> Tuple[Recipient, ...]:
        return tuple(r for r in self.recipients if r.kind in kinds)


@dataclass(frozen=True)
class ChannelReceipt:
    """Provider acceptance returned by a channel's send()."""
    channel: str
    accepted: int
    provider_reference: Optional[str] = None
    simulated: bool = False


@dataclass(frozen=True)
class DispatchAttempt:
    """Record of a single attempt through one channel."""
    channel: str
    outcome: AttemptOutcome
    latency_ms: float
    attempted_at: datetime = field(default_factory=_now)
    error_kind: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome == AttemptOutcome.SUCCESS

    def to_dict(self) -> Dict[str, Any]:
        return {
            "channel": self.channel,
            "outcome": self.outcome.value,
            "latency_ms": round(self.latency_ms, 2),
            "attempted_at": self.attempted_at.isoformat(),
            "error_kind": self.error_kind,
        }


@dataclass(frozen=True)
class DispatchOutcome:
    """Final result of one dispatch across the ordered channel list."""
    success: bool
    channel: Optional[str]
    attempts: Tuple[DispatchAttempt, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "channel": self.channel,
            "attempts": [a.to_dict() for a in self.attempts],
        }


@dataclass(frozen=True)
class LocationSample:
    """One geographic fix. Timestamps are timezone-aware UTC."""
    timestamp: datetime
    latitude: float
    longitude: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.latitude <= 90.0:
            raise ValueError(f"latitude out of range: {self.latitude}")
        if not -180.0 <= self.longitude <= 180.0:
            raise ValueError(f"longitude out of range: {self.longitude}")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp.isoformat(),
            "latitude": self.latitude,
            "longitude": self.longitude,
        }
