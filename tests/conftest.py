"""
Shared fixtures for the SOS delivery test-suite.

Settings are always built with ``_env_file=None`` and every credential set
explicitly, so a developer's .env or shell never changes test behaviour.
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional, Sequence

import httpx
import pytest

from backend.app.alerts.channels.base import Channel
from backend.app.alerts.models import ChannelReceipt, Recipient, RecipientKind
from backend.app.core.config import Settings
from backend.app.core.errors import ChannelError


# Chennai central (13.0827°N, 80.2707°E)
CHENNAI_LAT = 13.0827
CHENNAI_LON = 80.2707

BASE_TIME = datetime(2026, 10, 19, 14, 0, 0, tzinfo=timezone.utc)

_NO_CREDENTIALS: Dict[str, Any] = {
    "SENDGRID_API_KEY": None,
    "SENDER_EMAIL": None,
    "SMTP_HOST": None,
    "SMTP_USER": None,
    "SMTP_PASSWORD": None,
    "TWILIO_ACCOUNT_SID": None,
    "TWILIO_AUTH_TOKEN": None,
    "TWILIO_FROM_NUMBER": None,
    "FCM_SERVER_KEY": None,
    "SENTRY_DSN": None,
    "DRY_RUN": False,
    "GEOLOCATION_PROVIDER": "none",
    "ENVIRONMENT": "testing",
}


def make_settings(**overrides: Any) -> Settings:
    """Settings with no channel configured unless *overrides* say so."""
    values = dict(_NO_CREDENTIALS)
    values.update(overrides)
    return Settings(_env_file=None, **values)


API_CREDENTIALS = {
    "SENDGRID_API_KEY": "SG.test-key",
    "SENDER_EMAIL": "alerts@safegenie.test",
}
SMTP_CREDENTIALS = {
    "SMTP_HOST": "smtp.safegenie.test",
    "SMTP_USER": "relay@safegenie.test",
    "SMTP_PASSWORD": "app-password",
}
TWILIO_CREDENTIALS = {
    "TWILIO_ACCOUNT_SID": "AC123",
    "TWILIO_AUTH_TOKEN": "twilio-token",
    "TWILIO_FROM_NUMBER": "+15005550006",
}


class FakeClock:
    """Manually advanced clock; callable like time.monotonic or datetime.now."""

    def __init__(self, start: Any = 0.0):
        self.now = start

    def __call__(self) -> Any:
        return self.now

    def advance(self, seconds: float) -> None:
        if isinstance(self.now, datetime):
            self.now = self.now + timedelta(seconds=seconds)
        else:
            self.now += seconds


class FakeChannel(Channel):
    """
    Scripted channel double.

    behaviour: "ok" | "timeout" | "hang" | "auth" | "reject" | "boom"
    """

    supported_kinds = frozenset(RecipientKind)

    def __init__(
        self,
        identifier: str,
        behaviour: str = "ok",
        *,
        priority: int = 0,
        configured: bool = True,
        dry_run: bool = False,
    ):
        super().__init__(priority=priority, dry_run=dry_run)
        self.identifier = identifier
        self.behaviour = behaviour
        self.configured = configured
        self.calls: List[Dict[str, Any]] = []

    def is_configured(self) -> bool:
        return self.configured

    async def _deliver(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str],
    ) -> ChannelReceipt:
        self.calls.append({"recipients": list(recipients), "message": message,
                           "request_id": request_id})
        if self.behaviour == "hang":
            await asyncio.sleep(3600)
        if self.behaviour == "timeout":
            raise ChannelError(self.identifier, "timeout")
        if self.behaviour == "auth":
            raise ChannelError(self.identifier, "provider_auth", status=401, configuration=True)
        if self.behaviour == "reject":
            raise ChannelError(self.identifier, "provider_rejected", status=400)
        if self.behaviour == "boom":
            raise RuntimeError("mom@example.com could not be reached")
        return ChannelReceipt(channel=self.identifier, accepted=len(recipients))


def mock_client(handler) -> httpx.AsyncClient:
    """AsyncClient whose every request is answered by *handler*."""
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


@pytest.fixture
def settings() -> Settings:
    return make_settings()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def utc_clock() -> FakeClock:
    return FakeClock(BASE_TIME)


@pytest.fixture
def email_recipients() -> List[Recipient]:
    return [
        Recipient("mom@example.com", RecipientKind.EMAIL),
        Recipient("dad@example.com", RecipientKind.EMAIL),
    ]
