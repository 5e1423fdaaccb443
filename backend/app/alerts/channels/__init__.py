"""
channels — Per-channel delivery backends.

Each channel class exposes:
    is_configured() → bool
    send(recipients, message, *, request_id, sender_email) → ChannelReceipt

Channels raise ChannelError on failure. Timeouts and fallback live in the
dispatcher.
"""

from __future__ import annotations

from typing import List, Optional

import httpx

from backend.app.alerts.channels.base import Channel
from backend.app.alerts.channels.email_api import EmailApiChannel
from backend.app.alerts.channels.sms_gateway import SmsChannel
from backend.app.alerts.channels.smtp_email import SmtpChannel
from backend.app.alerts.channels.web_push import PushChannel
from backend.app.core.config import Settings


def build_channels(
    settings: Settings,
    client: httpx.AsyncClient,
    order: Optional[List[str]] = None,
) -> List[Channel]:
    """Instantiate every channel named in CHANNEL_ORDER, priority = position."""
    factories = {
        "api": lambda p: EmailApiChannel(settings, client, priority=p),
        "smtp": lambda p: SmtpChannel(settings, priority=p),
        "sms": lambda p: SmsChannel(settings, client, priority=p),
        "push": lambda p: PushChannel(settings, client, priority=p),
    }
    return [factories[name](idx) for idx, name in enumerate(order or settings.CHANNEL_ORDER)]


__all__ = [
    "Channel",
    "EmailApiChannel",
    "PushChannel",
    "SmsChannel",
    "SmtpChannel",
    "build_channels",
]
