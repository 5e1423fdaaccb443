"""
sms_gateway.py — SMS delivery channel via Twilio ("sms").

Delivery mechanism:
    • Twilio Messages REST API, HTTP basic auth (account SID + auth token)
    • One POST per phone recipient, form-encoded To / From / Body
    • 2xx (201 Created) = carrier hand-off queued by the gateway

═══════════════════════════════════════════════════════════════════════════
SMS GATEWAY ARCHITECTURE
═══════════════════════════════════════════════════════════════════════════

    App  →  HTTP POST  →  Twilio API  →  Carrier  →  Handset

    POST {TWILIO_API_BASE_URL}/Accounts/{SID}/Messages.json

Message body:
    Twilio concatenates long texts into segments up to 1600 characters.
    Longer alerts are trimmed with an ellipsis; the map links at the top
    of a composed alert survive trimming because they come first.

The channel succeeds only when every phone recipient was accepted. A
partial failure raises ChannelError so the next channel gets the whole
alert, and a contact may then receive it twice.
"""

from __future__ import annotations

import logging
from typing import List, Optional, Sequence

import httpx

from backend.app.alerts.channels.base import Channel, post_to_provider
from backend.app.alerts.models import ChannelReceipt, Recipient, RecipientKind
from backend.app.core.config import Settings
from backend.app.core.errors import ChannelError

logger = logging.getLogger(__name__)

SMS_MAX_BODY = 1600  # Twilio concatenated-message limit
SMS_PREFIX = "SOS ALERT: "


def format_sms(message: str) -> str:
    """Prefix and trim the alert to the gateway's body limit."""
    body = SMS_PREFIX + message.strip()
    if len(body) > SMS_MAX_BODY:
        body = body[: SMS_MAX_BODY - 3] + "..."
    return body


class SmsChannel(Channel):
    """Twilio SMS delivery."""

    identifier = "sms"
    supported_kinds = frozenset({RecipientKind.PHONE})

    def __init__(self, settings: Settings, client: httpx.AsyncClient, *, priority: int):
        super().__init__(priority=priority, dry_run=settings.DRY_RUN)
        self._account_sid = settings.TWILIO_ACCOUNT_SID
        self._auth_token = settings.TWILIO_AUTH_TOKEN
        self._from_number = settings.TWILIO_FROM_NUMBER
        self._base_url = settings.TWILIO_API_BASE_URL.rstrip("/")
        self._client = client

    def is_configured(self) -> bool:
        return bool(
            self._account_sid
            and self._from_number
            and self._auth_token is not None
            and self._auth_token.get_secret_value()
        )

    async def _deliver(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str],
    ) -> ChannelReceipt:
        url = f"{self._base_url}/Accounts/{self._account_sid}/Messages.json"
        auth = (self._account_sid, self._auth_token.get_secret_value())
        sms_body = format_sms(message)

        sids: List[str] = []
        for recipient in recipients:
            response = await post_to_provider(
                self.identifier,
                self._client,
                url,
                data={"To": recipient.address, "From": self._from_number, "Body": sms_body},
                auth=auth,
            )
            try:
                result = response.json()
            except ValueError as exc:
                raise ChannelError(self.identifier, "provider_bad_response") from exc
            if not isinstance(result, dict):
                raise ChannelError(self.identifier, "provider_bad_response")
            if result.get("sid"):
                sids.append(result["sid"])

        logger.info(
            "[SMS] gateway queued %d message(s), %d chars each",
            len(recipients), len(sms_body),
            extra={"request_id": request_id, "channel": self.identifier},
        )
        return ChannelReceipt(
            channel=self.identifier,
            accepted=len(recipients),
            provider_reference=sids[0] if sids else None,
        )
