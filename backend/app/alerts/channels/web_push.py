"""
web_push.py — Push notification channel via Firebase Cloud Messaging ("push").

Delivery mechanism:
    • FCM HTTP endpoint, ``Authorization: key=<server key>``
    • One request carrying every device token in ``registration_ids``
    • Response JSON reports per-token ``success`` / ``failure`` counts

Push payload:
    {
      "registration_ids": [...],
      "priority": "high",
      "notification": {"title": "SOS Alert", "body": <first 240 chars>},
      "data": {"type": "SOS", "message": <full text>, "request_id": ...}
    }

The notification body shown on the lock screen is trimmed; the full text
travels in the data block for the client app to render. The channel
succeeds when at least one token was accepted.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from backend.app.alerts.channels.base import Channel, post_to_provider
from backend.app.alerts.models import ChannelReceipt, Recipient, RecipientKind
from backend.app.core.config import Settings
from backend.app.core.errors import ChannelError

logger = logging.getLogger(__name__)

PUSH_TITLE = "SOS Alert"
PUSH_BODY_MAX = 240


def build_push_payload(tokens: Sequence[str], message: str, request_id: str) -> dict:
    body = message if len(message) <= PUSH_BODY_MAX else message[: PUSH_BODY_MAX - 3] + "..."
    return {
        "registration_ids": list(tokens),
        "priority": "high",
        "notification": {"title": PUSH_TITLE, "body": body},
        "data": {"type": "SOS", "message": message, "request_id": request_id},
    }


class PushChannel(Channel):
    """FCM push delivery to registered device tokens."""

    identifier = "push"
    supported_kinds = frozenset({RecipientKind.DEVICE_TOKEN})

    def __init__(self, settings: Settings, client: httpx.AsyncClient, *, priority: int):
        super().__init__(priority=priority, dry_run=settings.DRY_RUN)
        self._server_key = settings.FCM_SERVER_KEY
        self._url = settings.FCM_API_URL
        self._client = client

    def is_configured(self) -> bool:
        return self._server_key is not None and bool(self._server_key.get_secret_value())

    async def _deliver(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str],
    ) -> ChannelReceipt:
        payload = build_push_payload([r.address for r in recipients], message, request_id)
        response = await post_to_provider(
            self.identifier,
            self._client,
            self._url,
            json=payload,
            headers={"Authorization": f"key={self._server_key.get_secret_value()}"},
        )

        try:
            result = response.json()
        except ValueError as exc:
            raise ChannelError(self.identifier, "provider_bad_response") from exc
        if not isinstance(result, dict):
            raise ChannelError(self.identifier, "provider_bad_response")

        try:
            accepted = int(result.get("success", 0))
        except (TypeError, ValueError) as exc:
            raise ChannelError(self.identifier, "provider_bad_response") from exc
        if accepted < 1:
            raise ChannelError(self.identifier, "provider_rejected", "no device token accepted")

        logger.info(
            "[PUSH] FCM accepted %d/%d token(s)",
            accepted, len(recipients),
            extra={"request_id": request_id, "channel": self.identifier},
        )
        return ChannelReceipt(
            channel=self.identifier,
            accepted=accepted,
            provider_reference=str(result.get("multicast_id")) if result.get("multicast_id") else None,
        )
