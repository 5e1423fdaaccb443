"""
email_api.py — Transactional-email HTTP API channel ("api").

Delivery mechanism:
    • SendGrid v3 mail/send endpoint, bearer API key
    • One request per alert, all email recipients in one personalization
    • 2xx (normally 202 Accepted) = provider accepted the message

Sender address precedence follows the server config first, then the
request's senderEmail. Without either the attempt is a configuration
error and the dispatcher moves on.
"""

from __future__ import annotations

import logging
from typing import Optional, Sequence

import httpx

from backend.app.alerts.channels.base import SOS_SUBJECT, Channel, post_to_provider, render_html_body
from backend.app.alerts.models import ChannelReceipt, Recipient, RecipientKind
from backend.app.core.config import Settings
from backend.app.core.errors import ChannelError

logger = logging.getLogger(__name__)


class EmailApiChannel(Channel):
    """SendGrid-compatible HTTP API delivery."""

    identifier = "api"
    supported_kinds = frozenset({RecipientKind.EMAIL})

    def __init__(self, settings: Settings, client: httpx.AsyncClient, *, priority: int):
        super().__init__(priority=priority, dry_run=settings.DRY_RUN)
        self._api_key = settings.SENDGRID_API_KEY
        self._url = settings.SENDGRID_API_URL
        self._default_sender = settings.SENDER_EMAIL
        self._client = client

    def is_configured(self) -> bool:
        return self._api_key is not None and bool(self._api_key.get_secret_value())

    async def _deliver(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str],
    ) -> ChannelReceipt:
        sender = self._default_sender or sender_email
        if not sender:
            raise ChannelError(self.identifier, "missing_sender", configuration=True)

        body = {
            "personalizations": [{"to": [{"email": r.address} for r in recipients]}],
            "from": {"email": sender},
            "subject": SOS_SUBJECT,
            "content": [
                {"type": "text/plain", "value": message},
                {"type": "text/html", "value": render_html_body(message)},
            ],
            "custom_args": {"request_id": request_id},
        }
        response = await post_to_provider(
            self.identifier,
            self._client,
            self._url,
            json=body,
            headers={"Authorization": f"Bearer {self._api_key.get_secret_value()}"},
        )
        logger.info(
            "[API] provider accepted alert for %d recipient(s) (HTTP %d)",
            len(recipients), response.status_code,
            extra={"request_id": request_id, "channel": self.identifier},
        )
        return ChannelReceipt(
            channel=self.identifier,
            accepted=len(recipients),
            provider_reference=response.headers.get("x-message-id"),
        )
