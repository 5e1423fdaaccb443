"""
base.py — Contract shared by every delivery channel.

A channel is stateless with respect to requests: credentials, endpoints
and the shared HTTP client are injected once at construction and never
change. ``send`` either returns a ChannelReceipt (the provider accepted
the message) or raises ChannelError. Timeouts and retry-by-fallback are
the dispatcher's job, not the channel's.
"""

from __future__ import annotations

import html
import logging
from abc import ABC, abstractmethod
from typing import FrozenSet, Optional, Sequence

import httpx

from backend.app.alerts.models import ChannelReceipt, Recipient, RecipientKind
from backend.app.core.errors import ChannelError

logger = logging.getLogger(__name__)

SOS_SUBJECT = "🚨 SOS Alert - Emergency Location Update"


def render_html_body(message: str) -> str:
    """Render the alert text as escaped, line-preserving HTML."""
    escaped = html.escape(message).replace("\n", "<br>")
    return (
        '<div style="font-family:Arial,sans-serif;max-width:600px;margin:auto;">'
        '<div style="background:#B71C1C;color:white;padding:16px;border-radius:8px 8px 0 0;">'
        f'<h2 style="margin:0;">{html.escape(SOS_SUBJECT)}</h2></div>'
        '<div style="border:1px solid #ddd;border-top:none;padding:16px;border-radius:0 0 8px 8px;">'
        f"<p>{escaped}</p></div></div>"
    )


class Channel(ABC):
    """Abstract base for delivery channels."""

    identifier: str
    supported_kinds: FrozenSet[RecipientKind]

    def __init__(self, *, priority: int, dry_run: bool = False):
        self.priority = priority
        self.dry_run = dry_run

    @abstractmethod
    def is_configured(self) -> bool:
        """True when every credential this channel needs is present."""

    @abstractmethod
    async def _deliver(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str],
    ) -> ChannelReceipt:
        """Provider-specific delivery. Raise ChannelError on failure."""

    def applicable(self, recipients: Sequence[Recipient]) -> Sequence[Recipient]:
        return [r for r in recipients if r.kind in self.supported_kinds]

    async def send(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str] = None,
    ) -> ChannelReceipt:
        """
        Deliver *message* to the recipients this channel can reach.

        In dry-run mode the provider is never contacted and a simulated
        receipt is returned.
        """
        targets = self.applicable(recipients)
        if not targets:
            raise ChannelError(self.identifier, "no_applicable_recipients")

        if self.dry_run:
            logger.info(
                "[%s] dry run: simulated delivery to %d recipient(s)",
                self.identifier.upper(), len(targets),
                extra={"request_id": request_id, "channel": self.identifier},
            )
            return ChannelReceipt(
                channel=self.identifier,
                accepted=len(targets),
                provider_reference=f"dry-{request_id}",
                simulated=True,
            )

        return await self._deliver(
            targets, message, request_id=request_id, sender_email=sender_email,
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(identifier={self.identifier!r}, priority={self.priority})"


def raise_for_provider_status(channel: str, response: httpx.Response) -> None:
    """Translate a non-2xx provider response into ChannelError."""
    if response.is_success:
        return
    status = response.status_code
    if status in (401, 403):
        raise ChannelError(channel, "provider_auth", status=status, configuration=True)
    if status == 429:
        raise ChannelError(channel, "provider_throttled", status=status)
    if 400 <= status < 500:
        raise ChannelError(channel, "provider_rejected", status=status)
    raise ChannelError(channel, "provider_unavailable", status=status)


async def post_to_provider(
    channel: str,
    client: httpx.AsyncClient,
    url: str,
    **kwargs,
) -> httpx.Response:
    """POST through the shared client, mapping transport failures to ChannelError."""
    try:
        response = await client.post(url, **kwargs)
    except httpx.TimeoutException as exc:
        raise ChannelError(channel, "timeout") from exc
    except httpx.HTTPError as exc:
        raise ChannelError(channel, "network_error", type(exc).__name__) from exc
    raise_for_provider_status(channel, response)
    return response
