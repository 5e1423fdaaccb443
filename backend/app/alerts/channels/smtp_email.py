"""
smtp_email.py — SMTP relay channel ("smtp").

Delivery mechanism:
    • STARTTLS SMTP relay (Brevo smtp-relay.brevo.com:587, Gmail with an
      app password, or any authenticated relay)
    • multipart/alternative message: plain text + escaped HTML
    • One SMTP transaction for all email recipients

smtplib is blocking, so the transaction runs in a worker thread via
``asyncio.to_thread``. The dispatcher's timeout bounds how long the
request waits; the socket timeout bounds how long the thread can linger.

Errors from smtplib often echo recipient addresses, so only the
exception class is carried into the ChannelError.
"""

from __future__ import annotations

import asyncio
import logging
import smtplib
from email.message import EmailMessage
from typing import Optional, Sequence

from backend.app.alerts.channels.base import SOS_SUBJECT, Channel, render_html_body
from backend.app.alerts.models import ChannelReceipt, Recipient, RecipientKind
from backend.app.core.config import Settings
from backend.app.core.errors import ChannelError

logger = logging.getLogger(__name__)


def _build_message(sender: str, recipients: Sequence[Recipient], message: str, request_id: str) -> EmailMessage:
    msg = EmailMessage()
    msg["Subject"] = SOS_SUBJECT
    msg["From"] = sender
    msg["To"] = ", ".join(r.address for r in recipients)
    msg["X-Request-Id"] = request_id
    msg.set_content(message)
    msg.add_alternative(render_html_body(message), subtype="html")
    return msg


class SmtpChannel(Channel):
    """Authenticated SMTP relay delivery."""

    identifier = "smtp"
    supported_kinds = frozenset({RecipientKind.EMAIL})

    def __init__(self, settings: Settings, *, priority: int):
        super().__init__(priority=priority, dry_run=settings.DRY_RUN)
        self._host = settings.SMTP_HOST
        self._port = settings.SMTP_PORT
        self._user = settings.SMTP_USER
        self._password = settings.SMTP_PASSWORD
        self._starttls = settings.SMTP_STARTTLS
        self._default_sender = settings.SENDER_EMAIL
        self._socket_timeout = settings.CHANNEL_TIMEOUT_SECONDS

    def is_configured(self) -> bool:
        return bool(self._host and self._user and self._password is not None
                    and self._password.get_secret_value())

    def _send_blocking(self, msg: EmailMessage) -> None:
        with smtplib.SMTP(self._host, self._port, timeout=self._socket_timeout) as server:
            if self._starttls:
                server.starttls()
            server.login(self._user, self._password.get_secret_value())
            server.send_message(msg)

    async def _deliver(
        self,
        recipients: Sequence[Recipient],
        message: str,
        *,
        request_id: str,
        sender_email: Optional[str],
    ) -> ChannelReceipt:
        sender = self._default_sender or sender_email or self._user
        msg = _build_message(sender, recipients, message, request_id)

        try:
            await asyncio.to_thread(self._send_blocking, msg)
        except smtplib.SMTPAuthenticationError as exc:
            raise ChannelError(self.identifier, "provider_auth", configuration=True) from exc
        except smtplib.SMTPRecipientsRefused as exc:
            raise ChannelError(self.identifier, "provider_rejected") from exc
        except (smtplib.SMTPException, OSError) as exc:
            if isinstance(exc, TimeoutError):
                raise ChannelError(self.identifier, "timeout") from exc
            raise ChannelError(self.identifier, "network_error", type(exc).__name__) from exc

        logger.info(
            "[SMTP] relay accepted alert for %d recipient(s)",
            len(recipients),
            extra={"request_id": request_id, "channel": self.identifier},
        )
        return ChannelReceipt(channel=self.identifier, accepted=len(recipients))
