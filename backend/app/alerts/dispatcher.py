"""
dispatcher.py — Priority-ordered channel dispatch with fallback.

This is the central coordinator that:
    1. Keeps only the channels whose credentials are present at start-up
    2. Tries them strictly in priority order, one at a time
    3. Bounds every send by a hard per-call timeout
    4. Records one DispatchAttempt per channel tried
    5. Stops at the first success, otherwise reports exhaustion

═══════════════════════════════════════════════════════════════════════════
DISPATCH FLOW
═══════════════════════════════════════════════════════════════════════════

    ┌─────────────────────┐
    │  AlertRequest       │  validated, immutable
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐   none configured
    │  Configured         │ ───────────────────▶ ConfigurationError
    │  channels?          │   (before any network I/O)
    └─────────┬───────────┘
              │
              ▼
    ┌─────────────────────┐   success
    │  channel[i].send    │ ───────────────────▶ DispatchOutcome(via=i)
    │  under timeout      │
    └─────────┬───────────┘
              │ ChannelError / timeout / network error
              ▼
          i = i + 1  ──── list exhausted ──────▶ DispatchOutcome(success=False)

═══════════════════════════════════════════════════════════════════════════
RETRY POLICY
═══════════════════════════════════════════════════════════════════════════

Trying the next channel is the only retry mechanism. A channel is never
retried within one dispatch, so the attempt log is bounded by the number
of configured channels and reads the same way for every request.

A timed-out provider may still deliver; the next channel then produces a
second copy. At most one redundant alert per channel switch.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import List, Sequence, Tuple

from backend.app.alerts.channels.base import Channel
from backend.app.alerts.models import (
    AlertRequest,
    AttemptOutcome,
    DispatchAttempt,
    DispatchOutcome,
)
from backend.app.core.error_tracking import report_unexpected_error
from backend.app.core.errors import ChannelError, ConfigurationError
from backend.app.core.redaction import alert_shape, log_operation

logger = logging.getLogger(__name__)

DEFAULT_CHANNEL_TIMEOUT_SECONDS = 10.0


class ChannelDispatcher:
    """
    Owns the ordered list of usable channels.

    Parameters
    ----------
    channels : sequence of Channel
        Candidate channels; those not configured are dropped here, once.
    timeout_seconds : float
        Hard bound on each channel's send().
    """

    def __init__(
        self,
        channels: Sequence[Channel],
        *,
        timeout_seconds: float = DEFAULT_CHANNEL_TIMEOUT_SECONDS,
    ):
        self.timeout_seconds = timeout_seconds
        configured: List[Channel] = []
        for channel in sorted(channels, key=lambda c: c.priority):
            if channel.is_configured():
                configured.append(channel)
            else:
                logger.warning(
                    "Channel '%s' excluded: missing credentials",
                    channel.identifier,
                    extra={"channel": channel.identifier},
                )
        self._channels: Tuple[Channel, ...] = tuple(configured)
        logger.info(
            "Dispatcher ready with %d channel(s): %s",
            len(self._channels), [c.identifier for c in self._channels],
        )

    @property
    def channels(self) -> Tuple[Channel, ...]:
        return self._channels

    @property
    def channel_ids(self) -> List[str]:
        return [c.identifier for c in self._channels]

    async def _attempt(self, channel: Channel, request: AlertRequest) -> DispatchAttempt:
        """Run one bounded send and turn its result into an attempt record."""
        outcome = AttemptOutcome.SUCCESS
        error_kind = None
        start = time.perf_counter()

        async with log_operation(
            logger, "channel_send", request.request_id, channel=channel.identifier,
        ) as op:
            try:
                await asyncio.wait_for(
                    channel.send(
                        request.recipients,
                        request.message,
                        request_id=request.request_id,
                        sender_email=request.sender_email,
                    ),
                    timeout=self.timeout_seconds,
                )
            except asyncio.TimeoutError:
                outcome, error_kind = AttemptOutcome.TRANSIENT_FAILURE, "timeout"
            except ChannelError as exc:
                error_kind = exc.error_kind
                outcome = (
                    AttemptOutcome.CONFIGURATION_ERROR if exc.configuration
                    else AttemptOutcome.TRANSIENT_FAILURE
                )
            except Exception as exc:  # noqa: BLE001
                # Unexpected channel bug: reported, then treated as a transient failure.
                # Exception text may quote recipients; only the type is logged.
                outcome, error_kind = AttemptOutcome.TRANSIENT_FAILURE, type(exc).__name__
                logger.error(
                    "Channel '%s' raised unexpectedly: %s",
                    channel.identifier, error_kind,
                    extra={
                        "request_id": request.request_id,
                        "channel": channel.identifier,
                        "error_kind": error_kind,
                    },
                )
                report_unexpected_error(
                    exc,
                    request_id=request.request_id,
                    shape=alert_shape(request.recipients, request.message),
                )
            if error_kind:
                op.fail(error_kind, outcome=outcome.value)

        return DispatchAttempt(
            channel=channel.identifier,
            outcome=outcome,
            latency_ms=(time.perf_counter() - start) * 1000,
            error_kind=error_kind,
        )

    async def dispatch(self, request: AlertRequest) -> DispatchOutcome:
        """
        Deliver one alert through the first channel that accepts it.

        Raises
        ------
        ConfigurationError
            When no channel is configured. No network call is made.
        """
        if not self._channels:
            raise ConfigurationError()

        shape = alert_shape(request.recipients, request.message,
                            include_location=request.include_location)
        attempts: List[DispatchAttempt] = []

        async with log_operation(logger, "dispatch", request.request_id, **shape) as op:
            for channel in self._channels:
                attempt = await self._attempt(channel, request)
                attempts.append(attempt)
                if attempt.succeeded:
                    op.add(channel=channel.identifier, attempt_count=len(attempts))
                    return DispatchOutcome(True, channel.identifier, tuple(attempts))

            op.add(attempt_count=len(attempts))
            op.fail("channels_exhausted")
            return DispatchOutcome(False, None, tuple(attempts))
