"""
test_dispatcher.py — Priority-ordered dispatch with fallback.

Covers:
    • Configured-channel filtering and ordering
    • First success stops dispatch
    • Timeouts, provider errors and unexpected exceptions fall through
    • Configuration errors recorded distinctly
    • Zero channels → ConfigurationError before any send
    • Dry run never reaches the provider

Run with:
    pytest tests/test_dispatcher.py -v
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from backend.app.alerts.dispatcher import ChannelDispatcher
from backend.app.alerts.models import AlertRequest, AttemptOutcome, Recipient, RecipientKind
from backend.app.core.errors import ConfigurationError

from conftest import FakeChannel


def _make_request(message: str = "Help, I am at the station") -> AlertRequest:
    return AlertRequest(
        recipients=(
            Recipient("mom@example.com", RecipientKind.EMAIL),
            Recipient("+919876543210", RecipientKind.PHONE),
        ),
        message=message,
        request_id="req-dispatch",
    )


# ═══════════════════════════════════════════════════════════════════════════
# Section 1: Channel Selection
# ═══════════════════════════════════════════════════════════════════════════

class TestChannelSelection:
    """Which channels the dispatcher keeps, and in which order."""

    def test_sorted_by_priority(self):
        d = ChannelDispatcher([
            FakeChannel("sms", priority=2),
            FakeChannel("api", priority=0),
            FakeChannel("smtp", priority=1),
        ])
        assert d.channel_ids == ["api", "smtp", "sms"]

    def test_unconfigured_excluded(self):
        d = ChannelDispatcher([
            FakeChannel("api", priority=0, configured=False),
            FakeChannel("smtp", priority=1),
        ])
        assert d.channel_ids == ["smtp"]

    def test_dry_run_does_not_configure(self):
        d = ChannelDispatcher([FakeChannel("api", configured=False, dry_run=True)])
        assert d.channel_ids == []


# ═══════════════════════════════════════════════════════════════════════════
# Section 2: Dispatch
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatch:
    """Fallback semantics."""

    @pytest.mark.asyncio
    async def test_first_success_stops(self):
        api, smtp = FakeChannel("api", priority=0), FakeChannel("smtp", priority=1)
        outcome = await ChannelDispatcher([api, smtp]).dispatch(_make_request())

        assert outcome.success is True
        assert outcome.channel == "api"
        assert len(outcome.attempts) == 1
        assert outcome.attempts[0].outcome == AttemptOutcome.SUCCESS
        assert smtp.calls == []

    @pytest.mark.asyncio
    async def test_falls_through_on_transient_failure(self):
        channels = [
            FakeChannel("api", "timeout", priority=0),
            FakeChannel("smtp", "reject", priority=1),
            FakeChannel("sms", priority=2),
        ]
        outcome = await ChannelDispatcher(channels).dispatch(_make_request())

        assert outcome.channel == "sms"
        assert [a.channel for a in outcome.attempts] == ["api", "smtp", "sms"]
        assert [a.error_kind for a in outcome.attempts] == ["timeout", "provider_rejected", None]
        assert outcome.attempts[0].outcome == AttemptOutcome.TRANSIENT_FAILURE

    @pytest.mark.asyncio
    async def test_hard_timeout_bounds_each_send(self):
        channels = [FakeChannel("api", "hang", priority=0), FakeChannel("smtp", priority=1)]
        outcome = await ChannelDispatcher(channels, timeout_seconds=0.05).dispatch(_make_request())

        assert outcome.channel == "smtp"
        assert outcome.attempts[0].error_kind == "timeout"
        assert outcome.attempts[0].latency_ms < 5000

    @pytest.mark.asyncio
    async def test_auth_failure_is_configuration_error(self):
        channels = [FakeChannel("api", "auth", priority=0), FakeChannel("smtp", priority=1)]
        outcome = await ChannelDispatcher(channels).dispatch(_make_request())

        assert outcome.attempts[0].outcome == AttemptOutcome.CONFIGURATION_ERROR
        assert outcome.channel == "smtp"

    @pytest.mark.asyncio
    async def test_unexpected_exception_reported_and_skipped(self):
        channels = [FakeChannel("api", "boom", priority=0), FakeChannel("smtp", priority=1)]
        with patch("backend.app.alerts.dispatcher.report_unexpected_error") as report:
            outcome = await ChannelDispatcher(channels).dispatch(_make_request())

        assert outcome.channel == "smtp"
        assert outcome.attempts[0].error_kind == "RuntimeError"
        report.assert_called_once()
        assert "message" not in report.call_args.kwargs["shape"]

    @pytest.mark.asyncio
    async def test_all_fail(self):
        channels = [FakeChannel("api", "timeout", priority=0), FakeChannel("smtp", "reject", priority=1)]
        outcome = await ChannelDispatcher(channels).dispatch(_make_request())

        assert outcome.success is False
        assert outcome.channel is None
        assert len(outcome.attempts) == 2

    @pytest.mark.asyncio
    async def test_each_channel_tried_at_most_once(self):
        api = FakeChannel("api", "timeout", priority=0)
        await ChannelDispatcher([api]).dispatch(_make_request())
        assert len(api.calls) == 1

    @pytest.mark.asyncio
    async def test_no_channels_raises_before_any_send(self):
        unconfigured = FakeChannel("api", configured=False)
        with pytest.raises(ConfigurationError):
            await ChannelDispatcher([unconfigured]).dispatch(_make_request())
        assert unconfigured.calls == []

    @pytest.mark.asyncio
    async def test_dry_run_simulates(self):
        api = FakeChannel("api", "boom", dry_run=True)
        outcome = await ChannelDispatcher([api]).dispatch(_make_request())

        assert outcome.success is True
        assert api.calls == []


# ═══════════════════════════════════════════════════════════════════════════
# Section 3: Logging
# ═══════════════════════════════════════════════════════════════════════════

class TestDispatchLogging:
    """Per-operation records carry shape, never content."""

    @pytest.mark.asyncio
    async def test_records_are_redacted(self, caplog):
        caplog.set_level("INFO")
        channels = [FakeChannel("api", "timeout", priority=0), FakeChannel("smtp", priority=1)]
        await ChannelDispatcher(channels).dispatch(_make_request("secret plan at 5th street"))

        dispatch = [r for r in caplog.records if getattr(r, "operation", None) == "dispatch"]
        assert len(dispatch) == 1
        assert dispatch[0].fields["recipient_count"] == 2
        assert dispatch[0].outcome == "success"

        sends = [r for r in caplog.records if getattr(r, "operation", None) == "channel_send"]
        assert [r.outcome for r in sends] == ["transient_failure", "success"]

        for record in caplog.records:
            assert "mom@example.com" not in record.getMessage()
            assert "5th street" not in str(getattr(record, "fields", ""))

    @pytest.mark.asyncio
    async def test_unexpected_exception_text_never_logged(self, caplog):
        caplog.set_level("DEBUG")
        with patch("backend.app.alerts.dispatcher.report_unexpected_error"):
            outcome = await ChannelDispatcher([FakeChannel("api", "boom")]).dispatch(_make_request())

        assert outcome.success is False
        assert "RuntimeError" in caplog.text
        assert "mom@example.com" not in caplog.text
        assert all(r.exc_info is None for r in caplog.records)
        dispatch = [r for r in caplog.records if getattr(r, "operation", None) == "dispatch"]
        assert dispatch[0].fields["recipient_kinds"] == {"email": 1, "phone": 1}
