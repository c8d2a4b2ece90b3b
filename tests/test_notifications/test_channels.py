"""
Tests for notification channels.

Covers:
- Twilio SMS / WhatsApp request shape (httpx.MockTransport)
- Push gateway request shape and HTTP error handling
- Email via aiosmtplib (patched)
- MultiChannelNotifier partial failure, missing contact, unconfigured channel
- Retry with backoff
- build_notifier channel selection
"""

import json
from urllib.parse import parse_qs

import aiosmtplib
import httpx
import pytest

from harmoni_escalation.config import Settings
from harmoni_escalation.directory import Contact, ContactBook
from harmoni_escalation.escalation.schemas import NotificationChannel, NotificationPriority
from harmoni_escalation.exceptions import TransportError
from harmoni_escalation.notifications.channels import (
    EmailSender,
    MultiChannelNotifier,
    PushSender,
    TwilioSender,
    build_notifier,
)
from harmoni_escalation.notifications.resilience import retry_with_backoff

CONTACT = Contact(
    user_id="hse_manager_1",
    name="Dewi",
    email="dewi@example.com",
    phone="+6281100000001",
    push_token="tok-1",
)


def _client(handler) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class _StaticSender:
    def __init__(self, channel, fail_times=0, error=None):
        self.channel = channel
        self.fail_times = fail_times
        self.error = error
        self.calls = 0

    async def send(self, contact, subject, body, priority):
        self.calls += 1
        if self.error is not None:
            raise self.error
        if self.calls <= self.fail_times:
            raise TransportError(self.channel, "temporarily unavailable")
        return "ok"


class TestTwilioSender:
    @pytest.mark.asyncio
    async def test_sms_request(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["url"] = str(request.url)
            captured["form"] = parse_qs(request.content.decode())
            captured["auth"] = request.headers.get("authorization")
            return httpx.Response(201, json={"sid": "SM123"})

        sender = TwilioSender("AC1", "secret", "+15550001", client=_client(handler))
        detail = await sender.send(CONTACT, "Subject", "Body", NotificationPriority.HIGH)

        assert detail == "sid SM123"
        assert captured["url"] == "https://api.twilio.com/2010-04-01/Accounts/AC1/Messages.json"
        assert captured["form"]["To"] == ["+6281100000001"]
        assert captured["form"]["From"] == ["+15550001"]
        assert captured["form"]["Body"] == ["Subject\n\nBody"]
        assert captured["auth"].startswith("Basic ")

    @pytest.mark.asyncio
    async def test_whatsapp_prefixes_numbers(self):
        captured = {}

        def handler(request):
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "WA1"})

        sender = TwilioSender(
            "AC1", "secret", "+15550002",
            channel=NotificationChannel.WHATSAPP,
            client=_client(handler),
        )
        await sender.send(CONTACT, "S", "B", NotificationPriority.HIGH)
        assert captured["form"]["To"] == ["whatsapp:+6281100000001"]
        assert captured["form"]["From"] == ["whatsapp:+15550002"]

    @pytest.mark.asyncio
    async def test_http_error_raises_transport_error(self):
        sender = TwilioSender(
            "AC1", "secret", "+1",
            client=_client(lambda r: httpx.Response(400, json={"message": "invalid To"})),
        )
        with pytest.raises(TransportError) as exc:
            await sender.send(CONTACT, "S", "B", NotificationPriority.HIGH)
        assert exc.value.message == "HTTP 400"
        assert exc.value.channel == NotificationChannel.SMS

    @pytest.mark.asyncio
    async def test_missing_phone(self):
        sender = TwilioSender("AC1", "secret", "+1", client=_client(lambda r: httpx.Response(201)))
        with pytest.raises(TransportError, match="No phone number"):
            await sender.send(Contact(user_id="u"), "S", "B", NotificationPriority.HIGH)

    def test_rejects_non_twilio_channel(self):
        with pytest.raises(ValueError):
            TwilioSender("AC1", "s", "+1", channel=NotificationChannel.PUSH)


class TestPushSender:
    @pytest.mark.asyncio
    async def test_push_payload(self):
        captured = {}

        def handler(request):
            captured["json"] = json.loads(request.content)
            captured["auth"] = request.headers.get("authorization")
            return httpx.Response(200)

        sender = PushSender("https://push.example/send", "gw-token", client=_client(handler))
        await sender.send(CONTACT, "🚨 EMERGENCY ALERT", "Evacuate", NotificationPriority.HIGH)

        assert captured["json"] == {
            "token": "tok-1",
            "title": "🚨 EMERGENCY ALERT",
            "body": "Evacuate",
            "priority": "high",
        }
        assert captured["auth"] == "Bearer gw-token"

    @pytest.mark.asyncio
    async def test_connection_error_raises_transport_error(self):
        def handler(request):
            raise httpx.ConnectError("refused", request=request)

        sender = PushSender("https://push.example/send", client=_client(handler))
        with pytest.raises(TransportError, match="HTTP error"):
            await sender.send(CONTACT, "S", "B", NotificationPriority.HIGH)


class TestEmailSender:
    @pytest.mark.asyncio
    async def test_sends_message(self, monkeypatch):
        sent = {}

        async def fake_send(message, **kwargs):
            sent["message"] = message
            sent["kwargs"] = kwargs

        monkeypatch.setattr(aiosmtplib, "send", fake_send)
        sender = EmailSender("smtp.example.com", from_email="alerts@harmoni360.com")
        detail = await sender.send(CONTACT, "Incident Escalated", "Body text", NotificationPriority.HIGH)

        assert detail == "sent to dewi@example.com"
        assert sent["message"]["To"] == "dewi@example.com"
        assert sent["message"]["Subject"] == "Incident Escalated"
        assert sent["message"]["X-Priority"] == "1"
        assert sent["kwargs"]["hostname"] == "smtp.example.com"
        assert sent["kwargs"]["start_tls"] is True

    @pytest.mark.asyncio
    async def test_smtp_failure_raises_transport_error(self, monkeypatch):
        async def failing_send(message, **kwargs):
            raise aiosmtplib.SMTPConnectError("cannot connect")

        monkeypatch.setattr(aiosmtplib, "send", failing_send)
        with pytest.raises(TransportError, match="SMTP delivery failed"):
            await EmailSender("smtp.example.com").send(CONTACT, "S", "B", NotificationPriority.HIGH)


class TestMultiChannelNotifier:
    @pytest.mark.asyncio
    async def test_partial_failure_reported_not_raised(self):
        notifier = MultiChannelNotifier(
            ContactBook([CONTACT]),
            [
                _StaticSender(NotificationChannel.EMAIL),
                _StaticSender(NotificationChannel.SMS, error=TransportError("sms", "carrier rejected")),
            ],
            max_retries=0,
        )
        result = await notifier.send_multi_channel(
            "hse_manager_1", "S", "B",
            [NotificationChannel.EMAIL, NotificationChannel.SMS],
            NotificationPriority.HIGH,
        )
        assert not result.success
        assert result.channel_results[NotificationChannel.EMAIL].success
        assert result.failed_channels == [NotificationChannel.SMS]
        assert result.summary() == "delivered via email; failed: sms (carrier rejected)"

    @pytest.mark.asyncio
    async def test_unexpected_sender_error_is_contained(self):
        notifier = MultiChannelNotifier(
            ContactBook([CONTACT]),
            [_StaticSender(NotificationChannel.PUSH, error=KeyError("token"))],
            max_retries=2,
        )
        result = await notifier.send_multi_channel(
            "hse_manager_1", "S", "B", [NotificationChannel.PUSH], NotificationPriority.HIGH,
        )
        assert not result.success

    @pytest.mark.asyncio
    async def test_unconfigured_channel(self):
        notifier = MultiChannelNotifier(ContactBook([CONTACT]), [], max_retries=0)
        result = await notifier.send_multi_channel(
            "hse_manager_1", "S", "B", [NotificationChannel.WHATSAPP], NotificationPriority.HIGH,
        )
        assert result.channel_results[NotificationChannel.WHATSAPP].detail == "channel not configured"

    @pytest.mark.asyncio
    async def test_unknown_contact_fails_every_channel(self):
        notifier = MultiChannelNotifier(ContactBook(), [_StaticSender(NotificationChannel.EMAIL)])
        result = await notifier.send_multi_channel(
            "ghost", "S", "B",
            [NotificationChannel.EMAIL, NotificationChannel.PUSH],
            NotificationPriority.HIGH,
        )
        assert result.failed_channels == [NotificationChannel.EMAIL, NotificationChannel.PUSH]

    @pytest.mark.asyncio
    async def test_duplicate_channels_sent_once(self):
        sender = _StaticSender(NotificationChannel.EMAIL)
        notifier = MultiChannelNotifier(ContactBook([CONTACT]), [sender])
        await notifier.send_multi_channel(
            "hse_manager_1", "S", "B",
            [NotificationChannel.EMAIL, NotificationChannel.EMAIL],
            NotificationPriority.HIGH,
        )
        assert sender.calls == 1


class TestRetry:
    @pytest.mark.asyncio
    async def test_retries_transport_errors_then_succeeds(self):
        sender = _StaticSender(NotificationChannel.SMS, fail_times=2)
        delays = []

        async def no_sleep(seconds):
            delays.append(seconds)

        result = await retry_with_backoff(
            lambda: sender.send(CONTACT, "S", "B", NotificationPriority.HIGH),
            max_retries=2,
            base_delay=1.0,
            jitter=0.0,
            sleep=no_sleep,
        )
        assert result == "ok"
        assert sender.calls == 3
        assert delays == [1.0, 2.0]

    @pytest.mark.asyncio
    async def test_exhausted_retries_reraise(self):
        sender = _StaticSender(NotificationChannel.SMS, fail_times=10)

        async def no_sleep(seconds):
            pass

        with pytest.raises(TransportError):
            await retry_with_backoff(
                lambda: sender.send(CONTACT, "S", "B", NotificationPriority.HIGH),
                max_retries=1,
                sleep=no_sleep,
            )
        assert sender.calls == 2

    @pytest.mark.asyncio
    async def test_other_errors_not_retried(self):
        sender = _StaticSender(NotificationChannel.SMS, error=KeyError("bug"))
        with pytest.raises(KeyError):
            await retry_with_backoff(lambda: sender.send(CONTACT, "S", "B", NotificationPriority.HIGH))
        assert sender.calls == 1


class TestBuildNotifier:
    def test_only_configured_channels(self):
        settings = Settings(
            SMTP_HOST="smtp.example.com",
            TWILIO_ACCOUNT_SID="AC1",
            TWILIO_AUTH_TOKEN="t",
            TWILIO_SMS_NUMBER="+1555",
            PUSH_GATEWAY_URL="",
        )
        notifier = build_notifier(settings, ContactBook())
        assert set(notifier.channels) == {NotificationChannel.EMAIL, NotificationChannel.SMS}
