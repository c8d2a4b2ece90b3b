"""
Notification Channels — multi-channel delivery with per-channel outcome.

Senders:
- Email: SMTP via aiosmtplib
- SMS / WhatsApp: Twilio Messages REST API over httpx
- Push: JSON POST to an HTTP push gateway

Senders raise TransportError. MultiChannelNotifier retries each channel
with backoff, runs channels concurrently and folds every failure into the
returned NotificationResult, so a partial failure never raises.
"""

import asyncio
from email.message import EmailMessage
from typing import Optional, Protocol

import aiosmtplib
import httpx
import structlog

from harmoni_escalation.config import Settings
from harmoni_escalation.directory import Contact, ContactBook
from harmoni_escalation.escalation.schemas import (
    ChannelOutcome,
    NotificationChannel,
    NotificationPriority,
    NotificationResult,
)
from harmoni_escalation.exceptions import TransportError
from harmoni_escalation.notifications.resilience import retry_with_backoff

logger = structlog.get_logger(__name__)

# Twilio rejects message bodies above this length
TWILIO_MAX_BODY = 1600


class ChannelSender(Protocol):
    """Protocol for a single-channel sender."""

    channel: NotificationChannel

    async def send(
        self,
        contact: Contact,
        subject: str,
        body: str,
        priority: NotificationPriority,
    ) -> str:
        """
        Deliver one message.

        Returns:
            Short delivery detail (e.g. provider message id)

        Raises:
            TransportError: on any delivery failure
        """
        ...


class EmailSender:
    """Plain-text email over SMTP (STARTTLS)."""

    channel = NotificationChannel.EMAIL

    def __init__(
        self,
        host: str,
        port: int = 587,
        username: str = "",
        password: str = "",
        from_email: str = "noreply@harmoni360.com",
        timeout: float = 10.0,
    ):
        self._host = host
        self._port = port
        self._username = username
        self._password = password
        self._from_email = from_email
        self._timeout = timeout

    async def send(self, contact, subject, body, priority) -> str:
        if not contact.email:
            raise TransportError(self.channel, f"No email address for {contact.user_id}")

        msg = EmailMessage()
        msg["Subject"] = subject
        msg["From"] = self._from_email
        msg["To"] = contact.email
        if priority in (NotificationPriority.HIGH, NotificationPriority.CRITICAL):
            msg["X-Priority"] = "1"
        msg.set_content(body)

        try:
            await aiosmtplib.send(
                msg,
                hostname=self._host,
                port=self._port,
                username=self._username or None,
                password=self._password or None,
                start_tls=True,
                timeout=self._timeout,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            raise TransportError(self.channel, f"SMTP delivery failed: {e}") from e

        logger.info("email_notification_sent", user_id=contact.user_id)
        return f"sent to {contact.email}"


class _HttpSender:
    """Shared httpx plumbing; a client passed in is reused, otherwise one per call."""

    channel: NotificationChannel

    def __init__(self, client: Optional[httpx.AsyncClient] = None, timeout: float = 10.0):
        self._client = client
        self._timeout = timeout

    async def _post(self, url: str, **kwargs) -> httpx.Response:
        try:
            if self._client is not None:
                response = await self._client.post(url, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(url, **kwargs)
        except httpx.HTTPError as e:
            raise TransportError(self.channel, f"HTTP error: {e}") from e

        if response.status_code >= 400:
            raise TransportError(
                self.channel,
                f"HTTP {response.status_code}",
                details={"body": response.text[:200]},
            )
        return response


class TwilioSender(_HttpSender):
    """SMS or WhatsApp through the Twilio Messages API."""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        channel: NotificationChannel = NotificationChannel.SMS,
        base_url: str = "https://api.twilio.com",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        if channel not in (NotificationChannel.SMS, NotificationChannel.WHATSAPP):
            raise ValueError(f"TwilioSender cannot deliver {channel}")
        super().__init__(client=client, timeout=timeout)
        self.channel = channel
        self._account_sid = account_sid
        self._auth_token = auth_token
        self._from_number = from_number
        self._url = f"{base_url.rstrip('/')}/2010-04-01/Accounts/{account_sid}/Messages.json"

    def _address(self, number: str) -> str:
        if self.channel == NotificationChannel.WHATSAPP:
            return f"whatsapp:{number}"
        return number

    async def send(self, contact, subject, body, priority) -> str:
        if not contact.phone:
            raise TransportError(self.channel, f"No phone number for {contact.user_id}")

        text = f"{subject}\n\n{body}"[:TWILIO_MAX_BODY]
        response = await self._post(
            self._url,
            data={
                "To": self._address(contact.phone),
                "From": self._address(self._from_number),
                "Body": text,
            },
            auth=(self._account_sid, self._auth_token),
        )
        sid = response.json().get("sid", "")
        logger.info(
            "twilio_notification_sent",
            channel=self.channel.value,
            user_id=contact.user_id,
            sid=sid,
        )
        return f"sid {sid}" if sid else f"HTTP {response.status_code}"


class PushSender(_HttpSender):
    """Mobile push via an HTTP gateway accepting {token, title, body, priority}."""

    channel = NotificationChannel.PUSH

    def __init__(
        self,
        gateway_url: str,
        api_token: str = "",
        client: Optional[httpx.AsyncClient] = None,
        timeout: float = 10.0,
    ):
        super().__init__(client=client, timeout=timeout)
        self._gateway_url = gateway_url
        self._api_token = api_token

    async def send(self, contact, subject, body, priority) -> str:
        if not contact.push_token:
            raise TransportError(self.channel, f"No push token for {contact.user_id}")

        headers = {"Content-Type": "application/json"}
        if self._api_token:
            headers["Authorization"] = f"Bearer {self._api_token}"

        response = await self._post(
            self._gateway_url,
            json={
                "token": contact.push_token,
                "title": subject,
                "body": body,
                "priority": priority.value,
            },
            headers=headers,
        )
        logger.info("push_notification_sent", user_id=contact.user_id)
        return f"HTTP {response.status_code}"


class MultiChannelNotifier:
    """
    Routes one notification to all requested channels in parallel.

    Implements the engine's notification dispatch protocol.
    """

    def __init__(
        self,
        contacts: ContactBook,
        senders: list[ChannelSender],
        max_retries: int = 2,
        base_delay: float = 0.5,
    ):
        self._contacts = contacts
        self._senders: dict[NotificationChannel, ChannelSender] = {s.channel: s for s in senders}
        self._max_retries = max_retries
        self._base_delay = base_delay

    @property
    def channels(self) -> list[NotificationChannel]:
        return list(self._senders)

    async def send_multi_channel(
        self,
        user_id: str,
        subject: str,
        body: str,
        channels: list[NotificationChannel],
        priority: NotificationPriority = NotificationPriority.NORMAL,
    ) -> NotificationResult:
        channels = list(dict.fromkeys(channels))
        contact = self._contacts.get(user_id)
        if contact is None:
            logger.warning("notification_contact_missing", user_id=user_id)
            return NotificationResult(
                user_id=user_id,
                channel_results={
                    c: ChannelOutcome(success=False, detail="no contact details")
                    for c in channels
                },
            )

        outcomes = await asyncio.gather(
            *(self._send_one(c, contact, subject, body, priority) for c in channels)
        )
        result = NotificationResult(user_id=user_id, channel_results=dict(zip(channels, outcomes)))

        logger.info(
            "multi_channel_notification_sent",
            user_id=user_id,
            priority=priority.value,
            success=result.success,
            failed_channels=[c.value for c in result.failed_channels],
        )
        return result

    async def _send_one(
        self,
        channel: NotificationChannel,
        contact: Contact,
        subject: str,
        body: str,
        priority: NotificationPriority,
    ) -> ChannelOutcome:
        sender = self._senders.get(channel)
        if sender is None:
            return ChannelOutcome(success=False, detail="channel not configured")

        try:
            detail = await retry_with_backoff(
                lambda: sender.send(contact, subject, body, priority),
                max_retries=self._max_retries,
                base_delay=self._base_delay,
                operation_name=f"notify_{channel.value}",
            )
            return ChannelOutcome(success=True, detail=detail)
        except TransportError as e:
            return ChannelOutcome(success=False, detail=e.message)
        except Exception as e:
            logger.error(
                "channel_dispatch_error",
                channel=channel.value,
                user_id=contact.user_id,
                error=str(e),
            )
            return ChannelOutcome(success=False, detail=str(e))


def build_notifier(
    settings: Settings,
    contacts: ContactBook,
    client: Optional[httpx.AsyncClient] = None,
) -> MultiChannelNotifier:
    """Notifier with a sender for every channel that has credentials configured."""
    timeout = settings.notification_timeout_seconds
    senders: list[ChannelSender] = []

    if settings.smtp_host:
        senders.append(EmailSender(
            host=settings.smtp_host,
            port=settings.smtp_port,
            username=settings.smtp_user,
            password=settings.smtp_password,
            from_email=settings.smtp_from_email,
            timeout=timeout,
        ))
    if settings.twilio_account_sid and settings.twilio_sms_number:
        senders.append(TwilioSender(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_sms_number,
            channel=NotificationChannel.SMS,
            client=client,
            timeout=timeout,
        ))
    if settings.twilio_account_sid and settings.twilio_whatsapp_number:
        senders.append(TwilioSender(
            settings.twilio_account_sid,
            settings.twilio_auth_token,
            settings.twilio_whatsapp_number,
            channel=NotificationChannel.WHATSAPP,
            client=client,
            timeout=timeout,
        ))
    if settings.push_gateway_url:
        senders.append(PushSender(
            settings.push_gateway_url,
            settings.push_gateway_token,
            client=client,
            timeout=timeout,
        ))

    logger.info("notifier_configured", channels=[s.channel.value for s in senders])
    return MultiChannelNotifier(
        contacts,
        senders,
        max_retries=settings.notification_retry_attempts,
    )
