"""
Channel Adapters
Push (OneSignal), Email (Resend) and SMS (Twilio) senders used by the dispatcher
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import httpx

from config import settings
from models import NotificationChannel


logger = logging.getLogger(__name__)


class ChannelDeliveryError(Exception):
    """Raised by an adapter when the provider rejects or cannot take a message"""

    def __init__(self, channel: NotificationChannel, message: str):
        super().__init__(message)
        self.channel = channel


# ==================== INTERFACES ====================

class PushAdapter(ABC):
    channel = NotificationChannel.PUSH

    @abstractmethod
    async def send(
        self,
        user_id: int,
        title: str,
        body: str,
        priority: str,
        data: Optional[Dict[str, Any]] = None
    ) -> Optional[str]:
        """Send a push message; returns the provider message id"""


class EmailAdapter(ABC):
    channel = NotificationChannel.EMAIL

    @abstractmethod
    async def send(self, address: str, subject: str, html: str) -> Optional[str]:
        """Send an HTML email; returns the provider message id"""


class SmsAdapter(ABC):
    channel = NotificationChannel.SMS

    @abstractmethod
    async def send(self, phone: str, text: str) -> Optional[str]:
        """Send a text message; returns the provider message id"""


class _HttpAdapterMixin:
    """Lazily created, reusable httpx client"""

    base_url: str = ""
    _client: Optional[httpx.AsyncClient] = None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
            headers={"Accept": "application/json"}
        )

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = self._build_client()
        return self._client

    async def close(self):
        """Close the HTTP client"""
        if self._client and not self._client.is_closed:
            await self._client.aclose()
            self._client = None

    async def _post(self, channel: NotificationChannel, path: str, **kwargs) -> Dict[str, Any]:
        client = await self._get_client()
        try:
            response = await client.post(path, **kwargs)
            response.raise_for_status()
        except httpx.HTTPStatusError as e:
            raise ChannelDeliveryError(
                channel,
                f"{channel.value} provider returned {e.response.status_code}: {e.response.text[:200]}"
            ) from e
        except httpx.HTTPError as e:
            raise ChannelDeliveryError(channel, f"{channel.value} provider unreachable: {e}") from e
        return response.json() if response.content else {}


# ==================== PROVIDER ADAPTERS ====================

class OneSignalPushAdapter(_HttpAdapterMixin, PushAdapter):
    """Push notifications through the OneSignal REST API, targeted by external user id"""

    def __init__(self, app_id: str, api_key: str, base_url: Optional[str] = None):
        self.app_id = app_id
        self.api_key = api_key
        self.base_url = base_url or settings.ONESIGNAL_API_URL
        self._client = None

    def _build_client(self) -> httpx.AsyncClient:
        client = super()._build_client()
        client.headers["Authorization"] = f"Basic {self.api_key}"
        return client

    async def send(self, user_id, title, body, priority, data=None):
        payload = {
            "app_id": self.app_id,
            "include_external_user_ids": [str(user_id)],
            "headings": {"en": title},
            "contents": {"en": body},
            "data": data or {},
            "priority": 10 if priority in ("high", "critical") else 5,
        }
        result = await self._post(NotificationChannel.PUSH, "/notifications", json=payload)

        errors = result.get("errors")
        if errors:
            raise ChannelDeliveryError(NotificationChannel.PUSH, f"OneSignal rejected push: {errors}")
        return result.get("id")


class ResendEmailAdapter(_HttpAdapterMixin, EmailAdapter):
    """Transactional email through the Resend HTTP API"""

    def __init__(self, api_key: str, sender: Optional[str] = None, base_url: Optional[str] = None):
        self.api_key = api_key
        self.sender = sender or settings.EMAIL_FROM
        self.base_url = base_url or settings.RESEND_API_URL
        self._client = None

    def _build_client(self) -> httpx.AsyncClient:
        client = super()._build_client()
        client.headers["Authorization"] = f"Bearer {self.api_key}"
        return client

    async def send(self, address, subject, html):
        payload = {
            "from": self.sender,
            "to": [address],
            "subject": subject,
            "html": html,
        }
        result = await self._post(NotificationChannel.EMAIL, "/emails", json=payload)
        return result.get("id")


class TwilioSmsAdapter(_HttpAdapterMixin, SmsAdapter):
    """SMS through the Twilio Messages REST resource"""

    def __init__(
        self,
        account_sid: str,
        auth_token: str,
        from_number: str,
        base_url: Optional[str] = None
    ):
        self.account_sid = account_sid
        self.auth_token = auth_token
        self.from_number = from_number
        self.base_url = base_url or settings.TWILIO_API_URL
        self._client = None

    def _build_client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=settings.CHANNEL_TIMEOUT_SECONDS,
            auth=(self.account_sid, self.auth_token),
        )

    async def send(self, phone, text):
        result = await self._post(
            NotificationChannel.SMS,
            f"/Accounts/{self.account_sid}/Messages.json",
            data={"To": phone, "From": self.from_number, "Body": text[:1600]},
        )
        return result.get("sid")


# ==================== LOGGING ADAPTERS ====================
# Used when a provider is not configured (development, CI).

class LoggingPushAdapter(PushAdapter):
    async def send(self, user_id, title, body, priority, data=None):
        logger.info(f"[PUSH] To user {user_id} ({priority}): {title} - {body[:50]}")
        return f"push_{datetime.now().timestamp()}"


class LoggingEmailAdapter(EmailAdapter):
    async def send(self, address, subject, html):
        logger.info(f"[EMAIL] To {address}: {subject}")
        return f"email_{datetime.now().timestamp()}"


class LoggingSmsAdapter(SmsAdapter):
    async def send(self, phone, text):
        logger.info(f"[SMS] To {phone}: {text[:50]}...")
        return f"sms_{datetime.now().timestamp()}"


# ==================== REGISTRY ====================

@dataclass
class ChannelAdapters:
    """The set of adapters the dispatcher fans out to"""
    push: PushAdapter
    email: EmailAdapter
    sms: SmsAdapter

    def for_channel(self, channel: NotificationChannel):
        if channel == NotificationChannel.PUSH:
            return self.push
        if channel == NotificationChannel.EMAIL:
            return self.email
        if channel == NotificationChannel.SMS:
            return self.sms
        raise ValueError(f"Unsupported channel: {channel}")


def build_channel_adapters() -> ChannelAdapters:
    """Pick provider adapters for configured credentials, logging adapters otherwise"""
    if settings.ONESIGNAL_APP_ID and settings.ONESIGNAL_API_KEY:
        push: PushAdapter = OneSignalPushAdapter(settings.ONESIGNAL_APP_ID, settings.ONESIGNAL_API_KEY)
    else:
        logger.info("OneSignal not configured, push notifications will be logged only")
        push = LoggingPushAdapter()

    if settings.RESEND_API_KEY:
        email: EmailAdapter = ResendEmailAdapter(settings.RESEND_API_KEY)
    else:
        logger.info("Resend not configured, emails will be logged only")
        email = LoggingEmailAdapter()

    if settings.TWILIO_ACCOUNT_SID and settings.TWILIO_AUTH_TOKEN and settings.TWILIO_PHONE_NUMBER:
        sms: SmsAdapter = TwilioSmsAdapter(
            settings.TWILIO_ACCOUNT_SID,
            settings.TWILIO_AUTH_TOKEN,
            settings.TWILIO_PHONE_NUMBER
        )
    else:
        logger.info("Twilio not configured, SMS will be logged only")
        sms = LoggingSmsAdapter()

    return ChannelAdapters(push=push, email=email, sms=sms)
