"""
Tests for Channel Adapters
Tests provider payloads and error mapping over a mocked HTTP transport
"""

import json
import pytest
from urllib.parse import parse_qs

import httpx

from config import settings
from models import NotificationChannel
from tools.channels import (
    ChannelAdapters,
    ChannelDeliveryError,
    OneSignalPushAdapter,
    ResendEmailAdapter,
    TwilioSmsAdapter,
    LoggingPushAdapter,
    LoggingEmailAdapter,
    LoggingSmsAdapter,
    build_channel_adapters,
)


def attach_transport(adapter, handler, **client_kwargs):
    """Route an adapter's HTTP calls to a MockTransport handler"""
    adapter._client = httpx.AsyncClient(
        base_url=adapter.base_url,
        transport=httpx.MockTransport(handler),
        **client_kwargs
    )
    return adapter


# =============================================================================
# OneSignal Tests
# =============================================================================

@pytest.mark.unit
class TestOneSignalPushAdapter:
    """Tests for OneSignal push delivery"""

    @pytest.mark.asyncio
    async def test_sends_to_external_user_id(self):
        captured = {}

        def handler(request: httpx.Request) -> httpx.Response:
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "onesignal-123", "recipients": 1})

        adapter = attach_transport(
            OneSignalPushAdapter("app-1", "key-1", base_url="https://onesignal.test/api/v1"),
            handler
        )

        message_id = await adapter.send(7, "Medication Reminder", "Take Lisinopril", "high", data={"dose": 1})

        assert message_id == "onesignal-123"
        assert captured["path"] == "/api/v1/notifications"
        assert captured["body"]["app_id"] == "app-1"
        assert captured["body"]["include_external_user_ids"] == ["7"]
        assert captured["body"]["headings"] == {"en": "Medication Reminder"}
        assert captured["body"]["priority"] == 10

    @pytest.mark.asyncio
    async def test_provider_errors_in_body_raise(self):
        def handler(request):
            return httpx.Response(200, json={"errors": ["All included players are not subscribed"]})

        adapter = attach_transport(
            OneSignalPushAdapter("app-1", "key-1", base_url="https://onesignal.test/api/v1"),
            handler
        )

        with pytest.raises(ChannelDeliveryError) as exc_info:
            await adapter.send(7, "t", "b", "normal")
        assert exc_info.value.channel == NotificationChannel.PUSH

    @pytest.mark.asyncio
    async def test_authorization_header(self):
        adapter = OneSignalPushAdapter("app-1", "secret", base_url="https://onesignal.test/api/v1")
        client = adapter._build_client()
        try:
            assert client.headers["Authorization"] == "Basic secret"
        finally:
            await client.aclose()


# =============================================================================
# Resend Tests
# =============================================================================

@pytest.mark.unit
class TestResendEmailAdapter:
    """Tests for Resend email delivery"""

    @pytest.mark.asyncio
    async def test_sends_html_email(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["body"] = json.loads(request.content)
            return httpx.Response(200, json={"id": "email-42"})

        adapter = attach_transport(
            ResendEmailAdapter("re_key", sender="MedCare <n@medcare.test>", base_url="https://resend.test"),
            handler
        )

        message_id = await adapter.send("jane@example.com", "Missed dose", "<p>hi</p>")

        assert message_id == "email-42"
        assert captured["path"] == "/emails"
        assert captured["body"]["to"] == ["jane@example.com"]
        assert captured["body"]["from"] == "MedCare <n@medcare.test>"
        assert captured["body"]["html"] == "<p>hi</p>"

    @pytest.mark.asyncio
    async def test_http_error_status_raises(self):
        def handler(request):
            return httpx.Response(422, json={"message": "invalid to address"})

        adapter = attach_transport(ResendEmailAdapter("re_key", base_url="https://resend.test"), handler)

        with pytest.raises(ChannelDeliveryError, match="422"):
            await adapter.send("not-an-email", "s", "<p>x</p>")

    @pytest.mark.asyncio
    async def test_network_error_raises(self):
        def handler(request):
            raise httpx.ConnectError("connection refused", request=request)

        adapter = attach_transport(ResendEmailAdapter("re_key", base_url="https://resend.test"), handler)

        with pytest.raises(ChannelDeliveryError, match="unreachable"):
            await adapter.send("jane@example.com", "s", "<p>x</p>")


# =============================================================================
# Twilio Tests
# =============================================================================

@pytest.mark.unit
class TestTwilioSmsAdapter:
    """Tests for Twilio SMS delivery"""

    @pytest.mark.asyncio
    async def test_posts_form_to_messages_resource(self):
        captured = {}

        def handler(request):
            captured["path"] = request.url.path
            captured["form"] = parse_qs(request.content.decode())
            return httpx.Response(201, json={"sid": "SM123"})

        adapter = attach_transport(
            TwilioSmsAdapter("AC1", "token", "+15550000000", base_url="https://twilio.test/2010-04-01"),
            handler
        )

        message_id = await adapter.send("+15551234567", "Reminder: take Lisinopril")

        assert message_id == "SM123"
        assert captured["path"] == "/2010-04-01/Accounts/AC1/Messages.json"
        assert captured["form"]["To"] == ["+15551234567"]
        assert captured["form"]["From"] == ["+15550000000"]
        assert captured["form"]["Body"] == ["Reminder: take Lisinopril"]

    @pytest.mark.asyncio
    async def test_close_releases_client(self):
        adapter = attach_transport(
            TwilioSmsAdapter("AC1", "token", "+15550000000", base_url="https://twilio.test"),
            lambda request: httpx.Response(201, json={"sid": "SM1"})
        )
        await adapter.close()
        assert adapter._client is None


# =============================================================================
# Registry Tests
# =============================================================================

@pytest.mark.unit
class TestChannelRegistry:
    """Tests for adapter selection"""

    def test_logging_adapters_without_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "ONESIGNAL_APP_ID", None)
        monkeypatch.setattr(settings, "RESEND_API_KEY", None)
        monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", None)

        adapters = build_channel_adapters()

        assert isinstance(adapters.push, LoggingPushAdapter)
        assert isinstance(adapters.email, LoggingEmailAdapter)
        assert isinstance(adapters.sms, LoggingSmsAdapter)

    def test_provider_adapters_with_credentials(self, monkeypatch):
        monkeypatch.setattr(settings, "ONESIGNAL_APP_ID", "app")
        monkeypatch.setattr(settings, "ONESIGNAL_API_KEY", "key")
        monkeypatch.setattr(settings, "RESEND_API_KEY", "re_key")
        monkeypatch.setattr(settings, "TWILIO_ACCOUNT_SID", "AC1")
        monkeypatch.setattr(settings, "TWILIO_AUTH_TOKEN", "token")
        monkeypatch.setattr(settings, "TWILIO_PHONE_NUMBER", "+15550000000")

        adapters = build_channel_adapters()

        assert isinstance(adapters.push, OneSignalPushAdapter)
        assert isinstance(adapters.email, ResendEmailAdapter)
        assert isinstance(adapters.sms, TwilioSmsAdapter)

    def test_for_channel(self):
        adapters = ChannelAdapters(push=LoggingPushAdapter(), email=LoggingEmailAdapter(), sms=LoggingSmsAdapter())

        assert adapters.for_channel(NotificationChannel.PUSH) is adapters.push
        assert adapters.for_channel(NotificationChannel.EMAIL) is adapters.email
        assert adapters.for_channel(NotificationChannel.SMS) is adapters.sms

    @pytest.mark.asyncio
    async def test_logging_adapters_return_message_ids(self):
        assert (await LoggingPushAdapter().send(1, "t", "b", "normal")).startswith("push_")
        assert (await LoggingEmailAdapter().send("a@b.c", "s", "<p/>")).startswith("email_")
        assert (await LoggingSmsAdapter().send("+1", "text")).startswith("sms_")
