"""
Tests for notification channels.

Webhook traffic goes through httpx.MockTransport; SMTP delivery is
replaced by a fake smtplib.SMTP class.
"""

import asyncio
import html
import json
from datetime import date, datetime, timezone
from typing import Optional

import httpx
import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_expiry import notifications
from domain_expiry.config import SmtpConfig
from domain_expiry.enums import NotificationChannelName
from domain_expiry.exceptions import NotificationError
from domain_expiry.models import AccountRef, ExpiryNotificationPayload
from domain_expiry.notifications import (
    EmailChannel,
    NotificationChannel,
    SmtpMailTransport,
    WebhookChannel,
    is_likely_email,
    render_expiry_email,
)


def make_payload(domain: str = "example.com", accounts: Optional[list] = None) -> ExpiryNotificationPayload:
    return ExpiryNotificationPayload(
        user_id=1,
        username="alice",
        domain=domain,
        expires_at=date(2025, 1, 4),
        days_left=3,
        threshold_days=7,
        accounts=accounts if accounts is not None else [AccountRef(10, "main", "cloudflare")],
        checked_at=datetime(2025, 1, 1, 3, 0, tzinfo=timezone.utc),
    )


def post_with(handler, url: str = "https://hooks.example.com/expiry"):
    requests: list[httpx.Request] = []

    def recording_handler(request: httpx.Request) -> httpx.Response:
        requests.append(request)
        return handler(request)

    async def run():
        async with httpx.AsyncClient(transport=httpx.MockTransport(recording_handler)) as http:
            await WebhookChannel(url, client=http).send(make_payload())

    return run, requests


class TestWebhookChannel:
    """Single JSON POST per notification."""

    def test_posts_payload(self) -> None:
        run, requests = post_with(lambda request: httpx.Response(204))
        asyncio.run(run())

        assert len(requests) == 1
        request = requests[0]
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.headers["User-Agent"].endswith("(domain-expiry-webhook)")

        body = json.loads(request.content)
        assert body == {
            "type": "domain_expiry",
            "user": {"id": 1, "username": "alice"},
            "domain": "example.com",
            "expiresAt": "2025-01-04",
            "daysLeft": 3,
            "thresholdDays": 7,
            "accounts": [{"credentialId": 10, "credentialName": "main", "provider": "cloudflare"}],
            "checkedAt": "2025-01-01T03:00:00+00:00",
        }

    def test_non_2xx_raises(self) -> None:
        run, requests = post_with(lambda request: httpx.Response(500))
        with pytest.raises(NotificationError) as excinfo:
            asyncio.run(run())
        assert excinfo.value.message == "Webhook HTTP 500"
        assert len(requests) == 1

    @pytest.mark.parametrize("url", ["ftp://hooks.example.com/x", "file:///etc/passwd", "hooks.example.com"])
    def test_other_schemes_rejected_before_io(self, url: str) -> None:
        run, requests = post_with(lambda request: httpx.Response(200), url=url)
        with pytest.raises(NotificationError):
            asyncio.run(run())
        assert requests == []

    def test_transport_error_raises(self) -> None:
        def refuse(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        run, _ = post_with(refuse)
        with pytest.raises(NotificationError) as excinfo:
            asyncio.run(run())
        assert "connection refused" in excinfo.value.message

    def test_protocol_conformance(self) -> None:
        channel = WebhookChannel("https://hooks.example.com")
        assert isinstance(channel, NotificationChannel)
        assert channel.get_name() == NotificationChannelName.WEBHOOK


class RecordingTransport:
    def __init__(self, error: Optional[Exception] = None) -> None:
        self.sent: list[tuple] = []
        self._error = error

    async def send(self, to, payload, smtp_override=None) -> None:
        self.sent.append((to, payload.domain, smtp_override))
        if self._error:
            raise self._error


class TestEmailChannel:
    """The email channel hands off to its transport."""

    def test_delegates_to_transport(self) -> None:
        transport = RecordingTransport()
        override = SmtpConfig(host="smtp.example.com", from_address="a@example.com")
        asyncio.run(EmailChannel(transport, "bob@example.com", override).send(make_payload()))
        assert transport.sent == [("bob@example.com", "example.com", override)]

    def test_socket_errors_become_notification_errors(self) -> None:
        channel = EmailChannel(RecordingTransport(OSError("unreachable")), "bob@example.com")
        with pytest.raises(NotificationError) as excinfo:
            asyncio.run(channel.send(make_payload()))
        assert "unreachable" in excinfo.value.message
        assert channel.get_name() == NotificationChannelName.EMAIL


class TestEmailRendering:
    """Subject and bodies in both languages."""

    def test_english(self) -> None:
        subject, text, body = render_expiry_email(make_payload(), "en")
        assert subject == "[Domain Expiry] Domain expiring soon: example.com (3 days left)"
        assert "Expiry date (UTC): 2025-01-04" in text
        assert "- main (cloudflare)" in text
        assert "<li>main" in body

    def test_german(self) -> None:
        subject, text, _ = render_expiry_email(make_payload(), "de")
        assert "noch 3 Tage" in subject
        assert "Verbleibende Tage: 3" in text

    def test_account_without_name_uses_id(self) -> None:
        _, text, _ = render_expiry_email(make_payload(accounts=[AccountRef(10, "", "")]), "en")
        assert "- 10\n" in text

    def test_no_accounts_section_when_empty(self) -> None:
        _, text, body = render_expiry_email(make_payload(accounts=[]), "en")
        assert "Linked accounts" not in text
        assert "<ul" not in body

    @given(name=st.text(alphabet="<>&\"'abc", min_size=1, max_size=20))
    @settings(max_examples=50)
    def test_html_is_escaped(self, name: str) -> None:
        _, _, body = render_expiry_email(make_payload(accounts=[AccountRef(1, name, "x")]), "en")
        assert f"<li>{html.escape(name)}" in body


class TestSmtpSettings:
    """Override fields win; defaults fill the rest; incomplete settings fail."""

    def test_override_wins(self) -> None:
        transport = SmtpMailTransport(SmtpConfig(host="default.example", port=25, from_address="d@example.com"))
        settings = transport.resolve_settings(SmtpConfig(host="user.example", port=465, secure=True))
        assert settings.host == "user.example"
        assert settings.port == 465
        assert settings.secure is True
        assert settings.from_address == "d@example.com"

    def test_defaults_only(self) -> None:
        transport = SmtpMailTransport(SmtpConfig(host="default.example", from_address="d@example.com"))
        settings = transport.resolve_settings(None)
        assert settings.host == "default.example"
        assert settings.port == 587
        assert settings.secure is False

    def test_missing_host(self) -> None:
        with pytest.raises(NotificationError) as excinfo:
            SmtpMailTransport().resolve_settings(None)
        assert "SMTP_HOST" in excinfo.value.message

    def test_missing_from(self) -> None:
        with pytest.raises(NotificationError) as excinfo:
            SmtpMailTransport(SmtpConfig(host="smtp.example")).resolve_settings(None)
        assert "SMTP_FROM" in excinfo.value.message

    def test_half_configured_auth(self) -> None:
        transport = SmtpMailTransport(SmtpConfig(host="smtp.example", from_address="a@example.com", username="u"))
        with pytest.raises(NotificationError):
            transport.resolve_settings(None)

    @pytest.mark.parametrize("address,expected", [
        ("bob@example.com", True),
        ("bob@localhost", False),
        ("bob example@x.com", False),
        ("", False),
        ("a@b.c" + "c" * 320, False),
    ])
    def test_recipient_shape(self, address: str, expected: bool) -> None:
        assert is_likely_email(address) is expected


class FakeSMTP:
    instances: list["FakeSMTP"] = []

    def __init__(self, host: str, port: int, **kwargs) -> None:
        self.host = host
        self.port = port
        self.started_tls = False
        self.logins: list[tuple] = []
        self.messages: list[tuple] = []
        FakeSMTP.instances.append(self)

    def __enter__(self) -> "FakeSMTP":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def ehlo(self) -> None:
        pass

    def has_extn(self, name: str) -> bool:
        return name == "starttls"

    def starttls(self, context=None) -> None:
        self.started_tls = True

    def login(self, user: str, password: str) -> None:
        self.logins.append((user, password))

    def sendmail(self, from_addr: str, to_addrs: list, msg: str) -> None:
        self.messages.append((from_addr, to_addrs, msg))


class TestSmtpDelivery:
    """Messages go out through smtplib with STARTTLS when offered."""

    def test_sends_multipart_message(self, monkeypatch) -> None:
        FakeSMTP.instances = []
        monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
        transport = SmtpMailTransport(SmtpConfig(
            host="smtp.example.com", username="u", password="p", from_address="alerts@example.com",
        ))

        asyncio.run(transport.send(" bob@example.com ", make_payload()))

        server = FakeSMTP.instances[0]
        assert (server.host, server.port) == ("smtp.example.com", 587)
        assert server.started_tls
        assert server.logins == [("u", "p")]
        from_addr, to_addrs, raw = server.messages[0]
        assert from_addr == "alerts@example.com"
        assert to_addrs == ["bob@example.com"]
        assert "multipart/alternative" in raw

    def test_invalid_recipient_rejected_before_connect(self, monkeypatch) -> None:
        FakeSMTP.instances = []
        monkeypatch.setattr(notifications.smtplib, "SMTP", FakeSMTP)
        transport = SmtpMailTransport(SmtpConfig(host="smtp.example.com", from_address="a@example.com"))
        with pytest.raises(NotificationError):
            asyncio.run(transport.send("not-an-address", make_payload()))
        assert FakeSMTP.instances == []
