"""
Notification channels for expiry alerts.

Provides the webhook channel (single JSON POST via httpx), the email
channel that delegates to a MailTransport, and the bundled SMTP transport
that renders the alert in German or English and sends it with smtplib.
Channels raise NotificationError on failure; the scheduler records it.
"""

import asyncio
import html
import re
import smtplib
import ssl
from abc import abstractmethod
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional, Protocol, runtime_checkable
from urllib.parse import urlparse

import httpx

from .collaborators import MailTransport
from .config import SmtpConfig
from .enums import NotificationChannelName
from .exceptions import NotificationError
from .i18n import get_message
from .models import AccountRef, ExpiryNotificationPayload

EMAIL_PATTERN = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
MAX_EMAIL_LENGTH = 320


@runtime_checkable
class NotificationChannel(Protocol):
    """Protocol defining the interface for notification channels."""

    @abstractmethod
    async def send(self, payload: ExpiryNotificationPayload) -> None:
        """
        Deliver a notification.

        Raises:
            NotificationError: If delivery fails
        """
        ...

    @abstractmethod
    def get_name(self) -> NotificationChannelName:
        ...


class WebhookChannel:
    """Generic webhook notification channel using HTTP POST."""

    USER_AGENT = "domain-expiry/1.0 (domain-expiry-webhook)"

    def __init__(
        self,
        url: str,
        timeout: float = 8.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize Webhook channel.

        Args:
            url: Target URL (http or https)
            timeout: Request timeout in seconds
            client: Optional shared httpx client; a short-lived one is used otherwise
        """
        self._url = url.strip()
        self._timeout = timeout
        self._client = client

    async def send(self, payload: ExpiryNotificationPayload) -> None:
        """Send the payload as JSON in a single POST."""
        parsed = urlparse(self._url)
        if parsed.scheme not in ("http", "https") or not parsed.netloc:
            raise NotificationError(
                code="invalid_url",
                message="Webhook URL must use http or https",
                details={"scheme": parsed.scheme},
            )

        headers = {
            "Content-Type": "application/json",
            "User-Agent": self.USER_AGENT,
        }

        try:
            if self._client is not None:
                response = await self._client.post(
                    self._url, json=payload.to_dict(), headers=headers, timeout=self._timeout,
                )
            else:
                async with httpx.AsyncClient(timeout=self._timeout) as client:
                    response = await client.post(self._url, json=payload.to_dict(), headers=headers)
        except httpx.HTTPError as e:
            raise NotificationError(
                code="network_error",
                message=f"Webhook request failed: {str(e) or type(e).__name__}",
                details={"domain": payload.domain},
            )

        if response.status_code < 200 or response.status_code >= 300:
            raise NotificationError(
                code="http_error",
                message=f"Webhook HTTP {response.status_code}",
                details={"status_code": response.status_code},
            )

    def get_name(self) -> NotificationChannelName:
        return NotificationChannelName.WEBHOOK


class EmailChannel:
    """Email notification channel; rendering and delivery belong to the transport."""

    def __init__(
        self,
        transport: MailTransport,
        to: str,
        smtp_override: Optional[SmtpConfig] = None,
    ) -> None:
        self._transport = transport
        self._to = to
        self._smtp_override = smtp_override

    async def send(self, payload: ExpiryNotificationPayload) -> None:
        try:
            await self._transport.send(self._to, payload, self._smtp_override)
        except NotificationError:
            raise
        except (smtplib.SMTPException, OSError) as e:
            raise NotificationError(
                code="smtp_error",
                message=f"Email delivery failed: {e}",
                details={"domain": payload.domain},
            )

    def get_name(self) -> NotificationChannelName:
        return NotificationChannelName.EMAIL


def is_likely_email(address: Optional[str]) -> bool:
    value = (address or "").strip()
    if not value or len(value) > MAX_EMAIL_LENGTH:
        return False
    return bool(EMAIL_PATTERN.match(value))


def _account_label(account: AccountRef) -> str:
    return account.credential_name or str(account.credential_id) or "-"


def render_expiry_email(
    payload: ExpiryNotificationPayload,
    language: str = "en",
) -> tuple[str, str, str]:
    """
    Render an expiry alert.

    Args:
        payload: Notification payload
        language: 'de' or 'en'

    Returns:
        Tuple of (subject, plain text body, HTML body)
    """
    domain = payload.domain or "-"
    expires_at = payload.expires_at.isoformat()
    checked_at = payload.checked_at.isoformat()

    def label(key: str) -> str:
        return get_message(key, language)

    days_suffix = get_message("email.subject_days_left", language, days_left=payload.days_left)
    subject = get_message("email.subject", language, domain=domain, days_suffix=days_suffix)

    rows = [
        (label("email.domain"), domain),
        (label("email.expires_at"), expires_at),
        (label("email.days_left"), str(payload.days_left)),
        (label("email.threshold_days"), str(payload.threshold_days)),
    ]

    text = f"{label('email.heading')}\n\n"
    text += "".join(f"{name}: {value}\n" for name, value in rows)
    if payload.accounts:
        account_lines = "\n".join(
            f"- {_account_label(account)}" + (f" ({account.provider})" if account.provider else "")
            for account in payload.accounts
        )
        text += f"\n{label('email.accounts')}:\n{account_lines}\n"
    text += f"\n{label('email.checked_at')}: {checked_at}\n"

    cell = 'style="padding:4px 12px 4px 0;color:#6b7280;"'
    html_rows = "".join(
        f"<tr><td {cell}>{html.escape(name)}</td>"
        f'<td style="padding:4px 0;">{html.escape(value)}</td></tr>'
        for name, value in rows + [(label("email.checked_at"), checked_at)]
    )
    body = (
        '<div style="font-family: ui-sans-serif, system-ui, Helvetica, Arial; line-height:1.6;">'
        f'<h2 style="margin:0 0 12px;">{html.escape(label("email.heading"))}</h2>'
        f'<table style="border-collapse:collapse;">{html_rows}</table>'
    )
    if payload.accounts:
        items = "".join(
            f"<li>{html.escape(_account_label(account))}"
            + (f' <span style="color:#6b7280;">({html.escape(account.provider)})</span>'
               if account.provider else "")
            + "</li>"
            for account in payload.accounts
        )
        body += (
            f'<h3 style="margin:16px 0 8px;font-size:14px;">{html.escape(label("email.accounts"))}</h3>'
            f'<ul style="margin:0;padding-left:18px;">{items}</ul>'
        )
    body += "</div>"

    return subject, text, body


class SmtpMailTransport:
    """
    MailTransport sending through smtplib.

    Settings come from a per-user override where set, else from the
    process-wide defaults.
    """

    def __init__(self, defaults: Optional[SmtpConfig] = None, language: str = "en") -> None:
        self._defaults = defaults
        self._language = language

    def resolve_settings(self, override: Optional[SmtpConfig] = None) -> SmtpConfig:
        """
        Merge an override with the defaults and validate the result.

        Raises:
            NotificationError: If host, port or sender are missing, or only
                one of username and password is set
        """
        defaults = self._defaults

        def pick(name: str):
            value = getattr(override, name, None) if override else None
            if value in (None, ""):
                value = getattr(defaults, name, None) if defaults else None
            return value

        host = str(pick("host") or "").strip()
        port = pick("port")
        from_address = str(pick("from_address") or "").strip()
        username = str(pick("username") or "").strip()
        password = str(pick("password") or "").strip()
        secure = override.secure if override else bool(defaults and defaults.secure)

        if not host:
            raise self._config_error(get_message("smtp.missing_setting", self._language, setting="SMTP_HOST"))
        if not isinstance(port, int) or port <= 0:
            raise self._config_error(get_message("smtp.missing_setting", self._language, setting="SMTP_PORT"))
        if not from_address:
            raise self._config_error(get_message("smtp.missing_setting", self._language, setting="SMTP_FROM"))
        if bool(username) != bool(password):
            raise self._config_error(get_message("smtp.incomplete_auth", self._language))

        return SmtpConfig(
            host=host,
            port=port,
            secure=secure,
            username=username,
            password=password,
            from_address=from_address,
        )

    @staticmethod
    def _config_error(message: str) -> NotificationError:
        return NotificationError(code="smtp_config", message=message)

    def build_message(self, to: str, payload: ExpiryNotificationPayload, from_address: str) -> MIMEMultipart:
        subject, text, body = render_expiry_email(payload, self._language)
        msg = MIMEMultipart("alternative")
        msg["From"] = from_address
        msg["To"] = to
        msg["Subject"] = subject
        msg.attach(MIMEText(text, "plain", "utf-8"))
        msg.attach(MIMEText(body, "html", "utf-8"))
        return msg

    async def send(
        self,
        to: str,
        payload: ExpiryNotificationPayload,
        smtp_override: Optional[SmtpConfig] = None,
    ) -> None:
        """
        Send the alert to one recipient.

        Raises:
            NotificationError: On invalid recipient or settings
            smtplib.SMTPException, OSError: On delivery failure
        """
        recipient = (to or "").strip()
        if not is_likely_email(recipient):
            raise NotificationError(
                code="invalid_recipient",
                message=get_message("email.invalid_recipient", self._language),
            )

        settings = self.resolve_settings(smtp_override)
        msg = self.build_message(recipient, payload, settings.from_address)

        # Run SMTP in executor to avoid blocking
        loop = asyncio.get_running_loop()
        await loop.run_in_executor(None, self._send_sync, settings, recipient, msg)

    def _send_sync(self, settings: SmtpConfig, recipient: str, msg: MIMEMultipart) -> None:
        context = ssl.create_default_context()
        if settings.secure:
            server: smtplib.SMTP = smtplib.SMTP_SSL(settings.host, settings.port, context=context)
        else:
            server = smtplib.SMTP(settings.host, settings.port)

        with server:
            if not settings.secure:
                server.ehlo()
                if server.has_extn("starttls"):
                    server.starttls(context=context)
                    server.ehlo()
            if settings.username:
                server.login(settings.username, settings.password)
            server.sendmail(settings.from_address, [recipient], msg.as_string())
