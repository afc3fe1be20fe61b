"""
Data models for the domain expiry engine.

This module defines the data structures for expiry lookups, the tagged
resolution outcome returned by protocol clients, DNS credential and zone
shapes handed in by collaborators, and the durable notification state.
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Optional, Union

from .config import SmtpConfig
from .enums import ExpirySource, NotificationChannelName, NotificationStatus


def utc_now() -> datetime:
    """Return the current time as an aware UTC datetime."""
    return datetime.now(timezone.utc)


def parse_iso_datetime(value: str) -> Optional[datetime]:
    """Parse an ISO 8601 timestamp, treating naive values as UTC."""
    try:
        dt = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt


@dataclass(frozen=True)
class Resolved:
    """A protocol client found the registration expiry date."""

    expires_at: date
    source: ExpirySource


@dataclass(frozen=True)
class Unresolved:
    """A protocol client could not determine the expiry; carries a diagnostic."""

    error: str


ExpiryOutcome = Union[Resolved, Unresolved]


@dataclass
class ExpiryRecord:
    """Result of resolving the registration expiry of one domain."""

    domain: str
    expires_at: Optional[date]
    source: ExpirySource
    checked_at: datetime
    error: Optional[str] = None

    def to_dict(self) -> dict:
        """JSON form shared by the cache and the lookup entry point."""
        data = {
            "domain": self.domain,
            "expiresAt": self.expires_at.isoformat() if self.expires_at else None,
            "source": self.source.value,
            "checkedAt": self.checked_at.isoformat(),
        }
        if self.error:
            data["error"] = self.error
        return data

    @classmethod
    def from_dict(cls, data: dict, domain: Optional[str] = None) -> "ExpiryRecord":
        """
        Rebuild a record from its JSON form.

        Args:
            data: Dictionary produced by to_dict
            domain: Optional domain overriding the stored one

        Raises:
            ValueError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ValueError("expiry record must be a JSON object")

        raw_expires = data.get("expiresAt")
        expires_at = None
        if isinstance(raw_expires, str) and raw_expires:
            expires_at = date.fromisoformat(raw_expires[:10])

        try:
            source = ExpirySource(data.get("source"))
        except ValueError:
            source = ExpirySource.UNKNOWN

        checked_at = parse_iso_datetime(str(data.get("checkedAt", "")))
        if checked_at is None:
            raise ValueError("expiry record has no valid checkedAt")

        error = data.get("error")
        return cls(
            domain=domain or str(data.get("domain", "")),
            expires_at=expires_at,
            source=source,
            checked_at=checked_at,
            error=error if isinstance(error, str) and error else None,
        )


@dataclass
class CacheEntry:
    """A value held by the key-value cache store."""

    key: str
    value: str
    expires_at: datetime
    created_at: datetime = field(default_factory=utc_now)

    def is_fresh(self, now: datetime) -> bool:
        return self.expires_at > now


@dataclass
class DnsCredential:
    """A DNS provider account belonging to a user (secrets still encrypted)."""

    id: int
    name: str
    provider: str
    secrets: str
    account_id: Optional[str] = None


@dataclass
class ZoneContext:
    """Decrypted auth context handed to a zone enumerator."""

    provider: str
    secrets: dict
    account_id: Optional[str]
    credential_key: str


@dataclass
class Zone:
    """A DNS zone as listed by a provider account."""

    name: str
    id: Optional[str] = None


@dataclass
class ZonePage:
    """One page of zones; total is the provider-reported count if known."""

    zones: list[Zone]
    total: Optional[int] = None


@dataclass(frozen=True)
class AccountRef:
    """A credential through which a domain is reachable."""

    credential_id: int
    credential_name: str
    provider: str

    def to_dict(self) -> dict:
        return {
            "credentialId": self.credential_id,
            "credentialName": self.credential_name,
            "provider": self.provider,
        }


@dataclass
class UserNotificationSettings:
    """A user's expiry alert preferences as loaded by the user directory."""

    user_id: int
    username: str
    email: Optional[str] = None
    threshold_days: Optional[int] = None
    webhook_enabled: bool = False
    webhook_url: Optional[str] = None
    email_enabled: bool = False
    email_to: Optional[str] = None
    smtp_override: Optional[SmtpConfig] = None


@dataclass
class ExpiryNotificationPayload:
    """Body delivered to every notification channel."""

    user_id: int
    username: str
    domain: str
    expires_at: date
    days_left: int
    threshold_days: int
    accounts: list[AccountRef]
    checked_at: datetime
    type: str = "domain_expiry"

    def to_dict(self) -> dict:
        return {
            "type": self.type,
            "user": {"id": self.user_id, "username": self.username},
            "domain": self.domain,
            "expiresAt": self.expires_at.isoformat(),
            "daysLeft": self.days_left,
            "thresholdDays": self.threshold_days,
            "accounts": [account.to_dict() for account in self.accounts],
            "checkedAt": self.checked_at.isoformat(),
        }


@dataclass(frozen=True)
class NotificationIdentity:
    """Composite idempotency key of one notification."""

    user_id: int
    domain: str
    expires_at: date
    threshold_days: int
    channel: NotificationChannelName

    @property
    def key(self) -> str:
        return (
            f"{self.user_id}|{self.domain}|{self.expires_at.isoformat()}"
            f"|{self.threshold_days}|{self.channel.value}"
        )


@dataclass
class NotificationState:
    """Durable record of the last delivery attempt for one identity."""

    identity: NotificationIdentity
    status: NotificationStatus
    payload: str
    created_at: datetime
    error_message: Optional[str] = None
    last_notified_at: Optional[datetime] = None

    def last_attempt_at(self) -> datetime:
        """When the last attempt happened, falling back to row creation."""
        return self.last_notified_at or self.created_at


@dataclass
class RunSummary:
    """Counters for one scheduler pass."""

    users_processed: int = 0
    domains_checked: int = 0
    notifications_sent: int = 0
    notifications_failed: int = 0
    notifications_suppressed: int = 0
    failures_logged: int = 0
    skipped: bool = False
