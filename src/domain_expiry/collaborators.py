"""
Interfaces of the collaborators the engine is handed.

DNS provider adapters, credential storage, the user directory, the audit
log and the mail transport live outside this package. The scheduler only
depends on these protocols.
"""

from typing import Optional, Protocol

from .config import SmtpConfig
from .models import (
    DnsCredential,
    ExpiryNotificationPayload,
    UserNotificationSettings,
    ZoneContext,
    ZonePage,
)


class CredentialStore(Protocol):
    """Access to a user's DNS provider credentials."""

    def list_credentials(self, user_id: int) -> list[DnsCredential]:
        ...

    def decrypt(self, secrets: str) -> dict:
        """Decrypt stored secrets; raises on failure."""
        ...


class ZoneEnumerator(Protocol):
    """Lists the zones visible to a provider account."""

    def is_supported(self, provider: str) -> bool:
        ...

    async def get_zones(self, ctx: ZoneContext, page: int, page_size: int) -> ZonePage:
        ...


class AuditLog(Protocol):
    """Sink for user-facing audit records."""

    def create_log(
        self,
        user_id: int,
        action: str,
        resource_type: str,
        domain: str,
        status: str,
        error_message: Optional[str] = None,
        new_value: Optional[str] = None,
    ) -> object:
        ...


class MailTransport(Protocol):
    """Delivers an expiry alert email; raises on failure."""

    async def send(
        self,
        to: str,
        payload: ExpiryNotificationPayload,
        smtp_override: Optional[SmtpConfig] = None,
    ) -> None:
        ...


class UserDirectory(Protocol):
    """Source of all users and their alert settings."""

    def list_users(self) -> list[UserNotificationSettings]:
        ...
