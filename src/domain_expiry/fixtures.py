"""
Static collaborators loaded from a JSON users file.

Used by the CLI to run the scheduler without a database or DNS provider
adapters. The file lists users with their alert settings, and for each
credential the zones it exposes:

    {"users": [{"id": 1, "username": "alice", "email": "alice@example.com",
                "thresholdDays": 7,
                "webhook": {"enabled": true, "url": "https://hooks.example.com/x"},
                "emailAlerts": {"enabled": false, "to": null},
                "smtp": {"host": "smtp.example.com", "port": 587, "secure": false,
                         "user": "", "pass": "", "from": "alerts@example.com"},
                "credentials": [{"id": 10, "name": "main", "provider": "cloudflare",
                                 "secrets": {"apiToken": "..."},
                                 "zones": ["example.com", "example.org"]}]}]}
"""

import json
from pathlib import Path
from typing import Any, Optional

from .config import SmtpConfig
from .exceptions import ValidationError
from .models import DnsCredential, UserNotificationSettings, Zone, ZoneContext, ZonePage


def _optional_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    try:
        return int(str(value))
    except (TypeError, ValueError):
        return None


def _smtp_from_dict(data: Any) -> Optional[SmtpConfig]:
    if not isinstance(data, dict) or not str(data.get("host") or "").strip():
        return None
    port = _optional_int(data.get("port"))
    secure = data.get("secure")
    return SmtpConfig(
        host=str(data["host"]).strip(),
        port=port if port is not None else 587,
        secure=secure if isinstance(secure, bool) else False,
        username=str(data.get("user") or "").strip(),
        password=str(data.get("pass") or ""),
        from_address=str(data.get("from") or "").strip(),
    )


class StaticFixture:
    """UserDirectory, CredentialStore and ZoneEnumerator backed by one JSON document."""

    def __init__(self, data: dict) -> None:
        if not isinstance(data, dict) or not isinstance(data.get("users"), list):
            raise ValidationError(code="invalid_fixture", message="users file needs a 'users' list")

        self._users: list[UserNotificationSettings] = []
        self._credentials: dict[int, list[DnsCredential]] = {}
        self._zones: dict[str, list[str]] = {}
        self._providers: set[str] = set()

        for raw_user in data["users"]:
            self._add_user(raw_user)

    @classmethod
    def from_file(cls, path: Path) -> "StaticFixture":
        with open(path, "r", encoding="utf-8") as f:
            return cls(json.load(f))

    def _add_user(self, raw: dict) -> None:
        user_id = _optional_int(raw.get("id"))
        if user_id is None:
            raise ValidationError(code="invalid_fixture", message="user without id")

        webhook = raw.get("webhook") or {}
        email_alerts = raw.get("emailAlerts") or {}
        self._users.append(UserNotificationSettings(
            user_id=user_id,
            username=str(raw.get("username") or f"user-{user_id}"),
            email=raw.get("email"),
            threshold_days=_optional_int(raw.get("thresholdDays")),
            webhook_enabled=bool(webhook.get("enabled")),
            webhook_url=webhook.get("url"),
            email_enabled=bool(email_alerts.get("enabled")),
            email_to=email_alerts.get("to"),
            smtp_override=_smtp_from_dict(raw.get("smtp")),
        ))

        credentials = []
        for raw_cred in raw.get("credentials", []):
            credential = DnsCredential(
                id=int(raw_cred["id"]),
                name=str(raw_cred.get("name") or raw_cred["id"]),
                provider=str(raw_cred.get("provider") or "static"),
                secrets=json.dumps(raw_cred.get("secrets") or {}),
                account_id=raw_cred.get("accountId"),
            )
            credentials.append(credential)
            self._providers.add(credential.provider)
            self._zones[f"{user_id}:{credential.id}"] = [str(z) for z in raw_cred.get("zones", [])]
        self._credentials[user_id] = credentials

    def list_users(self) -> list[UserNotificationSettings]:
        return list(self._users)

    def list_credentials(self, user_id: int) -> list[DnsCredential]:
        return list(self._credentials.get(user_id, []))

    def decrypt(self, secrets: str) -> dict:
        return json.loads(secrets)

    def is_supported(self, provider: str) -> bool:
        return provider in self._providers

    async def get_zones(self, ctx: ZoneContext, page: int, page_size: int) -> ZonePage:
        names = self._zones.get(ctx.credential_key, [])
        start = (page - 1) * page_size
        return ZonePage(
            zones=[Zone(name=name) for name in names[start:start + page_size]],
            total=len(names),
        )
