"""
Cache Store module for expiry records and suppression markers.

This module provides the key-value cache the resolver and the scheduler
share: an in-memory implementation and an HMAC-protected JSON file
implementation that detects tampering, plus the SuppressionStore used to
deduplicate failure log entries.
"""

import hashlib
import hmac
import json
from datetime import datetime, timedelta
from pathlib import Path
from typing import Optional, Protocol

from .exceptions import PersistenceError, TamperingError
from .models import CacheEntry, parse_iso_datetime, utc_now

EXPIRY_CACHE_PREFIX = "domainExpiry:"
FAILURE_LOG_PREFIX = "domainExpiryFailureLog:"


def expiry_cache_key(domain: str) -> str:
    return f"{EXPIRY_CACHE_PREFIX}{domain}"


def failure_log_key(user_id: int, domain: str) -> str:
    return f"{FAILURE_LOG_PREFIX}{user_id}:{domain}"


class CacheStore(Protocol):
    """Key-value store with per-entry expiry."""

    async def get(self, key: str) -> Optional[CacheEntry]:
        ...

    async def upsert(self, key: str, value: str, expires_at: datetime) -> None:
        ...

    async def find_keys_by_prefix(self, prefix: str, not_expired_before: datetime) -> list[str]:
        ...


class InMemoryCacheStore:
    """Process-local cache store; contents are lost on exit."""

    def __init__(self) -> None:
        self._entries: dict[str, CacheEntry] = {}

    async def get(self, key: str) -> Optional[CacheEntry]:
        return self._entries.get(key)

    async def upsert(self, key: str, value: str, expires_at: datetime) -> None:
        existing = self._entries.get(key)
        self._entries[key] = CacheEntry(
            key=key,
            value=value,
            expires_at=expires_at,
            created_at=existing.created_at if existing else utc_now(),
        )

    async def find_keys_by_prefix(self, prefix: str, not_expired_before: datetime) -> list[str]:
        return sorted(
            key for key, entry in self._entries.items()
            if key.startswith(prefix) and entry.expires_at > not_expired_before
        )


class FileCacheStore(InMemoryCacheStore):
    """
    Cache store persisted to a JSON file with HMAC protection.

    The file is read lazily on first access and rewritten after every
    upsert. Entries that have already expired are dropped on write.
    """

    VERSION = 1

    def __init__(self, file_path: Path, hmac_secret: str) -> None:
        """
        Initialize the file cache store.

        Args:
            file_path: Path to the cache file (JSON format)
            hmac_secret: Secret key for HMAC computation
        """
        super().__init__()
        self._file_path = file_path
        self._hmac_secret = hmac_secret.encode("utf-8")
        self._loaded = False

    @property
    def file_path(self) -> Path:
        return self._file_path

    async def get(self, key: str) -> Optional[CacheEntry]:
        self._ensure_loaded()
        return await super().get(key)

    async def upsert(self, key: str, value: str, expires_at: datetime) -> None:
        self._ensure_loaded()
        await super().upsert(key, value, expires_at)
        self.save()

    async def find_keys_by_prefix(self, prefix: str, not_expired_before: datetime) -> list[str]:
        self._ensure_loaded()
        return await super().find_keys_by_prefix(prefix, not_expired_before)

    def _ensure_loaded(self) -> None:
        if not self._loaded:
            self.load()

    def load(self) -> None:
        """
        Load entries from file and validate the HMAC.

        Raises:
            TamperingError: If HMAC validation fails
            PersistenceError: If the file cannot be read or parsed
        """
        self._loaded = True
        if not self._file_path.exists():
            return

        try:
            with open(self._file_path, "r", encoding="utf-8") as f:
                raw_data = json.load(f)
        except json.JSONDecodeError as e:
            raise PersistenceError(
                code="parse_error",
                message=f"Failed to parse cache file: {e}",
                details={"file_path": str(self._file_path)},
            )
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to read cache file: {e}",
                details={"file_path": str(self._file_path)},
            )

        stored_hmac = raw_data.get("hmac", "")
        data_for_hmac = {
            "version": raw_data.get("version"),
            "entries": raw_data.get("entries", {}),
            "last_updated": raw_data.get("last_updated"),
        }
        if not hmac.compare_digest(stored_hmac, self.compute_hmac(data_for_hmac)):
            raise TamperingError(
                code="hmac_mismatch",
                message="HMAC validation failed - cache file may have been tampered with",
                details={"file_path": str(self._file_path)},
            )

        for key, item in raw_data.get("entries", {}).items():
            expires_at = parse_iso_datetime(str(item.get("expiresAt", "")))
            created_at = parse_iso_datetime(str(item.get("createdAt", "")))
            if expires_at is None:
                continue
            self._entries[key] = CacheEntry(
                key=key,
                value=str(item.get("value", "")),
                expires_at=expires_at,
                created_at=created_at or expires_at,
            )

    def save(self) -> None:
        """
        Write all live entries to file with HMAC protection.

        Raises:
            PersistenceError: If the file cannot be written
        """
        now = utc_now()
        entries = {
            key: {
                "value": entry.value,
                "expiresAt": entry.expires_at.isoformat(),
                "createdAt": entry.created_at.isoformat(),
            }
            for key, entry in self._entries.items()
            if entry.expires_at > now
        }
        data = {
            "version": self.VERSION,
            "entries": entries,
            "last_updated": now.isoformat(),
        }
        data["hmac"] = self.compute_hmac(data)

        self._file_path.parent.mkdir(parents=True, exist_ok=True)
        try:
            with open(self._file_path, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2, sort_keys=True)
        except OSError as e:
            raise PersistenceError(
                code="io_error",
                message=f"Failed to write cache file: {e}",
                details={"file_path": str(self._file_path)},
            )

    def compute_hmac(self, data: dict) -> str:
        """Compute HMAC-SHA256 over the canonical JSON serialization."""
        serialized = json.dumps(data, sort_keys=True, separators=(",", ":"))
        return hmac.new(
            self._hmac_secret,
            serialized.encode("utf-8"),
            hashlib.sha256,
        ).hexdigest()


class SuppressionStore:
    """
    Remembers keys for a limited time.

    Backed by a CacheStore; a key counts as seen while its entry has not
    expired.
    """

    def __init__(self, cache: CacheStore) -> None:
        self._cache = cache

    async def seen(self, key: str, now: Optional[datetime] = None) -> bool:
        entry = await self._cache.get(key)
        return entry is not None and entry.is_fresh(now or utc_now())

    async def mark_seen(
        self,
        key: str,
        ttl: timedelta,
        value: Optional[dict] = None,
        now: Optional[datetime] = None,
    ) -> None:
        expires_at = (now or utc_now()) + ttl
        await self._cache.upsert(key, json.dumps(value or {}), expires_at)
