"""
Registration expiry resolver.

Resolves when domains' registrations expire: a cache read first, then RDAP,
then WHOIS as fallback. Every result, including failures, is cached with a
TTL that shrinks as the expiry date approaches.
"""

import json
import math
from datetime import date, datetime, time, timedelta, timezone
from typing import Callable, Optional, Protocol

from .audit_logger import AuditLogger
from .cache_store import CacheStore, expiry_cache_key
from .concurrency import clamp, map_with_concurrency
from .config import ResolverConfig
from .domain_validator import unique_normalized
from .enums import ExpirySource
from .models import ExpiryOutcome, ExpiryRecord, Resolved, utc_now

COMPONENT = "ExpiryResolver"


class ExpiryLookupClient(Protocol):
    """A protocol client that resolves one domain."""

    async def lookup_expiry(self, domain: str) -> ExpiryOutcome:
        ...


def days_left(expires_at: date, now: datetime) -> int:
    """Whole calendar days from today (UTC) until the expiry date."""
    return (expires_at - now.astimezone(timezone.utc).date()).days


def cache_ttl_for(expires_at: Optional[date], now: datetime) -> timedelta:
    """
    Choose how long a lookup result stays cached.

    Unknown expiry is kept 7 days. Otherwise the remaining time to expiry
    midnight (UTC, floored to whole days) selects the bucket: up to 7 days
    left caches for 1 day, up to 90 for 3 days, up to 180 for 7 days and
    anything later for 14 days.

    Args:
        expires_at: Expiry date, or None when unresolved
        now: Current time (aware)

    Returns:
        The TTL as a timedelta
    """
    if expires_at is None:
        return timedelta(days=7)

    expiry_midnight = datetime.combine(expires_at, time.min, tzinfo=timezone.utc)
    remaining = math.floor((expiry_midnight - now) / timedelta(days=1))

    if remaining <= 7:
        return timedelta(days=1)
    if remaining <= 90:
        return timedelta(days=3)
    if remaining <= 180:
        return timedelta(days=7)
    return timedelta(days=14)


class RegistrationExpiryResolver:
    """
    Resolves and caches registration expiry dates for batches of domains.

    Per-domain failures never raise; they end up as records with an error
    diagnostic. Cache store failures propagate to the caller.
    """

    def __init__(
        self,
        cache: CacheStore,
        rdap_client: ExpiryLookupClient,
        whois_client: ExpiryLookupClient,
        config: Optional[ResolverConfig] = None,
        logger: Optional[AuditLogger] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self._cache = cache
        self._rdap = rdap_client
        self._whois = whois_client
        self._config = config or ResolverConfig()
        self._logger = logger
        self._clock = clock

    async def lookup(
        self,
        domains: list[str],
        force_refresh: bool = False,
        concurrency: Optional[int] = None,
    ) -> list[ExpiryRecord]:
        """
        Resolve expiry records for a batch of domains.

        Inputs are normalized and deduplicated; each unique domain yields one
        record, in first-seen order. Domains are processed in chunks, each
        drained by a worker pool before the next starts.

        Args:
            domains: Raw domain names
            force_refresh: Skip the cache read and resolve again
            concurrency: Worker count, clamped to [1, max_concurrency]

        Returns:
            One ExpiryRecord per unique normalized domain
        """
        unique = unique_normalized(domains)
        if concurrency is None:
            concurrency = self._config.default_concurrency
        limit = clamp(int(concurrency), 1, self._config.max_concurrency)
        chunk_size = max(1, self._config.chunk_size)

        async def resolve(domain: str) -> ExpiryRecord:
            return await self.lookup_one(domain, force_refresh=force_refresh)

        records: list[ExpiryRecord] = []
        for start in range(0, len(unique), chunk_size):
            chunk = unique[start:start + chunk_size]
            records.extend(await map_with_concurrency(chunk, limit, resolve))
        return records

    async def lookup_one(self, domain: str, force_refresh: bool = False) -> ExpiryRecord:
        """Resolve a single normalized domain."""
        key = expiry_cache_key(domain)

        if not force_refresh:
            cached = await self._read_cache(key, domain)
            if cached is not None:
                return cached

        record = await self._resolve(domain)

        ttl = cache_ttl_for(record.expires_at, self._clock())
        await self._cache.upsert(key, json.dumps(record.to_dict()), self._clock() + ttl)
        return record

    async def _read_cache(self, key: str, domain: str) -> Optional[ExpiryRecord]:
        entry = await self._cache.get(key)
        if entry is None or not entry.is_fresh(self._clock()):
            return None
        try:
            record = ExpiryRecord.from_dict(json.loads(entry.value), domain=domain)
        except (ValueError, TypeError):
            self._log_debug("Ignoring unreadable cache entry", {"domain": domain})
            return None
        self._log_debug("Cache hit", {"domain": domain})
        return record

    async def _resolve(self, domain: str) -> ExpiryRecord:
        rdap_outcome = await self._rdap.lookup_expiry(domain)
        if isinstance(rdap_outcome, Resolved):
            return self._record(domain, rdap_outcome)

        whois_outcome = await self._whois.lookup_expiry(domain)
        if isinstance(whois_outcome, Resolved):
            return self._record(domain, whois_outcome)

        error = f"{rdap_outcome.error} | {whois_outcome.error}"
        self._log_debug("Expiry unresolved", {"domain": domain, "error": error})
        return ExpiryRecord(
            domain=domain,
            expires_at=None,
            source=ExpirySource.UNKNOWN,
            checked_at=self._clock(),
            error=error,
        )

    def _record(self, domain: str, outcome: Resolved) -> ExpiryRecord:
        return ExpiryRecord(
            domain=domain,
            expires_at=outcome.expires_at,
            source=outcome.source,
            checked_at=self._clock(),
        )

    def _log_debug(self, message: str, data: dict) -> None:
        if self._logger:
            self._logger.debug(COMPONENT, message, data)
