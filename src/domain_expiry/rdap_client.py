"""
RDAP Client for registration expiry lookups.

This module provides an async RDAP client that queries a bootstrap
aggregator over HTTPS and extracts the expiration event from the domain
object. Every failure is reported as a soft "rdap:" diagnostic.
"""

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import quote, urlparse

import httpx

from .date_heuristics import parse_rdap_date
from .enums import ExpirySource, RDAPErrorCode
from .exceptions import NetworkError
from .models import ExpiryOutcome, Resolved, Unresolved

EXPIRATION_ACTIONS = frozenset({"expiration", "expiry", "expires"})


@dataclass
class RDAPEvent:
    """A single RDAP event (e.g., registration, expiration)."""

    event_action: str
    event_date: str


def parse_events(json_data: Any) -> list[RDAPEvent]:
    """
    Extract well-formed events from an RDAP domain object.

    Entries that are not objects or lack an action or date are ignored.
    """
    events: list[RDAPEvent] = []
    raw_events = json_data.get("events", []) if isinstance(json_data, dict) else []
    if isinstance(raw_events, list):
        for event in raw_events:
            if isinstance(event, dict):
                event_action = event.get("eventAction", "")
                event_date = event.get("eventDate", "")
                if isinstance(event_action, str) and event_action and isinstance(event_date, str) and event_date:
                    events.append(RDAPEvent(
                        event_action=event_action,
                        event_date=event_date,
                    ))
    return events


def find_expiration(json_data: Any):
    """Return the UTC date of the first parseable expiration event, or None."""
    for event in parse_events(json_data):
        if event.event_action.lower() not in EXPIRATION_ACTIONS:
            continue
        parsed = parse_rdap_date(event.event_date)
        if parsed:
            return parsed
    return None


class RDAPClient:
    """
    Async RDAP client with TLS enforcement.

    One shared httpx.AsyncClient is used for all lookups; it is created
    lazily and closed through the async context manager or close().
    """

    USER_AGENT = "domain-expiry/1.0 (domain-expiry)"

    def __init__(
        self,
        base_url: str = "https://rdap.org/domain/",
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        """
        Initialize the RDAP client.

        Args:
            base_url: Domain lookup URL prefix of the RDAP aggregator
            timeout: Request timeout in seconds
            client: Optional preconfigured httpx client (not closed by us)

        Raises:
            NetworkError: If base_url does not use HTTPS
        """
        self._validate_endpoint_url(base_url)
        self._base_url = base_url if base_url.endswith("/") else base_url + "/"
        self._timeout = timeout
        self._client = client
        self._owns_client = client is None

    async def __aenter__(self) -> "RDAPClient":
        """Async context manager entry."""
        self._ensure_client()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        """Async context manager exit."""
        await self.close()

    def _ensure_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(
                verify=True,
                timeout=httpx.Timeout(self._timeout),
                follow_redirects=True,
            )
            self._owns_client = True
        return self._client

    def _validate_endpoint_url(self, endpoint: str) -> None:
        """
        Validate that the endpoint uses HTTPS (TLS).

        Raises:
            NetworkError: If the endpoint does not use HTTPS
        """
        parsed = urlparse(endpoint)
        if parsed.scheme.lower() != "https":
            raise NetworkError(
                code=RDAPErrorCode.TLS_ERROR.value,
                message=f"RDAP endpoint must use HTTPS: {endpoint}",
                details={"endpoint": endpoint, "scheme": parsed.scheme},
            )

    def build_url(self, domain: str) -> str:
        """Build the lookup URL with the domain path-encoded."""
        return f"{self._base_url}{quote(domain, safe='')}"

    async def lookup_expiry(self, domain: str) -> ExpiryOutcome:
        """
        Query RDAP for the registration expiry of a domain.

        Args:
            domain: The domain to query (canonical form)

        Returns:
            Resolved with source RDAP, or Unresolved with an "rdap:" diagnostic
        """
        client = self._ensure_client()

        try:
            response = await client.get(
                self.build_url(domain),
                headers={
                    "Accept": "application/rdap+json, application/json",
                    "User-Agent": self.USER_AGENT,
                },
            )
        except httpx.TimeoutException:
            return Unresolved(error=f"rdap: RDAP request timed out after {self._timeout}s")
        except httpx.HTTPError as e:
            return Unresolved(error=f"rdap: {str(e) or type(e).__name__}")

        if response.status_code < 200 or response.status_code >= 300:
            return Unresolved(error=f"rdap: RDAP HTTP {response.status_code}")

        try:
            json_data = response.json() if response.content else {}
        except ValueError:
            return Unresolved(error="rdap: RDAP invalid JSON response")

        expires_at = find_expiration(json_data)
        if expires_at is None:
            return Unresolved(error="rdap: expiration event not found")

        return Resolved(expires_at=expires_at, source=ExpirySource.RDAP)

    async def close(self) -> None:
        """Close the HTTP client if this instance created it."""
        if self._client and self._owns_client:
            await self._client.aclose()
        if self._owns_client:
            self._client = None
