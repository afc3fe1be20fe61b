"""
WHOIS Client module for registration expiry lookups.

This module provides a raw-socket WHOIS client (TCP port 43), the locator
that resolves the authoritative WHOIS server for a TLD through the IANA root
server, and the line parsers that pull an expiry date and a registrar
referral out of free-form WHOIS text.
"""

import asyncio
import re
import socket
from datetime import date
from typing import Awaitable, Callable, Optional

from .date_heuristics import parse_whois_date
from .domain_validator import extract_tld
from .enums import ExpirySource, WHOISErrorCode
from .exceptions import NetworkError
from .models import ExpiryOutcome, Resolved, Unresolved

WHOIS_PORT = 43

# Expiry field labels; within a line the first label that matches is used
EXPIRY_FIELD_PATTERNS = [
    re.compile(rf"^\s*{label}[ \t]*:[ \t]*(.+?)\s*$", re.IGNORECASE)
    for label in (
        r"registry expiry date",
        r"registrar registration expiration date",
        r"expiration date",
        r"expiry date",
        r"expires on",
        r"expires",
        r"paid-till",
        r"paid till",
    )
]

REFERRAL_PATTERN = re.compile(
    r"^[ \t]*(?:registrar whois server|whois server)[ \t]*:[ \t]*(\S+)[ \t]*\r?$",
    re.IGNORECASE | re.MULTILINE,
)
IANA_WHOIS_PATTERN = re.compile(
    r"^[ \t]*whois[ \t]*:[ \t]*(\S+)[ \t]*\r?$",
    re.IGNORECASE | re.MULTILINE,
)
# dot-separated labels of 1-63 characters, no leading or trailing hyphen
HOSTNAME_PATTERN = re.compile(
    r"^(?=.{1,253}\.?$)[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?"
    r"(?:\.[a-z0-9](?:[a-z0-9-]{0,61}[a-z0-9])?)*\.?$",
    re.IGNORECASE,
)


def parse_expiration(text: Optional[str]) -> Optional[date]:
    """
    Find the registration expiry date in a WHOIS response.

    Lines are scanned top to bottom; a labelled line whose value does not
    parse as a date is skipped.

    Args:
        text: Raw WHOIS response

    Returns:
        The UTC expiry date or None
    """
    if not text:
        return None

    for line in text.splitlines():
        for pattern in EXPIRY_FIELD_PATTERNS:
            match = pattern.match(line)
            if not match:
                continue
            parsed = parse_whois_date(match.group(1))
            if parsed:
                return parsed
    return None


def parse_referral_server(text: Optional[str]) -> Optional[str]:
    """Return the lowercase registrar WHOIS server named in a response, if any."""
    match = REFERRAL_PATTERN.search(text or "")
    if not match:
        return None
    server = match.group(1).strip()
    if not server or not HOSTNAME_PATTERN.match(server):
        return None
    return server.lower()


class WhoisServerLocator:
    """
    Resolves the WHOIS server responsible for a TLD.

    Referrals come from the IANA root WHOIS server and are cached for the
    lifetime of the process. Failures are never cached and never raised.
    """

    def __init__(
        self,
        query_raw: Callable[[str, str, Optional[float]], Awaitable[str]],
        root_server: str = "whois.iana.org",
        timeout: float = 5.0,
    ) -> None:
        """
        Initialize the locator.

        Args:
            query_raw: Coroutine performing one WHOIS query (server, query, timeout)
            root_server: Root WHOIS server answering TLD queries
            timeout: Timeout for the root query in seconds
        """
        self._query_raw = query_raw
        self._root_server = root_server
        self._timeout = timeout
        self._servers: dict[str, str] = {}

    async def resolve(self, tld: str) -> Optional[str]:
        """
        Return the WHOIS server for a TLD, or None when it cannot be found.

        Args:
            tld: Top-level domain without leading dot (e.g., 'com')
        """
        tld = (tld or "").strip().lower().lstrip(".")
        if not tld:
            return None

        cached = self._servers.get(tld)
        if cached:
            return cached

        try:
            response = await self._query_raw(self._root_server, tld, self._timeout)
        except NetworkError:
            return None

        match = IANA_WHOIS_PATTERN.search(response or "")
        server = match.group(1).strip().lower() if match else ""
        if not server or not HOSTNAME_PATTERN.match(server):
            return None

        self._servers[tld] = server
        return server

    async def server_for_domain(self, domain: str) -> Optional[str]:
        """Resolve the WHOIS server for the TLD of a domain."""
        tld = extract_tld(domain)
        if not tld:
            return None
        return await self.resolve(tld)

    @property
    def cached_servers(self) -> dict[str, str]:
        """Get a copy of the TLD to server map."""
        return dict(self._servers)


class WHOISClient:
    """
    WHOIS client resolving registration expiry dates.

    A lookup asks the TLD's registry server first. When the registry answer
    carries no expiry field but names a registrar WHOIS server, that server
    is queried too, down to max_referral_depth hops.
    """

    def __init__(
        self,
        timeout: float = 8.0,
        locator: Optional[WhoisServerLocator] = None,
        max_referral_depth: int = 1,
        root_server: str = "whois.iana.org",
        root_timeout: float = 5.0,
    ) -> None:
        """
        Initialize the WHOIS client.

        Args:
            timeout: Per-query timeout in seconds
            locator: Optional TLD server locator; one backed by this client
                     is created when omitted
            max_referral_depth: Number of registrar referrals to follow
            root_server: Root WHOIS server for the default locator
            root_timeout: Root query timeout for the default locator
        """
        self._timeout = timeout
        self._max_referral_depth = max(0, max_referral_depth)
        self._locator = locator or WhoisServerLocator(
            self.query_raw,
            root_server=root_server,
            timeout=root_timeout,
        )

    @property
    def locator(self) -> WhoisServerLocator:
        return self._locator

    async def lookup_expiry(self, domain: str) -> ExpiryOutcome:
        """
        Determine the registration expiry of a domain via WHOIS.

        Args:
            domain: The domain to query (canonical form)

        Returns:
            Resolved with source WHOIS, or Unresolved with a "whois:" diagnostic
        """
        server = await self._locator.server_for_domain(domain)
        if not server:
            return Unresolved(error="whois: unable to resolve whois server")

        try:
            return await self._lookup_on_server(server, domain, depth=0)
        except NetworkError as e:
            return Unresolved(error=f"whois: {e.message}")

    async def _lookup_on_server(self, server: str, domain: str, depth: int) -> ExpiryOutcome:
        raw_response = await self.query_raw(server, domain)

        expires_at = parse_expiration(raw_response)
        if expires_at:
            return Resolved(expires_at=expires_at, source=ExpirySource.WHOIS)

        referral = parse_referral_server(raw_response)
        if referral and referral != server and depth < self._max_referral_depth:
            return await self._lookup_on_server(referral, domain, depth + 1)

        if depth > 0:
            return Unresolved(error="whois: expiration field not found (referral)")
        return Unresolved(error="whois: expiration field not found")

    async def query_raw(
        self,
        server: str,
        query: str,
        timeout: Optional[float] = None,
    ) -> str:
        """
        Send one WHOIS query and collect the full response.

        Args:
            server: WHOIS server hostname
            query: Single-line query (domain or TLD)
            timeout: Overall timeout in seconds (defaults to the client timeout)

        Returns:
            Response text decoded as UTF-8

        Raises:
            NetworkError: On invalid input, timeout, or socket failure
        """
        host = (server or "").strip()
        q = (query or "").strip()
        if not host or not q:
            raise NetworkError(
                code=WHOISErrorCode.NO_SERVER.value,
                message="WHOIS invalid server/query",
                details={"server": server, "query": query},
            )

        effective_timeout = self._timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(
                self._execute_whois_query(host, q, effective_timeout),
                timeout=effective_timeout,
            )
        except asyncio.TimeoutError:
            raise NetworkError(
                code=WHOISErrorCode.TIMEOUT.value,
                message=f"WHOIS timeout after {effective_timeout}s",
                details={"server": host},
            )
        except (socket.timeout, OSError) as e:
            raise NetworkError(
                code=WHOISErrorCode.NETWORK_ERROR.value,
                message=f"Socket error: {e}",
                details={"server": host},
            )
        except ValueError as e:
            # UnicodeError from the idna codec for names the resolver rejects
            raise NetworkError(
                code=WHOISErrorCode.NETWORK_ERROR.value,
                message=f"Invalid WHOIS server {host}: {e}",
                details={"server": host},
            )

    async def _execute_whois_query(self, server: str, query: str, timeout: float) -> str:
        """
        Execute the actual WHOIS query via socket.

        Args:
            server: WHOIS server hostname
            query: Query line
            timeout: Socket timeout in seconds

        Returns:
            Raw WHOIS response as string
        """
        loop = asyncio.get_running_loop()

        def _sync_query() -> str:
            with socket.create_connection((server, WHOIS_PORT), timeout=timeout) as sock:
                sock.sendall(f"{query}\r\n".encode("utf-8"))

                response_parts: list[bytes] = []
                while True:
                    data = sock.recv(4096)
                    if not data:
                        break
                    response_parts.append(data)

                return b"".join(response_parts).decode("utf-8", errors="replace")

        return await loop.run_in_executor(None, _sync_query)
