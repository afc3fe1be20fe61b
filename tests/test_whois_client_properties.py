"""
Property-based tests for the WHOIS client.

Covers expiry field extraction, referral parsing, TLD server location via
the IANA root server and the depth-bounded referral walk.
"""

import asyncio
import string
from datetime import date, datetime, timezone
from typing import Optional

from hypothesis import given, settings
from hypothesis import strategies as st

from domain_expiry import whois_client
from domain_expiry.cache_store import InMemoryCacheStore
from domain_expiry.enums import ExpirySource
from domain_expiry.exceptions import NetworkError
from domain_expiry.models import Resolved, Unresolved
from domain_expiry.resolver import RegistrationExpiryResolver
from domain_expiry.whois_client import (
    WHOISClient,
    WhoisServerLocator,
    parse_expiration,
    parse_referral_server,
)

IANA_COM = "refer:        whois.verisign-grs.com\n\ndomain:       COM\nwhois:        whois.verisign-grs.com\n"


class ScriptedWHOISClient(WHOISClient):
    """WHOIS client answering from a server -> response map instead of sockets."""

    def __init__(self, responses: dict[str, str], failing: Optional[set[str]] = None, **kwargs) -> None:
        super().__init__(**kwargs)
        self._responses = responses
        self._failing = failing or set()
        self.calls: list[tuple[str, str]] = []

    async def _execute_whois_query(self, server: str, query: str, timeout: float) -> str:
        self.calls.append((server, query))
        if server in self._failing:
            raise OSError("connection refused")
        return self._responses.get(server, "")


class TestExpirationParsing:
    """Expiry field extraction from free-form WHOIS text."""

    def test_registry_expiry_date(self) -> None:
        text = "Domain Name: EXAMPLE.COM\r\nRegistry Expiry Date: 2025-03-01T04:00:00Z\r\n"
        assert parse_expiration(text) == date(2025, 3, 1)

    def test_paid_till(self) -> None:
        assert parse_expiration("paid-till:     2025.03.01\n") == date(2025, 3, 1)

    def test_expires_on_with_month_name(self) -> None:
        assert parse_expiration("Expires On: 01-Mar-2025\n") == date(2025, 3, 1)

    def test_first_parseable_line_wins(self) -> None:
        text = (
            "Expiration Date: not yet known\n"
            "Registrar Registration Expiration Date: 2026-01-15\n"
            "Registry Expiry Date: 2027-01-15\n"
        )
        assert parse_expiration(text) == date(2026, 1, 15)

    def test_no_expiry_field(self) -> None:
        assert parse_expiration("Domain Name: EXAMPLE.COM\nCreation Date: 2020-01-01\n") is None
        assert parse_expiration("") is None
        assert parse_expiration(None) is None

    @given(
        noise=st.text(alphabet=string.ascii_letters + " \n:.-", max_size=200),
        day=st.dates(min_value=date(2000, 1, 1), max_value=date(2099, 12, 31)),
    )
    @settings(max_examples=100)
    def test_labelled_line_found_among_noise(self, noise: str, day: date) -> None:
        text = f"{noise}\nRegistry Expiry Date: {day.isoformat()}T00:00:00Z\n"
        assert parse_expiration(text) == day


class TestReferralParsing:
    """Registrar referral extraction."""

    def test_registrar_whois_server(self) -> None:
        text = "Registrar WHOIS Server: WHOIS.Registrar.Example\r\nOther: x\r\n"
        assert parse_referral_server(text) == "whois.registrar.example"

    def test_whois_server_label(self) -> None:
        assert parse_referral_server("Whois Server: whois.example.net\n") == "whois.example.net"

    def test_rejects_non_hostname(self) -> None:
        assert parse_referral_server("Registrar WHOIS Server: http://whois.example.net/\n") is None

    def test_empty_value_does_not_take_next_line(self) -> None:
        text = "Registrar WHOIS Server:\nRegistrar URL: whois.example.net\n"
        assert parse_referral_server(text) is None

    def test_rejects_malformed_labels(self) -> None:
        assert parse_referral_server("Registrar WHOIS Server: whois..registrar.example\n") is None
        assert parse_referral_server("Registrar WHOIS Server: -whois.registrar.example\n") is None
        assert parse_referral_server(f"Registrar WHOIS Server: {'a' * 64}.example\n") is None

    def test_missing(self) -> None:
        assert parse_referral_server("Domain Name: EXAMPLE.COM\n") is None
        assert parse_referral_server(None) is None


class TestServerLocator:
    """TLD server lookup through the IANA root server."""

    def test_resolves_and_caches(self) -> None:
        client = ScriptedWHOISClient({"whois.iana.org": IANA_COM})

        async def resolve_twice() -> tuple:
            first = await client.locator.resolve("com")
            second = await client.locator.resolve("COM")
            return first, second

        first, second = asyncio.run(resolve_twice())
        assert first == second == "whois.verisign-grs.com"
        assert client.calls == [("whois.iana.org", "com")]

    def test_failure_is_none_and_not_cached(self) -> None:
        client = ScriptedWHOISClient({}, failing={"whois.iana.org"})
        assert asyncio.run(client.locator.resolve("com")) is None
        assert client.locator.cached_servers == {}

    def test_single_label_domain_has_no_server(self) -> None:
        client = ScriptedWHOISClient({"whois.iana.org": IANA_COM})
        assert asyncio.run(client.locator.server_for_domain("localhost")) is None
        assert client.calls == []

    def test_custom_query_function(self) -> None:
        queries = []

        async def query_raw(server: str, query: str, timeout: Optional[float]) -> str:
            queries.append((server, query, timeout))
            return "whois: whois.nic.io\n"

        locator = WhoisServerLocator(query_raw, timeout=5.0)
        assert asyncio.run(locator.resolve(".io")) == "whois.nic.io"
        assert queries == [("whois.iana.org", "io", 5.0)]


class TestReferralFollowedOnce:
    """A registrar referral is followed once and never further."""

    def test_expiry_from_referral(self) -> None:
        client = ScriptedWHOISClient({
            "whois.iana.org": IANA_COM,
            "whois.verisign-grs.com": "Domain Name: EXAMPLE.COM\nRegistrar WHOIS Server: whois.registrar.example\n",
            "whois.registrar.example": "Registrar Registration Expiration Date: 2025-03-01T00:00:00Z\n",
        })
        outcome = asyncio.run(client.lookup_expiry("example.com"))
        assert outcome == Resolved(expires_at=date(2025, 3, 1), source=ExpirySource.WHOIS)

    def test_second_level_referral_not_followed(self) -> None:
        client = ScriptedWHOISClient({
            "whois.iana.org": IANA_COM,
            "whois.verisign-grs.com": "Registrar WHOIS Server: whois.a.example\n",
            "whois.a.example": "Registrar WHOIS Server: whois.b.example\n",
            "whois.b.example": "Registry Expiry Date: 2025-03-01\n",
        })
        outcome = asyncio.run(client.lookup_expiry("example.com"))

        assert isinstance(outcome, Unresolved)
        assert outcome.error == "whois: expiration field not found (referral)"
        queried = [server for server, _ in client.calls]
        assert queried == ["whois.iana.org", "whois.verisign-grs.com", "whois.a.example"]

    def test_self_referral_not_followed(self) -> None:
        client = ScriptedWHOISClient({
            "whois.iana.org": IANA_COM,
            "whois.verisign-grs.com": "Registrar WHOIS Server: whois.verisign-grs.com\n",
        })
        outcome = asyncio.run(client.lookup_expiry("example.com"))
        assert outcome == Unresolved(error="whois: expiration field not found")
        assert len(client.calls) == 2

    def test_unknown_tld_server(self) -> None:
        client = ScriptedWHOISClient({"whois.iana.org": "% no match\n"})
        outcome = asyncio.run(client.lookup_expiry("example.invalid"))
        assert outcome == Unresolved(error="whois: unable to resolve whois server")

    def test_transport_error_becomes_diagnostic(self) -> None:
        client = ScriptedWHOISClient({"whois.iana.org": IANA_COM}, failing={"whois.verisign-grs.com"})
        outcome = asyncio.run(client.lookup_expiry("example.com"))
        assert isinstance(outcome, Unresolved)
        assert outcome.error.startswith("whois: Socket error:")


class SlowWHOISClient(WHOISClient):
    async def _execute_whois_query(self, server: str, query: str, timeout: float) -> str:
        await asyncio.sleep(5)
        return ""


class TestQueryRaw:
    """Raw query input checks and timeout handling."""

    def test_timeout_raises_network_error(self) -> None:
        client = SlowWHOISClient(timeout=0.05)
        try:
            asyncio.run(client.query_raw("whois.example", "example.com"))
        except NetworkError as e:
            assert e.code == "timeout"
            assert "timeout" in e.message
        else:
            raise AssertionError("expected NetworkError")

    def test_empty_query_rejected(self) -> None:
        client = WHOISClient()
        try:
            asyncio.run(client.query_raw("whois.example", "  "))
        except NetworkError as e:
            assert e.message == "WHOIS invalid server/query"
        else:
            raise AssertionError("expected NetworkError")


class FakeSocket:
    """Answers once the query line has been sent; `response` may map queries to answers."""

    def __init__(self, response) -> None:
        self._response = response
        self._chunks: Optional[list[bytes]] = None
        self.sent = b""

    def __enter__(self) -> "FakeSocket":
        return self

    def __exit__(self, *exc) -> None:
        return None

    def sendall(self, data: bytes) -> None:
        self.sent += data

    def recv(self, size: int) -> bytes:
        if self._chunks is None:
            text = self._response
            if isinstance(text, dict):
                text = text.get(self.sent.decode("utf-8").strip(), "")
            payload = text.encode("utf-8")
            self._chunks = [payload[i:i + 7] for i in range(0, len(payload), 7)]
        return self._chunks.pop(0) if self._chunks else b""


def fake_network(responses: dict, connections: Optional[list] = None):
    """create_connection stand-in; unknown hosts fail the way the idna codec does."""

    def create_connection(address, timeout=None):
        host, port = address
        if connections is not None:
            connections.append((host, port, timeout))
        if host not in responses:
            raise UnicodeError("encoding with 'idna' codec failed (label empty or too long)")
        return FakeSocket(responses[host])

    return create_connection


class TestSocketQuery:
    """Queries through the executor-backed socket path."""

    def test_response_is_joined(self, monkeypatch) -> None:
        connections: list = []
        monkeypatch.setattr(
            whois_client.socket, "create_connection",
            fake_network({"whois.example": "Registry Expiry Date: 2025-03-01\n"}, connections),
        )
        text = asyncio.run(WHOISClient(timeout=3.0).query_raw("whois.example", "example.com"))
        assert text == "Registry Expiry Date: 2025-03-01\n"
        assert connections == [("whois.example", 43, 3.0)]

    def test_unencodable_host_becomes_network_error(self, monkeypatch) -> None:
        monkeypatch.setattr(whois_client.socket, "create_connection", fake_network({}))
        try:
            asyncio.run(WHOISClient().query_raw("whois.broken.example", "example.com"))
        except NetworkError as e:
            assert e.code == "network_error"
            assert e.message.startswith("Invalid WHOIS server whois.broken.example")
        else:
            raise AssertionError("expected NetworkError")

    def test_batch_continues_past_unusable_server(self, monkeypatch) -> None:
        monkeypatch.setattr(whois_client.socket, "create_connection", fake_network({
            "whois.iana.org": {
                "bad": "whois:        whois.nic.bad\n",
                "org": "whois:        whois.publicinterestregistry.org\n",
            },
            "whois.publicinterestregistry.org": "Registry Expiry Date: 2025-03-01T00:00:00Z\n",
        }))

        class NoRdap:
            async def lookup_expiry(self, domain: str):
                return Unresolved(error="rdap: RDAP HTTP 404")

        resolver = RegistrationExpiryResolver(
            cache=InMemoryCacheStore(),
            rdap_client=NoRdap(),
            whois_client=WHOISClient(),
            clock=lambda: datetime(2025, 1, 1, tzinfo=timezone.utc),
        )
        records = asyncio.run(resolver.lookup(["a.bad", "b.org"]))

        assert records[0].expires_at is None
        assert "whois: Invalid WHOIS server whois.nic.bad" in records[0].error
        assert records[1].expires_at == date(2025, 3, 1)
