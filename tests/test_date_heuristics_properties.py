"""
Property-based tests for WHOIS/RDAP date parsing.

Uses Hypothesis for property-based testing of the free-text date
heuristics shared by the protocol clients.
"""

from datetime import date

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from domain_expiry.date_heuristics import MONTHS, parse_rdap_date, parse_whois_date

MONTH_ABBREVIATIONS = {number: name for name, number in MONTHS.items()}


class TestSampleFormats:
    """The registry formats seen in the wild all resolve to the same day."""

    @pytest.mark.parametrize("value", [
        "2025-03-01T00:00:00Z",
        "2025-03-01",
        "2025.03.01",
        "01-Mar-2025",
    ])
    def test_sample_formats_parse_to_same_day(self, value: str) -> None:
        assert parse_whois_date(value) == date(2025, 3, 1)

    def test_trailing_comment_is_ignored(self) -> None:
        assert parse_whois_date("2025-03-01T00:00:00Z (UTC)") == date(2025, 3, 1)

    def test_month_name_is_case_insensitive(self) -> None:
        assert parse_whois_date("01-MAR-2025") == date(2025, 3, 1)

    def test_offset_is_converted_to_utc_day(self) -> None:
        assert parse_whois_date("2025-03-01T23:30:00-02:00") == date(2025, 3, 2)

    def test_fractional_seconds(self) -> None:
        assert parse_whois_date("2025-03-01T04:00:00.000Z") == date(2025, 3, 1)

    def test_first_token_fallback(self) -> None:
        assert parse_whois_date("2025-03-01 expires soon") == date(2025, 3, 1)

    def test_common_registry_layouts(self) -> None:
        assert parse_whois_date("2025-03-01 12:00:00") == date(2025, 3, 1)
        assert parse_whois_date("2025/03/01") == date(2025, 3, 1)
        assert parse_whois_date("01.03.2025") == date(2025, 3, 1)

    @pytest.mark.parametrize("value", [
        "March 1, 2025",
        "1 March 2025",
        "Sat Mar 01 2025",
        "Saturday, 1 March 2025 14:00 GMT",
    ])
    def test_written_out_dates(self, value: str) -> None:
        assert parse_whois_date(value) == date(2025, 3, 1)

    def test_partial_date_is_rejected(self) -> None:
        assert parse_whois_date("March 2025") is None


class TestUnparseableValues:
    """Values without a recognizable date yield None instead of raising."""

    @pytest.mark.parametrize("value", [None, "", "   ", "(UTC)", "never", "2025-13-45", "31-Foo-2025"])
    def test_garbage_returns_none(self, value) -> None:
        assert parse_whois_date(value) is None

    @given(value=st.text(alphabet="abcdefghijklmnopqrstuvwxyz !?#", max_size=40))
    @settings(max_examples=100)
    def test_letters_only_never_parse(self, value: str) -> None:
        assert parse_whois_date(value) is None


class TestLayoutProperty:
    """Any calendar date written in a supported layout parses back to itself."""

    @given(day=st.dates(min_value=date(1990, 1, 1), max_value=date(2099, 12, 31)))
    @settings(max_examples=100)
    def test_supported_layouts_roundtrip_day(self, day: date) -> None:
        layouts = [
            day.isoformat(),
            f"{day.isoformat()}T00:00:00Z",
            f"{day.year:04d}.{day.month:02d}.{day.day:02d}",
            f"{day.day:02d}-{MONTH_ABBREVIATIONS[day.month]}-{day.year:04d}",
        ]
        for value in layouts:
            assert parse_whois_date(value) == day, value


class TestRdapDates:
    """RDAP eventDate values are ISO 8601 timestamps."""

    def test_rdap_timestamp(self) -> None:
        assert parse_rdap_date("2025-03-01T04:00:00Z") == date(2025, 3, 1)

    def test_rdap_non_string(self) -> None:
        assert parse_rdap_date(None) is None
        assert parse_rdap_date(12345) is None  # type: ignore[arg-type]

    def test_rdap_garbage(self) -> None:
        assert parse_rdap_date("soon") is None
