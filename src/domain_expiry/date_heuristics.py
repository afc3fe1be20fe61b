"""
Free-text date parsing for WHOIS responses.

WHOIS servers do not agree on a date format. Values go through ISO parsing,
a few fixed registry layouts and dateparser, then a sequence of narrower
fallbacks; the first one that parses wins. The result is always a UTC
calendar date.
"""

import re
from datetime import date, datetime, timezone
from typing import Optional

import dateparser

MONTHS = {
    "jan": 1, "feb": 2, "mar": 3, "apr": 4,
    "may": 5, "jun": 6, "jul": 7, "aug": 8,
    "sep": 9, "oct": 10, "nov": 11, "dec": 12,
}

TRAILING_COMMENT = re.compile(r"\s*\(.*\)\s*$")
ISO_DATE_ONLY = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")
DOT_DATE = re.compile(r"^(\d{4})\.(\d{2})\.(\d{2})$")
MONTH_NAME_DATE = re.compile(r"^(\d{2})-([A-Za-z]{3})-(\d{4})")

# Layouts commonly emitted by registries that ISO parsing does not accept
GENERIC_LAYOUTS = (
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d %H:%M:%S %Z",
    "%Y/%m/%d",
    "%Y/%m/%d %H:%M:%S",
    "%d.%m.%Y",
    "%d.%m.%Y %H:%M:%S",
    "%b %d %Y",
    "%d %b %Y",
    "%a %b %d %H:%M:%S %Z %Y",
)

DATEPARSER_SETTINGS = {
    "TIMEZONE": "UTC",
    "TO_TIMEZONE": "UTC",
    "RETURN_AS_TIMEZONE_AWARE": True,
    "PARSERS": ["custom-formats", "absolute-time"],
    "REQUIRE_PARTS": ["day", "month", "year"],
}


def to_utc_date(value: datetime) -> date:
    """Truncate a datetime to its UTC calendar day (naive values are UTC)."""
    if value.tzinfo is not None:
        value = value.astimezone(timezone.utc)
    return value.date()


def _parse_generic(value: str) -> Optional[date]:
    try:
        return to_utc_date(datetime.fromisoformat(value.replace("Z", "+00:00")))
    except ValueError:
        pass
    for layout in GENERIC_LAYOUTS:
        try:
            return to_utc_date(datetime.strptime(value, layout))
        except ValueError:
            continue
    # words alone ("never", "today") are not an expiry date
    if not any(c.isdigit() for c in value):
        return None
    parsed = dateparser.parse(value, languages=["en"], settings=DATEPARSER_SETTINGS)
    if parsed is None:
        return None
    return to_utc_date(parsed)


def _build_date(year: int, month: int, day: int) -> Optional[date]:
    try:
        return date(year, month, day)
    except ValueError:
        return None


def parse_whois_date(value: Optional[str]) -> Optional[date]:
    """
    Parse the value of a WHOIS expiry field.

    Tried in order, after stripping a trailing parenthetical comment:
    generic parsing, YYYY-MM-DD, YYYY.MM.DD, DD-MMM-YYYY, and finally only
    the first whitespace-delimited token.

    Args:
        value: Raw field value, e.g. "2025-03-01T00:00:00Z (UTC)"

    Returns:
        The UTC calendar date, or None if no layout matched
    """
    raw = str(value or "").strip()
    if not raw:
        return None

    cleaned = TRAILING_COMMENT.sub("", raw).strip()
    if not cleaned:
        return None

    parsed = _parse_generic(cleaned)
    if parsed:
        return parsed

    match = ISO_DATE_ONLY.match(cleaned)
    if match:
        parsed = _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            return parsed

    match = DOT_DATE.match(cleaned)
    if match:
        parsed = _build_date(int(match.group(1)), int(match.group(2)), int(match.group(3)))
        if parsed:
            return parsed

    match = MONTH_NAME_DATE.match(cleaned)
    if match:
        month = MONTHS.get(match.group(2).lower())
        if month is not None:
            parsed = _build_date(int(match.group(3)), month, int(match.group(1)))
            if parsed:
                return parsed

    tokens = cleaned.split()
    first_token = tokens[0] if tokens else ""
    if first_token and first_token != cleaned:
        return _parse_generic(first_token)

    return None


def parse_rdap_date(value: Optional[str]) -> Optional[date]:
    """Parse an RDAP eventDate (ISO 8601) to its UTC calendar day."""
    if not isinstance(value, str) or not value:
        return None
    return _parse_generic(value.strip())
