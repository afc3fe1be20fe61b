"""
Domain normalization module.

Provides conversion of user- and provider-supplied domain names to the
canonical lookup form: trimmed, lowercase, without a trailing dot and with
internationalized labels encoded as punycode.
"""

from typing import Optional

import idna


def normalize_domain(raw_domain: Optional[str]) -> str:
    """
    Convert a domain to canonical form (lowercase, IDNA-encoded).

    Args:
        raw_domain: Domain string to normalize

    Returns:
        Canonical form of the domain, or an empty string for empty input.
        If IDNA encoding fails the lowercase form is returned unchanged.
    """
    domain = str(raw_domain or "").strip().lower()
    if domain.endswith("."):
        domain = domain[:-1]
    if not domain:
        return ""

    # Check if domain contains non-ASCII characters (international domain)
    if any(ord(c) > 127 for c in domain):
        try:
            return idna.encode(domain, uts46=True).decode("ascii")
        except idna.IDNAError:
            return domain

    return domain


def extract_tld(domain: str) -> Optional[str]:
    """
    Extract the TLD from a domain name with at least two labels.

    Args:
        domain: Domain name (e.g., 'example.com')

    Returns:
        TLD string (e.g., 'com') or None if extraction fails
    """
    parts = [p for p in domain.strip().lower().split(".") if p]
    if len(parts) < 2:
        return None
    return parts[-1]


def unique_normalized(domains: list[str]) -> list[str]:
    """Normalize a list of domains, dropping empties and duplicates (first seen wins)."""
    seen: set[str] = set()
    out: list[str] = []
    for raw in domains:
        canonical = normalize_domain(raw)
        if canonical and canonical not in seen:
            seen.add(canonical)
            out.append(canonical)
    return out
