"""
Lookup entry point.

Validates a caller-supplied domain list and returns the JSON form of the
resolved expiry records. Per-domain failures are reported inline.
"""

from typing import Any, Optional

from .exceptions import ValidationError
from .resolver import RegistrationExpiryResolver

MAX_LOOKUP_DOMAINS = 500


def validate_domain_list(domains: Any) -> list[str]:
    """
    Check the shape of a lookup request.

    Raises:
        ValidationError: If domains is not a non-empty list of at most
            MAX_LOOKUP_DOMAINS strings
    """
    if not isinstance(domains, list) or not domains:
        raise ValidationError(
            code="invalid_domains",
            message="domains must be a non-empty list",
        )
    if len(domains) > MAX_LOOKUP_DOMAINS:
        raise ValidationError(
            code="too_many_domains",
            message=f"at most {MAX_LOOKUP_DOMAINS} domains per request",
            details={"count": len(domains)},
        )
    if not all(isinstance(domain, str) for domain in domains):
        raise ValidationError(
            code="invalid_domains",
            message="domains must be strings",
        )
    return domains


async def lookup_endpoint(
    resolver: RegistrationExpiryResolver,
    domains: Any,
    force_refresh: bool = False,
    concurrency: Optional[int] = None,
) -> list[dict]:
    """
    Resolve expiry records for a request.

    Args:
        resolver: Registration expiry resolver
        domains: Raw request value, expected to be a list of strings
        force_refresh: Bypass cached records
        concurrency: Optional worker count

    Returns:
        List of record dictionaries (domain, expiresAt, source, checkedAt, error)
    """
    validated = validate_domain_list(domains)
    records = await resolver.lookup(validated, force_refresh=force_refresh, concurrency=concurrency)
    return [record.to_dict() for record in records]
