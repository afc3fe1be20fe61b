"""
Zone enumeration and aggregation across a user's DNS credentials.

Each credential is paged through its provider's zone listing; the results
are merged into a map of normalized domain to the accounts it is reachable
through.
"""

from typing import Optional

from .audit_logger import AuditLogger
from .collaborators import CredentialStore, ZoneEnumerator
from .concurrency import map_with_concurrency
from .domain_validator import normalize_domain
from .models import AccountRef, DnsCredential, Zone, ZoneContext

COMPONENT = "ZoneAggregator"


async def list_all_zones(
    enumerator: ZoneEnumerator,
    ctx: ZoneContext,
    page_size: int = 100,
    max_pages: int = 500,
) -> list[Zone]:
    """
    Collect every zone of one provider account.

    Paging stops at an empty page, once the reported total is reached,
    or after max_pages pages. Providers may return fewer zones per page
    than requested, so a short page is not the end.

    Args:
        enumerator: Provider zone enumerator
        ctx: Decrypted auth context for the account
        page_size: Zones requested per page
        max_pages: Hard upper bound on pages fetched

    Returns:
        All zones in provider order
    """
    zones: list[Zone] = []
    for page in range(1, max_pages + 1):
        result = await enumerator.get_zones(ctx, page, page_size)
        zones.extend(result.zones)

        if not result.zones:
            break
        if result.total is not None and len(zones) >= result.total:
            break
    return zones


class ZoneAggregator:
    """Builds the domain to accounts map for one user."""

    def __init__(
        self,
        credentials: CredentialStore,
        enumerator: ZoneEnumerator,
        page_size: int = 100,
        max_pages: int = 500,
        concurrency: int = 3,
        logger: Optional[AuditLogger] = None,
    ) -> None:
        self._credentials = credentials
        self._enumerator = enumerator
        self._page_size = page_size
        self._max_pages = max_pages
        self._concurrency = concurrency
        self._logger = logger

    async def collect(self, user_id: int) -> dict[str, list[AccountRef]]:
        """
        Enumerate all zones of a user.

        Credentials with an unsupported provider, undecryptable secrets or
        a failing enumeration are skipped.

        Returns:
            Normalized domain -> accounts, without duplicate accounts
        """
        credentials = self._credentials.list_credentials(user_id)

        async def enumerate_credential(credential: DnsCredential) -> Optional[list[Zone]]:
            return await self._zones_for(user_id, credential)

        results = await map_with_concurrency(credentials, self._concurrency, enumerate_credential)

        domains: dict[str, list[AccountRef]] = {}
        for credential, zones in zip(credentials, results):
            if not zones:
                continue
            account = AccountRef(
                credential_id=credential.id,
                credential_name=credential.name,
                provider=credential.provider,
            )
            for zone in zones:
                domain = normalize_domain(zone.name)
                if not domain:
                    continue
                accounts = domains.setdefault(domain, [])
                if account not in accounts:
                    accounts.append(account)
        return domains

    async def _zones_for(self, user_id: int, credential: DnsCredential) -> Optional[list[Zone]]:
        if not self._enumerator.is_supported(credential.provider):
            return None

        try:
            secrets = self._credentials.decrypt(credential.secrets)
        except Exception as e:
            self._warn("Skipping credential with unreadable secrets", user_id, credential, e)
            return None

        ctx = ZoneContext(
            provider=credential.provider,
            secrets=secrets,
            account_id=credential.account_id,
            credential_key=f"{user_id}:{credential.id}",
        )
        try:
            return await list_all_zones(self._enumerator, ctx, self._page_size, self._max_pages)
        except Exception as e:
            self._warn("Zone enumeration failed", user_id, credential, e)
            return None

    def _warn(self, message: str, user_id: int, credential: DnsCredential, error: Exception) -> None:
        if self._logger:
            self._logger.warn(COMPONENT, message, {
                "user_id": user_id,
                "credential_id": credential.id,
                "provider": credential.provider,
                "error_message": str(error),
            })
