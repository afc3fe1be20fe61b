"""
Domain Expiry - registration expiry resolution and notification engine.

This package resolves when domains' registrations expire via RDAP with a
WHOIS fallback, caches the results, and alerts users about domains close
to expiry through webhook and email channels.
"""

__version__ = "1.0.0"

from domain_expiry.exceptions import (
    DomainExpiryError,
    ValidationError,
    NetworkError,
    ProtocolError,
    PersistenceError,
    TamperingError,
    NotificationError,
)
from domain_expiry.enums import (
    ExpirySource,
    LogLevel,
    NotificationChannelName,
    NotificationStatus,
    RDAPErrorCode,
    SchedulerState,
    WHOISErrorCode,
)
from domain_expiry.config import (
    ResolverConfig,
    SmtpConfig,
    SchedulerConfig,
    PersistenceConfig,
    LoggingConfig,
    SystemConfig,
    load_config_from_env,
    load_config_from_file,
)
from domain_expiry.models import (
    AccountRef,
    CacheEntry,
    DnsCredential,
    ExpiryNotificationPayload,
    ExpiryOutcome,
    ExpiryRecord,
    NotificationIdentity,
    NotificationState,
    Resolved,
    RunSummary,
    Unresolved,
    UserNotificationSettings,
    Zone,
    ZoneContext,
    ZonePage,
)
from domain_expiry.date_heuristics import parse_rdap_date, parse_whois_date
from domain_expiry.domain_validator import extract_tld, normalize_domain
from domain_expiry.whois_client import (
    WHOISClient,
    WhoisServerLocator,
    parse_expiration,
    parse_referral_server,
)
from domain_expiry.rdap_client import RDAPClient
from domain_expiry.cache_store import (
    CacheStore,
    FileCacheStore,
    InMemoryCacheStore,
    SuppressionStore,
)
from domain_expiry.concurrency import map_with_concurrency
from domain_expiry.resolver import RegistrationExpiryResolver, cache_ttl_for, days_left
from domain_expiry.zones import ZoneAggregator, list_all_zones
from domain_expiry.state_store import NotificationStateStore
from domain_expiry.audit_logger import AuditLogger, AuditRecord, LogEntry, create_logger
from domain_expiry.notifications import (
    EmailChannel,
    NotificationChannel,
    SmtpMailTransport,
    WebhookChannel,
    render_expiry_email,
)
from domain_expiry.scheduler import ExpiryNotificationScheduler, seconds_until_next
from domain_expiry.api import lookup_endpoint
from domain_expiry.i18n import get_message, SUPPORTED_LANGUAGES, DEFAULT_LANGUAGE
from domain_expiry.cli import main as cli_main, create_parser

__all__ = [
    # Exceptions
    "DomainExpiryError",
    "ValidationError",
    "NetworkError",
    "ProtocolError",
    "PersistenceError",
    "TamperingError",
    "NotificationError",
    # Enums
    "ExpirySource",
    "LogLevel",
    "NotificationChannelName",
    "NotificationStatus",
    "RDAPErrorCode",
    "SchedulerState",
    "WHOISErrorCode",
    # Configuration
    "ResolverConfig",
    "SmtpConfig",
    "SchedulerConfig",
    "PersistenceConfig",
    "LoggingConfig",
    "SystemConfig",
    "load_config_from_env",
    "load_config_from_file",
    # Models
    "AccountRef",
    "CacheEntry",
    "DnsCredential",
    "ExpiryNotificationPayload",
    "ExpiryOutcome",
    "ExpiryRecord",
    "NotificationIdentity",
    "NotificationState",
    "Resolved",
    "RunSummary",
    "Unresolved",
    "UserNotificationSettings",
    "Zone",
    "ZoneContext",
    "ZonePage",
    # Parsing and normalization
    "parse_rdap_date",
    "parse_whois_date",
    "extract_tld",
    "normalize_domain",
    # Protocol clients
    "WHOISClient",
    "WhoisServerLocator",
    "parse_expiration",
    "parse_referral_server",
    "RDAPClient",
    # Stores
    "CacheStore",
    "FileCacheStore",
    "InMemoryCacheStore",
    "SuppressionStore",
    "NotificationStateStore",
    # Resolution
    "map_with_concurrency",
    "RegistrationExpiryResolver",
    "cache_ttl_for",
    "days_left",
    "ZoneAggregator",
    "list_all_zones",
    # Logging
    "AuditLogger",
    "AuditRecord",
    "LogEntry",
    "create_logger",
    # Notifications
    "EmailChannel",
    "NotificationChannel",
    "SmtpMailTransport",
    "WebhookChannel",
    "render_expiry_email",
    # Scheduler and entry points
    "ExpiryNotificationScheduler",
    "seconds_until_next",
    "lookup_endpoint",
    "get_message",
    "SUPPORTED_LANGUAGES",
    "DEFAULT_LANGUAGE",
    "cli_main",
    "create_parser",
]
