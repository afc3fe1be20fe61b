"""
Enumeration types for the domain expiry engine.

These enums provide type-safe constants for lookup sources, error codes,
notification delivery state and scheduler state throughout the system.
"""

from enum import Enum


class ExpirySource(Enum):
    """Protocol that produced a registration expiry date."""

    RDAP = "rdap"
    WHOIS = "whois"
    UNKNOWN = "unknown"


class LogLevel(Enum):
    """Logging severity levels."""

    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


class RDAPErrorCode(Enum):
    """Error codes for RDAP client operations."""

    NETWORK_ERROR = "network_error"
    TLS_ERROR = "tls_error"
    TIMEOUT = "timeout"
    PARSE_ERROR = "parse_error"
    HTTP_ERROR = "http_error"
    NO_EXPIRATION = "no_expiration"


class WHOISErrorCode(Enum):
    """Error codes for WHOIS client operations."""

    NETWORK_ERROR = "network_error"
    TIMEOUT = "timeout"
    NO_SERVER = "no_server"
    NO_EXPIRATION = "no_expiration"


class NotificationChannelName(Enum):
    """Delivery channels for expiry notifications."""

    WEBHOOK = "webhook"
    EMAIL = "email"


class NotificationStatus(Enum):
    """Outcome of the last delivery attempt for a notification identity."""

    SENT = "SENT"
    FAILED = "FAILED"


class SchedulerState(Enum):
    """Lifecycle state of the expiry notification scheduler."""

    IDLE = "idle"
    RUNNING = "running"
