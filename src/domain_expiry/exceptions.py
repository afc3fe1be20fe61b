"""
Exception classes for the domain expiry engine.

All exceptions inherit from DomainExpiryError and provide structured
error information with codes, messages, and optional details.
"""

from typing import Optional


class DomainExpiryError(Exception):
    """Base exception for all domain expiry errors."""

    def __init__(
        self,
        code: str,
        message: str,
        details: Optional[dict] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(code={self.code!r}, message={self.message!r})"

    def to_dict(self) -> dict:
        """Convert exception to dictionary for serialization."""
        return {
            "error_type": self.__class__.__name__,
            "code": self.code,
            "message": self.message,
            "details": self.details,
        }


class ValidationError(DomainExpiryError):
    """Raised when caller input is rejected (missing or oversized domain list)."""

    pass


class NetworkError(DomainExpiryError):
    """Raised when network operations fail."""

    pass


class ProtocolError(DomainExpiryError):
    """Raised when protocol-level errors occur (invalid RDAP response, malformed JSON)."""

    pass


class PersistenceError(DomainExpiryError):
    """Raised when persistence operations fail (file I/O, HMAC validation)."""

    pass


class TamperingError(PersistenceError):
    """Raised when HMAC validation fails, indicating data tampering."""

    pass


class NotificationError(DomainExpiryError):
    """Raised when notification delivery fails."""

    pass
