"""
Configuration dataclasses for the domain expiry engine.

This module defines all configuration structures used throughout the system,
including resolver timeouts, SMTP defaults, scheduler timing, persistence and
logging configuration, plus loaders for environment variables and JSON files.
"""

import json
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv


@dataclass
class ResolverConfig:
    """Configuration for registration expiry lookups."""

    rdap_base_url: str = "https://rdap.org/domain/"
    rdap_timeout_seconds: float = 10.0
    whois_timeout_seconds: float = 8.0
    iana_whois_server: str = "whois.iana.org"
    iana_timeout_seconds: float = 5.0
    max_referral_depth: int = 1
    default_concurrency: int = 3
    max_concurrency: int = 10
    chunk_size: int = 500


@dataclass
class SmtpConfig:
    """SMTP settings, either process-wide defaults or a per-user override."""

    host: str
    port: int = 587
    secure: bool = False
    username: str = ""
    password: str = ""
    from_address: str = ""


@dataclass
class SchedulerConfig:
    """Daily expiry notification job configuration."""

    run_hour: int = 3
    run_minute: int = 0
    interval_seconds: float = 24 * 60 * 60
    default_threshold_days: int = 7
    min_threshold_days: int = 1
    max_threshold_days: int = 365
    suppression_window_seconds: float = 24 * 60 * 60
    failure_log_ttl_seconds: float = 7 * 24 * 60 * 60
    zone_page_size: int = 100
    max_zone_pages: int = 500
    enumeration_concurrency: int = 3
    lookup_concurrency: int = 3
    webhook_timeout_seconds: float = 8.0


@dataclass
class PersistenceConfig:
    """Persistence and state storage configuration."""

    cache_file_path: Optional[Path] = None
    notification_state_path: Optional[Path] = None
    hmac_secret: str = "default-secret-change-me"


@dataclass
class LoggingConfig:
    """Logging and audit configuration."""

    level: str = "info"
    audit_mode: bool = False
    audit_signing_key: Optional[str] = None
    output_format: str = "text"  # 'json', 'text', 'both'


@dataclass
class SystemConfig:
    """Main system configuration combining all sub-configurations."""

    resolver: ResolverConfig = field(default_factory=ResolverConfig)
    scheduler: SchedulerConfig = field(default_factory=SchedulerConfig)
    persistence: PersistenceConfig = field(default_factory=PersistenceConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    smtp: Optional[SmtpConfig] = None
    language: str = "en"  # 'de' or 'en'


def _env_int(name: str, default: int) -> int:
    try:
        return int(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except ValueError:
        return default


def _env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in ("1", "true", "yes", "on")


def _env_path(name: str) -> Optional[Path]:
    raw = (os.getenv(name) or "").strip()
    return Path(raw) if raw else None


def load_smtp_defaults_from_env() -> Optional[SmtpConfig]:
    """
    Read the process-wide SMTP defaults.

    Returns:
        SmtpConfig if SMTP_HOST is set, None otherwise
    """
    host = (os.getenv("SMTP_HOST") or "").strip()
    if not host:
        return None
    return SmtpConfig(
        host=host,
        port=_env_int("SMTP_PORT", 587),
        secure=_env_bool("SMTP_SECURE", False),
        username=(os.getenv("SMTP_USER") or "").strip(),
        password=(os.getenv("SMTP_PASS") or "").strip(),
        from_address=(os.getenv("SMTP_FROM") or "").strip(),
    )


def load_config_from_env(dotenv_path: Optional[Path] = None) -> SystemConfig:
    """
    Build a SystemConfig from environment variables.

    A .env file is loaded first (without overriding variables that are
    already set in the process environment).

    Args:
        dotenv_path: Optional explicit path to a .env file

    Returns:
        SystemConfig populated from the environment
    """
    load_dotenv(dotenv_path=dotenv_path)

    resolver = ResolverConfig(
        rdap_base_url=os.getenv("RDAP_BASE_URL", ResolverConfig.rdap_base_url),
        rdap_timeout_seconds=_env_float("RDAP_TIMEOUT", ResolverConfig.rdap_timeout_seconds),
        whois_timeout_seconds=_env_float("WHOIS_TIMEOUT", ResolverConfig.whois_timeout_seconds),
        default_concurrency=_env_int("LOOKUP_CONCURRENCY", ResolverConfig.default_concurrency),
    )

    scheduler = SchedulerConfig(
        run_hour=_env_int("EXPIRY_JOB_HOUR", SchedulerConfig.run_hour),
        run_minute=_env_int("EXPIRY_JOB_MINUTE", SchedulerConfig.run_minute),
        lookup_concurrency=_env_int("LOOKUP_CONCURRENCY", SchedulerConfig.lookup_concurrency),
        enumeration_concurrency=_env_int(
            "ZONE_ENUMERATION_CONCURRENCY", SchedulerConfig.enumeration_concurrency
        ),
    )

    persistence = PersistenceConfig(
        cache_file_path=_env_path("CACHE_FILE"),
        notification_state_path=_env_path("NOTIFICATION_STATE_FILE"),
        hmac_secret=os.getenv("HMAC_SECRET", PersistenceConfig.hmac_secret),
    )

    logging_config = LoggingConfig(
        level=os.getenv("LOG_LEVEL", "info").lower(),
        audit_mode=_env_bool("AUDIT_MODE", False),
        audit_signing_key=os.getenv("AUDIT_SIGNING_KEY") or None,
        output_format=os.getenv("LOG_FORMAT", "text").lower(),
    )

    language = (os.getenv("LANGUAGE_CODE", "en") or "en").lower()
    if language not in ("de", "en"):
        language = "en"

    return SystemConfig(
        resolver=resolver,
        scheduler=scheduler,
        persistence=persistence,
        logging=logging_config,
        smtp=load_smtp_defaults_from_env(),
        language=language,
    )


def load_config_from_file(config_path: Path) -> Optional[SystemConfig]:
    """
    Load configuration from a JSON file.

    Missing sections fall back to their defaults.

    Args:
        config_path: Path to the configuration file

    Returns:
        SystemConfig if successful, None otherwise
    """
    try:
        with open(config_path, "r", encoding="utf-8") as f:
            data = json.load(f)

        resolver = ResolverConfig(**data.get("resolver", {}))
        scheduler = SchedulerConfig(**data.get("scheduler", {}))

        persistence_data = data.get("persistence", {})
        persistence = PersistenceConfig(
            cache_file_path=(
                Path(persistence_data["cache_file_path"])
                if persistence_data.get("cache_file_path") else None
            ),
            notification_state_path=(
                Path(persistence_data["notification_state_path"])
                if persistence_data.get("notification_state_path") else None
            ),
            hmac_secret=persistence_data.get("hmac_secret", PersistenceConfig.hmac_secret),
        )

        logging_config = LoggingConfig(**data.get("logging", {}))

        smtp_data = data.get("smtp")
        smtp = SmtpConfig(**smtp_data) if smtp_data and smtp_data.get("host") else None

        return SystemConfig(
            resolver=resolver,
            scheduler=scheduler,
            persistence=persistence,
            logging=logging_config,
            smtp=smtp,
            language=data.get("language", "en"),
        )

    except (json.JSONDecodeError, KeyError, TypeError) as e:
        print(f"Error loading config: {e}", file=sys.stderr)
        return None
    except FileNotFoundError:
        return None
