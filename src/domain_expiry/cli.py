"""
Command-line interface for the domain expiry engine.

Provides the `domain-expiry` command with subcommands:
- lookup: resolve expiry dates for domains and print JSON records
- run-once: run one notification pass against a JSON users file
- serve: arm the daily timer and run passes until interrupted
"""

import argparse
import asyncio
import json
import signal
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Optional

from . import __version__
from .api import lookup_endpoint
from .audit_logger import AuditLogger, create_logger
from .cache_store import CacheStore, FileCacheStore, InMemoryCacheStore
from .config import SystemConfig, load_config_from_env, load_config_from_file
from .exceptions import DomainExpiryError
from .fixtures import StaticFixture
from .i18n import get_message
from .notifications import SmtpMailTransport
from .rdap_client import RDAPClient
from .resolver import RegistrationExpiryResolver
from .scheduler import ExpiryNotificationScheduler
from .state_store import NotificationStateStore
from .whois_client import WHOISClient


def load_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    """Load configuration from --config if given, else from the environment."""
    config_path = getattr(args, "config", None)
    if config_path:
        config = load_config_from_file(Path(config_path))
    else:
        config = load_config_from_env()

    if config is not None and getattr(args, "language", None):
        config.language = args.language
    return config


def create_cache(config: SystemConfig) -> CacheStore:
    path = config.persistence.cache_file_path
    if path is None:
        return InMemoryCacheStore()
    return FileCacheStore(path, config.persistence.hmac_secret)


def create_app_logger(config: SystemConfig, verbose: bool = False) -> AuditLogger:
    return create_logger(
        level="debug" if verbose else config.logging.level,
        output_format=config.logging.output_format,
        audit_mode=config.logging.audit_mode,
        audit_signing_key=config.logging.audit_signing_key,
    )


@asynccontextmanager
async def open_resolver(
    config: SystemConfig,
    logger: AuditLogger,
    cache: Optional[CacheStore] = None,
) -> AsyncIterator[RegistrationExpiryResolver]:
    """Build a resolver whose RDAP client is closed on exit."""
    resolver_config = config.resolver
    whois_client = WHOISClient(
        timeout=resolver_config.whois_timeout_seconds,
        max_referral_depth=resolver_config.max_referral_depth,
        root_server=resolver_config.iana_whois_server,
        root_timeout=resolver_config.iana_timeout_seconds,
    )
    async with RDAPClient(
        base_url=resolver_config.rdap_base_url,
        timeout=resolver_config.rdap_timeout_seconds,
    ) as rdap_client:
        yield RegistrationExpiryResolver(
            cache=cache if cache is not None else create_cache(config),
            rdap_client=rdap_client,
            whois_client=whois_client,
            config=resolver_config,
            logger=logger,
        )


def build_scheduler(
    config: SystemConfig,
    fixture: StaticFixture,
    resolver: RegistrationExpiryResolver,
    cache: CacheStore,
    logger: AuditLogger,
) -> ExpiryNotificationScheduler:
    states = NotificationStateStore(
        file_path=config.persistence.notification_state_path,
        hmac_secret=config.persistence.hmac_secret,
    )
    return ExpiryNotificationScheduler(
        users=fixture,
        credentials=fixture,
        enumerator=fixture,
        resolver=resolver,
        cache=cache,
        states=states,
        audit_log=logger,
        logger=logger,
        mail_transport=SmtpMailTransport(defaults=config.smtp, language=config.language),
        config=config.scheduler,
    )


async def run_lookup(args: argparse.Namespace, config: SystemConfig) -> int:
    logger = create_app_logger(config, args.verbose)
    async with open_resolver(config, logger) as resolver:
        records = await lookup_endpoint(
            resolver,
            args.domains,
            force_refresh=args.force,
            concurrency=args.concurrency,
        )

    output = json.dumps(records, indent=2, ensure_ascii=False)
    if args.output:
        Path(args.output).write_text(output + "\n", encoding="utf-8")
    else:
        print(output)

    return 0 if all(record.get("expiresAt") for record in records) else 1


async def run_scheduler(args: argparse.Namespace, config: SystemConfig, serve: bool) -> int:
    language = config.language
    try:
        fixture = StaticFixture.from_file(Path(args.users))
    except (OSError, ValueError, KeyError, DomainExpiryError) as e:
        print(get_message("cli.users_file_error", language, error=e), file=sys.stderr)
        return 1

    logger = create_app_logger(config, args.verbose)
    cache = create_cache(config)
    async with open_resolver(config, logger, cache=cache) as resolver:
        scheduler = build_scheduler(config, fixture, resolver, cache, logger)

        if serve:
            stop_event = asyncio.Event()
            loop = asyncio.get_running_loop()
            for sig in (signal.SIGINT, signal.SIGTERM):
                try:
                    loop.add_signal_handler(sig, stop_event.set)
                except NotImplementedError:
                    pass
            await scheduler.serve(stop_event)
            return 0

        summary = await scheduler.run_once()

    if summary.skipped:
        print(get_message("cli.run_skipped", language))
        return 1

    print(get_message(
        "cli.run_summary",
        language,
        users=summary.users_processed,
        domains=summary.domains_checked,
        sent=summary.notifications_sent,
        failed=summary.notifications_failed,
        suppressed=summary.notifications_suppressed,
    ))
    return 0 if summary.notifications_failed == 0 else 1


def _with_config(args: argparse.Namespace) -> Optional[SystemConfig]:
    config = load_config(args)
    if config is None:
        print(get_message("cli.config_error", args.language, error=args.config), file=sys.stderr)
    return config


def cmd_lookup(args: argparse.Namespace) -> int:
    config = _with_config(args)
    if config is None:
        return 1
    try:
        return asyncio.run(run_lookup(args, config))
    except DomainExpiryError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_run_once(args: argparse.Namespace) -> int:
    config = _with_config(args)
    if config is None:
        return 1
    try:
        return asyncio.run(run_scheduler(args, config, serve=False))
    except DomainExpiryError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def cmd_serve(args: argparse.Namespace) -> int:
    config = _with_config(args)
    if config is None:
        return 1
    try:
        return asyncio.run(run_scheduler(args, config, serve=True))
    except DomainExpiryError as e:
        print(f"Error: {e.message}", file=sys.stderr)
        return 1


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--config", "-c",
        help="Path to JSON configuration file (default: environment / .env)",
    )
    parser.add_argument(
        "--language", "-l",
        choices=["de", "en"],
        help="Output language",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="domain-expiry",
        description=get_message("cli.description"),
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    lookup_parser = subparsers.add_parser(
        "lookup",
        help="Resolve registration expiry dates",
    )
    lookup_parser.add_argument(
        "domains",
        nargs="+",
        help="Domains to look up",
    )
    lookup_parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Ignore cached records",
    )
    lookup_parser.add_argument(
        "--concurrency", "-n",
        type=int,
        default=None,
        help="Parallel lookups (1-10, default: 3)",
    )
    lookup_parser.add_argument(
        "--output", "-o",
        help="Write JSON records to this file instead of stdout",
    )
    _add_common_arguments(lookup_parser)
    lookup_parser.set_defaults(func=cmd_lookup)

    run_once_parser = subparsers.add_parser(
        "run-once",
        help="Run one notification pass",
    )
    run_once_parser.add_argument(
        "--users", "-u",
        required=True,
        help="JSON file with users, credentials and zones",
    )
    _add_common_arguments(run_once_parser)
    run_once_parser.set_defaults(func=cmd_run_once)

    serve_parser = subparsers.add_parser(
        "serve",
        help="Run notification passes daily until interrupted",
    )
    serve_parser.add_argument(
        "--users", "-u",
        required=True,
        help="JSON file with users, credentials and zones",
    )
    _add_common_arguments(serve_parser)
    serve_parser.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """
    Main entry point for the CLI.

    Args:
        argv: Command line arguments (defaults to sys.argv[1:])

    Returns:
        Exit code
    """
    parser = create_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 0

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
