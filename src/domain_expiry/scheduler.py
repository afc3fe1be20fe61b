"""
Expiry notification scheduler.

Runs the daily expiry pass: for every user, enumerate the zones of all DNS
credentials, resolve registration expiry dates, and alert through the
user's webhook and email channels about domains inside the alert window.
Each notification identity is attempted at most once per suppression
window, whatever the outcome of the previous attempt.
"""

import asyncio
import json
import time
from datetime import datetime, timedelta
from typing import Callable, Optional

import httpx

from .audit_logger import AuditLogger
from .cache_store import CacheStore, SuppressionStore, failure_log_key
from .collaborators import AuditLog, CredentialStore, MailTransport, UserDirectory, ZoneEnumerator
from .concurrency import clamp
from .config import SchedulerConfig, SmtpConfig
from .enums import NotificationStatus, SchedulerState
from .exceptions import NotificationError
from .models import (
    AccountRef,
    ExpiryNotificationPayload,
    ExpiryRecord,
    NotificationIdentity,
    NotificationState,
    RunSummary,
    UserNotificationSettings,
    utc_now,
)
from .notifications import EmailChannel, NotificationChannel, SmtpMailTransport, WebhookChannel
from .resolver import RegistrationExpiryResolver, days_left
from .state_store import NotificationStateStore
from .zones import ZoneAggregator

COMPONENT = "domain-expiry"


def seconds_until_next(hour: int, minute: int, now: Optional[datetime] = None) -> float:
    """
    Seconds from now until the next local wall-clock hour:minute.

    A target equal to now is scheduled for the following day.
    """
    now = now or datetime.now()
    target = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if target <= now:
        target += timedelta(days=1)
    return (target - now).total_seconds()


def effective_threshold(value: Optional[int], config: SchedulerConfig) -> int:
    """Clamp a user's threshold to the configured range; missing or invalid uses the default."""
    if not isinstance(value, int) or isinstance(value, bool):
        return config.default_threshold_days
    return clamp(value, config.min_threshold_days, config.max_threshold_days)


def merge_refreshed(
    records: list[ExpiryRecord],
    refreshed: list[ExpiryRecord],
) -> list[ExpiryRecord]:
    """
    Replace records by their force-refreshed counterparts.

    A refreshed record that lost an expiry date the cached one had is
    discarded in favour of the cached one.
    """
    by_domain = {record.domain: record for record in refreshed}
    merged = []
    for record in records:
        fresh = by_domain.get(record.domain)
        if fresh is None or (fresh.expires_at is None and record.expires_at is not None):
            merged.append(record)
        else:
            merged.append(fresh)
    return merged


class ExpiryNotificationScheduler:
    """
    Daily expiry notification job.

    The scheduler is IDLE or RUNNING; a run requested while another one is
    in progress is skipped. One instance per deployment is assumed.
    """

    def __init__(
        self,
        users: UserDirectory,
        credentials: CredentialStore,
        enumerator: ZoneEnumerator,
        resolver: RegistrationExpiryResolver,
        cache: CacheStore,
        states: NotificationStateStore,
        audit_log: AuditLog,
        logger: AuditLogger,
        mail_transport: Optional[MailTransport] = None,
        config: Optional[SchedulerConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        """
        Initialize the scheduler.

        Args:
            users: Source of users and their alert settings
            credentials: DNS credential access
            enumerator: Provider zone enumerator
            resolver: Registration expiry resolver
            cache: Cache store backing failure log deduplication
            states: Notification state store
            audit_log: Sink for failed lookup audit records
            logger: Process logger
            mail_transport: Email delivery (SMTP without defaults when omitted)
            config: Scheduler configuration
            http_client: Optional shared httpx client for webhooks
            clock: Source of the current UTC time
        """
        self._users = users
        self._resolver = resolver
        self._suppression = SuppressionStore(cache)
        self._states = states
        self._audit_log = audit_log
        self._logger = logger
        self._mail = mail_transport if mail_transport is not None else SmtpMailTransport()
        self._config = config or SchedulerConfig()
        self._http_client = http_client
        self._clock = clock
        self._zones = ZoneAggregator(
            credentials,
            enumerator,
            page_size=self._config.zone_page_size,
            max_pages=self._config.max_zone_pages,
            concurrency=self._config.enumeration_concurrency,
            logger=logger,
        )
        self._lock = asyncio.Lock()
        self._state = SchedulerState.IDLE

    @property
    def state(self) -> SchedulerState:
        return self._state

    async def trigger(self) -> bool:
        """Run one pass; returns False if a pass was already running."""
        summary = await self.run_once()
        return not summary.skipped

    async def run_once(self) -> RunSummary:
        """
        Execute one full pass over all users.

        Exceptions escaping the pass are logged, never raised.

        Returns:
            RunSummary of the pass (skipped=True if another pass was running)
        """
        if self._lock.locked():
            return RunSummary(skipped=True)

        async with self._lock:
            self._state = SchedulerState.RUNNING
            started = time.monotonic()
            summary = RunSummary()
            try:
                for user in self._users.list_users():
                    await self._process_user(user, summary)
                    summary.users_processed += 1
            except Exception as e:
                self._logger.log_error(COMPONENT, f"job failed: {e}", error=e)
            finally:
                self._state = SchedulerState.IDLE
                elapsed_ms = int((time.monotonic() - started) * 1000)
                self._logger.info(COMPONENT, f"job finished in {elapsed_ms}ms", {
                    "users_processed": summary.users_processed,
                    "domains_checked": summary.domains_checked,
                    "notifications_sent": summary.notifications_sent,
                    "notifications_failed": summary.notifications_failed,
                    "notifications_suppressed": summary.notifications_suppressed,
                })
            return summary

    async def serve(self, stop_event: asyncio.Event) -> None:
        """
        Arm the daily timer and run until stop_event is set.

        The first pass runs at the configured local time, then every
        interval_seconds.
        """
        delay = seconds_until_next(self._config.run_hour, self._config.run_minute)
        self._logger.info(COMPONENT, f"scheduler armed, next run in {int(delay)}s")

        if await self._wait(stop_event, delay):
            return

        while True:
            await self.run_once()
            if await self._wait(stop_event, self._config.interval_seconds):
                return

    @staticmethod
    async def _wait(stop_event: asyncio.Event, seconds: float) -> bool:
        """Sleep up to seconds; True if the stop event fired."""
        try:
            await asyncio.wait_for(stop_event.wait(), timeout=seconds)
            return True
        except asyncio.TimeoutError:
            return False

    async def _process_user(self, user: UserNotificationSettings, summary: RunSummary) -> None:
        threshold = effective_threshold(user.threshold_days, self._config)
        channels = self._active_channels(user)

        domain_accounts = await self._zones.collect(user.user_id)
        if not domain_accounts:
            return

        domains = list(domain_accounts.keys())
        records = await self._resolver.lookup(domains, concurrency=self._config.lookup_concurrency)
        summary.domains_checked += len(records)

        if not channels:
            return

        now = self._clock()
        in_window = [record.domain for record in records if self._in_window(record, threshold, now)]
        if in_window:
            refreshed = await self._resolver.lookup(
                in_window,
                force_refresh=True,
                concurrency=self._config.lookup_concurrency,
            )
            records = merge_refreshed(records, refreshed)

        await self._log_failures(user.user_id, records, summary)

        now = self._clock()
        for record in records:
            if not self._in_window(record, threshold, now):
                continue
            payload = ExpiryNotificationPayload(
                user_id=user.user_id,
                username=user.username,
                domain=record.domain,
                expires_at=record.expires_at,
                days_left=days_left(record.expires_at, now),
                threshold_days=threshold,
                accounts=domain_accounts.get(record.domain, []),
                checked_at=record.checked_at,
            )
            for channel in channels:
                await self._dispatch(channel, payload, summary)

    def _active_channels(self, user: UserNotificationSettings) -> list[NotificationChannel]:
        channels: list[NotificationChannel] = []

        webhook_url = (user.webhook_url or "").strip()
        if user.webhook_enabled and webhook_url:
            channels.append(WebhookChannel(
                webhook_url,
                timeout=self._config.webhook_timeout_seconds,
                client=self._http_client,
            ))

        recipient = (user.email_to if user.email_to is not None else user.email) or ""
        recipient = recipient.strip()
        if user.email_enabled and recipient:
            channels.append(EmailChannel(self._mail, recipient, self._smtp_override(user)))

        return channels

    @staticmethod
    def _smtp_override(user: UserNotificationSettings) -> Optional[SmtpConfig]:
        override = user.smtp_override
        if override is None or not (override.host or "").strip():
            return None
        return override

    @staticmethod
    def _in_window(record: ExpiryRecord, threshold: int, now: datetime) -> bool:
        if record.expires_at is None:
            return False
        remaining = days_left(record.expires_at, now)
        return 0 <= remaining <= threshold

    async def _log_failures(self, user_id: int, records: list[ExpiryRecord], summary: RunSummary) -> None:
        ttl = timedelta(seconds=self._config.failure_log_ttl_seconds)
        for record in records:
            if record.expires_at is not None:
                continue
            error = (record.error or "").strip()
            if not error:
                continue

            key = failure_log_key(user_id, record.domain)
            if await self._suppression.seen(key, now=self._clock()):
                continue

            checked_at = record.checked_at.isoformat()
            await self._suppression.mark_seen(
                key,
                ttl,
                {"domain": record.domain, "error": error, "checkedAt": checked_at},
                now=self._clock(),
            )
            self._audit_log.create_log(
                user_id=user_id,
                action="UPDATE",
                resource_type="DOMAIN_EXPIRY",
                domain=record.domain,
                status="FAILED",
                error_message=error,
                new_value=json.dumps({
                    "action": "domain_expiry_lookup_failed",
                    "domain": record.domain,
                    "error": error,
                    "checkedAt": checked_at,
                }),
            )
            summary.failures_logged += 1

    async def _dispatch(
        self,
        channel: NotificationChannel,
        payload: ExpiryNotificationPayload,
        summary: RunSummary,
    ) -> None:
        identity = NotificationIdentity(
            user_id=payload.user_id,
            domain=payload.domain,
            expires_at=payload.expires_at,
            threshold_days=payload.threshold_days,
            channel=channel.get_name(),
        )

        now = self._clock()
        window = timedelta(seconds=self._config.suppression_window_seconds)
        existing = self._states.get(identity)
        if existing is not None and now - existing.last_attempt_at() < window:
            summary.notifications_suppressed += 1
            return

        error_message: Optional[str] = None
        try:
            await channel.send(payload)
        except NotificationError as e:
            error_message = e.message
        except Exception as e:
            error_message = str(e) or type(e).__name__

        status = NotificationStatus.FAILED if error_message else NotificationStatus.SENT
        self._states.upsert(NotificationState(
            identity=identity,
            status=status,
            payload=json.dumps(payload.to_dict()),
            created_at=now,
            error_message=error_message,
            last_notified_at=now,
        ))

        if error_message:
            summary.notifications_failed += 1
            self._logger.warn(COMPONENT, "notification failed", {
                "user_id": payload.user_id,
                "domain": payload.domain,
                "channel": identity.channel.value,
                "error_message": error_message,
            })
        else:
            summary.notifications_sent += 1
