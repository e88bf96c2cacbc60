"""
Builds the reminder pipeline from Settings.

One ReminderRuntime is created per process at startup and kept on
app.state; request handlers and the scheduler take their collaborators from
it. Database-bound services are built per session through the helpers below.
"""
import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import timedelta
from typing import Dict, Iterator, Optional
from zoneinfo import ZoneInfo

import httpx
from sqlalchemy.engine import Engine
from sqlmodel import Session

from .application.ports.notification_channel import EmailProvider, NotificationChannel
from .application.services.confirmation_service import ConfirmationFlow
from .application.services.distributed_lock import DistributedLock
from .application.services.reminder_orchestrator import EMAIL, SMS, ReminderOrchestrator
from .application.services.reminder_scheduler import ReminderScheduler
from .application.services.settings_cache import SettingsCache
from .application.services.token_service import TokenHasher, TokenService, make_token_hasher
from .config import Settings
from .infrastructure.calendar.ics import generate_ics
from .infrastructure.notifications.email_channel import EmailChannel, ResendEmailProvider
from .infrastructure.notifications.retry import RetryPolicy
from .infrastructure.notifications.sms_channel import SmsGatewayChannel
from .infrastructure.persistence.sqlalchemy.repositories.appointments_repository_sql import SqlAppointmentsRepository
from .infrastructure.persistence.sqlalchemy.repositories.cron_lock_repository_sql import SqlCronLockRepository
from .infrastructure.persistence.sqlalchemy.repositories.reminder_repository_sql import SqlReminderRepository
from .infrastructure.persistence.sqlalchemy.repositories.settings_repository_sql import SqlSettingsRepository

logger = logging.getLogger(__name__)


@dataclass
class ReminderRuntime:
    config: Settings
    engine: Engine
    settings_cache: SettingsCache
    lock: DistributedLock
    hasher: TokenHasher
    email: EmailChannel
    sms: SmsGatewayChannel
    scheduler: Optional[ReminderScheduler] = None

    @property
    def channels(self) -> Dict[str, NotificationChannel]:
        return {EMAIL: self.email, SMS: self.sms}

    def token_service(self, session: Session) -> TokenService:
        return TokenService(
            repo=SqlAppointmentsRepository(session),
            hasher=self.hasher,
            ttl=timedelta(hours=self.config.CONFIRMATION_TOKEN_TTL_HOURS),
        )

    def orchestrator(self, session: Session) -> ReminderOrchestrator:
        appointments = SqlAppointmentsRepository(session)
        return ReminderOrchestrator(
            appointments=appointments,
            reminders=SqlReminderRepository(session),
            tokens=self.token_service(session),
            settings_cache=self.settings_cache,
            channels=self.channels,
            frontend_url=self.config.FRONTEND_URL,
            organizer_email=self.config.EMAIL_FROM_ADDRESS,
            timezone_name=self.config.REMINDER_TIMEZONE,
            default_channel=self.config.REMINDER_DEFAULT_CHANNEL,
            ics_builder=generate_ics,
        )

    def confirmation_flow(self, session: Session) -> ConfirmationFlow:
        return ConfirmationFlow(repo=SqlAppointmentsRepository(session), tokens=self.token_service(session))

    @contextmanager
    def orchestrator_scope(self) -> Iterator[ReminderOrchestrator]:
        with Session(self.engine) as session:
            yield self.orchestrator(session)

    def close(self) -> None:
        if self.scheduler is not None:
            self.scheduler.shutdown()
        self.sms.close()


def build_retry_policy(config: Settings) -> RetryPolicy:
    return RetryPolicy(
        max_retries=config.SMS_MAX_RETRIES,
        backoff_base=config.SMS_RETRY_BACKOFF_SECONDS,
        backoff_max=config.SMS_RETRY_MAX_BACKOFF_SECONDS,
        jitter=config.SMS_RETRY_JITTER_SECONDS,
    )


def build_email_channel(config: Settings, provider: Optional[EmailProvider] = None) -> EmailChannel:
    if provider is None and config.email_configured:
        provider = ResendEmailProvider(config.RESEND_API_KEY)
    if provider is None:
        logger.warning("RESEND_API_KEY not configured. Email reminders are disabled.")
    return EmailChannel(provider, from_address=config.EMAIL_FROM_ADDRESS, from_name=config.EMAIL_FROM_NAME)


def build_sms_channel(config: Settings, client: Optional[httpx.Client] = None) -> SmsGatewayChannel:
    if not config.sms_configured:
        logger.warning("SMS gateway not configured. SMS reminders are disabled.")
    return SmsGatewayChannel(
        base_url=config.SMS_GATEWAY_URL,
        token=config.SMS_GATEWAY_TOKEN,
        timeout=config.SMS_GATEWAY_TIMEOUT_SECONDS,
        retry_policy=build_retry_policy(config),
        default_country_code=config.SMS_DEFAULT_COUNTRY_CODE,
        client=client,
    )


def build_runtime(
    engine: Engine,
    config: Settings,
    email_provider: Optional[EmailProvider] = None,
    sms_client: Optional[httpx.Client] = None,
) -> ReminderRuntime:
    runtime = ReminderRuntime(
        config=config,
        engine=engine,
        settings_cache=SettingsCache(
            SqlSettingsRepository(engine),
            ttl=timedelta(seconds=config.REMINDER_SETTINGS_TTL_SECONDS),
        ),
        lock=DistributedLock(SqlCronLockRepository(engine), tz=ZoneInfo(config.REMINDER_TIMEZONE)),
        hasher=make_token_hasher(config.CONFIRMATION_TOKEN_HASH_ROUNDS),
        email=build_email_channel(config, email_provider),
        sms=build_sms_channel(config, sms_client),
    )
    runtime.scheduler = ReminderScheduler(
        settings_cache=runtime.settings_cache,
        lock=runtime.lock,
        orchestrator_scope=runtime.orchestrator_scope,
        instance_id=config.instance_id,
        job_name=config.REMINDER_JOB_NAME,
        lease=timedelta(seconds=config.REMINDER_LOCK_LEASE_SECONDS),
        timezone_name=config.REMINDER_TIMEZONE,
    )
    return runtime
