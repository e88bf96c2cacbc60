"""
Minute-cadence driver for the daily reminder run.

Every tick walks the same states:

    Idle -> CheckingTime -> Idle                      (disabled, wrong minute, already ran)
    Idle -> CheckingTime -> AcquiringLock -> Idle      (another instance holds the lock)
    Idle -> CheckingTime -> AcquiringLock -> Running -> ReleasingLock -> Idle

The timer itself is an APScheduler BackgroundScheduler job; tick() holds all
of the decision logic and can be driven directly.
"""
import logging
import threading
from contextlib import AbstractContextManager
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional
from zoneinfo import ZoneInfo

from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.cron import CronTrigger

from .distributed_lock import DistributedLock
from .reminder_orchestrator import ReminderBatchResult, ReminderOrchestrator
from .settings_cache import SettingsCache
from ...exceptions import LockUnavailable

logger = logging.getLogger(__name__)

OrchestratorScope = Callable[[], AbstractContextManager[ReminderOrchestrator]]


class SchedulerState(str, Enum):
    IDLE = "idle"
    CHECKING_TIME = "checking_time"
    ACQUIRING_LOCK = "acquiring_lock"
    RUNNING = "running"
    RELEASING_LOCK = "releasing_lock"


class TickOutcome(str, Enum):
    DISABLED = "disabled"
    NOT_TIME = "not_time"
    ALREADY_RUN = "already_run"
    LOCK_UNAVAILABLE = "lock_unavailable"
    BUSY = "busy"
    RAN = "ran"
    ERROR = "error"


@dataclass
class TickResult:
    outcome: TickOutcome
    batch: Optional[ReminderBatchResult] = None
    error: Optional[str] = None


class ReminderScheduler:
    def __init__(
        self,
        settings_cache: SettingsCache,
        lock: DistributedLock,
        orchestrator_scope: OrchestratorScope,
        instance_id: str,
        job_name: str = "daily_reminder_job",
        lease: timedelta = timedelta(minutes=10),
        timezone_name: str = "Europe/Rome",
        clock: Callable[[], datetime] = datetime.utcnow,
        scheduler: Optional[BackgroundScheduler] = None,
    ):
        self.settings_cache = settings_cache
        self.lock = lock
        self.orchestrator_scope = orchestrator_scope
        self.instance_id = instance_id
        self.job_name = job_name
        self.lease = lease
        self.tz = ZoneInfo(timezone_name)
        self._clock = clock
        self._scheduler = scheduler
        self._state = SchedulerState.IDLE
        # Ticks never overlap inside one process
        self._tick_guard = threading.Lock()
        self.last_tick: Optional[TickResult] = None

    @property
    def state(self) -> SchedulerState:
        return self._state

    @property
    def running(self) -> bool:
        return self._scheduler is not None and self._scheduler.running

    def local_now(self) -> datetime:
        return self._clock().replace(tzinfo=ZoneInfo("UTC")).astimezone(self.tz)

    def start(self) -> None:
        if self._scheduler is None:
            self._scheduler = BackgroundScheduler(timezone=self.tz)
        if self._scheduler.running:
            return
        self._scheduler.add_job(
            self.tick,
            CronTrigger(minute="*", timezone=self.tz),
            id=self.job_name,
            name="Daily appointment reminders",
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        self._scheduler.start()
        logger.info(f"Reminder scheduler started on {self.instance_id} (checks every minute)")

    def shutdown(self) -> None:
        if self._scheduler is not None and self._scheduler.running:
            self._scheduler.shutdown(wait=True)
            logger.info("Reminder scheduler stopped")

    def next_run_time(self) -> Optional[datetime]:
        if not self.running:
            return None
        job = self._scheduler.get_job(self.job_name)
        return job.next_run_time if job else None

    def tick(self) -> TickResult:
        if not self._tick_guard.acquire(blocking=False):
            logger.debug("Previous reminder tick still in progress, skipping")
            return TickResult(TickOutcome.BUSY)
        try:
            self.last_tick = self._tick()
            return self.last_tick
        finally:
            self._state = SchedulerState.IDLE
            self._tick_guard.release()

    def _tick(self) -> TickResult:
        self._state = SchedulerState.CHECKING_TIME
        try:
            settings = self.settings_cache.get()
            if not settings.enable_auto_reminders:
                logger.debug("Automatic reminders are disabled")
                return TickResult(TickOutcome.DISABLED)

            now = self.local_now()
            if (now.hour, now.minute) != (settings.reminder_hour, settings.reminder_minute):
                return TickResult(TickOutcome.NOT_TIME)

            if self.lock.has_run_in_window(self.job_name, settings.reminder_hour, settings.reminder_minute):
                logger.info(f"Reminder job already ran at {settings.reminder_hour:02d}:{settings.reminder_minute:02d} today, skipping")
                return TickResult(TickOutcome.ALREADY_RUN)

            self._state = SchedulerState.ACQUIRING_LOCK
            self._claim_lock()
        except LockUnavailable as e:
            return TickResult(TickOutcome.LOCK_UNAVAILABLE, error=str(e))
        except Exception as e:
            logger.error(f"Reminder tick failed before the run: {e}", exc_info=True)
            return TickResult(TickOutcome.ERROR, error=str(e))

        self._state = SchedulerState.RUNNING
        logger.info(f"Running scheduled reminder job at {now:%Y-%m-%d %H:%M} {self.tz.key}")
        try:
            batch = self._run_batch()
        except Exception as e:
            logger.error(f"Scheduled reminder run failed: {e}", exc_info=True)
            return TickResult(TickOutcome.ERROR, error=str(e))
        finally:
            self._state = SchedulerState.RELEASING_LOCK
            self.lock.release(self.job_name)
        return TickResult(TickOutcome.RAN, batch=batch)

    def _claim_lock(self) -> None:
        if not self.lock.acquire(self.job_name, self.instance_id, self.lease):
            raise LockUnavailable(f"Lock {self.job_name} is held by another instance")

    def trigger_now(self) -> ReminderBatchResult:
        """Operator-initiated run. Skips the time match and the lock."""
        logger.info("Manual reminder run triggered")
        return self._run_batch()

    def _run_batch(self) -> ReminderBatchResult:
        with self.orchestrator_scope() as orchestrator:
            batch = orchestrator.send_all_due_reminders()
        logger.info(f"Reminder run complete: {batch.sent}/{batch.total} sent, {batch.failed} failed")
        return batch
