import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone, tzinfo
from typing import Callable

from ..ports.lock_repo import CronLockRepository

logger = logging.getLogger(__name__)


@dataclass
class DistributedLock:
    """Named mutex shared by every instance of the service through the cron_locks table.

    A lock is held while now < expires_at. A holder that crashes simply lets the
    lease run out; the next acquire after expiry takes the row over.
    """
    repo: CronLockRepository
    tz: tzinfo = timezone.utc
    clock: Callable[[], datetime] = field(default=datetime.utcnow)

    def acquire(self, job_name: str, instance_id: str, lease: timedelta) -> bool:
        now = self.clock()
        try:
            acquired = self.repo.try_acquire(job_name, instance_id, now, now + lease)
        except Exception as e:
            # Fail closed: skipping a tick is better than sending twice
            logger.error(f"Could not acquire lock {job_name} for {instance_id}: {e}", exc_info=True)
            return False
        if acquired:
            logger.info(f"Lock {job_name} acquired by {instance_id} until {now + lease:%Y-%m-%d %H:%M:%S} UTC")
        else:
            logger.info(f"Lock {job_name} is held by another instance, skipping")
        return acquired

    def release(self, job_name: str) -> None:
        try:
            self.repo.release(job_name, self.clock())
            logger.info(f"Lock {job_name} released")
        except Exception as e:
            # The lease expires on its own
            logger.warning(f"Could not release lock {job_name}: {e}")

    def has_run_in_window(self, job_name: str, hour: int, minute: int) -> bool:
        """True when the job last ran today at exactly hour:minute, in the studio timezone."""
        try:
            lock = self.repo.get(job_name)
        except Exception as e:
            logger.warning(f"Could not read lock {job_name}: {e}")
            return False
        if lock is None or lock.last_run_at is None:
            return False
        last_run = self._to_local(lock.last_run_at)
        today = self._to_local(self.clock()).date()
        return last_run.date() == today and last_run.hour == hour and last_run.minute == minute

    def _to_local(self, value: datetime) -> datetime:
        # Stored timestamps are naive UTC
        return value.replace(tzinfo=timezone.utc).astimezone(self.tz)
