from dataclasses import dataclass
from typing import Optional, Protocol
from datetime import datetime


@dataclass
class CronLockDto:
    job_name: str
    locked_at: datetime
    locked_by: str
    expires_at: datetime
    last_run_at: Optional[datetime]


class CronLockRepository(Protocol):
    def try_acquire(self, job_name: str, instance_id: str, now: datetime, expires_at: datetime) -> bool:
        """Atomically claim the row when absent or expired. Raises on storage failure."""
        ...

    def release(self, job_name: str, now: datetime) -> None:
        ...

    def get(self, job_name: str) -> Optional[CronLockDto]:
        ...
