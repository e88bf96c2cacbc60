# sphyra/db/models/reminders/cron_lock.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime

class CronLock(SQLModel, table=True):
    __tablename__ = "cron_locks"
    job_name: str = Field(primary_key=True, max_length=100)
    locked_at: datetime
    locked_by: str = Field(max_length=255)
    # The lock is held while now < expires_at
    expires_at: datetime
    last_run_at: Optional[datetime] = Field(default=None)
