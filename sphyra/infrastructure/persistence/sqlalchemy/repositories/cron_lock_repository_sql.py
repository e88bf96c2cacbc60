from datetime import datetime
from typing import Optional
from sqlalchemy import insert, update
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlmodel import Session, select

from .....db.models import CronLock
from .....exceptions import StorageError
from .....application.ports.lock_repo import CronLockRepository, CronLockDto


class SqlCronLockRepository(CronLockRepository):
    """cron_locks rows, claimed with a compare-and-set update.

    Works on its own connections rather than a request session: every call is
    one short transaction that commits or rolls back before returning.
    """

    def __init__(self, engine: Engine):
        self.engine = engine
        self._serializable = engine.execution_options(isolation_level="SERIALIZABLE")

    def try_acquire(self, job_name: str, instance_id: str, now: datetime, expires_at: datetime) -> bool:
        try:
            with self._serializable.begin() as conn:
                # Take over an expired lease; only one writer can match the old expiry
                taken = conn.execute(
                    update(CronLock)
                    .where(CronLock.job_name == job_name)
                    .where(CronLock.expires_at <= now)
                    .values(locked_at=now, locked_by=instance_id, expires_at=expires_at)
                )
                if taken.rowcount == 1:
                    return True

                held = conn.execute(
                    select(CronLock.job_name).where(CronLock.job_name == job_name)
                ).first()
                if held is not None:
                    return False

                # First acquisition ever; the primary key rejects a concurrent insert
                conn.execute(
                    insert(CronLock).values(
                        job_name=job_name,
                        locked_at=now,
                        locked_by=instance_id,
                        expires_at=expires_at,
                        last_run_at=None,
                    )
                )
                return True
        except IntegrityError:
            return False
        except SQLAlchemyError as e:
            raise StorageError(f"Error acquiring lock {job_name}") from e

    def release(self, job_name: str, now: datetime) -> None:
        try:
            with self._serializable.begin() as conn:
                conn.execute(
                    update(CronLock)
                    .where(CronLock.job_name == job_name)
                    .values(expires_at=now, last_run_at=now)
                )
        except SQLAlchemyError as e:
            raise StorageError(f"Error releasing lock {job_name}") from e

    def get(self, job_name: str) -> Optional[CronLockDto]:
        with Session(self.engine) as session:
            lock = session.exec(select(CronLock).where(CronLock.job_name == job_name)).first()
            if not lock:
                return None
            return CronLockDto(
                job_name=lock.job_name,
                locked_at=lock.locked_at,
                locked_by=lock.locked_by,
                expires_at=lock.expires_at,
                last_run_at=lock.last_run_at,
            )
