import threading
from datetime import datetime, timedelta
from zoneinfo import ZoneInfo

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from sphyra.application.services.distributed_lock import DistributedLock
from sphyra.exceptions import StorageError
from sphyra.infrastructure.persistence.sqlalchemy.repositories.cron_lock_repository_sql import SqlCronLockRepository

LEASE = timedelta(minutes=10)
ROME = ZoneInfo("Europe/Rome")


class BrokenLockRepo:
    def try_acquire(self, job_name, instance_id, now, expires_at):
        raise StorageError("could not serialize access")

    def release(self, job_name, now):
        raise StorageError("connection reset")

    def get(self, job_name):
        raise StorageError("connection reset")


def test_first_acquire_creates_lock(engine, clock):
    repo = SqlCronLockRepository(engine)
    lock = DistributedLock(repo, clock=clock)
    assert lock.acquire("daily_reminder_job", "instance-a", LEASE) is True
    row = repo.get("daily_reminder_job")
    assert row.locked_by == "instance-a"
    assert row.expires_at == clock.now + LEASE
    assert row.last_run_at is None


def test_held_lock_is_not_acquired_twice(engine, clock):
    repo = SqlCronLockRepository(engine)
    a = DistributedLock(repo, clock=clock)
    b = DistributedLock(repo, clock=clock)
    assert a.acquire("job", "instance-a", LEASE) is True
    clock.advance(minutes=5)
    assert b.acquire("job", "instance-b", LEASE) is False
    assert repo.get("job").locked_by == "instance-a"


def test_expired_lease_is_taken_over(engine, clock):
    repo = SqlCronLockRepository(engine)
    assert DistributedLock(repo, clock=clock).acquire("job", "instance-a", LEASE) is True
    # instance-a crashes without releasing
    clock.advance(minutes=10, seconds=1)
    assert DistributedLock(repo, clock=clock).acquire("job", "instance-b", LEASE) is True
    assert repo.get("job").locked_by == "instance-b"


def test_release_ends_lease_and_records_run(engine, clock):
    repo = SqlCronLockRepository(engine)
    lock = DistributedLock(repo, clock=clock)
    lock.acquire("job", "instance-a", LEASE)
    clock.advance(minutes=1)
    lock.release("job")
    row = repo.get("job")
    assert row.expires_at == clock.now
    assert row.last_run_at == clock.now
    assert DistributedLock(repo, clock=clock).acquire("job", "instance-b", LEASE) is True


def test_release_without_row_is_harmless(engine, clock):
    DistributedLock(SqlCronLockRepository(engine), clock=clock).release("never-acquired")


def test_concurrent_acquire_has_exactly_one_winner(engine):
    now = datetime(2025, 12, 20, 9, 0)
    for round_no in range(5):
        job = f"job-{round_no}"
        barrier = threading.Barrier(2)
        results = {}

        def worker(instance_id):
            lock = DistributedLock(SqlCronLockRepository(engine), clock=lambda: now)
            barrier.wait()
            results[instance_id] = lock.acquire(job, instance_id, LEASE)

        threads = [threading.Thread(target=worker, args=(name,)) for name in ("a", "b")]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(results.values()) == [False, True]


def test_storage_error_fails_closed(clock):
    lock = DistributedLock(BrokenLockRepo(), clock=clock)
    assert lock.acquire("job", "instance-a", LEASE) is False
    # Logged, not raised
    lock.release("job")
    assert lock.has_run_in_window("job", 10, 0) is False


def test_database_error_is_a_storage_error(engine, clock):
    repo = SqlCronLockRepository(engine)

    def fail_update(conn, cursor, statement, parameters, context, executemany):
        if statement.startswith("UPDATE cron_locks"):
            raise OperationalError(statement, parameters, Exception("database is locked"))

    event.listen(engine, "before_cursor_execute", fail_update)
    try:
        with pytest.raises(StorageError):
            repo.try_acquire("daily_reminder_job", "instance-a", clock.now, clock.now + LEASE)
        assert DistributedLock(repo, clock=clock).acquire("daily_reminder_job", "instance-a", LEASE) is False
    finally:
        event.remove(engine, "before_cursor_execute", fail_update)


def test_has_run_in_window_uses_local_time(engine, clock):
    # 09:00 UTC is 10:00 in Rome in December
    clock.now = datetime(2025, 12, 20, 9, 0, 20)
    repo = SqlCronLockRepository(engine)
    lock = DistributedLock(repo, tz=ROME, clock=clock)
    assert lock.has_run_in_window("job", 10, 0) is False

    lock.acquire("job", "instance-a", LEASE)
    lock.release("job")
    assert lock.has_run_in_window("job", 10, 0) is True
    assert lock.has_run_in_window("job", 10, 1) is False
    assert lock.has_run_in_window("job", 9, 0) is False

    clock.advance(days=1)
    assert lock.has_run_in_window("job", 10, 0) is False
