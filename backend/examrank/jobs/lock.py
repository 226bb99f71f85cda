"""Lease-based job locking to prevent concurrent execution."""

import logging
import socket
import uuid
from datetime import UTC, datetime, timedelta

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.db.dialect import upsert_insert
from examrank.models.jobs import JobLock

logger = logging.getLogger(__name__)


def exam_lock_key(exam_id: int) -> str:
    return f"exam:{exam_id}"


def _lock_owner() -> str:
    return f"{socket.gethostname()}-{uuid.uuid4().hex}"


async def acquire_job_lock(
    db: AsyncSession,
    job_key: str,
    lock_duration_minutes: int = 60,
) -> str | None:
    """
    Acquire a job lock (DB-based).

    An existing lease is only taken over once it has expired.

    Args:
        db: Database session
        job_key: Job key identifier
        lock_duration_minutes: Lock duration in minutes

    Returns:
        Lease token to pass to release_job_lock, or None if already locked
    """
    now = datetime.now(UTC)
    lock_until = now + timedelta(minutes=lock_duration_minutes)
    locked_by = _lock_owner()

    stmt = upsert_insert(db, JobLock).values(
        job_key=job_key,
        locked_until=lock_until,
        locked_by=locked_by,
    )
    stmt = stmt.on_conflict_do_update(
        index_elements=["job_key"],
        set_={
            "locked_until": lock_until,
            "locked_by": locked_by,
        },
        where=JobLock.locked_until < now,  # Only update if lock expired
    )

    try:
        await db.execute(stmt)
        await db.commit()

        # Check if we actually got the lock
        holder = (
            await db.execute(select(JobLock.locked_by).where(JobLock.job_key == job_key))
        ).scalar_one_or_none()
    except Exception as e:
        logger.error(f"Error acquiring lock {job_key}: {e}")
        await db.rollback()
        return None

    if holder == locked_by:
        logger.info(f"Acquired lock for job: {job_key}")
        return locked_by

    logger.info(f"Failed to acquire lock for job: {job_key} (already locked)")
    return None


async def release_job_lock(
    db: AsyncSession,
    job_key: str,
    token: str | None = None,
) -> None:
    """
    Release a job lock by expiring its lease.

    Args:
        db: Database session
        job_key: Job key identifier
        token: Lease token from acquire_job_lock; when given, only that lease is released
    """
    stmt = update(JobLock).where(JobLock.job_key == job_key)
    if token is not None:
        stmt = stmt.where(JobLock.locked_by == token)
    stmt = stmt.values(locked_until=datetime.now(UTC) - timedelta(minutes=1))  # Expire immediately

    result = await db.execute(stmt.execution_options(synchronize_session=False))
    await db.commit()
    if result.rowcount:
        logger.info(f"Released lock for job: {job_key}")
