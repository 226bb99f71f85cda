"""Job run registry for tracking job execution."""

import logging
from datetime import UTC, datetime
from typing import Any
from uuid import UUID, uuid4

from sqlalchemy.ext.asyncio import AsyncSession

from examrank.core.errors import JobRunNotFoundError
from examrank.models.jobs import JobRun, JobRunStatus

logger = logging.getLogger(__name__)


async def create_job_run(
    db: AsyncSession,
    job_key: str,
    triggered_by: str = "system",
) -> JobRun:
    """
    Create a new job run.

    Args:
        db: Database session
        job_key: Job key identifier
        triggered_by: Who started the run (system, admin, cli)

    Returns:
        Created JobRun
    """
    job_run = JobRun(
        id=uuid4(),
        job_key=job_key,
        triggered_by=triggered_by,
        status=JobRunStatus.QUEUED,
        progress_percent=0,
        records_processed=0,
        stats_json={},
    )

    db.add(job_run)
    await db.commit()
    await db.refresh(job_run)

    logger.info(f"Created job run: {job_run.id} for job: {job_key}")
    return job_run


async def get_job_run(db: AsyncSession, run_id: UUID) -> JobRun:
    """
    Fetch a job run.

    Raises:
        JobRunNotFoundError: no run with this id
    """
    job_run = await db.get(JobRun, run_id)
    if not job_run:
        raise JobRunNotFoundError(f"Job run not found: {run_id}", details={"job_run_id": str(run_id)})
    return job_run


async def update_job_run_status(
    db: AsyncSession,
    run_id: UUID,
    status: str,
    stats: dict[str, Any] | None = None,
    error: str | None = None,
) -> JobRun:
    """
    Update job run status.

    Args:
        db: Database session
        run_id: Job run ID
        status: New status (QUEUED, RUNNING, SUCCEEDED, FAILED)
        stats: Optional statistics dictionary, merged into stats_json
        error: Error message if failed

    Returns:
        Updated JobRun
    """
    job_run = await get_job_run(db, run_id)

    job_run.status = status

    if status == JobRunStatus.RUNNING:
        job_run.started_at = datetime.now(UTC)
    elif status in (JobRunStatus.SUCCEEDED, JobRunStatus.FAILED):
        job_run.finished_at = datetime.now(UTC)

    if stats:
        job_run.stats_json = {**(job_run.stats_json or {}), **stats}

    if error:
        job_run.error_text = error

    await db.commit()
    await db.refresh(job_run)
    return job_run


async def update_job_progress(
    db: AsyncSession,
    run_id: UUID,
    progress_percent: float,
    records_processed: int,
    total_records: int,
    message: str,
) -> None:
    """
    Record progress on a running job; polled by the admin dashboard.

    Args:
        db: Database session
        run_id: Job run ID
        progress_percent: 0..100
        records_processed: Items finished so far
        total_records: Items in this run
        message: Human-readable status line
    """
    job_run = await get_job_run(db, run_id)
    job_run.progress_percent = int(round(progress_percent))
    job_run.records_processed = records_processed
    job_run.total_records = total_records
    job_run.stats_json = {**(job_run.stats_json or {}), "message": message}
    await db.commit()
