"""Batch processing job: trigger policy, job run lifecycle and the orchestrator."""

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from examrank.jobs.lock import acquire_job_lock, release_job_lock
from examrank.jobs.registry import create_job_run, update_job_run_status
from examrank.models.jobs import JobRunStatus
from examrank.pipeline.orchestrator import BatchResult, get_pending_count, run_batch_processing
from examrank.pipeline.trigger import should_trigger_batch

logger = logging.getLogger(__name__)

JOB_KEY = "batch_processing"


@dataclass
class TriggerOutcome:
    triggered: bool
    reason: str
    pending_count: int
    job_run_id: UUID | None = None
    result: BatchResult | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "triggered": self.triggered,
            "reason": self.reason,
            "pendingCount": self.pending_count,
            "jobId": str(self.job_run_id) if self.job_run_id else None,
            "result": self.result.to_dict() if self.result else None,
        }


async def trigger_batch(
    db: AsyncSession,
    force: bool = False,
    triggered_by: str = "system",
    now: datetime | None = None,
) -> TriggerOutcome:
    """
    Check the trigger policy and, if it passes, run a tracked batch.

    The job run ends SUCCEEDED when the batch reports no errors, FAILED
    otherwise, with the batch result stored in its stats.

    Args:
        db: Database session
        force: Skip the time window and threshold checks
        triggered_by: Recorded on the job run (system, admin, cli)
        now: Clock for the time window check

    Returns:
        TriggerOutcome
    """
    pending = await get_pending_count(db)
    decision = should_trigger_batch(pending, force=force, now=now)
    if not decision.triggered:
        logger.info(f"Batch not triggered: {decision.reason}")
        return TriggerOutcome(False, decision.reason, decision.pending_count)

    token = await acquire_job_lock(db, JOB_KEY, lock_duration_minutes=120)
    if not token:
        logger.warning(f"Job {JOB_KEY} is already running, skipping")
        return TriggerOutcome(False, "Batch already running", pending)

    job_run = await create_job_run(db, JOB_KEY, triggered_by=triggered_by)
    # A failed exam rolls the session back, which expires job_run
    run_id = job_run.id

    try:
        await update_job_run_status(db, run_id, JobRunStatus.RUNNING, stats={"pending_at_start": pending})

        result = await run_batch_processing(db, job_run_id=run_id)

        if result.errors:
            await update_job_run_status(
                db,
                run_id,
                JobRunStatus.FAILED,
                stats=result.to_dict(),
                error="; ".join(result.errors),
            )
        else:
            await update_job_run_status(db, run_id, JobRunStatus.SUCCEEDED, stats=result.to_dict())

        logger.info(f"Batch processing completed: {result.to_dict()}")
        return TriggerOutcome(True, decision.reason, pending, job_run_id=run_id, result=result)

    except Exception as e:
        logger.error(f"Batch processing job failed: {e}", exc_info=True)
        await db.rollback()
        await update_job_run_status(db, run_id, JobRunStatus.FAILED, error=str(e))
        raise
    finally:
        await release_job_lock(db, JOB_KEY, token)
