"""Admin endpoints for batch processing and job monitoring."""

import logging
from datetime import UTC, datetime
from typing import Annotated
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.db.session import get_async_db
from examrank.jobs.batch_processing import trigger_batch
from examrank.jobs.registry import get_job_run
from examrank.models.exam import Exam
from examrank.normalization.formulas import NormalizationMethod, get_available_formulas, get_method_label
from examrank.pipeline.orchestrator import get_pending_count
from examrank.pipeline.state import count_by_status
from examrank.pipeline.trigger import check_significance
from examrank.schemas.batch import (
    BatchRunRequest,
    BatchRunResponse,
    JobRunOut,
    NormalizationMethodOut,
    NormalizationStatus,
    NormalizationStatusResponse,
    PendingCountResponse,
)

logger = logging.getLogger(__name__)

router = APIRouter()


@router.post("/admin/batch/run", response_model=BatchRunResponse)
async def run_batch(
    db: Annotated[AsyncSession, Depends(get_async_db)],
    body: BatchRunRequest | None = None,
):
    """
    Check batch thresholds and run the pipeline when they are met.

    Called by the admin "Run batch now" action (force=true) or a scheduler.
    """
    force = body.force if body else False
    outcome = await trigger_batch(db, force=force, triggered_by="admin" if force else "auto")
    return outcome.to_dict()


@router.get("/admin/batch/pending", response_model=PendingCountResponse)
async def pending_count(db: Annotated[AsyncSession, Depends(get_async_db)]):
    """Number of submissions waiting for the next batch."""
    return PendingCountResponse(
        pendingCount=await get_pending_count(db),
        byStatus=await count_by_status(db),
    )


@router.get("/admin/normalization/status", response_model=NormalizationStatusResponse)
async def normalization_status(
    db: Annotated[AsyncSession, Depends(get_async_db)],
    exam_id: Annotated[int | None, Query(alias="examId")] = None,
):
    """Re-normalization status for all active exams, or one exam via ?examId=."""
    if exam_id is not None:
        exam_ids = [exam_id]
    else:
        result = await db.execute(select(Exam.id).where(Exam.is_active.is_(True)).order_by(Exam.id))
        exam_ids = list(result.scalars().all())

    statuses = []
    for eid in exam_ids:
        significance = await check_significance(db, eid)
        exam = await db.get(Exam, eid)
        statuses.append(
            NormalizationStatus(
                examId=exam.id,
                examName=exam.name,
                normalizationMethod=exam.normalization_method,
                methodLabel=get_method_label(NormalizationMethod.resolve(exam.normalization_method).value),
                lastNormalizedAt=exam.last_normalized_at,
                subsAtLastNormalization=significance.subs_at_last_normalization,
                currentTotalSubmissions=significance.total_count,
                newSinceNormalization=significance.new_count,
                percentNew=significance.percent_new,
                threshold=significance.threshold,
                isSignificant=significance.is_significant,
                recommendation=significance.recommendation,
            )
        )

    return NormalizationStatusResponse(statuses=statuses, timestamp=datetime.now(UTC))


@router.get("/admin/normalization/methods", response_model=list[NormalizationMethodOut])
async def normalization_methods():
    """Available normalization methods for admin dropdowns."""
    return get_available_formulas()


@router.get("/admin/jobs/{job_run_id}", response_model=JobRunOut)
async def get_job(
    job_run_id: UUID,
    db: Annotated[AsyncSession, Depends(get_async_db)],
):
    """Job run status and progress."""
    return await get_job_run(db, job_run_id)
