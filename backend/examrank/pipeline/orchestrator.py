"""Batch orchestrator: runs the scoring pipeline for every exam with pending work.

Exams are processed one at a time. For each exam the pending submissions are
claimed, then shift stats, normalization, ranks and cutoffs are rebuilt for
the whole exam before the claimed rows flip to ready. A failure reverts the
exam's claimed rows to pending and the batch moves on to the next exam.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.core.config import settings
from examrank.core.errors import ExamNotFoundError
from examrank.cutoffs.service import recalculate_cutoffs
from examrank.jobs.lock import acquire_job_lock, exam_lock_key, release_job_lock
from examrank.jobs.registry import update_job_progress
from examrank.models.exam import Exam, ProcessingStatus, Submission
from examrank.normalization.service import normalize_exam, renormalize_with_shift_ranks
from examrank.pipeline.shift_stats import refresh_shift_stats
from examrank.pipeline.state import claim_pending, mark_ready, revert_to_pending
from examrank.ranking.service import recalculate_ranks

logger = logging.getLogger(__name__)


@dataclass
class BatchResult:
    """Outcome of one orchestrator invocation."""

    exams_processed: int = 0
    total_submissions: int = 0
    errors: list[str] = field(default_factory=list)
    duration_ms: int = 0
    skipped_exams: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "examsProcessed": self.exams_processed,
            "totalSubmissions": self.total_submissions,
            "errors": list(self.errors),
            "durationMs": self.duration_ms,
            "skippedExams": list(self.skipped_exams),
        }


async def get_pending_exam_ids(db: AsyncSession) -> list[int]:
    """Distinct exam ids having at least one pending submission."""
    stmt = (
        select(Submission.exam_id)
        .where(Submission.processing_status == ProcessingStatus.PENDING.value)
        .distinct()
        .order_by(Submission.exam_id)
    )
    return list((await db.execute(stmt)).scalars().all())


async def get_pending_count(db: AsyncSession) -> int:
    """Total number of submissions waiting for the next batch."""
    stmt = select(func.count()).select_from(Submission).where(
        Submission.processing_status == ProcessingStatus.PENDING.value
    )
    return int((await db.execute(stmt)).scalar_one())


async def process_exam(db: AsyncSession, exam_id: int) -> None:
    """
    Rebuild stats, normalized scores, ranks and cutoffs for one exam.

    Runs over every submission of the exam, not just the claimed ones.

    Raises:
        ExamNotFoundError: the exam row is missing
    """
    stats = await refresh_shift_stats(db, exam_id)
    if stats is None:
        raise ExamNotFoundError(f"Exam {exam_id} not found", details={"exam_id": exam_id})

    method = await normalize_exam(db, exam_id, stats)
    await recalculate_ranks(db, exam_id)
    if await renormalize_with_shift_ranks(db, exam_id, stats, method):
        await recalculate_ranks(db, exam_id)
    await recalculate_cutoffs(db, exam_id)


async def _stamp_exam(db: AsyncSession, exam_id: int) -> None:
    total = (
        await db.execute(select(func.count()).select_from(Submission).where(Submission.exam_id == exam_id))
    ).scalar_one()
    exam = await db.get(Exam, exam_id)
    exam.last_normalized_at = datetime.now(UTC)
    exam.subs_at_last_normalization = total


async def _run_exam(db: AsyncSession, exam_id: int) -> int:
    """Claim, process and finalize one exam. Returns the number of submissions claimed."""
    claimed = await claim_pending(db, exam_id)
    await db.commit()

    await process_exam(db, exam_id)
    await mark_ready(db, exam_id)
    await _stamp_exam(db, exam_id)
    await db.commit()
    return claimed


async def _revert_exam(db: AsyncSession, exam_id: int) -> None:
    """Roll back a failed exam and return its claimed rows to pending."""
    try:
        await db.rollback()
        await revert_to_pending(db, exam_id)
        await db.commit()
    except Exception as e:
        # Claimed rows stay in processing until the exam is reverted by hand
        logger.error(f"Could not revert exam {exam_id} to pending: {e}", exc_info=True)
        await db.rollback()


async def run_batch_processing(db: AsyncSession, job_run_id: UUID | None = None) -> BatchResult:
    """
    Process every exam that has pending submissions.

    Never raises for pipeline failures: per-exam errors are collected as
    ``"exam <id>: <message>"`` and anything that stops the run as
    ``"Fatal: <message>"``.

    A failed exam rolls the session back, so ORM instances the caller holds
    in ``db`` are expired afterwards and must be re-read.

    Args:
        db: Database session
        job_run_id: Optional job run receiving progress updates

    Returns:
        BatchResult
    """
    start = time.perf_counter()
    result = BatchResult()

    try:
        exam_ids = await get_pending_exam_ids(db)
        total = len(exam_ids)
        logger.info("Batch processing started", extra={"exams": total, "job_run_id": str(job_run_id)})

        if total == 0:
            if job_run_id is not None:
                await update_job_progress(db, job_run_id, 100, 0, 0, "No pending submissions")
        for index, exam_id in enumerate(exam_ids):
            lock_key = exam_lock_key(exam_id)
            token = await acquire_job_lock(db, lock_key, lock_duration_minutes=settings.EXAM_LOCK_MINUTES)

            if token is None:
                logger.warning("Exam locked by another run, skipping", extra={"exam_id": exam_id})
                result.skipped_exams.append(exam_id)
            else:
                try:
                    claimed = await _run_exam(db, exam_id)
                    result.exams_processed += 1
                    result.total_submissions += claimed
                    logger.info("Exam processed", extra={"exam_id": exam_id, "claimed": claimed})
                except Exception as e:
                    logger.error(f"Batch error for exam {exam_id}: {e}", exc_info=True)
                    result.errors.append(f"exam {exam_id}: {e}")
                    await _revert_exam(db, exam_id)
                finally:
                    await release_job_lock(db, lock_key, token)

            if job_run_id is not None:
                await update_job_progress(
                    db,
                    job_run_id,
                    (index + 1) / total * 100,
                    result.total_submissions,
                    total,
                    f"Processed exam {index + 1}/{total}",
                )

    except Exception as e:
        logger.error(f"Batch processing aborted: {e}", exc_info=True)
        await db.rollback()
        result.errors.append(f"Fatal: {e}")

    result.duration_ms = int((time.perf_counter() - start) * 1000)
    logger.info(
        "Batch processing finished",
        extra={
            "exams_processed": result.exams_processed,
            "total_submissions": result.total_submissions,
            "errors": len(result.errors),
            "skipped_exams": result.skipped_exams,
            "duration_ms": result.duration_ms,
        },
    )
    return result
