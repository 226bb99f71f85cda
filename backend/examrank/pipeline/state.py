"""Submission state machine.

pending -> processing -> ready, with processing -> pending when a batch fails
for the exam. ``failed`` is operator-only: any status may be parked there and
a failed submission can be re-queued to pending.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from datetime import UTC, datetime

from sqlalchemy import func, select, update
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.core.errors import InvalidTransitionError
from examrank.models.exam import ProcessingStatus, Submission

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[ProcessingStatus, frozenset[ProcessingStatus]] = {
    ProcessingStatus.PENDING: frozenset({ProcessingStatus.PROCESSING, ProcessingStatus.FAILED}),
    ProcessingStatus.PROCESSING: frozenset(
        {ProcessingStatus.READY, ProcessingStatus.PENDING, ProcessingStatus.FAILED}
    ),
    ProcessingStatus.READY: frozenset({ProcessingStatus.FAILED}),
    ProcessingStatus.FAILED: frozenset({ProcessingStatus.PENDING}),
}


def can_transition(current: str, target: str) -> bool:
    try:
        return ProcessingStatus(target) in ALLOWED_TRANSITIONS[ProcessingStatus(current)]
    except ValueError:
        return False


def validate_transition(current: str, target: str) -> None:
    """
    Raise if ``current -> target`` is not an allowed status change.

    Raises:
        InvalidTransitionError: transition not allowed
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(
            f"Cannot move submission from {current} to {target}",
            details={"from": current, "to": target},
        )


async def _transition(
    db: AsyncSession,
    exam_id: int,
    source: ProcessingStatus,
    target: ProcessingStatus,
) -> int:
    validate_transition(source.value, target.value)
    result = await db.execute(
        update(Submission)
        .where(Submission.exam_id == exam_id, Submission.processing_status == source.value)
        .values(processing_status=target.value, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    return result.rowcount or 0


async def claim_pending(db: AsyncSession, exam_id: int) -> int:
    """
    Flip every pending submission of an exam to processing.

    Returns:
        Number of submissions claimed
    """
    claimed = await _transition(db, exam_id, ProcessingStatus.PENDING, ProcessingStatus.PROCESSING)
    logger.info("Claimed pending submissions", extra={"exam_id": exam_id, "claimed": claimed})
    return claimed


async def mark_ready(db: AsyncSession, exam_id: int) -> int:
    """Flip the exam's processing submissions to ready."""
    return await _transition(db, exam_id, ProcessingStatus.PROCESSING, ProcessingStatus.READY)


async def revert_to_pending(db: AsyncSession, exam_id: int) -> int:
    """Return the exam's processing submissions to pending so the next run retries them."""
    reverted = await _transition(db, exam_id, ProcessingStatus.PROCESSING, ProcessingStatus.PENDING)
    logger.info("Reverted submissions to pending", extra={"exam_id": exam_id, "reverted": reverted})
    return reverted


async def mark_failed(db: AsyncSession, submission_ids: Sequence[int]) -> int:
    """
    Park submissions in the terminal failed status (operator action).

    Args:
        db: Database session
        submission_ids: Submissions to park

    Returns:
        Number of submissions updated
    """
    if not submission_ids:
        return 0
    result = await db.execute(
        update(Submission)
        .where(
            Submission.id.in_(list(submission_ids)),
            Submission.processing_status != ProcessingStatus.FAILED.value,
        )
        .values(processing_status=ProcessingStatus.FAILED.value, updated_at=datetime.now(UTC))
        .execution_options(synchronize_session=False)
    )
    updated = result.rowcount or 0
    logger.warning("Submissions marked failed", extra={"requested": len(submission_ids), "updated": updated})
    return updated


async def requeue_failed(db: AsyncSession, exam_id: int) -> int:
    """Move an exam's failed submissions back to pending (operator retry)."""
    return await _transition(db, exam_id, ProcessingStatus.FAILED, ProcessingStatus.PENDING)


async def count_by_status(db: AsyncSession, exam_id: int | None = None) -> dict[str, int]:
    """Submission counts per processing status, optionally for one exam."""
    stmt = select(Submission.processing_status, func.count()).group_by(Submission.processing_status)
    if exam_id is not None:
        stmt = stmt.where(Submission.exam_id == exam_id)
    counts = {status.value: 0 for status in ProcessingStatus}
    for status, n in (await db.execute(stmt)).all():
        counts[status] = n
    return counts
