"""When to run a batch: trigger policy and re-normalization significance."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.core.config import settings
from examrank.core.errors import ExamNotFoundError
from examrank.models.exam import Exam, Submission

RECOMMEND_FULL = "Full re-normalization recommended"
RECOMMEND_NONE = "Current normalization is up to date"
RECOMMEND_INITIAL = "Initial normalization not yet run"


@dataclass(frozen=True)
class TriggerDecision:
    triggered: bool
    reason: str
    pending_count: int


@dataclass(frozen=True)
class SignificanceResult:
    """How far an exam has drifted since it was last normalized."""

    exam_id: int
    is_significant: bool
    new_count: int
    total_count: int
    subs_at_last_normalization: int
    threshold: float
    percent_new: float
    last_normalized_at: datetime | None

    @property
    def recommendation(self) -> str:
        if self.is_significant:
            return RECOMMEND_FULL
        if self.last_normalized_at is not None:
            return RECOMMEND_NONE
        return RECOMMEND_INITIAL


def in_time_window(now: datetime, start: str, end: str) -> bool:
    """Inclusive HH:MM window check on the local wall clock."""
    current = now.strftime("%H:%M")
    return start <= current <= end


def should_trigger_batch(pending_count: int, force: bool = False, now: datetime | None = None) -> TriggerDecision:
    """
    Decide whether a batch run should start.

    Args:
        pending_count: Submissions currently pending
        force: Admin override of the window and threshold checks
        now: Clock used for the window check (defaults to local now)

    Returns:
        TriggerDecision with a human-readable reason
    """
    if not settings.BATCH_NORM_ENABLED and not force:
        return TriggerDecision(False, "Batch processing is disabled", pending_count)

    if pending_count == 0:
        return TriggerDecision(False, "No pending submissions", 0)

    if not force:
        now = now or datetime.now()
        start, end = settings.BATCH_NORM_WINDOW_START, settings.BATCH_NORM_WINDOW_END
        if not in_time_window(now, start, end):
            return TriggerDecision(False, f"Outside time window ({start} - {end})", pending_count)

        min_subs = settings.BATCH_NORM_MIN_SUBMISSIONS
        if settings.BATCH_NORM_MODE in ("threshold", "both") and pending_count < min_subs:
            return TriggerDecision(
                False, f"Pending ({pending_count}) below threshold ({min_subs})", pending_count
            )

    return TriggerDecision(True, "Forced by admin" if force else "Conditions met", pending_count)


def percent_new(new_count: int, at_last: int) -> float:
    if at_last > 0:
        return new_count / at_last * 100
    return 100.0 if new_count > 0 else 0.0


async def check_significance(db: AsyncSession, exam_id: int) -> SignificanceResult:
    """
    Compare submissions received since the last normalization against the exam threshold.

    Raises:
        ExamNotFoundError: no exam with this id
    """
    exam = await db.get(Exam, exam_id)
    if exam is None:
        raise ExamNotFoundError(f"Exam {exam_id} not found", details={"exam_id": exam_id})

    total = (
        await db.execute(select(func.count()).select_from(Submission).where(Submission.exam_id == exam_id))
    ).scalar_one()
    at_last = exam.subs_at_last_normalization or 0
    threshold = exam.renorm_threshold or settings.RENORM_THRESHOLD_PERCENT
    new_count = total - at_last
    pct = percent_new(new_count, at_last)

    return SignificanceResult(
        exam_id=exam_id,
        is_significant=pct >= threshold,
        new_count=new_count,
        total_count=total,
        subs_at_last_normalization=at_last,
        threshold=threshold,
        percent_new=round(pct, 2),
        last_normalized_at=exam.last_normalized_at,
    )
