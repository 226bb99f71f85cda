"""Shift statistics aggregator.

Per-shift descriptive statistics are rebuilt wholesale from every current
submission of the shift (not only pending ones) so the cache always matches
the raw data after a successful run.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime

import numpy as np
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.core.config import settings
from examrank.models.exam import Exam, Shift, Submission

logger = logging.getLogger(__name__)

DIFFICULTY_EASY = "Easy"
DIFFICULTY_MODERATE = "Moderate"
DIFFICULTY_DIFFICULT = "Difficult"


@dataclass(frozen=True)
class ShiftStats:
    """Descriptive statistics of one shift's raw scores."""

    shift_id: int
    count: int
    mean: float | None
    std_dev: float  # population; 0 when undefined
    max: float | None
    min: float | None


@dataclass(frozen=True)
class GlobalStats:
    """Exam-wide raw score mean and standard deviation."""

    mean: float
    std_dev: float
    count: int


@dataclass
class ExamStats:
    """Aggregator output consumed by the normalization engine."""

    exam_id: int
    shifts: dict[int, ShiftStats]
    global_stats: GlobalStats
    raw_scores: list[float] = field(default_factory=list)

    @property
    def shift_count(self) -> int:
        return len(self.shifts)


def describe_shift(shift_id: int, scores: Sequence[float]) -> ShiftStats:
    """Population statistics over one shift's raw scores."""
    if len(scores) == 0:
        return ShiftStats(shift_id=shift_id, count=0, mean=None, std_dev=0.0, max=None, min=None)
    arr = np.asarray(scores, dtype=float)
    return ShiftStats(
        shift_id=shift_id,
        count=int(arr.size),
        mean=float(arr.mean()),
        std_dev=float(arr.std(ddof=0)),
        max=float(arr.max()),
        min=float(arr.min()),
    )


def compute_global_stats(scores: Sequence[float]) -> GlobalStats:
    """Exam-wide mean/std. A zero or undefined std degrades to 1 so rescaling stays finite."""
    if len(scores) == 0:
        return GlobalStats(mean=0.0, std_dev=1.0, count=0)
    arr = np.asarray(scores, dtype=float)
    std_dev = float(arr.std(ddof=0))
    return GlobalStats(mean=float(arr.mean()), std_dev=std_dev or 1.0, count=int(arr.size))


def difficulty_label(shift_mean: float, global_mean: float, band: float) -> str:
    """Label a shift relative to the exam-wide mean: high average means an easy paper."""
    if shift_mean > global_mean + band:
        return DIFFICULTY_EASY
    if shift_mean < global_mean - band:
        return DIFFICULTY_DIFFICULT
    return DIFFICULTY_MODERATE


async def refresh_shift_stats(db: AsyncSession, exam_id: int) -> ExamStats | None:
    """
    Recompute and persist statistics for every shift of an exam.

    Args:
        db: Database session
        exam_id: Exam ID

    Returns:
        ExamStats, or None if the exam does not exist (logged and skipped)
    """
    exam = await db.get(Exam, exam_id)
    if exam is None:
        logger.warning("Exam not found, skipping shift stats", extra={"exam_id": exam_id})
        return None

    shifts = (await db.execute(select(Shift).where(Shift.exam_id == exam_id))).scalars().all()

    rows = (
        await db.execute(
            select(Submission.shift_id, Submission.raw_score).where(Submission.exam_id == exam_id)
        )
    ).all()

    by_shift: dict[int, list[float]] = defaultdict(list)
    raw_scores: list[float] = []
    for shift_id, raw_score in rows:
        by_shift[shift_id].append(float(raw_score))
        raw_scores.append(float(raw_score))

    global_stats = compute_global_stats(raw_scores)
    now = datetime.now(UTC)
    stats: dict[int, ShiftStats] = {}

    for shift in shifts:
        s = describe_shift(shift.id, by_shift.get(shift.id, []))
        stats[shift.id] = s

        shift.candidate_count = s.count
        shift.avg_raw_score = s.mean
        shift.std_dev = s.std_dev
        shift.max_raw_score = s.max
        shift.min_raw_score = s.min
        shift.stats_updated_at = now

        if s.mean is not None and global_stats.mean > 0:
            shift.difficulty_index = s.mean / global_stats.mean
            shift.difficulty_label = difficulty_label(s.mean, global_stats.mean, settings.DIFFICULTY_BAND)

        logger.info(
            "Shift stats refreshed",
            extra={
                "exam_id": exam_id,
                "shift_id": shift.id,
                "count": s.count,
                "mean": s.mean,
                "std_dev": s.std_dev,
            },
        )

    await db.flush()

    return ExamStats(exam_id=exam_id, shifts=stats, global_stats=global_stats, raw_scores=raw_scores)
