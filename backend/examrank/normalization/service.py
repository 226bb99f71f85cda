"""Normalization engine: fills ``normalized_score`` for every submission of an exam."""

from __future__ import annotations

import logging
from collections import defaultdict
from collections.abc import Sequence
from typing import Any

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.models.exam import Exam, Submission
from examrank.normalization.formulas import (
    NormalizationMethod,
    NormalizationParams,
    build_global_distribution,
    safe_normalized_score,
)
from examrank.pipeline.shift_stats import ExamStats
from examrank.ranking.python_ranker import RankInput, competition_ranks

logger = logging.getLogger(__name__)


async def normalize_exam(db: AsyncSession, exam_id: int, stats: ExamStats) -> NormalizationMethod | None:
    """
    Normalize all submissions of an exam using its configured method.

    Policy:
    - raw, or an exam with at most one shift: normalized = raw.
    - z_score: one set-based UPDATE per shift; a zero/undefined shift std keeps raw.
    - anything else: evaluated per submission and written back as one batch.

    Args:
        db: Database session
        exam_id: Exam ID
        stats: Fresh aggregator output for the exam

    Returns:
        The method applied, or None if the exam is missing (logged and skipped)
    """
    exam = await db.get(Exam, exam_id)
    if exam is None:
        logger.warning("Exam not found, skipping normalization", extra={"exam_id": exam_id})
        return None

    method = NormalizationMethod.resolve(exam.normalization_method)
    logger.info(
        "Normalizing exam",
        extra={"exam_id": exam_id, "method": method.value, "shifts": stats.shift_count},
    )

    if method is NormalizationMethod.RAW or stats.shift_count <= 1:
        await _apply_raw(db, exam_id)
        return NormalizationMethod.RAW

    if method is NormalizationMethod.Z_SCORE:
        await _apply_z_score(db, exam_id, stats)
        return method

    await _apply_per_record(db, exam, method, stats)
    return method


async def _apply_raw(db: AsyncSession, exam_id: int) -> None:
    stmt = (
        update(Submission)
        .where(Submission.exam_id == exam_id)
        .values(normalized_score=Submission.raw_score)
        .execution_options(synchronize_session=False)
    )
    await db.execute(stmt)


async def _apply_z_score(db: AsyncSession, exam_id: int, stats: ExamStats) -> None:
    g = stats.global_stats
    for shift in stats.shifts.values():
        stmt = update(Submission).where(
            Submission.exam_id == exam_id,
            Submission.shift_id == shift.shift_id,
        )
        if shift.mean is None or not shift.std_dev:
            stmt = stmt.values(normalized_score=Submission.raw_score)
        else:
            stmt = stmt.values(
                normalized_score=(Submission.raw_score - shift.mean) / shift.std_dev * g.std_dev + g.mean
            )
        await db.execute(stmt.execution_options(synchronize_session=False))

    # Submissions pointing at a shift outside this exam have no stats to rescale against
    orphan_stmt = (
        update(Submission)
        .where(Submission.exam_id == exam_id, Submission.shift_id.notin_(list(stats.shifts)))
        .values(normalized_score=Submission.raw_score)
        .execution_options(synchronize_session=False)
    )
    await db.execute(orphan_stmt)


async def renormalize_with_shift_ranks(
    db: AsyncSession,
    exam_id: int,
    stats: ExamStats,
    method: NormalizationMethod | None,
) -> int:
    """
    Re-evaluate rank-consuming formulas against the stored ``shift_rank``.

    Runs after the rank calculator so formulas see the final shift order,
    including tie-breaks on date of birth. Only rows whose value changes are
    written.

    Returns:
        Number of submissions whose normalized score changed
    """
    if method is None or not method.uses_shift_rank:
        return 0

    exam = await db.get(Exam, exam_id)
    if exam is None:
        return 0

    rows = await db.execute(
        select(Submission.id, Submission.shift_rank).where(
            Submission.exam_id == exam_id, Submission.shift_rank.is_not(None)
        )
    )
    shift_ranks = {sub_id: shift_rank for sub_id, shift_rank in rows.all()}
    changed = await _apply_per_record(db, exam, method, stats, shift_ranks=shift_ranks)
    if changed:
        logger.info("Normalized scores updated from shift ranks", extra={"exam_id": exam_id, "records": changed})
    return changed


def _raw_shift_ranks(rows: Sequence[Any]) -> dict[int, int]:
    """Competition rank within each shift by raw score, dob breaking ties."""
    by_shift: dict[int, list[tuple[int, tuple[Any, ...]]]] = defaultdict(list)
    for row in rows:
        item = RankInput(id=row.id, normalized_score=None, raw_score=float(row.raw_score), dob=row.dob)
        by_shift[row.shift_id].append((item.id, item.order_key()))
    ranks: dict[int, int] = {}
    for items in by_shift.values():
        ranks.update(competition_ranks(items))
    return ranks


async def _apply_per_record(
    db: AsyncSession,
    exam: Exam,
    method: NormalizationMethod,
    stats: ExamStats,
    shift_ranks: dict[int, int] | None = None,
) -> int:
    """Evaluate a per-row formula for every submission, batching the writes.

    Without ``shift_ranks`` the rank-in-shift comes from raw score and date of
    birth and every row is written. With it, only changed rows are written.
    """
    rows = (
        await db.execute(
            select(
                Submission.id,
                Submission.shift_id,
                Submission.raw_score,
                Submission.dob,
                Submission.normalized_score,
            ).where(Submission.exam_id == exam.id)
        )
    ).all()

    rank_in_shift: dict[int, int] = {}
    if method.uses_shift_rank:
        rank_in_shift = shift_ranks if shift_ranks is not None else _raw_shift_ranks(rows)

    distribution = build_global_distribution(stats.raw_scores) if method is NormalizationMethod.EQUATING else []
    g = stats.global_stats
    updates = []

    for row in rows:
        shift = stats.shifts.get(row.shift_id)
        if shift is None or shift.mean is None:
            score = float(row.raw_score)
        else:
            params = NormalizationParams(
                raw_score=float(row.raw_score),
                shift_mean=shift.mean,
                shift_std_dev=shift.std_dev,
                global_mean=g.mean,
                global_std_dev=g.std_dev,
                max_marks=float(exam.total_marks),
                total_in_shift=shift.count or 1,
                rank_in_shift=rank_in_shift.get(row.id, 1),
                config=exam.normalization_config,
                global_distribution=distribution,
            )
            score = safe_normalized_score(method, params)

        if shift_ranks is None or row.normalized_score != score:
            updates.append({"id": row.id, "normalized_score": score})

    if updates:
        await db.execute(update(Submission), updates)

    logger.info(
        "Per-record normalization applied",
        extra={"exam_id": exam.id, "method": method.value, "records": len(updates)},
    )
    return len(updates)
