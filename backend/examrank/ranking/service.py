"""Rank calculator: full re-rank of an exam over three partitions."""

from __future__ import annotations

import logging
from collections import defaultdict

from sqlalchemy import select, update
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.models.exam import Submission
from examrank.ranking.python_ranker import RankInput, rank_partition

logger = logging.getLogger(__name__)


async def recalculate_ranks(db: AsyncSession, exam_id: int) -> int:
    """
    Recompute overall, category and shift rank/percentile for every submission.

    Always a full recomputation: a single new or corrected score can move
    every other candidate's position.

    Args:
        db: Database session
        exam_id: Exam ID

    Returns:
        Number of submissions ranked
    """
    rows = (
        await db.execute(
            select(
                Submission.id,
                Submission.shift_id,
                Submission.category,
                Submission.normalized_score,
                Submission.raw_score,
                Submission.dob,
            ).where(Submission.exam_id == exam_id)
        )
    ).all()

    if not rows:
        return 0

    inputs: list[RankInput] = []
    by_category: dict[str, list[RankInput]] = defaultdict(list)
    by_shift: dict[int, list[RankInput]] = defaultdict(list)
    unnormalized = 0

    for sub_id, shift_id, category, normalized_score, raw_score, dob in rows:
        item = RankInput(
            id=sub_id,
            normalized_score=None if normalized_score is None else float(normalized_score),
            raw_score=float(raw_score),
            dob=dob,
        )
        if normalized_score is None:
            unnormalized += 1
        inputs.append(item)
        by_category[category].append(item)
        by_shift[shift_id].append(item)

    if unnormalized:
        logger.warning(
            "Ranking submissions without normalized score on raw score",
            extra={"exam_id": exam_id, "unnormalized": unnormalized, "total": len(rows)},
        )

    overall = rank_partition(inputs)
    category_ranks: dict[int, tuple[int, float]] = {}
    for group in by_category.values():
        category_ranks.update(rank_partition(group))
    shift_ranks: dict[int, tuple[int, float]] = {}
    for group in by_shift.values():
        shift_ranks.update(rank_partition(group))

    updates = []
    for item in inputs:
        o_rank, o_pct = overall[item.id]
        c_rank, c_pct = category_ranks[item.id]
        s_rank, s_pct = shift_ranks[item.id]
        updates.append(
            {
                "id": item.id,
                "overall_rank": o_rank,
                "overall_percentile": o_pct,
                "category_rank": c_rank,
                "category_percentile": c_pct,
                "shift_rank": s_rank,
                "shift_percentile": s_pct,
            }
        )

    await db.execute(update(Submission), updates)

    logger.info(
        "Ranks recalculated",
        extra={
            "exam_id": exam_id,
            "submissions": len(updates),
            "categories": len(by_category),
            "shift_partitions": len(by_shift),
        },
    )
    return len(updates)
