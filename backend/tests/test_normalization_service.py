"""Tests for the exam-wide normalization engine."""

from datetime import date

import numpy as np
import pytest
from sqlalchemy import update
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.normalization.formulas import NormalizationMethod
from examrank.models.exam import Submission
from examrank.normalization.service import normalize_exam, renormalize_with_shift_ranks
from examrank.pipeline.shift_stats import refresh_shift_stats
from examrank.ranking.service import recalculate_ranks
from tests.helpers.seed import add_submissions, create_exam, create_shift, load_submissions


async def _normalize(db: AsyncSession, exam_id: int):
    stats = await refresh_shift_stats(db, exam_id)
    method = await normalize_exam(db, exam_id, stats)
    await db.commit()
    return method


@pytest.mark.asyncio
async def test_shift_mean_candidates_land_on_global_mean(db: AsyncSession):
    """An easy and a hard shift: a candidate at their own shift mean gets the exam mean."""
    exam = await create_exam(db, method="z_score")
    hard = await create_shift(db, exam, "A")
    easy = await create_shift(db, exam, "B")
    await add_submissions(db, exam, hard, [90.0, 100.0, 110.0])
    await add_submissions(db, exam, easy, [110.0, 130.0, 150.0])

    assert await _normalize(db, exam.id) is NormalizationMethod.Z_SCORE

    subs = await load_submissions(db, exam.id)
    at_mean = [s for s in subs if (s.shift_id, s.raw_score) in {(hard.id, 100.0), (easy.id, 130.0)}]
    assert len(at_mean) == 2
    for sub in at_mean:
        assert sub.normalized_score == pytest.approx(115.0)


@pytest.mark.asyncio
async def test_z_score_preserves_exam_mean(db: AsyncSession):
    exam = await create_exam(db, method="z_score")
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [40.0, 55.0, 61.0, 80.0])
    await add_submissions(db, exam, s2, [120.0, 90.0, 150.0])

    await _normalize(db, exam.id)

    subs = await load_submissions(db, exam.id)
    raw_mean = np.mean([s.raw_score for s in subs])
    norm_mean = np.mean([s.normalized_score for s in subs])
    assert norm_mean == pytest.approx(raw_mean)


@pytest.mark.asyncio
async def test_zero_std_shift_keeps_raw(db: AsyncSession):
    exam = await create_exam(db, method="z_score")
    flat = await create_shift(db, exam, "A")
    spread = await create_shift(db, exam, "B")
    await add_submissions(db, exam, flat, [70.0, 70.0])
    await add_submissions(db, exam, spread, [50.0, 90.0])

    await _normalize(db, exam.id)

    subs = await load_submissions(db, exam.id)
    flat_scores = [s.normalized_score for s in subs if s.shift_id == flat.id]
    assert flat_scores == [70.0, 70.0]
    assert all(np.isfinite(s.normalized_score) for s in subs)


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["z_score", "percentile", "raw"])
async def test_single_shift_is_identity(db: AsyncSession, method: str):
    exam = await create_exam(db, method=method)
    shift = await create_shift(db, exam)
    await add_submissions(db, exam, shift, [12.5, 99.0, 150.0])

    assert await _normalize(db, exam.id) is NormalizationMethod.RAW

    for sub in await load_submissions(db, exam.id):
        assert sub.normalized_score == sub.raw_score


@pytest.mark.asyncio
async def test_raw_method_with_multiple_shifts(db: AsyncSession):
    exam = await create_exam(db, method="raw")
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [10.0, 20.0])
    await add_submissions(db, exam, s2, [30.0])

    await _normalize(db, exam.id)

    for sub in await load_submissions(db, exam.id):
        assert sub.normalized_score == sub.raw_score


@pytest.mark.asyncio
async def test_percentile_method_per_record(db: AsyncSession):
    exam = await create_exam(db, method="percentile", total_marks=200.0)
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [10.0, 30.0, 20.0])
    await add_submissions(db, exam, s2, [55.0, 45.0])

    assert await _normalize(db, exam.id) is NormalizationMethod.PERCENTILE

    scores = {(s.shift_id, s.raw_score): s.normalized_score for s in await load_submissions(db, exam.id)}
    assert scores[(s1.id, 30.0)] == 200.0
    assert scores[(s1.id, 20.0)] == 100.0
    assert scores[(s1.id, 10.0)] == 0.0
    assert scores[(s2.id, 55.0)] == 200.0
    assert scores[(s2.id, 45.0)] == 0.0


@pytest.mark.asyncio
async def test_modified_z_uses_config(db: AsyncSession):
    exam = await create_exam(db, method="modified_z", config={"targetMean": 500, "targetStdDev": 100})
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [40.0, 60.0])
    await add_submissions(db, exam, s2, [70.0, 90.0])

    await _normalize(db, exam.id)

    scores = sorted(s.normalized_score for s in await load_submissions(db, exam.id))
    assert scores == [400.0, 400.0, 600.0, 600.0]


@pytest.mark.asyncio
async def test_unknown_method_falls_back_to_z_score(db: AsyncSession):
    exam = await create_exam(db, method="does_not_exist")
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [90.0, 100.0, 110.0])
    await add_submissions(db, exam, s2, [110.0, 130.0, 150.0])

    assert await _normalize(db, exam.id) is NormalizationMethod.Z_SCORE


@pytest.mark.asyncio
async def test_missing_exam_is_skipped(db: AsyncSession):
    exam = await create_exam(db)
    shift = await create_shift(db, exam)
    await add_submissions(db, exam, shift, [10.0])
    stats = await refresh_shift_stats(db, exam.id)

    assert await normalize_exam(db, 424242, stats) is None
    sub = (await load_submissions(db, exam.id))[0]
    assert sub.normalized_score is None


@pytest.mark.asyncio
async def test_percentile_raw_tie_broken_by_dob(db: AsyncSession):
    exam = await create_exam(db, method="percentile", total_marks=200.0)
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(
        db, exam, s1, [100.0, 100.0, 50.0], dobs=[date(2000, 1, 1), date(2001, 1, 1), date(2000, 1, 1)]
    )
    await add_submissions(db, exam, s2, [80.0, 60.0])

    stats = await refresh_shift_stats(db, exam.id)
    method = await normalize_exam(db, exam.id, stats)
    await recalculate_ranks(db, exam.id)
    assert await renormalize_with_shift_ranks(db, exam.id, stats, method) == 0
    await db.commit()

    older, younger, low = [s for s in await load_submissions(db, exam.id) if s.shift_id == s1.id]
    assert (younger.shift_rank, younger.normalized_score) == (1, 200.0)
    assert (older.shift_rank, older.normalized_score) == (2, 100.0)
    assert (low.shift_rank, low.normalized_score) == (3, 0.0)


@pytest.mark.asyncio
async def test_renormalize_follows_stored_shift_ranks(db: AsyncSession):
    exam = await create_exam(db, method="percentile", total_marks=200.0)
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [10.0, 30.0])
    high, low = await add_submissions(db, exam, s2, [80.0, 60.0])
    high_id, low_id = high.id, low.id

    stats = await refresh_shift_stats(db, exam.id)
    method = await normalize_exam(db, exam.id, stats)
    await recalculate_ranks(db, exam.id)
    await db.execute(update(Submission).where(Submission.id == high_id).values(shift_rank=2))
    await db.execute(update(Submission).where(Submission.id == low_id).values(shift_rank=1))

    assert await renormalize_with_shift_ranks(db, exam.id, stats, method) == 2
    await db.commit()

    scores = {s.id: s.normalized_score for s in await load_submissions(db, exam.id)}
    assert scores[high_id] == 0.0
    assert scores[low_id] == 200.0


@pytest.mark.asyncio
async def test_renormalize_skips_rank_free_methods(db: AsyncSession):
    exam = await create_exam(db, method="z_score")
    s1 = await create_shift(db, exam, "A")
    s2 = await create_shift(db, exam, "B")
    await add_submissions(db, exam, s1, [10.0, 30.0])
    await add_submissions(db, exam, s2, [80.0, 60.0])

    stats = await refresh_shift_stats(db, exam.id)
    method = await normalize_exam(db, exam.id, stats)
    await recalculate_ranks(db, exam.id)

    assert await renormalize_with_shift_ranks(db, exam.id, stats, method) == 0
