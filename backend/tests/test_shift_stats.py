"""Tests for the shift statistics aggregator."""

import pytest
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.models.exam import ProcessingStatus
from examrank.pipeline.shift_stats import (
    compute_global_stats,
    describe_shift,
    difficulty_label,
    refresh_shift_stats,
)
from tests.helpers.seed import add_submissions, create_exam, create_shift, load_shift


def test_describe_shift_population_std():
    stats = describe_shift(1, [90.0, 100.0, 110.0])
    assert stats.count == 3
    assert stats.mean == 100.0
    # Population std, not sample std (which would be 10.0)
    assert stats.std_dev == pytest.approx(8.16496580927726)
    assert stats.max == 110.0
    assert stats.min == 90.0


def test_describe_shift_single_and_empty():
    single = describe_shift(1, [42.0])
    assert single.std_dev == 0.0
    assert single.mean == 42.0

    empty = describe_shift(2, [])
    assert empty.count == 0
    assert empty.mean is None
    assert empty.std_dev == 0.0


def test_global_stats_zero_std_degrades_to_one():
    assert compute_global_stats([5.0, 5.0]).std_dev == 1.0
    assert compute_global_stats([]).mean == 0.0


@pytest.mark.parametrize(
    "shift_mean,label",
    [(120.0, "Easy"), (110.0, "Moderate"), (100.0, "Moderate"), (89.0, "Difficult")],
)
def test_difficulty_label(shift_mean, label):
    assert difficulty_label(shift_mean, 100.0, 10.0) == label


@pytest.mark.asyncio
async def test_refresh_uses_all_submissions_not_just_pending(db: AsyncSession):
    exam = await create_exam(db)
    shift_a = await create_shift(db, exam, "A")
    shift_b = await create_shift(db, exam, "B")
    await add_submissions(db, exam, shift_a, [90.0, 110.0], status=ProcessingStatus.READY)
    await add_submissions(db, exam, shift_a, [100.0], status=ProcessingStatus.PENDING)
    await add_submissions(db, exam, shift_b, [150.0, 170.0])

    stats = await refresh_shift_stats(db, exam.id)
    await db.commit()

    assert stats is not None
    assert stats.shift_count == 2
    assert stats.shifts[shift_a.id].count == 3
    assert stats.global_stats.count == 5
    assert stats.global_stats.mean == pytest.approx(124.0)

    a = await load_shift(db, shift_a.id)
    assert a.candidate_count == 3
    assert a.avg_raw_score == pytest.approx(100.0)
    assert a.max_raw_score == 110.0
    assert a.min_raw_score == 90.0
    assert a.stats_updated_at is not None
    assert a.difficulty_label == "Difficult"

    b = await load_shift(db, shift_b.id)
    assert b.std_dev == pytest.approx(10.0)
    assert b.difficulty_label == "Easy"


@pytest.mark.asyncio
async def test_refresh_missing_exam_returns_none(db: AsyncSession):
    assert await refresh_shift_stats(db, 9999) is None
