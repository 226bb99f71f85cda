"""Cutoff predictor: writes one PREDICTION row per category."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import UTC, datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from examrank.core.config import settings
from examrank.cutoffs.predictor import CutoffPrediction, predict_cutoff
from examrank.db.dialect import upsert_insert
from examrank.models.exam import Cutoff, Submission

logger = logging.getLogger(__name__)

PREDICTION_POST_NAME = "Generated Prediction"


async def recalculate_cutoffs(db: AsyncSession, exam_id: int) -> list[CutoffPrediction]:
    """
    Predict and upsert cutoffs for every category present in the exam.

    Args:
        db: Database session
        exam_id: Exam ID

    Returns:
        Predictions written, one per category
    """
    rows = (
        await db.execute(
            select(Submission.category, Submission.normalized_score).where(Submission.exam_id == exam_id)
        )
    ).all()

    scores: dict[str, list[float]] = defaultdict(list)
    counts: dict[str, int] = defaultdict(int)
    for category, normalized_score in rows:
        counts[category] += 1
        if normalized_score is not None:
            scores[category].append(float(normalized_score))

    predictions: list[CutoffPrediction] = []
    now = datetime.now(UTC)
    for category in sorted(counts):
        prediction = predict_cutoff(category, scores[category], data_points=counts[category])
        predictions.append(prediction)

        stmt = upsert_insert(db, Cutoff).values(
            exam_id=exam_id,
            category=category,
            post_code=settings.CUTOFF_POST_CODE,
            post_name=PREDICTION_POST_NAME,
            expected_cutoff=prediction.expected_cutoff,
            safe_score=prediction.safe_score,
            minimum_score=prediction.minimum_score,
            confidence_level=prediction.confidence_level.value,
            prediction_basis=prediction.prediction_basis(),
            created_at=now,
            updated_at=now,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=["exam_id", "category", "post_code"],
            set_={
                "expected_cutoff": stmt.excluded.expected_cutoff,
                "safe_score": stmt.excluded.safe_score,
                "minimum_score": stmt.excluded.minimum_score,
                "confidence_level": stmt.excluded.confidence_level,
                "prediction_basis": stmt.excluded.prediction_basis,
                "updated_at": stmt.excluded.updated_at,
            },
        )
        await db.execute(stmt)

    logger.info(
        "Cutoffs recalculated",
        extra={"exam_id": exam_id, "categories": [p.category for p in predictions]},
    )
    return predictions
