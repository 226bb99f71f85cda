"""Pure cutoff prediction from a category's normalized score distribution."""

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

from examrank.core.config import settings
from examrank.models.exam import ConfidenceLevel

METHODOLOGY = "percentile_distribution"
FACTORS = ["normalized_scores", "category_ratio", "batch_processing"]


@dataclass(frozen=True)
class CutoffPrediction:
    """Predicted cutoff band for one category."""

    category: str
    expected_cutoff: float
    safe_score: float
    minimum_score: float
    confidence_level: ConfidenceLevel
    data_points: int

    def prediction_basis(self) -> dict:
        return {
            "dataPoints": self.data_points,
            "methodology": METHODOLOGY,
            "factors": list(FACTORS),
        }


def continuous_percentile(values: Sequence[float], fraction: float) -> float:
    """
    Linear-interpolated percentile (PERCENTILE_CONT semantics).

    Args:
        values: Scores, any order
        fraction: Position in [0, 1]

    Returns:
        Interpolated value, or 0.0 for an empty input
    """
    if len(values) == 0:
        return 0.0
    fraction = min(max(fraction, 0.0), 1.0)
    return float(np.percentile(np.asarray(values, dtype=float), fraction * 100.0, method="linear"))


def confidence_for(data_points: int) -> ConfidenceLevel:
    if data_points > settings.CUTOFF_HIGH_CONFIDENCE_MIN:
        return ConfidenceLevel.HIGH
    return ConfidenceLevel.MEDIUM


def predict_cutoff(
    category: str,
    normalized_scores: Sequence[float],
    data_points: int | None = None,
    ratio: float | None = None,
) -> CutoffPrediction:
    """
    Predict the qualifying score for a category.

    The expected cutoff sits at the (1 - ratio) point of the normalized score
    distribution, so roughly ``ratio`` of candidates score at or above it.

    Args:
        category: Category code
        normalized_scores: Non-null normalized scores in the category
        data_points: Candidate count used for confidence (defaults to len(scores))
        ratio: Selection ratio override (defaults to the configured ratio)

    Returns:
        CutoffPrediction
    """
    if ratio is None:
        ratio = settings.selection_ratio(category)
    if data_points is None:
        data_points = len(normalized_scores)

    expected = continuous_percentile(normalized_scores, 1.0 - ratio)
    return CutoffPrediction(
        category=category,
        expected_cutoff=expected,
        safe_score=expected + settings.CUTOFF_SAFE_MARGIN,
        minimum_score=expected - settings.CUTOFF_MINIMUM_MARGIN,
        confidence_level=confidence_for(data_points),
        data_points=data_points,
    )
