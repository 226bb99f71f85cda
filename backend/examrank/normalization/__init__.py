"""Score normalization: formula registry and exam-wide normalization engine."""

from examrank.normalization.formulas import (
    NormalizationMethod,
    NormalizationParams,
    get_normalized_score,
)

__all__ = ["NormalizationMethod", "NormalizationParams", "get_normalized_score"]
