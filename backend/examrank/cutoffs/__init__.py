"""Category-wise cutoff prediction."""

from examrank.cutoffs.predictor import CutoffPrediction, predict_cutoff
from examrank.cutoffs.service import recalculate_cutoffs

__all__ = ["CutoffPrediction", "predict_cutoff", "recalculate_cutoffs"]
