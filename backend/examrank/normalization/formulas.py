"""Pluggable normalization formulas.

Each method is a pure function of ``NormalizationParams``:

- raw: pass-through (single-shift exams, or exams that opt out).
- z_score: ``(raw - shift_mean) / shift_std * global_std + global_mean``.
- percentile: rank-in-shift mapped linearly onto ``[0, max_marks]``.
- modified_z: z-score remapped onto a fixed target mean/std from config.
- equating: equipercentile equating of the shift percentile onto the
  exam-wide raw score distribution.
- custom: ``a * raw + b * zscore_rescaled + c`` with optional clamping.

``raw`` and ``z_score`` only depend on aggregate statistics and are applied
set-wise by the engine; the others are evaluated per submission.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import numpy as np
from scipy.stats import norm

logger = logging.getLogger(__name__)

# Inverse normal CDF is clipped away from 0/1 to keep z finite
EQUATING_PROBABILITY_CLIP = (0.001, 0.999)
DEFAULT_TARGET_MEAN = 50.0
DEFAULT_TARGET_STD_DEV = 15.0
DISTRIBUTION_STEPS = 101  # percentiles 0..100 inclusive


class NormalizationMethod(str, Enum):
    """Supported normalization methods."""

    RAW = "raw"
    Z_SCORE = "z_score"
    PERCENTILE = "percentile"
    MODIFIED_Z = "modified_z"
    EQUATING = "equating"
    CUSTOM = "custom"

    @classmethod
    def resolve(cls, value: str | None) -> NormalizationMethod:
        """Parse a stored method name; unknown or empty values fall back to z_score."""
        if not value:
            return cls.Z_SCORE
        try:
            return cls(value)
        except ValueError:
            logger.warning("Unknown normalization method %r, falling back to z_score", value)
            return cls.Z_SCORE

    @property
    def uses_shift_rank(self) -> bool:
        """True if the method consumes the candidate's rank within the shift."""
        return self in (NormalizationMethod.PERCENTILE, NormalizationMethod.EQUATING)


@dataclass(frozen=True)
class NormalizationParams:
    """Inputs available to every normalization formula."""

    raw_score: float
    shift_mean: float
    shift_std_dev: float
    global_mean: float
    global_std_dev: float
    max_marks: float
    total_in_shift: int = 1
    rank_in_shift: int = 1
    config: dict[str, Any] | None = None
    # (percentile, score) pairs ascending by percentile; used by equating
    global_distribution: Sequence[tuple[float, float]] = field(default_factory=tuple)


FormulaFn = Callable[[NormalizationParams], float]


def _config(p: NormalizationParams) -> dict[str, Any]:
    return p.config or {}


def _shift_percentile(p: NormalizationParams) -> float:
    """Percentile (0..100) of the candidate's rank within the shift, 100 = top."""
    return ((p.total_in_shift - p.rank_in_shift) / (p.total_in_shift - 1)) * 100


def z_score(p: NormalizationParams) -> float:
    if not p.shift_std_dev:
        return p.raw_score
    z = (p.raw_score - p.shift_mean) / p.shift_std_dev
    return z * p.global_std_dev + p.global_mean


def percentile(p: NormalizationParams) -> float:
    if p.total_in_shift <= 1:
        return p.raw_score
    return (_shift_percentile(p) / 100) * p.max_marks


def modified_z(p: NormalizationParams) -> float:
    if not p.shift_std_dev:
        return p.raw_score
    cfg = _config(p)
    target_mean = cfg.get("targetMean", DEFAULT_TARGET_MEAN)
    target_std_dev = cfg.get("targetStdDev", DEFAULT_TARGET_STD_DEV)
    z = (p.raw_score - p.shift_mean) / p.shift_std_dev
    return z * target_std_dev + target_mean


def equating(p: NormalizationParams) -> float:
    """Equipercentile equating onto the exam-wide distribution.

    Without a distribution table the shift percentile is mapped through the
    inverse normal CDF onto the global mean/std instead.
    """
    if p.total_in_shift <= 1:
        return p.raw_score

    pctile_rank = _shift_percentile(p)
    if p.global_distribution:
        return interpolate_percentile(pctile_rank, p.global_distribution)

    low, high = EQUATING_PROBABILITY_CLIP
    u = min(high, max(low, pctile_rank / 100))
    z = float(norm.ppf(u))
    return z * p.global_std_dev + p.global_mean


def raw(p: NormalizationParams) -> float:
    return p.raw_score


def custom(p: NormalizationParams) -> float:
    cfg = _config(p)
    params = cfg.get("customParams")
    if not params:
        return p.raw_score

    a = params.get("rawWeight", 0)
    b = params.get("zWeight", 1)
    c = params.get("offset", 0)

    z = (p.raw_score - p.shift_mean) / p.shift_std_dev if p.shift_std_dev > 0 else 0.0
    result = a * p.raw_score + b * (z * p.global_std_dev + p.global_mean) + c

    max_score = cfg.get("maxNormalizedScore", math.inf)
    min_score = cfg.get("minNormalizedScore", -math.inf)
    return max(min_score, min(max_score, result))


FORMULAS: dict[NormalizationMethod, FormulaFn] = {
    NormalizationMethod.RAW: raw,
    NormalizationMethod.Z_SCORE: z_score,
    NormalizationMethod.PERCENTILE: percentile,
    NormalizationMethod.MODIFIED_Z: modified_z,
    NormalizationMethod.EQUATING: equating,
    NormalizationMethod.CUSTOM: custom,
}

METHOD_LABELS: dict[NormalizationMethod, str] = {
    NormalizationMethod.RAW: "No Normalization",
    NormalizationMethod.Z_SCORE: "Z-Score (SSC Standard)",
    NormalizationMethod.PERCENTILE: "Percentile-Based (RRB)",
    NormalizationMethod.MODIFIED_Z: "Modified Z-Score (IBPS)",
    NormalizationMethod.EQUATING: "Equipercentile (NTA)",
    NormalizationMethod.CUSTOM: "Custom Formula",
}


def get_normalized_score(method: NormalizationMethod, params: NormalizationParams) -> float:
    """Evaluate a formula, rounded to 2 decimal places."""
    return round(FORMULAS[method](params), 2)


def safe_normalized_score(method: NormalizationMethod, params: NormalizationParams) -> float:
    """Evaluate a formula for one record, degrading to the raw score on failure.

    A formula that raises or yields NaN/Infinity must not abort the exam, so
    the record keeps its raw score and a warning is logged.
    """
    try:
        value = get_normalized_score(method, params)
    except (ArithmeticError, ValueError, TypeError) as e:
        logger.warning(
            "Normalization formula failed, using raw score",
            extra={"method": method.value, "raw_score": params.raw_score, "error": str(e)},
        )
        return params.raw_score

    if not math.isfinite(value):
        logger.warning(
            "Normalization formula produced non-finite value, using raw score",
            extra={"method": method.value, "raw_score": params.raw_score},
        )
        return params.raw_score
    return value


def interpolate_percentile(
    target_percentile: float,
    distribution: Sequence[tuple[float, float]],
) -> float:
    """Linear interpolation into a (percentile, score) lookup table, clamped at the ends."""
    pcts = np.array([pt for pt, _ in distribution], dtype=float)
    scores = np.array([s for _, s in distribution], dtype=float)
    return float(np.interp(target_percentile, pcts, scores))


def build_global_distribution(raw_scores: Sequence[float]) -> list[tuple[float, float]]:
    """Percentile -> score lookup table (0..100) over a population of raw scores."""
    if len(raw_scores) == 0:
        return []
    pcts = np.linspace(0.0, 100.0, DISTRIBUTION_STEPS)
    scores = np.percentile(np.asarray(raw_scores, dtype=float), pcts)
    return [(float(pt), float(s)) for pt, s in zip(pcts, scores)]


def get_method_label(method: str) -> str:
    """Human-readable name for a method, or the raw string if unknown."""
    try:
        return METHOD_LABELS[NormalizationMethod(method)]
    except ValueError:
        return method


def get_available_formulas() -> list[dict[str, str]]:
    """Methods for use in admin dropdowns."""
    return [{"value": m.value, "label": METHOD_LABELS[m]} for m in NormalizationMethod]
