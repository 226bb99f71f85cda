"""Deterministic in-memory ranker with standard competition ties."""

from __future__ import annotations

from collections.abc import Hashable, Sequence
from dataclasses import dataclass
from datetime import date
from typing import Any, TypeVar

import numpy as np

K = TypeVar("K", bound=Hashable)


@dataclass(frozen=True)
class RankInput:
    """One submission as seen by the ranker."""

    id: int
    normalized_score: float | None
    raw_score: float
    dob: date | None = None

    @property
    def score(self) -> float:
        """Ranking score; an unnormalized row ranks on its raw score."""
        return self.raw_score if self.normalized_score is None else self.normalized_score

    def order_key(self) -> tuple[float, float, tuple[int, int]]:
        """Ascending key: score desc, raw desc, dob desc (missing dob first, as SQL DESC sorts NULLs)."""
        dob_key = (0, 0) if self.dob is None else (1, -self.dob.toordinal())
        return (-self.score, -self.raw_score, dob_key)


def competition_ranks(items: Sequence[tuple[K, Any]]) -> dict[K, int]:
    """
    Standard competition ranking ("1224").

    Items are (key, sort_key) pairs where a smaller sort_key ranks better.
    Equal sort keys share a rank and the next distinct key skips ahead by the
    size of the tie group.
    """
    ordered = sorted(items, key=lambda x: x[1])
    ranks: dict[K, int] = {}
    rank = 0
    prev: Any = None
    for idx, (key, sort_key) in enumerate(ordered):
        if idx == 0 or sort_key != prev:
            rank = idx + 1
            prev = sort_key
        ranks[key] = rank
    return ranks


def percent_ranks(items: Sequence[tuple[K, float]]) -> dict[K, float]:
    """
    Percentile (0..100) of each value: share of the population strictly below it.

    ``100 * (count below) / (n - 1)``, so a unique top scorer gets 100 and
    the bottom 0. A single-item population gets 0.
    """
    n = len(items)
    if n == 0:
        return {}
    if n == 1:
        return {items[0][0]: 0.0}

    values = np.array([v for _, v in items], dtype=float)
    below = np.searchsorted(np.sort(values), values, side="left")
    pct = below / (n - 1) * 100.0
    return {key: float(p) for (key, _), p in zip(items, pct)}


def rank_partition(rows: Sequence[RankInput]) -> dict[int, tuple[int, float]]:
    """Rank and percentile for every row of one partition, keyed by row id."""
    ranks = competition_ranks([(r.id, r.order_key()) for r in rows])
    pcts = percent_ranks([(r.id, r.score) for r in rows])
    return {r.id: (ranks[r.id], pcts[r.id]) for r in rows}
