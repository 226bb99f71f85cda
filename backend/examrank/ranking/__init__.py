"""Rank and percentile computation over overall, category and shift partitions."""

from examrank.ranking.python_ranker import competition_ranks, percent_ranks, rank_partition
from examrank.ranking.service import recalculate_ranks

__all__ = ["competition_ranks", "percent_ranks", "rank_partition", "recalculate_ranks"]
