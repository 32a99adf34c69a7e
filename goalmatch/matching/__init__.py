"""Match ranking (vector index fast path, exhaustive slow path)."""

from .ranker import (
    CancellationToken,
    MatchRanker,
    RankerConfig,
    parse_domain_filter,
    rank_results,
)

__all__ = [
    "CancellationToken",
    "MatchRanker",
    "RankerConfig",
    "parse_domain_filter",
    "rank_results",
]
