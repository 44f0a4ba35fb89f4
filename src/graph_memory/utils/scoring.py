"""
Relevance and forgetting-curve scoring for stored memories.

Two independent scores:

1. Effective score (ranking, core rebalancing):
       effective = importance * frequency_boost(retrieval_count) * recency_factor(age_days)

   frequency_boost saturates: log(1 + n) / log(1 + saturation), capped at 1,
   scaled by max_boost and added to 1 (so an unretrieved memory gets 1.0).
   recency_factor is an exponential decay with a floor:
       base + e^(-lambda * days) * (1 - base)

2. Decay score (pruning):
       decay = importance * e^(-age_days / half_life)
       half_life = base_half_life * (1 + importance * importance_multiplier)

   Important memories decay more slowly. Core memories are never evaluated.

All functions are pure; the maintenance service feeds them store rows.
"""

from __future__ import annotations

import math

SECONDS_PER_DAY = 86400.0


def age_in_days(created_at: float | None, now: float) -> float:
    """Age of a record in days; unknown or future timestamps count as 0."""
    if created_at is None:
        return 0.0
    return max(0.0, (now - created_at) / SECONDS_PER_DAY)


def frequency_boost(retrieval_count: int, saturation: int = 100, max_boost: float = 1.0) -> float:
    """
    Multiplier for how often a memory has been retrieved.

    Returns 1.0 at zero retrievals, rising to 1 + max_boost at ``saturation``
    retrievals and flat beyond that.
    """
    if retrieval_count <= 0 or saturation <= 0:
        return 1.0
    normalized = math.log(1 + retrieval_count) / math.log(1 + saturation)
    return 1.0 + max_boost * min(normalized, 1.0)


def recency_factor(age_days: float, lambda_: float = 0.01, base: float = 0.3) -> float:
    """
    Exponential recency factor floored at ``base``.

    Formula: base + exp(-lambda * days) * (1 - base)

    Args:
        age_days: Age in days (negative treated as 0)
        lambda_: Decay rate per day
        base: Floor, so old memories never drop to zero

    Returns:
        Factor in [base, 1.0]
    """
    days = max(0.0, age_days)
    return base + math.exp(-lambda_ * days) * (1.0 - base)


def effective_score(
    importance: float,
    retrieval_count: int,
    age_days: float,
    saturation: int = 100,
    max_boost: float = 1.0,
    lambda_: float = 0.01,
    base: float = 0.3,
) -> float:
    return (
        importance
        * frequency_boost(retrieval_count, saturation, max_boost)
        * recency_factor(age_days, lambda_, base)
    )


def half_life(importance: float, base_half_life_days: float = 30.0, importance_multiplier: float = 1.0) -> float:
    return base_half_life_days * (1.0 + importance * importance_multiplier)


def decay_score(
    importance: float,
    age_days: float,
    base_half_life_days: float = 30.0,
    importance_multiplier: float = 1.0,
) -> float:
    """
    Forgetting-curve score: importance * e^(-age / half_life).

    Strictly below importance for any positive age and importance.
    """
    hl = half_life(importance, base_half_life_days, importance_multiplier)
    if hl <= 0:
        return 0.0
    return importance * math.exp(-max(0.0, age_days) / hl)


def pareto_top_count(n: int, percentile: float) -> int:
    """
    Size of the top set above a percentile boundary.

    k = ceil(n * (1 - percentile)), clamped to [1, n]. The product is rounded
    to 9 places first so 10 * (1 - 0.8) = 1.9999999999999996 counts as 2.
    """
    if n <= 0:
        return 0
    raw = round(n * (1.0 - percentile), 9)
    return max(1, min(n, math.ceil(raw)))


def calculate_pareto_threshold(scores: list[float], percentile: float = 0.8) -> float:
    """
    Score at the top-``(1 - percentile)`` boundary.

    Scores are sorted descending and the threshold is the k-th highest
    (1-indexed), with k from ``pareto_top_count``. Anything scoring at or
    above the threshold is in the top set.

    Examples:
        10 scores 1.0..0.1, percentile 0.8 -> k=2 -> 0.9
        [1.0, 0.5], percentile 0.5 -> k=1 -> 1.0
        [] -> 0.0; [x] -> x
    """
    if not scores:
        return 0.0
    ranked = sorted(scores, reverse=True)
    k = pareto_top_count(len(ranked), percentile)
    return ranked[k - 1]
