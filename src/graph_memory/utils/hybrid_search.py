"""
Rank fusion and query tokenisation for hybrid retrieval.

Reciprocal Rank Fusion (Cormack et al. 2009):
    rrf(d) = sum over lists L containing d of  weight_L / (k + rank_L(d))

RRF only uses ranks, so vector cosine scores, normalised BM25 scores and
graph traversal strengths can be fused without calibrating them against
each other. k = 60 is the usual default.
"""

from __future__ import annotations

from collections.abc import Sequence

from ..models.memory import SearchResult

STOP_WORDS: frozenset[str] = frozenset({
    "a", "an", "the", "and", "or", "but", "if", "then", "else", "of", "at", "by", "for", "with",
    "about", "to", "from", "in", "on", "is", "are", "was", "were", "be", "been", "being",
    "have", "has", "had", "do", "does", "did", "it", "its", "this", "that", "these", "those",
    "i", "me", "my", "we", "our", "you", "your", "he", "she", "they", "them", "his", "her",
    "what", "which", "who", "whom", "when", "where", "why", "how", "as", "so", "not", "no",
    "can", "will", "just", "should", "would", "could", "there", "here", "all", "any", "some",
})


def query_ngrams(query: str, max_n: int = 3) -> list[str]:
    """
    Whole query plus every contiguous word n-gram (n <= max_n), lowercased.

    Used to seed graph search with candidate entity names:
    "where does Tarun Singh work" yields "tarun singh" among others.
    """
    words = query.lower().split()
    grams: list[str] = []
    if words:
        grams.append(" ".join(words))
    for n in range(min(max_n, len(words)), 0, -1):
        for i in range(len(words) - n + 1):
            gram = " ".join(words[i:i + n])
            if gram not in grams and not (n == 1 and gram in STOP_WORDS):
                grams.append(gram)
    return grams


def rrf_score(rank: int, k: int = 60) -> float:
    """RRF contribution of a 1-indexed rank; 0.0 for invalid ranks."""
    if rank < 1:
        return 0.0
    return 1.0 / (k + rank)


def fuse_ranked_lists(
    result_sets: Sequence[Sequence[SearchResult]],
    weights: Sequence[float] | None = None,
    k: int = 60,
) -> list[SearchResult]:
    """
    Weighted RRF over several ranked result lists.

    Each list is assumed sorted best-first. The first occurrence of a memory
    supplies its text and metadata; its score becomes the fused RRF score.

    Args:
        result_sets: Ranked lists from the individual strategies
        weights: One weight per list (defaults to 1.0 each)
        k: RRF smoothing constant

    Returns:
        Fused results sorted by descending RRF score (ties by id).
    """
    if weights is None:
        weights = [1.0] * len(result_sets)
    if len(weights) != len(result_sets):
        raise ValueError("weights must match result_sets length")

    scores: dict[str, float] = {}
    first_seen: dict[str, SearchResult] = {}
    for results, weight in zip(result_sets, weights):
        for rank, result in enumerate(results, start=1):
            scores[result.id] = scores.get(result.id, 0.0) + weight * rrf_score(rank, k)
            first_seen.setdefault(result.id, result)

    ordered = sorted(scores.items(), key=lambda item: (-item[1], item[0]))
    return [first_seen[mem_id].model_copy(update={"score": score}) for mem_id, score in ordered]
