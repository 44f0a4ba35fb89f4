"""
Retrieval strategies over the memory graph.

Three independent, read-only strategies, each returning SearchResult lists
ranked best-first:

    vector_search  - cosine similarity on the Memory.embedding vector index
    bm25_search    - full-text relevance on Memory.text, normalised to top = 1.0
    graph_search   - entity seeds expanded along MENTIONS and entity relations

``search`` runs all three concurrently and fuses them with weighted RRF.
Every strategy sees core memories; category only matters for sweeps.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from typing import Any

from tenacity.wait import wait_base

from ..config import SearchSettings, settings
from ..graph.errors import StoreError
from ..graph.retry import retry_on_transient
from ..graph.session import GraphSession, Row
from ..models.memory import SearchResult
from ..models.validators import normalize_name
from ..utils.hybrid_search import fuse_ranked_lists, query_ngrams

logger = logging.getLogger(__name__)

# RediSearch query syntax characters; each gets a backslash in front
FULLTEXT_SPECIAL_CHARS = frozenset(",.<>{}[]\"':;!@#$%^&*()-+=~|/\\")

_RESULT_FIELDS = "m.id AS id, m.text AS text, {score} AS score, m.category AS category, m.importance AS importance, m.created_at AS created_at"


def escape_fulltext_query(query: str) -> str:
    """Backslash-escape every reserved full-text character."""
    return "".join(f"\\{ch}" if ch in FULLTEXT_SPECIAL_CHARS else ch for ch in query)


def _to_results(rows: list[Row]) -> list[SearchResult]:
    return [SearchResult(**row) for row in rows if row.get("id") is not None]


class RetrievalService:
    """Vector, lexical and graph retrieval plus their fusion."""

    def __init__(
        self,
        session: GraphSession,
        search_settings: SearchSettings | None = None,
        retry_wait: wait_base | None = None,
    ):
        self._session = session
        self._settings = search_settings or settings.search
        self._retry_wait = retry_wait

    async def _run(self, query: str, params: dict[str, Any]) -> list[Row]:
        return await retry_on_transient(lambda: self._session.run(query, params), wait=self._retry_wait)

    async def vector_search(
        self,
        embedding: Sequence[float],
        limit: int = 10,
        min_score: float | None = None,
        agent_id: str | None = None,
    ) -> list[SearchResult]:
        """
        Nearest memories by cosine similarity.

        The index reports cosine distance, so similarity = 1 - distance.
        Any store failure (index missing or still building) is logged at
        DEBUG and returns an empty list.
        """
        if not embedding:
            return []
        threshold = self._settings.vector_min_score if min_score is None else min_score
        agent_clause = " AND m.agent_id = $agent_id" if agent_id else ""
        # Over-fetch when filtering by agent so the filter doesn't starve the limit
        k = int(limit) * (3 if agent_id else 1)
        query = (
            "CALL db.idx.vector.queryNodes('Memory', 'embedding', $k, vecf32($embedding)) YIELD node, score "
            "WITH node AS m, 1.0 - score AS similarity "
            f"WHERE similarity >= $min_score{agent_clause} "
            f"RETURN {_RESULT_FIELDS.format(score='similarity')} "
            "ORDER BY score DESC LIMIT $limit"
        )
        params = {
            "k": k,
            "embedding": list(embedding),
            "min_score": threshold,
            "agent_id": agent_id,
            "limit": int(limit),
        }
        try:
            rows = await self._run(query, params)
        except StoreError as e:
            logger.debug(f"Vector search unavailable, returning no results: {e}")
            return []
        return _to_results(rows)

    async def find_similar(self, embedding: Sequence[float], threshold: float = 0.95, limit: int = 10) -> list[SearchResult]:
        """Near-duplicate lookup: vector search with a high similarity floor."""
        return await self.vector_search(embedding, limit=limit, min_score=threshold)

    async def bm25_search(self, query: str, limit: int = 10, agent_id: str | None = None) -> list[SearchResult]:
        """
        Full-text relevance search.

        Scores are divided by the best score in the result set, so the top
        hit is always 1.0. Blank queries return [] without touching the store.
        """
        if not query or not query.strip():
            return []

        agent_clause = "WHERE m.agent_id = $agent_id " if agent_id else ""
        rows = await self._run(
            "CALL db.idx.fulltext.queryNodes('Memory', $query) YIELD node, score "
            "WITH node AS m, score "
            f"{agent_clause}"
            f"RETURN {_RESULT_FIELDS.format(score='score')} "
            "ORDER BY score DESC LIMIT $limit",
            {"query": escape_fulltext_query(query.strip()), "agent_id": agent_id, "limit": int(limit)},
        )
        results = _to_results(rows)
        if not results:
            return []

        max_score = max(r.score for r in results)
        if max_score <= 0:
            return results
        return [r.model_copy(update={"score": r.score / max_score}) for r in results]

    async def graph_search(
        self,
        query: str,
        limit: int = 10,
        min_score: float | None = None,
        agent_id: str | None = None,
    ) -> list[SearchResult]:
        """
        Memories reachable from entities named in the query.

        Seeds are entities whose name or alias equals the query or one of its
        word n-grams. Hop 1 follows MENTIONS (score = mention confidence);
        hop 2 crosses one typed entity relationship first (score =
        relationship confidence * mention confidence * hop decay). A memory
        reached several ways keeps its best score.
        """
        names = [normalize_name(gram) for gram in query_ngrams(query)]
        if not names:
            return []
        threshold = self._settings.graph_min_score if min_score is None else min_score
        agent_clause = "WHERE m.agent_id = $agent_id " if agent_id else ""
        seed = (
            "MATCH (e:Entity) "
            "WHERE e.name IN $names OR any(alias IN coalesce(e.aliases, []) WHERE alias IN $names) "
        )
        rows = await self._run(
            seed
            + "MATCH (e)<-[r:MENTIONS]-(m:Memory) "
            + agent_clause
            + f"RETURN {_RESULT_FIELDS.format(score='coalesce(r.confidence, 1.0)')} "
            + "UNION ALL "
            + seed
            + "MATCH (e)-[rel]-(e2:Entity)<-[r:MENTIONS]-(m:Memory) "
            + agent_clause
            + "RETURN "
            + _RESULT_FIELDS.format(score="coalesce(rel.confidence, 1.0) * coalesce(r.confidence, 1.0) * $hop_decay"),
            {"names": names, "agent_id": agent_id, "hop_decay": self._settings.graph_hop_decay},
        )

        best: dict[str, SearchResult] = {}
        for result in _to_results(rows):
            current = best.get(result.id)
            if current is None or result.score > current.score:
                best[result.id] = result

        ranked = sorted(
            (r for r in best.values() if r.score >= threshold),
            key=lambda r: (-r.score, r.id),
        )
        return ranked[:limit]

    async def search(
        self,
        query: str,
        embedding: Sequence[float] | None = None,
        limit: int = 10,
        agent_id: str | None = None,
    ) -> list[SearchResult]:
        """
        Hybrid search: run all strategies concurrently and fuse with RRF.

        A strategy that raises is logged and contributes nothing, so one
        failing backend feature never fails the whole request.
        """
        fetch = int(limit) * 2
        strategies = {
            "vector": self.vector_search(embedding or [], limit=fetch, agent_id=agent_id),
            "bm25": self.bm25_search(query, limit=fetch, agent_id=agent_id),
            "graph": self.graph_search(query, limit=fetch, agent_id=agent_id),
        }
        outcomes = await asyncio.gather(*strategies.values(), return_exceptions=True)

        result_sets: list[list[SearchResult]] = []
        for name, outcome in zip(strategies, outcomes):
            if isinstance(outcome, BaseException):
                logger.warning(f"{name} search failed, fusing without it: {outcome}")
                result_sets.append([])
            else:
                result_sets.append(outcome)

        weights = [self._settings.vector_weight, self._settings.bm25_weight, self._settings.graph_weight]
        fused = fuse_ranked_lists(result_sets, weights, k=self._settings.rrf_k)
        return fused[:limit]
