"""
Maintenance sweeps: scoring, decay, deduplication, conflicts, core rebalancing.

Meant to be invoked periodically by an external scheduler (see
scripts/run_maintenance.py). Discovery queries live here; every mutation is
delegated to RecordStore, which owns all writes.

Sweep phases (``run_sweep``):
    1. Dedup: find near-duplicate clusters and merge each into its survivor
    2. Decay: find memories whose forgetting-curve score fell below retention
       and prune them
    3. Conflicts: count contradictory pairs for downstream resolution
    4. Core rebalance (optional): promote/demote around the Pareto threshold
    5. Orphan cleanup (optional): delete entities/tags nothing references

Each phase catches its own failure, logs it and records it in the
SweepSummary, so one broken phase never blocks the others. Core memories are
excluded from dedup, decay and conflict discovery.
"""

from __future__ import annotations

import logging
import time
from typing import Any

from tenacity.wait import wait_base

from ..config import DedupSettings, ScoringSettings, settings
from ..graph.retry import retry_on_transient
from ..graph.session import GraphSession, Row
from ..models.memory import (
    ConflictPair,
    ConflictSide,
    DecayedMemory,
    DuplicateCluster,
    MemoryScore,
    SweepSummary,
)
from ..storage.record_store import RecordStore
from ..utils.deduplication import DisjointSet, PairBudget
from ..utils.interference import ContradictionClassifier, classify_contradiction
from ..utils.scoring import age_in_days, calculate_pareto_threshold, decay_score, effective_score

logger = logging.getLogger(__name__)

_NON_CORE = "coalesce(m.category, 'other') <> 'core'"


class MaintenanceService:
    """Discovery queries plus the orchestration of one maintenance sweep."""

    def __init__(
        self,
        session: GraphSession,
        store: RecordStore,
        scoring: ScoringSettings | None = None,
        dedup: DedupSettings | None = None,
        retry_wait: wait_base | None = None,
    ):
        self._session = session
        self._store = store
        self._scoring = scoring or settings.scoring
        self._dedup = dedup or settings.dedup
        self._retry_wait = retry_wait

    async def _run(self, query: str, params: dict[str, Any]) -> list[Row]:
        return await retry_on_transient(lambda: self._session.run(query, params), wait=self._retry_wait)

    # ── Scoring ─────────────────────────────────────────────────────────

    async def calculate_all_effective_scores(
        self,
        agent_id: str | None = None,
        now: float | None = None,
    ) -> list[MemoryScore]:
        """Effective score for every memory (core included), highest first."""
        now = time.time() if now is None else now
        where = "WHERE m.agent_id = $agent_id " if agent_id else ""
        rows = await self._run(
            f"MATCH (m:Memory) {where}"
            "RETURN m.id AS id, m.text AS text, coalesce(m.category, 'other') AS category, "
            "coalesce(m.importance, 0.5) AS importance, coalesce(m.retrieval_count, 0) AS retrieval_count, "
            "m.created_at AS created_at",
            {"agent_id": agent_id},
        )
        cfg = self._scoring
        scores = []
        for row in rows:
            age = age_in_days(row.get("created_at"), now)
            scores.append(
                MemoryScore(
                    id=row["id"],
                    text=row["text"],
                    category=row["category"],
                    importance=row["importance"],
                    retrieval_count=row["retrieval_count"],
                    age_days=age,
                    effective_score=effective_score(
                        row["importance"],
                        row["retrieval_count"],
                        age,
                        saturation=cfg.frequency_saturation,
                        max_boost=cfg.frequency_max_boost,
                        lambda_=cfg.recency_lambda,
                        base=cfg.recency_base,
                    ),
                )
            )
        scores.sort(key=lambda s: (-s.effective_score, s.id))
        return scores

    async def find_decayed_memories(
        self,
        retention_threshold: float | None = None,
        base_half_life_days: float | None = None,
        importance_multiplier: float | None = None,
        agent_id: str | None = None,
        limit: int = 500,
        now: float | None = None,
    ) -> list[DecayedMemory]:
        """
        Non-core memories whose decay score is below the retention threshold.

        Candidates are loaded from the store and scored with
        ``utils.scoring.decay_score``; the weakest ``limit`` come back,
        lowest score first.
        """
        cfg = self._scoring
        now = time.time() if now is None else now
        threshold = cfg.retention_threshold if retention_threshold is None else retention_threshold
        base = cfg.decay_base_half_life_days if base_half_life_days is None else base_half_life_days
        multiplier = cfg.decay_importance_multiplier if importance_multiplier is None else importance_multiplier

        agent_clause = "AND m.agent_id = $agent_id " if agent_id else ""
        rows = await self._run(
            f"MATCH (m:Memory) WHERE {_NON_CORE} AND m.created_at IS NOT NULL {agent_clause}"
            "RETURN m.id AS id, m.text AS text, coalesce(m.importance, 0.5) AS importance, "
            "m.created_at AS created_at",
            {"agent_id": agent_id},
        )

        decayed = []
        for row in rows:
            age = age_in_days(row["created_at"], now)
            score = decay_score(row["importance"], age, base_half_life_days=base, importance_multiplier=multiplier)
            if score < threshold:
                decayed.append(
                    DecayedMemory(
                        id=row["id"],
                        text=row["text"],
                        importance=row["importance"],
                        age_days=age,
                        decay_score=score,
                    )
                )
        decayed.sort(key=lambda d: (d.decay_score, d.id))
        return decayed[: int(limit)]

    async def rebalance_core(
        self,
        percentile: float | None = None,
        agent_id: str | None = None,
        dry_run: bool = False,
    ) -> dict[str, Any]:
        """
        Keep the core category aligned with the top of the effective-score curve.

        Non-core memories at or above the Pareto threshold are promoted; core
        memories below it are demoted to "fact".

        Returns:
            Dict with threshold, promoted and demoted counts (candidates when dry_run)
        """
        scores = await self.calculate_all_effective_scores(agent_id=agent_id)
        if not scores:
            return {"threshold": 0.0, "promoted": 0, "demoted": 0}

        p = self._scoring.pareto_percentile if percentile is None else percentile
        threshold = calculate_pareto_threshold([s.effective_score for s in scores], p)
        to_promote = [s.id for s in scores if s.category != "core" and s.effective_score >= threshold]
        to_demote = [s.id for s in scores if s.category == "core" and s.effective_score < threshold]

        if dry_run:
            return {"threshold": threshold, "promoted": len(to_promote), "demoted": len(to_demote)}

        promoted = await self._store.promote_to_core(to_promote)
        demoted = await self._store.demote_from_core(to_demote)
        logger.info(f"Core rebalance at threshold {threshold:.4f}: promoted={promoted} demoted={demoted}")
        return {"threshold": threshold, "promoted": promoted, "demoted": demoted}

    # ── Duplicates and conflicts ────────────────────────────────────────

    async def find_duplicate_clusters(
        self,
        threshold: float | None = None,
        agent_id: str | None = None,
    ) -> list[DuplicateCluster]:
        """
        Group non-core near-duplicates into transitive clusters.

        For each non-core memory, the vector index returns neighbours at or
        above ``threshold``; each neighbour is a candidate pair fed into a
        disjoint set. Once more than ``max_pairs`` candidate pairs have been
        examined the sweep stops and clusters are built from what was seen.

        Returns:
            Clusters with 2+ members, in discovery order.
        """
        cfg = self._dedup
        similarity = cfg.similarity_threshold if threshold is None else threshold
        agent_clause = "AND m.agent_id = $agent_id " if agent_id else ""
        memories = await self._run(
            f"MATCH (m:Memory) WHERE {_NON_CORE} AND m.embedding IS NOT NULL {agent_clause}"
            "RETURN m.id AS id, m.text AS text, coalesce(m.importance, 0.5) AS importance "
            "ORDER BY m.created_at ASC",
            {"agent_id": agent_id},
        )
        if len(memories) < 2:
            return []

        by_id = {row["id"]: row for row in memories}
        ds = DisjointSet(by_id)
        budget = PairBudget(max_pairs=cfg.max_pairs)

        for row in memories:
            neighbours = await self._run(
                "MATCH (src:Memory {id: $id}) "
                "CALL db.idx.vector.queryNodes('Memory', 'embedding', $k, src.embedding) YIELD node, score "
                "WITH src, node, 1.0 - score AS similarity "
                "WHERE node.id <> src.id AND similarity >= $threshold "
                "RETURN node.id AS id, similarity",
                {"id": row["id"], "k": cfg.neighbor_limit + 1, "threshold": similarity},
            )
            for neighbour in neighbours:
                budget.consume()
                # Core or other-agent neighbours were never loaded
                if neighbour["id"] in by_id:
                    ds.union(row["id"], neighbour["id"])
            if budget.exhausted:
                logger.warning(
                    f"Duplicate scan stopped after {budget.examined} candidate pairs (cap {budget.max_pairs})"
                )
                break

        clusters = []
        for members in ds.components(min_size=2):
            clusters.append(
                DuplicateCluster(
                    memory_ids=members,
                    importances=[by_id[m]["importance"] for m in members],
                    texts=[by_id[m]["text"] for m in members],
                )
            )
        logger.info(f"Found {len(clusters)} duplicate clusters across {len(memories)} memories")
        return clusters

    async def find_conflicting_memories(
        self,
        agent_id: str | None = None,
        classifier: ContradictionClassifier | None = classify_contradiction,
        limit: int | None = None,
    ) -> list[ConflictPair]:
        """
        Non-core memory pairs that mention a shared entity and contradict.

        Candidate pairs are capped in the query (``conflict_limit``, 50 by
        default). Each candidate is kept when ``classifier`` returns at least
        one signal; with ``classifier=None`` every candidate is returned for
        an external resolver to judge.
        """
        agent_clause = "AND m1.agent_id = $agent_id AND m2.agent_id = $agent_id " if agent_id else ""
        rows = await self._run(
            "MATCH (m1:Memory)-[:MENTIONS]->(e:Entity)<-[:MENTIONS]-(m2:Memory) "
            "WHERE m1.id < m2.id "
            "AND coalesce(m1.category, 'other') <> 'core' AND coalesce(m2.category, 'other') <> 'core' "
            f"{agent_clause}"
            "WITH DISTINCT m1, m2 "
            "RETURN m1.id AS a_id, m1.text AS a_text, coalesce(m1.importance, 0.5) AS a_importance, "
            "m1.created_at AS a_created_at, "
            "m2.id AS b_id, m2.text AS b_text, coalesce(m2.importance, 0.5) AS b_importance, "
            "m2.created_at AS b_created_at "
            "LIMIT $limit",
            {"agent_id": agent_id, "limit": int(limit or self._dedup.conflict_limit)},
        )

        conflicts = []
        for row in rows:
            signals = classifier(row["a_text"], row["b_text"]) if classifier is not None else []
            if classifier is not None and not signals:
                continue
            conflicts.append(
                ConflictPair(
                    memory_a=ConflictSide(
                        id=row["a_id"],
                        text=row["a_text"],
                        importance=row["a_importance"],
                        created_at=row.get("a_created_at"),
                    ),
                    memory_b=ConflictSide(
                        id=row["b_id"],
                        text=row["b_text"],
                        importance=row["b_importance"],
                        created_at=row.get("b_created_at"),
                    ),
                    signals=signals,
                )
            )
        return conflicts

    # ── Sweep orchestration ─────────────────────────────────────────────

    async def run_sweep(
        self,
        dry_run: bool = False,
        skip_dedup: bool = False,
        skip_decay: bool = False,
        cleanup_orphans: bool = False,
        rebalance: bool = False,
        agent_id: str | None = None,
    ) -> SweepSummary:
        """
        Run one maintenance pass.

        With ``dry_run`` every discovery phase runs and is counted, but
        nothing is merged, pruned, promoted or deleted.
        """
        summary = SweepSummary()

        if not skip_dedup:
            try:
                clusters = await self.find_duplicate_clusters(agent_id=agent_id)
                summary.clusters_found = len(clusters)
                if not dry_run:
                    for cluster in clusters:
                        try:
                            result = await self._store.merge_memory_cluster(cluster.memory_ids, cluster.importances)
                        except Exception as e:
                            logger.error(f"Cluster merge failed for {cluster.memory_ids}: {e}")
                            summary.clusters_skipped += 1
                            summary.errors.append(f"dedup merge {','.join(cluster.memory_ids)}: {e}")
                            continue
                        if result.skipped:
                            summary.clusters_skipped += 1
                        else:
                            summary.clusters_merged += 1
                            summary.duplicates_deleted += result.deleted_count
            except Exception as e:
                logger.error(f"Sweep dedup phase failed: {e}")
                summary.errors.append(f"dedup: {e}")

        if not skip_decay:
            try:
                decayed = await self.find_decayed_memories(agent_id=agent_id)
                summary.decayed_found = len(decayed)
                if decayed and not dry_run:
                    summary.pruned = await self._store.prune_memories([d.id for d in decayed])
            except Exception as e:
                logger.error(f"Sweep decay phase failed: {e}")
                summary.errors.append(f"decay: {e}")

        try:
            summary.conflicts_found = len(await self.find_conflicting_memories(agent_id=agent_id))
        except Exception as e:
            logger.error(f"Sweep conflict phase failed: {e}")
            summary.errors.append(f"conflicts: {e}")

        if rebalance:
            try:
                outcome = await self.rebalance_core(agent_id=agent_id, dry_run=dry_run)
                summary.promoted = outcome["promoted"]
                summary.demoted = outcome["demoted"]
            except Exception as e:
                logger.error(f"Sweep core rebalance failed: {e}")
                summary.errors.append(f"rebalance: {e}")

        if cleanup_orphans:
            try:
                entities = await self._store.find_orphan_entities()
                tags = await self._store.find_orphan_tags()
                if dry_run:
                    logger.info(f"Dry run: {len(entities)} orphan entities, {len(tags)} orphan tags")
                else:
                    summary.orphan_entities_deleted = await self._store.delete_orphan_entities([e.id for e in entities])
                    summary.orphan_tags_deleted = await self._store.delete_orphan_tags(
                        [t.id for t in tags if t.id is not None]
                    )
            except Exception as e:
                logger.error(f"Sweep orphan cleanup failed: {e}")
                summary.errors.append(f"orphans: {e}")

        logger.info(f"Maintenance sweep complete: {summary.model_dump()}")
        return summary
