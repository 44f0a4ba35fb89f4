"""
Record store: every write to the memory graph goes through here.

Operations are typed (models/memory.py), validated before dispatch, and
wrapped in the transient-retry policy. Multi-entity mutations have explicit
atomicity boundaries:

    delete_memory / prune_memories
        One statement: decrement mention counts of every referenced entity
        (by the number of doomed memories that referenced it) and
        detach-delete the memories.

    merge_memory_cluster
        One GraphSession.execute_write unit: re-verify that every member
        still exists, then transfer MENTIONS/TAGGED edges to the survivor
        and delete the losers. Missing members skip the whole merge.
"""

from __future__ import annotations

import logging
import time
import uuid
from collections.abc import Sequence
from typing import Any

from tenacity.wait import wait_base

from ..graph.errors import InvalidIdentifier
from ..graph.retry import retry_on_transient
from ..graph.schema import normalize_relation_type
from ..graph.session import GraphSession, GraphTransaction, Row
from ..models.memory import (
    EntityRef,
    MemoryRecord,
    MergeEntityInput,
    MergeResult,
    OrphanEntity,
    OrphanTag,
    PendingExtraction,
    StoreMemoryInput,
)
from ..models.validators import (
    EXTRACTION_STATUSES,
    MemoryCategory,
    clamp_unit,
    is_valid_memory_id,
    normalize_name,
)

logger = logging.getLogger(__name__)

# Importance assigned by invalidate_memory: a soft delete that sweeps will prune
INVALIDATED_IMPORTANCE = 0.01

# Shared tail for statements that start with ``MATCH (m:Memory) ...``.
# Entity counters drop by the number of doomed memories that mention them,
# never below zero, in the same statement that removes the memories.
_DECREMENT_AND_DELETE = (
    "WITH collect(m) AS memories "
    "UNWIND memories AS doomed "
    "OPTIONAL MATCH (doomed)-[:MENTIONS]->(e:Entity) "
    "WITH memories, e, count(doomed) AS refs "
    "FOREACH (ent IN CASE WHEN e IS NULL THEN [] ELSE [e] END | "
    "  SET ent.mention_count = CASE WHEN coalesce(ent.mention_count, 0) > refs "
    "    THEN ent.mention_count - refs ELSE 0 END) "
    "WITH DISTINCT memories "
    "UNWIND memories AS doomed "
    "DETACH DELETE doomed "
    "RETURN count(*) AS deleted"
)

_MEMORY_FIELDS = (
    "m.id AS id, m.text AS text, m.importance AS importance, m.category AS category, "
    "m.source AS source, m.extraction_status AS extraction_status, "
    "m.extraction_retries AS extraction_retries, m.agent_id AS agent_id, "
    "m.session_key AS session_key, m.created_at AS created_at, m.updated_at AS updated_at, "
    "m.retrieval_count AS retrieval_count, m.last_retrieved_at AS last_retrieved_at"
)


def _first_int(rows: list[Row], key: str) -> int:
    if not rows or rows[0].get(key) is None:
        return 0
    return int(rows[0][key])


def _unique(ids: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(ids))


def select_survivor(ids: Sequence[str], importances: Sequence[float]) -> str:
    """Highest importance wins; ties go to the lexicographically smallest id."""
    return min(zip(ids, importances), key=lambda pair: (-pair[1], pair[0]))[0]


class RecordStore:
    """CRUD and integrity-preserving mutations against the memory graph."""

    def __init__(self, session: GraphSession, retry_wait: wait_base | None = None):
        """
        Args:
            session: GraphSession (or any object with the same run/execute_write API)
            retry_wait: Optional tenacity wait override for transient retries
        """
        self._session = session
        self._retry_wait = retry_wait

    async def _run(self, query: str, params: dict[str, Any]) -> list[Row]:
        return await retry_on_transient(lambda: self._session.run(query, params), wait=self._retry_wait)

    # ── Memory lifecycle ────────────────────────────────────────────────

    async def store_memory(self, memory: StoreMemoryInput) -> str:
        """
        Create a Memory node and return its id.

        Importance, category, source and extraction status are persisted as
        given; the attention gate already ran upstream. Retrieval count and
        extraction retries start at 0, last_retrieved_at unset.
        """
        embedding_expr = "vecf32($embedding)" if memory.embedding else "null"
        rows = await self._run(
            "CREATE (m:Memory {"
            "id: $id, text: $text, "
            f"embedding: {embedding_expr}, "
            "importance: $importance, category: $category, source: $source, "
            "extraction_status: $extraction_status, extraction_retries: $extraction_retries, "
            "agent_id: $agent_id, session_key: $session_key, "
            "created_at: $created_at, updated_at: $updated_at, "
            "retrieval_count: $retrieval_count, last_retrieved_at: $last_retrieved_at"
            "}) RETURN m.id AS id",
            memory.to_params(),
        )
        logger.debug(f"Stored memory {memory.id} ({memory.category}, importance={memory.importance:.2f})")
        return rows[0]["id"] if rows else memory.id

    async def get_memory(self, memory_id: str) -> MemoryRecord | None:
        rows = await self._run(f"MATCH (m:Memory {{id: $id}}) RETURN {_MEMORY_FIELDS}", {"id": memory_id})
        return MemoryRecord(**rows[0]) if rows else None

    async def delete_memory(self, memory_id: str) -> bool:
        """
        Delete a memory, decrementing mention counts atomically.

        Returns:
            True if a memory existed and was deleted, False otherwise.

        Raises:
            InvalidIdentifier: If memory_id is not a UUID (no store call is made).
        """
        if not is_valid_memory_id(memory_id):
            raise InvalidIdentifier(f"Invalid memory ID format: {memory_id!r}")

        rows = await self._run(f"MATCH (m:Memory {{id: $id}}) {_DECREMENT_AND_DELETE}", {"id": memory_id})
        deleted = _first_int(rows, "deleted") > 0
        if deleted:
            logger.info(f"Deleted memory {memory_id}")
        return deleted

    async def prune_memories(self, memory_ids: Sequence[str]) -> int:
        """Bulk delete (decay sweep), with the same atomic mention decrement as delete."""
        if not memory_ids:
            return 0
        ids = _unique(memory_ids)
        rows = await self._run(f"MATCH (m:Memory) WHERE m.id IN $ids {_DECREMENT_AND_DELETE}", {"ids": ids})
        count = _first_int(rows, "deleted")
        logger.info(f"Pruned {count} memories")
        return count

    async def invalidate_memory(self, memory_id: str) -> bool:
        """Soft delete: drop importance to a near-zero floor and refresh updated_at."""
        rows = await self._run(
            f"MATCH (m:Memory {{id: $id}}) SET m.importance = {INVALIDATED_IMPORTANCE}, m.updated_at = $now "
            "RETURN count(m) AS updated",
            {"id": memory_id, "now": time.time()},
        )
        return _first_int(rows, "updated") > 0

    async def promote_to_core(self, memory_ids: Sequence[str]) -> int:
        """Move memories into the decay-exempt core category. Returns count changed."""
        if not memory_ids:
            return 0
        rows = await self._run(
            "MATCH (m:Memory) WHERE m.id IN $ids AND m.category <> 'core' "
            "SET m.category = 'core', m.updated_at = $now "
            "RETURN count(m) AS changed",
            {"ids": _unique(memory_ids), "now": time.time()},
        )
        return _first_int(rows, "changed")

    async def demote_from_core(self, memory_ids: Sequence[str]) -> int:
        """Return core memories to the fact category. Returns count changed."""
        if not memory_ids:
            return 0
        rows = await self._run(
            "MATCH (m:Memory) WHERE m.id IN $ids AND m.category = 'core' "
            "SET m.category = 'fact', m.updated_at = $now "
            "RETURN count(m) AS changed",
            {"ids": _unique(memory_ids), "now": time.time()},
        )
        return _first_int(rows, "changed")

    async def update_memory_category(self, memory_id: str, category: MemoryCategory) -> bool:
        """Classify a memory, but only if it is still in the default "other" category."""
        if category not in ("fact", "other", "core"):
            raise ValueError(f"Invalid memory category: {category!r}")
        rows = await self._run(
            "MATCH (m:Memory {id: $id}) WHERE m.category = 'other' "
            "SET m.category = $category, m.updated_at = $now "
            "RETURN count(m) AS updated",
            {"id": memory_id, "category": category, "now": time.time()},
        )
        return _first_int(rows, "updated") > 0

    async def record_retrievals(self, memory_ids: Sequence[str]) -> None:
        """Bump retrieval_count and last_retrieved_at for each retrieved memory."""
        if not memory_ids:
            return
        await self._run(
            "MATCH (m:Memory) WHERE m.id IN $ids "
            "SET m.retrieval_count = coalesce(m.retrieval_count, 0) + 1, m.last_retrieved_at = $now",
            {"ids": _unique(memory_ids), "now": time.time()},
        )

    # ── Extraction status ───────────────────────────────────────────────

    async def update_extraction_status(self, memory_id: str, status: str, increment_retries: bool = False) -> bool:
        """Set extraction status, optionally bumping the retry counter in the same write."""
        if status not in EXTRACTION_STATUSES:
            raise ValueError(f"Invalid extraction status: {status!r}")
        retries_clause = ", m.extraction_retries = coalesce(m.extraction_retries, 0) + 1" if increment_retries else ""
        rows = await self._run(
            f"MATCH (m:Memory {{id: $id}}) SET m.extraction_status = $status, m.updated_at = $now{retries_clause} "
            "RETURN count(m) AS updated",
            {"id": memory_id, "status": status, "now": time.time()},
        )
        return _first_int(rows, "updated") > 0

    async def transition_extraction_status(
        self,
        memory_id: str,
        from_status: str,
        to_status: str,
        increment_retries: bool = False,
    ) -> bool:
        """Compare-and-set status change; False if the memory was not in ``from_status``."""
        retries_clause = ", m.extraction_retries = coalesce(m.extraction_retries, 0) + 1" if increment_retries else ""
        rows = await self._run(
            "MATCH (m:Memory {id: $id}) WHERE m.extraction_status = $from_status "
            f"SET m.extraction_status = $to_status, m.updated_at = $now{retries_clause} "
            "RETURN count(m) AS updated",
            {"id": memory_id, "from_status": from_status, "to_status": to_status, "now": time.time()},
        )
        return _first_int(rows, "updated") > 0

    async def get_extraction_retries(self, memory_id: str) -> int:
        rows = await self._run(
            "MATCH (m:Memory {id: $id}) RETURN coalesce(m.extraction_retries, 0) AS retries",
            {"id": memory_id},
        )
        return _first_int(rows, "retries")

    async def count_by_extraction_status(self, agent_id: str | None = None) -> dict[str, int]:
        """Memory count per extraction status; every status is present (0 if none)."""
        where = "WHERE m.agent_id = $agent_id " if agent_id else ""
        rows = await self._run(
            f"MATCH (m:Memory) {where}RETURN m.extraction_status AS status, count(m) AS count",
            {"agent_id": agent_id},
        )
        counts = {status: 0 for status in EXTRACTION_STATUSES}
        for row in rows:
            if row.get("status") in counts:
                counts[row["status"]] = int(row["count"])
        return counts

    async def list_pending_extractions(self, limit: int = 100, agent_id: str | None = None) -> list[PendingExtraction]:
        """Oldest pending memories first, for an extraction worker to claim."""
        agent_clause = "AND m.agent_id = $agent_id " if agent_id else ""
        rows = await self._run(
            "MATCH (m:Memory) WHERE m.extraction_status = 'pending' "
            f"{agent_clause}"
            "RETURN m.id AS id, m.text AS text, m.agent_id AS agent_id, "
            "coalesce(m.extraction_retries, 0) AS extraction_retries "
            "ORDER BY m.created_at ASC LIMIT $limit",
            {"limit": int(limit), "agent_id": agent_id},
        )
        return [PendingExtraction(**row) for row in rows]

    # ── Entities, relationships, tags ───────────────────────────────────

    async def merge_entity(self, entity: MergeEntityInput) -> EntityRef:
        """Create or update an Entity keyed by normalized name (idempotent)."""
        now = time.time()
        rows = await self._run(
            "MERGE (e:Entity {name: $name}) "
            "ON CREATE SET e.id = $id, e.type = coalesce($type, 'concept'), e.aliases = $aliases, "
            "  e.description = $description, e.mention_count = 0, e.created_at = $now "
            "ON MATCH SET e.type = coalesce($type, e.type), "
            "  e.description = coalesce($description, e.description), "
            "  e.aliases = coalesce(e.aliases, []) + [a IN $aliases WHERE NOT a IN coalesce(e.aliases, [])], "
            "  e.updated_at = $now "
            "RETURN e.id AS id, e.name AS name",
            {
                "id": entity.id,
                "name": entity.name,
                "type": entity.type,
                "aliases": entity.aliases,
                "description": entity.description,
                "now": now,
            },
        )
        if rows:
            return EntityRef(id=rows[0]["id"], name=rows[0]["name"])
        return EntityRef(id=entity.id, name=entity.name)

    async def create_mentions(
        self,
        memory_id: str,
        entity_name: str,
        role: str = "context",
        confidence: float = 1.0,
    ) -> bool:
        """
        Link a memory to an existing entity.

        The entity's mention_count is incremented only when the MENTIONS edge
        is new, so repeating the call is a no-op apart from raising confidence.
        """
        rows = await self._run(
            "MATCH (m:Memory {id: $memory_id}), (e:Entity {name: $entity_name}) "
            "MERGE (m)-[r:MENTIONS]->(e) "
            "ON CREATE SET r.role = $role, r.confidence = $confidence, "
            "  e.mention_count = coalesce(e.mention_count, 0) + 1 "
            "ON MATCH SET r.confidence = CASE WHEN $confidence > r.confidence THEN $confidence ELSE r.confidence END "
            "RETURN count(r) AS linked",
            {
                "memory_id": memory_id,
                "entity_name": normalize_name(entity_name),
                "role": role,
                "confidence": clamp_unit(confidence),
            },
        )
        return _first_int(rows, "linked") > 0

    async def create_entity_relationship(
        self,
        source_name: str,
        target_name: str,
        relation_type: str,
        confidence: float = 1.0,
    ) -> bool:
        """
        Create a typed Entity -> Entity edge.

        Relationship types outside the whitelist are logged and not written.
        """
        rel = normalize_relation_type(relation_type)
        if rel is None:
            logger.warning(f"rejected invalid relationship type {relation_type!r} ({source_name} -> {target_name})")
            return False

        source = normalize_name(source_name)
        target = normalize_name(target_name)
        if source == target:
            logger.warning(f"rejected self relationship {rel} on entity {source!r}")
            return False

        rows = await self._run(
            "MATCH (e1:Entity {name: $source_name}), (e2:Entity {name: $target_name}) "
            f"MERGE (e1)-[r:{rel}]->(e2) "
            "ON CREATE SET r.confidence = $confidence, r.created_at = $now "
            "ON MATCH SET r.confidence = CASE WHEN $confidence > r.confidence THEN $confidence ELSE r.confidence END "
            "RETURN count(r) AS created",
            {
                "source_name": source,
                "target_name": target,
                "confidence": clamp_unit(confidence),
                "now": time.time(),
            },
        )
        return _first_int(rows, "created") > 0

    async def tag_memory(
        self,
        memory_id: str,
        tag_name: str,
        tag_category: str = "topic",
        confidence: float = 1.0,
    ) -> bool:
        """Attach a normalized tag to a memory (idempotent on tag name)."""
        name = normalize_name(tag_name)
        if not name:
            raise ValueError("Tag name must not be empty")
        rows = await self._run(
            "MATCH (m:Memory {id: $memory_id}) "
            "MERGE (t:Tag {name: $tag_name}) "
            "ON CREATE SET t.id = $tag_id, t.category = $tag_category, t.created_at = $now "
            "MERGE (m)-[r:TAGGED]->(t) "
            "ON CREATE SET r.confidence = $confidence "
            "ON MATCH SET r.confidence = CASE WHEN $confidence > r.confidence THEN $confidence ELSE r.confidence END "
            "RETURN count(r) AS tagged",
            {
                "memory_id": memory_id,
                "tag_name": name,
                "tag_id": str(uuid.uuid4()),
                "tag_category": tag_category,
                "confidence": clamp_unit(confidence),
                "now": time.time(),
            },
        )
        return _first_int(rows, "tagged") > 0

    # ── Orphan cleanup (explicit, never automatic) ──────────────────────

    async def find_orphan_entities(self, limit: int = 100) -> list[OrphanEntity]:
        rows = await self._run(
            "MATCH (e:Entity) WHERE coalesce(e.mention_count, 0) <= 0 "
            "RETURN e.id AS id, e.name AS name, e.type AS type LIMIT $limit",
            {"limit": int(limit)},
        )
        return [OrphanEntity(**row) for row in rows]

    async def delete_orphan_entities(self, entity_ids: Sequence[str]) -> int:
        """Delete the given entities if they are still orphaned."""
        if not entity_ids:
            return 0
        rows = await self._run(
            "MATCH (e:Entity) WHERE e.id IN $ids AND coalesce(e.mention_count, 0) <= 0 "
            "DETACH DELETE e RETURN count(*) AS deleted",
            {"ids": _unique(entity_ids)},
        )
        return _first_int(rows, "deleted")

    async def find_orphan_tags(self, limit: int = 100) -> list[OrphanTag]:
        rows = await self._run(
            "MATCH (t:Tag) WHERE NOT (t)<-[:TAGGED]-() RETURN t.id AS id, t.name AS name LIMIT $limit",
            {"limit": int(limit)},
        )
        return [OrphanTag(**row) for row in rows]

    async def delete_orphan_tags(self, tag_ids: Sequence[str]) -> int:
        """Delete the given tags if nothing is tagged with them any more."""
        if not tag_ids:
            return 0
        rows = await self._run(
            "MATCH (t:Tag) WHERE t.id IN $ids AND NOT (t)<-[:TAGGED]-() DETACH DELETE t RETURN count(*) AS deleted",
            {"ids": _unique(tag_ids)},
        )
        return _first_int(rows, "deleted")

    # ── Cluster merge ───────────────────────────────────────────────────

    async def merge_memory_cluster(self, memory_ids: Sequence[str], importances: Sequence[float]) -> MergeResult:
        """
        Collapse a duplicate cluster into its most important member.

        The cluster may be stale (computed earlier in a sweep), so membership is
        re-verified inside the transaction. If any member is gone, nothing is
        written and ``skipped`` is set.

        Args:
            memory_ids: Cluster member ids
            importances: Importance per member, parallel to memory_ids

        Returns:
            MergeResult with the survivor id and number of memories deleted.
        """
        if len(memory_ids) != len(importances):
            raise ValueError("memory_ids and importances must have the same length")
        if not memory_ids:
            return MergeResult(survivor_id=None, deleted_count=0)

        ids = list(memory_ids)

        async def _merge(tx: GraphTransaction) -> MergeResult:
            rows = await tx.read(
                "UNWIND $ids AS mem_id "
                "OPTIONAL MATCH (m:Memory {id: mem_id}) "
                "RETURN mem_id AS mem_id, m IS NOT NULL AS exists",
                {"ids": ids},
            )
            present = {row["mem_id"] for row in rows if row.get("exists")}
            missing = [mem_id for mem_id in ids if mem_id not in present]
            if missing:
                logger.warning(f"Cluster members no longer exist ({', '.join(missing)}), skipping cluster merge")
                return MergeResult(survivor_id=None, deleted_count=0, skipped=True)

            survivor = select_survivor(ids, importances)
            to_delete = [mem_id for mem_id in _unique(ids) if mem_id != survivor]
            if not to_delete:
                return MergeResult(survivor_id=survivor, deleted_count=0)

            params = {"survivor_id": survivor, "to_delete": to_delete}
            tx.write(
                "MATCH (s:Memory {id: $survivor_id}) "
                "MATCH (l:Memory)-[r:MENTIONS]->(e:Entity) WHERE l.id IN $to_delete "
                "MERGE (s)-[nr:MENTIONS]->(e) "
                "ON CREATE SET nr.role = r.role, nr.confidence = r.confidence, "
                "  e.mention_count = coalesce(e.mention_count, 0) + 1",
                params,
            )
            tx.write(
                "MATCH (s:Memory {id: $survivor_id}) "
                "MATCH (l:Memory)-[r:TAGGED]->(t:Tag) WHERE l.id IN $to_delete "
                "MERGE (s)-[nr:TAGGED]->(t) "
                "ON CREATE SET nr.confidence = r.confidence",
                params,
            )
            tx.write(f"MATCH (m:Memory) WHERE m.id IN $to_delete {_DECREMENT_AND_DELETE}", {"to_delete": to_delete})
            return MergeResult(survivor_id=survivor, deleted_count=len(to_delete))

        result = await retry_on_transient(lambda: self._session.execute_write(_merge), wait=self._retry_wait)
        if result.deleted_count:
            logger.info(f"Merged cluster into {result.survivor_id}, deleted {result.deleted_count}")
        return result
