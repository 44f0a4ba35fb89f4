"""
Extraction tracker: per-memory state machine for background extraction.

    pending ──► complete   (terminal)
    pending ──► skipped    (terminal)
    pending ──► failed
    failed  ──► pending    (retry; increments extraction_retries)

There is no retry ceiling here; the worker reads ``get_retries`` and decides
when to give up (e.g. by marking the memory skipped after a manual reset).

Every transition is a compare-and-set write: it only applies if the memory
is still in the expected source state, so two workers racing on the same
memory cannot both move it.
"""

import logging

from ..graph.errors import InvalidTransition
from ..models.memory import PendingExtraction
from ..storage.record_store import RecordStore

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS: dict[str, frozenset[str]] = {
    "pending": frozenset({"complete", "failed", "skipped"}),
    "failed": frozenset({"pending"}),
    "complete": frozenset(),
    "skipped": frozenset(),
}


def check_transition(from_status: str, to_status: str) -> None:
    """Raise InvalidTransition unless from_status -> to_status is allowed."""
    if to_status not in ALLOWED_TRANSITIONS.get(from_status, frozenset()):
        raise InvalidTransition(f"Extraction status cannot move from {from_status!r} to {to_status!r}")


class ExtractionTracker:
    """Drives extraction status through RecordStore."""

    def __init__(self, store: RecordStore):
        self._store = store

    async def transition(self, memory_id: str, from_status: str, to_status: str) -> bool:
        """
        Move a memory between extraction states.

        Returns:
            True if the memory was in ``from_status`` and was moved; False if
            it was missing or already elsewhere.

        Raises:
            InvalidTransition: For transitions outside the state machine
                (checked before any store call).
        """
        check_transition(from_status, to_status)
        applied = await self._store.transition_extraction_status(
            memory_id,
            from_status,
            to_status,
            increment_retries=(from_status == "failed" and to_status == "pending"),
        )
        if not applied:
            logger.debug(f"Extraction transition {from_status}->{to_status} not applied to {memory_id}")
        return applied

    async def mark_complete(self, memory_id: str) -> bool:
        return await self.transition(memory_id, "pending", "complete")

    async def mark_failed(self, memory_id: str) -> bool:
        return await self.transition(memory_id, "pending", "failed")

    async def mark_skipped(self, memory_id: str) -> bool:
        return await self.transition(memory_id, "pending", "skipped")

    async def retry(self, memory_id: str) -> bool:
        """Requeue a failed memory; its retry counter goes up by one."""
        return await self.transition(memory_id, "failed", "pending")

    async def count_by_status(self, agent_id: str | None = None) -> dict[str, int]:
        return await self._store.count_by_extraction_status(agent_id)

    async def list_pending(self, limit: int = 100, agent_id: str | None = None) -> list[PendingExtraction]:
        return await self._store.list_pending_extractions(limit=limit, agent_id=agent_id)

    async def get_retries(self, memory_id: str) -> int:
        return await self._store.get_extraction_retries(memory_id)
