"""Request and response models for the memory engine.

Every store operation takes or returns one of these, validated before any
query is sent. Graph query payloads stay internal to the storage and service
layers.
"""

import time
import uuid
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .validators import (
    Aliases,
    ExtractionStatus,
    Importance,
    MemoryCategory,
    NonNegativeInt,
    NormalizedName,
    is_valid_memory_id,
)


def _new_id() -> str:
    return str(uuid.uuid4())


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


class StoreMemoryInput(BaseModel):
    """A memory that already passed the attention gate, ready to persist."""

    id: str = Field(default_factory=_new_id)
    text: str = Field(min_length=1)
    embedding: list[float] = Field(default_factory=list)
    importance: Importance = 0.5
    category: MemoryCategory = "other"
    source: str = "user"
    extraction_status: ExtractionStatus = "pending"
    agent_id: str = "default"
    session_key: str | None = None

    @field_validator("id")
    @classmethod
    def _check_id(cls, v: str) -> str:
        if not is_valid_memory_id(v):
            raise ValueError(f"Invalid memory ID format: {v!r}")
        return v

    def to_params(self, now: float | None = None) -> dict[str, Any]:
        """Query parameters for node creation, with lifecycle fields initialised."""
        ts = now if now is not None else time.time()
        return {
            "id": self.id,
            "text": self.text,
            "embedding": self.embedding,
            "importance": self.importance,
            "category": self.category,
            "source": self.source,
            "extraction_status": self.extraction_status,
            "agent_id": self.agent_id,
            "session_key": self.session_key,
            "created_at": ts,
            "updated_at": ts,
            "retrieval_count": 0,
            "last_retrieved_at": None,
            "extraction_retries": 0,
        }


class MergeEntityInput(BaseModel):
    """An entity mention to merge on its normalized name."""

    id: str = Field(default_factory=_new_id)
    name: NormalizedName
    type: str | None = None
    aliases: Aliases = []
    description: str | None = None


# ---------------------------------------------------------------------------
# Outputs
# ---------------------------------------------------------------------------


class MemoryRecord(BaseModel):
    """A memory node read back from the store (embedding omitted)."""

    model_config = ConfigDict(extra="ignore")

    id: str
    text: str
    importance: Importance = 0.0
    category: str = "other"
    source: str | None = None
    extraction_status: str = "pending"
    extraction_retries: NonNegativeInt = 0
    agent_id: str | None = None
    session_key: str | None = None
    created_at: float | None = None
    updated_at: float | None = None
    retrieval_count: NonNegativeInt = 0
    last_retrieved_at: float | None = None


class SearchResult(BaseModel):
    """One ranked hit from a retrieval strategy."""

    id: str
    text: str
    score: float
    category: str | None = None
    importance: float | None = None
    created_at: float | None = None


class EntityRef(BaseModel):
    id: str
    name: str


class MemoryScore(BaseModel):
    """Effective-score row used for ranking and core rebalancing."""

    id: str
    text: str
    category: str
    importance: float
    retrieval_count: int
    age_days: float
    effective_score: float


class DecayedMemory(BaseModel):
    """A memory whose forgetting-curve score fell below retention."""

    id: str
    text: str
    importance: float
    age_days: float
    decay_score: float


class DuplicateCluster(BaseModel):
    """A connected component of near-duplicate memories (2+ members)."""

    memory_ids: list[str]
    importances: list[float]
    texts: list[str] = Field(default_factory=list)


class MergeResult(BaseModel):
    """Outcome of a cluster merge. ``skipped`` means nothing was written."""

    survivor_id: str | None
    deleted_count: int = 0
    skipped: bool = False


class ConflictSide(BaseModel):
    id: str
    text: str
    importance: float
    created_at: float | None = None


class ConflictPair(BaseModel):
    """Two non-core memories sharing an entity and flagged as contradictory."""

    memory_a: ConflictSide
    memory_b: ConflictSide
    signals: list[str] = Field(default_factory=list)


class OrphanEntity(BaseModel):
    id: str
    name: str
    type: str | None = None


class OrphanTag(BaseModel):
    id: str | None = None
    name: str


class PendingExtraction(BaseModel):
    """A memory waiting for a background extraction worker."""

    id: str
    text: str
    agent_id: str | None = None
    extraction_retries: int = 0


class SweepSummary(BaseModel):
    """What one maintenance sweep changed, for logging and display."""

    clusters_found: int = 0
    clusters_merged: int = 0
    clusters_skipped: int = 0
    duplicates_deleted: int = 0
    decayed_found: int = 0
    pruned: int = 0
    conflicts_found: int = 0
    orphan_entities_deleted: int = 0
    orphan_tags_deleted: int = 0
    promoted: int = 0
    demoted: int = 0
    errors: list[str] = Field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.errors
