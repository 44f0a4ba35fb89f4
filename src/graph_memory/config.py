"""
Configuration for the graph memory engine.

Every group is a pydantic-settings model with its own environment prefix,
so a deployment can override any knob without touching code:

    GRAPH_MEMORY_FALKORDB_HOST=graph.internal
    GRAPH_MEMORY_SCORING_DECAY_BASE_HALF_LIFE_DAYS=45
    GRAPH_MEMORY_DEDUP_SIMILARITY_THRESHOLD=0.97
"""

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class FalkorDBSettings(BaseSettings):
    """Connection settings for the FalkorDB graph store."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_FALKORDB_", extra="ignore")

    host: str = "localhost"
    port: int = Field(default=6379, ge=1, le=65535)
    password: SecretStr | None = None
    graph_name: str = "memory_graph"
    max_connections: int = Field(default=16, ge=1, le=512)
    # Dimension of vectors produced by the external embedding model
    embedding_dimension: int = Field(default=1024, ge=1)


class GateSettings(BaseSettings):
    """Length and word-count limits for the attention gate."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_GATE_", extra="ignore")

    min_chars: int = Field(default=30, ge=0)
    user_max_chars: int = Field(default=2000, ge=1)
    assistant_max_chars: int = Field(default=1000, ge=1)
    user_min_words: int = Field(default=5, ge=0)
    assistant_min_words: int = Field(default=10, ge=0)
    max_emoji: int = Field(default=3, ge=0)
    max_code_ratio: float = Field(default=0.5, ge=0.0, le=1.0)


class ScoringSettings(BaseSettings):
    """Effective-score and decay-curve knobs."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_SCORING_", extra="ignore")

    # Frequency boost: 1 + max_boost * min(log(1+n) / log(1+saturation), 1)
    frequency_saturation: int = Field(default=100, ge=1)
    frequency_max_boost: float = Field(default=1.0, ge=0.0)

    # Recency: base + exp(-lambda * days) * (1 - base)
    recency_lambda: float = Field(default=0.01, ge=0.0)
    recency_base: float = Field(default=0.3, ge=0.0, le=1.0)

    # Forgetting curve: importance * exp(-days / (half_life * (1 + importance * mult)))
    decay_base_half_life_days: float = Field(default=30.0, gt=0.0)
    decay_importance_multiplier: float = Field(default=1.0, ge=0.0)
    retention_threshold: float = Field(default=0.1, ge=0.0, le=1.0)

    pareto_percentile: float = Field(default=0.8, ge=0.0, le=1.0)


class DedupSettings(BaseSettings):
    """Duplicate-cluster and conflict sweep bounds."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_DEDUP_", extra="ignore")

    similarity_threshold: float = Field(default=0.95, ge=0.0, le=1.0)
    neighbor_limit: int = Field(default=10, ge=1, le=100)
    max_pairs: int = Field(default=500, ge=1)
    conflict_limit: int = Field(default=50, ge=1)


class SearchSettings(BaseSettings):
    """Retrieval strategy thresholds and fusion weights."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_SEARCH_", extra="ignore")

    vector_min_score: float = Field(default=0.5, ge=0.0, le=1.0)
    graph_min_score: float = Field(default=0.3, ge=0.0, le=1.0)
    graph_hop_decay: float = Field(default=0.5, gt=0.0, le=1.0)
    rrf_k: int = Field(default=60, ge=1)
    vector_weight: float = Field(default=1.0, ge=0.0)
    bm25_weight: float = Field(default=1.0, ge=0.0)
    graph_weight: float = Field(default=1.0, ge=0.0)


class RetrySettings(BaseSettings):
    """Backoff between attempts on transient store errors."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_RETRY_", extra="ignore")

    wait_multiplier: float = Field(default=0.2, ge=0.0)
    wait_min: float = Field(default=0.1, ge=0.0)
    wait_max: float = Field(default=2.0, ge=0.0)


class Settings(BaseSettings):
    """Top-level settings aggregate."""

    model_config = SettingsConfigDict(env_prefix="GRAPH_MEMORY_", extra="ignore")

    falkordb: FalkorDBSettings = Field(default_factory=FalkorDBSettings)
    gate: GateSettings = Field(default_factory=GateSettings)
    scoring: ScoringSettings = Field(default_factory=ScoringSettings)
    dedup: DedupSettings = Field(default_factory=DedupSettings)
    search: SearchSettings = Field(default_factory=SearchSettings)
    retry: RetrySettings = Field(default_factory=RetrySettings)


settings = Settings()
