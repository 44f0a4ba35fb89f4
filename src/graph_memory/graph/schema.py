"""
Graph schema for the associative memory store.

Node Labels:
    :Memory  - A retained text unit (keyed by id, a UUID string)
    :Entity  - A named referent, merged on its normalized name
    :Tag     - A normalized label, merged on its name

Relationship Types:
    :MENTIONS - Memory -> Entity, carries role + confidence
    :TAGGED   - Memory -> Tag, carries confidence
    Typed Entity -> Entity edges from ENTITY_RELATION_TYPES, carry confidence

Indices:
    Exact-match indices on the merge keys, range indices for sweeps,
    a full-text index on Memory.text and a cosine vector index on
    Memory.embedding.
"""

# Whitelist for entity relationship types. FalkorDB doesn't support
# parameterized relationship types, so only these are ever formatted into
# a query string.
ENTITY_RELATION_TYPES: frozenset[str] = frozenset(
    {
        "WORKS_AT",
        "LIVES_IN",
        "KNOWS",
        "MARRIED_TO",
        "FAMILY_OF",
        "MANAGES",
        "REPORTS_TO",
        "OWNS",
        "USES",
        "PREFERS",
        "DECIDED",
        "PART_OF",
        "LOCATED_IN",
        "CREATED",
        "RELATED_TO",
    }
)

MEMORY_LABEL = "Memory"
TEXT_PROPERTY = "text"
EMBEDDING_PROPERTY = "embedding"

SCHEMA_STATEMENTS: list[str] = [
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.id)",
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.created_at)",
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.category)",
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.extraction_status)",
    "CREATE INDEX IF NOT EXISTS FOR (m:Memory) ON (m.agent_id)",
    "CREATE INDEX IF NOT EXISTS FOR (e:Entity) ON (e.name)",
    "CREATE INDEX IF NOT EXISTS FOR (e:Entity) ON (e.id)",
    "CREATE INDEX IF NOT EXISTS FOR (t:Tag) ON (t.name)",
    f"CALL db.idx.fulltext.createNodeIndex('{MEMORY_LABEL}', '{TEXT_PROPERTY}')",
]


def vector_index_statement(dimension: int) -> str:
    """Cypher that creates the cosine vector index for the given dimension."""
    return (
        f"CREATE VECTOR INDEX FOR (m:{MEMORY_LABEL}) ON (m.{EMBEDDING_PROPERTY}) "
        f"OPTIONS {{dimension: {int(dimension)}, similarityFunction: 'cosine'}}"
    )


def normalize_relation_type(relation_type: str) -> str | None:
    """Upper-case a relationship type; None if it is not whitelisted."""
    normalized = relation_type.strip().upper()
    if normalized not in ENTITY_RELATION_TYPES:
        return None
    return normalized
