"""
FalkorDB graph client for the associative memory store.

Owns the Redis connection pool and the selected graph, applies the schema
on startup and hands out GraphSession objects. Record-level reads and writes
live in RecordStore / RetrievalService, which talk to the store only through
a session.
"""

import logging
from typing import Any

from falkordb.asyncio import FalkorDB
from redis.asyncio import BlockingConnectionPool

from .schema import SCHEMA_STATEMENTS, vector_index_statement
from .session import GraphSession

logger = logging.getLogger(__name__)


def _is_existing_index_error(exc: Exception) -> bool:
    message = str(exc).lower()
    return "already indexed" in message or "already exists" in message


class GraphClient:
    """
    Async FalkorDB client for the memory graph.

    One BlockingConnectionPool is shared by graph queries and the
    WATCH/MULTI/EXEC transactions opened by GraphSession.
    """

    def __init__(
        self,
        host: str = "localhost",
        port: int = 6379,
        password: str | None = None,
        graph_name: str = "memory_graph",
        max_connections: int = 16,
        embedding_dimension: int = 1024,
    ):
        self.host = host
        self.port = port
        self.password = password
        self.graph_name = graph_name
        self.max_connections = max_connections
        self.embedding_dimension = embedding_dimension

        self._pool: BlockingConnectionPool | None = None
        self._db: FalkorDB | None = None
        self._graph = None
        self._initialized = False

    async def initialize(self) -> None:
        """Open the pool and ensure indexes exist. Safe to call twice."""
        if self._initialized:
            return

        self._pool = BlockingConnectionPool(
            host=self.host,
            port=self.port,
            password=self.password,
            max_connections=self.max_connections,
            timeout=None,
            decode_responses=True,
        )
        self._db = FalkorDB(connection_pool=self._pool)
        self._graph = self._db.select_graph(self.graph_name)

        await self._ensure_schema()

        self._initialized = True
        logger.info(f"Graph {self.graph_name} ready on {self.host}:{self.port}")

    async def _ensure_schema(self) -> None:
        statements = [*SCHEMA_STATEMENTS, vector_index_statement(self.embedding_dimension)]
        for stmt in statements:
            try:
                await self._graph.query(stmt)
            except Exception as e:
                if not _is_existing_index_error(e):
                    logger.warning(f"Index statement failed ({stmt}): {e}")

    @property
    def pool(self) -> BlockingConnectionPool:
        """Shared pool; transactional writes check connections out of it."""
        return self._require(self._pool)

    @property
    def graph(self):
        return self._require(self._graph)

    @staticmethod
    def _require(handle):
        if handle is None:
            raise RuntimeError("GraphClient used before initialize()")
        return handle

    def session(self) -> GraphSession:
        """Open a session bound to this client's graph and pool."""
        return GraphSession(self.graph, self.pool, self.graph_name)

    async def get_graph_stats(self) -> dict[str, Any]:
        """Node counts for health checks."""
        try:
            counts: dict[str, int] = {}
            for label in ("Memory", "Entity", "Tag"):
                result = await self.graph.query(f"MATCH (n:{label}) RETURN count(n)")
                counts[label.lower()] = int(result.result_set[0][0]) if result.result_set else 0

            return {
                "graph_name": self.graph_name,
                "memory_count": counts["memory"],
                "entity_count": counts["entity"],
                "tag_count": counts["tag"],
                "status": "operational",
            }
        except Exception as e:
            logger.error(f"Failed to get graph stats: {e}")
            return {
                "graph_name": self.graph_name,
                "status": "error",
                "error": str(e),
            }

    async def close(self) -> None:
        """Release pooled connections; initialize() may be called again afterwards."""
        pool, self._pool = self._pool, None
        self._db = None
        self._graph = None
        self._initialized = False
        if pool is None:
            return
        try:
            await pool.aclose()
        except Exception as e:
            logger.warning(f"Graph pool did not close cleanly: {e}")
        else:
            logger.info("Graph connection pool released")
