"""
Unit tests for GraphClient.

Tests the FalkorDB graph client with mocked FalkorDB/Redis connections.
Validates schema initialization, sessions and stats.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from graph_memory.graph.schema import SCHEMA_STATEMENTS


@pytest.fixture
def mock_graph():
    """Create a mock FalkorDB graph."""
    graph = AsyncMock()
    return graph


class TestGraphClientInit:
    """Test GraphClient initialization and schema application."""

    @pytest.mark.asyncio
    @patch("graph_memory.graph.client.BlockingConnectionPool")
    @patch("graph_memory.graph.client.FalkorDB")
    async def test_initialize_creates_pool_and_applies_schema(self, mock_falkordb_cls, mock_pool_cls):
        from graph_memory.graph.client import GraphClient

        mock_pool_instance = MagicMock()
        mock_pool_instance.aclose = AsyncMock()
        mock_pool_cls.return_value = mock_pool_instance

        mock_graph_instance = AsyncMock()
        mock_db_instance = MagicMock()
        mock_db_instance.select_graph.return_value = mock_graph_instance
        mock_falkordb_cls.return_value = mock_db_instance

        client = GraphClient(host="testhost", port=6380, graph_name="test_graph", max_connections=8)
        await client.initialize()

        mock_pool_cls.assert_called_once_with(
            host="testhost",
            port=6380,
            password=None,
            max_connections=8,
            timeout=None,
            decode_responses=True,
        )
        mock_db_instance.select_graph.assert_called_once_with("test_graph")

        # Schema statements plus the vector index
        assert mock_graph_instance.query.call_count == len(SCHEMA_STATEMENTS) + 1
        queries = [c[0][0] for c in mock_graph_instance.query.call_args_list]
        assert any("db.idx.fulltext.createNodeIndex" in q for q in queries)
        assert any("VECTOR INDEX" in q and "dimension: 1024" in q for q in queries)

        # Idempotent: second call is no-op
        await client.initialize()
        assert mock_graph_instance.query.call_count == len(SCHEMA_STATEMENTS) + 1

    @pytest.mark.asyncio
    @patch("graph_memory.graph.client.BlockingConnectionPool")
    @patch("graph_memory.graph.client.FalkorDB")
    async def test_initialize_handles_existing_index(self, mock_falkordb_cls, mock_pool_cls):
        """Schema statements that fail with 'already indexed' are silently ignored."""
        from graph_memory.graph.client import GraphClient

        mock_pool_cls.return_value = MagicMock(aclose=AsyncMock())
        mock_graph = AsyncMock()
        mock_graph.query.side_effect = Exception("Attribute 'text' is already indexed")
        mock_db = MagicMock()
        mock_db.select_graph.return_value = mock_graph
        mock_falkordb_cls.return_value = mock_db

        client = GraphClient()
        await client.initialize()  # Should not raise

    def test_uninitialized_access_raises(self):
        from graph_memory.graph.client import GraphClient

        client = GraphClient()
        with pytest.raises(RuntimeError):
            _ = client.graph
        with pytest.raises(RuntimeError):
            client.session()


class TestGraphClientStats:
    @pytest.mark.asyncio
    async def test_get_graph_stats(self, mock_graph):
        from graph_memory.graph.client import GraphClient

        results = []
        for count in (12, 5, 3):
            r = MagicMock()
            r.result_set = [[count]]
            results.append(r)
        mock_graph.query.side_effect = results

        client = GraphClient.__new__(GraphClient)
        client._graph = mock_graph
        client.graph_name = "memory_graph"

        stats = await client.get_graph_stats()
        assert stats["memory_count"] == 12
        assert stats["entity_count"] == 5
        assert stats["tag_count"] == 3
        assert stats["status"] == "operational"

    @pytest.mark.asyncio
    async def test_get_graph_stats_error(self, mock_graph):
        from graph_memory.graph.client import GraphClient

        mock_graph.query.side_effect = Exception("connection lost")
        client = GraphClient.__new__(GraphClient)
        client._graph = mock_graph
        client.graph_name = "memory_graph"

        stats = await client.get_graph_stats()
        assert stats["status"] == "error"
        assert "connection lost" in stats["error"]


class TestGraphClientClose:
    @pytest.mark.asyncio
    async def test_close_releases_pool(self):
        from graph_memory.graph.client import GraphClient

        pool = MagicMock()
        pool.aclose = AsyncMock()
        client = GraphClient.__new__(GraphClient)
        client._pool = pool
        client._db = MagicMock()
        client._graph = AsyncMock()
        client._initialized = True

        await client.close()

        pool.aclose.assert_awaited_once()
        assert client._pool is None
        assert client._initialized is False

    @pytest.mark.asyncio
    async def test_close_resets_state_when_pool_close_fails(self):
        from graph_memory.graph.client import GraphClient

        pool = MagicMock()
        pool.aclose = AsyncMock(side_effect=ConnectionError("socket gone"))
        client = GraphClient()
        client._pool = pool
        client._graph = AsyncMock()
        client._initialized = True

        await client.close()  # Should not raise

        assert client._initialized is False
        with pytest.raises(RuntimeError):
            _ = client.pool

    @pytest.mark.asyncio
    async def test_close_without_initialize_is_noop(self):
        from graph_memory.graph.client import GraphClient

        client = GraphClient()
        await client.close()
        assert client._pool is None

    @pytest.mark.asyncio
    @patch("graph_memory.graph.client.BlockingConnectionPool")
    @patch("graph_memory.graph.client.FalkorDB")
    async def test_reinitialize_after_close(self, mock_falkordb_cls, mock_pool_cls):
        from graph_memory.graph.client import GraphClient

        mock_pool_cls.return_value = MagicMock(aclose=AsyncMock())
        mock_graph = AsyncMock()
        mock_graph.query.side_effect = Exception("Index already exists")
        mock_falkordb_cls.return_value = MagicMock(select_graph=MagicMock(return_value=mock_graph))

        client = GraphClient()
        await client.initialize()
        await client.close()
        await client.initialize()

        assert mock_pool_cls.call_count == 2
        assert client.graph is mock_graph


class TestSchema:
    def test_relation_type_whitelist(self):
        from graph_memory.graph.schema import normalize_relation_type

        assert normalize_relation_type("works_at") == "WORKS_AT"
        assert normalize_relation_type(" KNOWS ") == "KNOWS"
        assert normalize_relation_type("HATES") is None
        assert normalize_relation_type("KNOWS]->(x) DETACH DELETE x //") is None
