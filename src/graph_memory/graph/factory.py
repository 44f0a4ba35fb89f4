"""
Factory for creating and initializing the memory engine.

Creates a GraphClient from FalkorDBSettings, applies the schema and wires
the store, retrieval, maintenance and extraction services onto one session.
"""

import logging
from dataclasses import dataclass

from ..config import Settings, settings
from ..services.extraction import ExtractionTracker
from ..services.maintenance import MaintenanceService
from ..services.retrieval import RetrievalService
from ..storage.record_store import RecordStore
from ..utils.attention_gate import GatePolicy
from .client import GraphClient

logger = logging.getLogger(__name__)


@dataclass
class MemoryEngine:
    """Everything a caller needs, sharing one client and session."""

    client: GraphClient
    store: RecordStore
    retrieval: RetrievalService
    maintenance: MaintenanceService
    tracker: ExtractionTracker
    gate_policy: GatePolicy

    async def close(self) -> None:
        await self.client.close()


async def create_memory_engine(config: Settings | None = None) -> MemoryEngine:
    """
    Connect to FalkorDB, apply the schema and build the service bundle.

    Args:
        config: Settings to use (defaults to the environment-loaded settings)

    Returns:
        Initialized MemoryEngine. Call ``close()`` when done.
    """
    config = config or settings
    db = config.falkordb
    password = db.password.get_secret_value() if db.password else None

    client = GraphClient(
        host=db.host,
        port=db.port,
        password=password,
        graph_name=db.graph_name,
        max_connections=db.max_connections,
        embedding_dimension=db.embedding_dimension,
    )
    await client.initialize()

    session = client.session()
    store = RecordStore(session)
    engine = MemoryEngine(
        client=client,
        store=store,
        retrieval=RetrievalService(session, search_settings=config.search),
        maintenance=MaintenanceService(session, store, scoring=config.scoring, dedup=config.dedup),
        tracker=ExtractionTracker(store),
        gate_policy=GatePolicy.from_settings(config.gate),
    )

    logger.info(f"Memory engine initialized: {db.host}:{db.port}/{db.graph_name}")
    return engine
