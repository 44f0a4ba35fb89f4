#!/usr/bin/env python3
"""
Run one maintenance sweep against the memory graph.

Intended for a cron job or scheduler. Connection and tuning come from
GRAPH_MEMORY_* environment variables (see graph_memory/config.py).

Usage:
    # Full sweep: dedup merge, decay prune, conflict count
    python scripts/run_maintenance.py

    # Preview only
    python scripts/run_maintenance.py --dry-run

    # Decay only, then delete orphaned entities and tags
    python scripts/run_maintenance.py --skip-dedup --cleanup-orphans
"""

import argparse
import asyncio
import logging
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from graph_memory.config import Settings
from graph_memory.graph.factory import create_memory_engine

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")
logger = logging.getLogger(__name__)


async def main() -> int:
    parser = argparse.ArgumentParser(description="Run one memory graph maintenance sweep")
    parser.add_argument("--dry-run", action="store_true", help="Discover and count, change nothing")
    parser.add_argument("--skip-dedup", action="store_true", help="Skip duplicate cluster merging")
    parser.add_argument("--skip-decay", action="store_true", help="Skip decay pruning")
    parser.add_argument("--cleanup-orphans", action="store_true", help="Delete orphaned entities and tags")
    parser.add_argument("--rebalance-core", action="store_true", help="Promote/demote core memories by Pareto threshold")
    parser.add_argument("--agent-id", help="Only sweep memories owned by this agent")
    parser.add_argument("--falkordb-host", help="FalkorDB host (overrides GRAPH_MEMORY_FALKORDB_HOST)")
    parser.add_argument("--falkordb-port", type=int, help="FalkorDB port (overrides GRAPH_MEMORY_FALKORDB_PORT)")
    args = parser.parse_args()

    config = Settings()
    if args.falkordb_host:
        config.falkordb.host = args.falkordb_host
    if args.falkordb_port:
        config.falkordb.port = args.falkordb_port

    engine = await create_memory_engine(config)
    try:
        start_time = time.time()
        summary = await engine.maintenance.run_sweep(
            dry_run=args.dry_run,
            skip_dedup=args.skip_dedup,
            skip_decay=args.skip_decay,
            cleanup_orphans=args.cleanup_orphans,
            rebalance=args.rebalance_core,
            agent_id=args.agent_id,
        )
        elapsed = time.time() - start_time

        logger.info("=" * 60)
        logger.info(f"Sweep {'(dry run) ' if args.dry_run else ''}finished in {elapsed:.1f}s")
        logger.info(f"  Duplicate clusters: {summary.clusters_found} found, {summary.clusters_merged} merged, "
                    f"{summary.clusters_skipped} skipped, {summary.duplicates_deleted} memories removed")
        logger.info(f"  Decayed: {summary.decayed_found} found, {summary.pruned} pruned")
        logger.info(f"  Conflicting pairs: {summary.conflicts_found}")
        if args.rebalance_core:
            logger.info(f"  Core: {summary.promoted} promoted, {summary.demoted} demoted")
        if args.cleanup_orphans:
            logger.info(f"  Orphans deleted: {summary.orphan_entities_deleted} entities, "
                        f"{summary.orphan_tags_deleted} tags")
        for error in summary.errors:
            logger.error(f"  Phase error: {error}")
        logger.info("=" * 60)

        stats = await engine.client.get_graph_stats()
        logger.info(f"Graph now holds {stats.get('memory_count', 0):,} memories, "
                    f"{stats.get('entity_count', 0):,} entities, {stats.get('tag_count', 0):,} tags")
        return 0 if summary.success else 1
    finally:
        await engine.close()


if __name__ == "__main__":
    sys.exit(asyncio.run(main()))
