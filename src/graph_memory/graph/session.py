"""
Session and transaction abstraction over a FalkorDB graph.

GraphSession is the only place that talks to the driver. It returns rows as
dicts keyed by column name and translates every native redis/FalkorDB error
into a StoreError with its kind attached (see errors.py).

Atomicity boundaries:
    - ``run()``: one Cypher statement. FalkorDB executes each query as a
      single atomic unit, so a statement that decrements mention counts and
      deletes a memory either fully applies or not at all.
    - ``execute_write()``: a named multi-statement unit. The graph key is
      WATCHed, the unit's verification reads run first, and all queued writes
      are committed together in one MULTI/EXEC. A concurrent write to the
      graph between WATCH and EXEC aborts the whole unit with a CONFLICT
      StoreError, which the retry policy treats as transient.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

import redis.asyncio as aioredis
from redis import exceptions as redis_exceptions

from .errors import translate_native_error

logger = logging.getLogger(__name__)

T = TypeVar("T")

Row = dict[str, Any]


def rows_from_result(result: Any) -> list[Row]:
    """Convert a FalkorDB QueryResult into a list of column-keyed dicts."""
    result_set = getattr(result, "result_set", None) or []
    if not result_set:
        return []
    columns: list[str] = []
    for column in getattr(result, "header", None) or []:
        columns.append(column[1] if isinstance(column, (list, tuple)) else str(column))
    return [dict(zip(columns, row)) for row in result_set]


def _stringify_param(value: Any) -> str:
    """Render a parameter value as a Cypher literal for the CYPHER header."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, str):
        escaped = value.replace("\\", "\\\\").replace('"', '\\"')
        return f'"{escaped}"'
    if isinstance(value, (list, tuple)):
        return "[" + ", ".join(_stringify_param(v) for v in value) + "]"
    if isinstance(value, dict):
        return "{" + ", ".join(f"{k}: {_stringify_param(v)}" for k, v in value.items()) + "}"
    return str(value)


def build_params_header(params: dict[str, Any] | None) -> str:
    """Build the ``CYPHER k=v ...`` prefix FalkorDB uses for parameters."""
    if not params:
        return ""
    return "CYPHER " + " ".join(f"{key}={_stringify_param(value)}" for key, value in params.items()) + " "


class GraphTransaction:
    """
    Unit of work handed to ``GraphSession.execute_write``.

    Reads execute immediately (under the session's WATCH). Writes are queued
    and only reach the store when the unit commits, so all reads must come
    before the first write.
    """

    def __init__(self, graph):
        self._graph = graph
        self._statements: list[tuple[str, dict[str, Any]]] = []

    async def read(self, query: str, params: dict[str, Any] | None = None) -> list[Row]:
        if self._statements:
            raise RuntimeError("Transaction reads must happen before the first queued write")
        try:
            result = await self._graph.ro_query(query, params=params)
        except redis_exceptions.RedisError as e:
            raise translate_native_error(e) from e
        return rows_from_result(result)

    def write(self, query: str, params: dict[str, Any] | None = None) -> None:
        self._statements.append((query, dict(params or {})))

    @property
    def statements(self) -> list[tuple[str, dict[str, Any]]]:
        return list(self._statements)


class GraphSession:
    """Request/response access to one FalkorDB graph."""

    def __init__(self, graph, pool: aioredis.BlockingConnectionPool, graph_name: str):
        self._graph = graph
        self._pool = pool
        self._graph_name = graph_name

    async def run(self, query: str, params: dict[str, Any] | None = None) -> list[Row]:
        """Execute one statement atomically and return its rows."""
        try:
            result = await self._graph.query(query, params=params)
        except redis_exceptions.RedisError as e:
            raise translate_native_error(e) from e
        return rows_from_result(result)

    async def execute_write(self, work: Callable[[GraphTransaction], Awaitable[T]]) -> T:
        """
        Run ``work`` as one optimistic transaction.

        ``work`` receives a GraphTransaction, performs its reads, queues its
        writes and returns a value. If it queued nothing, nothing is committed.
        """
        conn = aioredis.Redis(connection_pool=self._pool)
        try:
            async with conn.pipeline(transaction=True) as pipe:
                await pipe.watch(self._graph_name)
                tx = GraphTransaction(self._graph)
                result = await work(tx)

                statements = tx.statements
                if statements:
                    pipe.multi()
                    for query, params in statements:
                        pipe.execute_command(
                            "GRAPH.QUERY",
                            self._graph_name,
                            build_params_header(params) + query,
                            "--compact",
                        )
                    await pipe.execute()
                    logger.debug(f"Committed {len(statements)} statements on {self._graph_name}")
                return result
        except redis_exceptions.RedisError as e:
            raise translate_native_error(e) from e
        finally:
            await conn.aclose()
