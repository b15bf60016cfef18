"""Neo4j storage layer for the GraphDone engine.

Owns the async driver, creates the schema, and hands out sessions.
Engine functions never talk to the driver directly: they accept a
``QueryExecutor``, anything with an async ``run(query, parameters)``.
Both ``AsyncSession`` and ``AsyncTransaction`` qualify, which lets the
same mutation code run standalone or inside a bulk transaction.

Example:
    >>> store = await Neo4jGraphStore.connect(Neo4jConfig())
    >>> await store.initialize()
    >>> async with store.session() as session:
    ...     rows = await fetch_all(session, "MATCH (n:WorkItem) RETURN n LIMIT 5")
    >>> await store.close()
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

from neo4j import AsyncDriver, AsyncGraphDatabase, AsyncSession

from graphdone.config import Neo4jConfig

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    """Anything that can run a parameterized Cypher statement."""

    async def run(self, query: str, parameters: dict[str, Any] | None = None, **kwargs: Any) -> Any:
        ...


SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT work_item_id_unique IF NOT EXISTS "
    "FOR (n:WorkItem) REQUIRE n.id IS UNIQUE",
    "CREATE CONSTRAINT contributor_id_unique IF NOT EXISTS "
    "FOR (c:Contributor) REQUIRE c.id IS UNIQUE",
    "CREATE CONSTRAINT graph_id_unique IF NOT EXISTS "
    "FOR (g:Graph) REQUIRE g.id IS UNIQUE",
    "CREATE INDEX work_item_status_idx IF NOT EXISTS FOR (n:WorkItem) ON (n.status)",
    "CREATE INDEX work_item_type_idx IF NOT EXISTS FOR (n:WorkItem) ON (n.type)",
    "CREATE INDEX work_item_priority_idx IF NOT EXISTS "
    "FOR (n:WorkItem) ON (n.priorityComputed)",
]


async def fetch_all(
    executor: QueryExecutor,
    query: str,
    parameters: dict[str, Any] | None = None,
) -> list[Any]:
    """Run a query and collect every record."""
    logger.debug(f"Cypher: {' '.join(query.split())}")
    result = await executor.run(query, parameters or {})
    return [record async for record in result]


async def fetch_one(
    executor: QueryExecutor,
    query: str,
    parameters: dict[str, Any] | None = None,
) -> Any | None:
    """Run a query and return its first record (or None)."""
    records = await fetch_all(executor, query, parameters)
    return records[0] if records else None


class Neo4jGraphStore:
    """Driver lifecycle and session factory for the WorkItem graph.

    Attributes:
        driver: Neo4j async driver.
        config: Connection configuration.
    """

    def __init__(self, driver: AsyncDriver, config: Neo4jConfig | None = None):
        """Initialize the store.

        Args:
            driver: Neo4j async driver instance
            config: Optional configuration (uses defaults if not provided)
        """
        self.driver = driver
        self.config = config or Neo4jConfig()

    @classmethod
    async def connect(cls, config: Neo4jConfig | None = None) -> "Neo4jGraphStore":
        """Create a store with a new connection.

        Args:
            config: Connection configuration

        Returns:
            Connected Neo4jGraphStore
        """
        config = config or Neo4jConfig()
        driver = AsyncGraphDatabase.driver(
            config.uri,
            auth=(config.username, config.password),
            max_connection_pool_size=config.max_connection_pool_size,
            connection_timeout=config.connection_timeout,
        )
        logger.info(f"Connected Neo4j driver to {config.uri} (database={config.database})")
        return cls(driver, config)

    def session(self) -> AsyncSession:
        """Open a session on the configured database."""
        return self.driver.session(database=self.config.database)

    async def initialize(self) -> None:
        """Create uniqueness constraints and query indexes.

        Safe to call repeatedly; every statement is IF NOT EXISTS.
        """
        async with self.session() as session:
            for statement in SCHEMA_STATEMENTS:
                await session.run(statement)
        logger.info("Neo4j schema initialized")

    async def verify_connectivity(self) -> bool:
        """Return True if the database answers, False otherwise."""
        try:
            await self.driver.verify_connectivity()
            return True
        except Exception as e:
            logger.warning(f"Neo4j connectivity check failed: {e}")
            return False

    async def close(self) -> None:
        """Close the driver connection."""
        await self.driver.close()
