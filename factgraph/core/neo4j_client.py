"""Neo4j client and connection management."""

import asyncio
from typing import Any, Optional

from neo4j import AsyncDriver, AsyncGraphDatabase
from neo4j.exceptions import (
    ServiceUnavailable,
    SessionExpired,
    TransientError,
)

from factgraph.core.config import Neo4jSettings
from factgraph.utils.logging import get_logger

LOGGER = get_logger(__name__)


# Constraints and indexes backing the graph projection
SCHEMA_STATEMENTS = [
    "CREATE CONSTRAINT entity_id IF NOT EXISTS FOR (n:Entity) REQUIRE n.entityId IS UNIQUE",
    "CREATE INDEX entity_type IF NOT EXISTS FOR (n:Entity) ON (n.type)",
    "CREATE INDEX entity_name IF NOT EXISTS FOR (n:Entity) ON (n.name)",
    "CREATE CONSTRAINT filing_id IF NOT EXISTS FOR (n:Filing) REQUIRE n.documentId IS UNIQUE",
    "CREATE CONSTRAINT chunk_id IF NOT EXISTS FOR (n:Chunk) REQUIRE n.chunkId IS UNIQUE",
]


class Neo4jClient:
    """Owns one Neo4j driver for the lifetime of the application."""

    def __init__(self, settings: Neo4jSettings, driver: Optional[AsyncDriver] = None):
        self.settings = settings
        self._driver = driver

    @property
    def driver(self) -> AsyncDriver:
        """Get or create the Neo4j driver."""
        if self._driver is None:
            self._driver = AsyncGraphDatabase.driver(
                self.settings.uri,
                auth=(self.settings.username, self.settings.password),
            )
            LOGGER.info("Neo4j driver initialized", extra={"uri": self.settings.uri})
        return self._driver

    async def close(self) -> None:
        """Close Neo4j driver."""
        if self._driver:
            await self._driver.close()
            self._driver = None
            LOGGER.info("Neo4j driver closed")

    async def ensure_constraints(self) -> None:
        """Ensure uniqueness constraints and lookup indexes exist."""
        for cypher in SCHEMA_STATEMENTS:
            try:
                await self.execute_write_query(cypher)
            except Exception as e:
                LOGGER.error(f"Failed to apply graph schema statement: {e}", extra={"cypher": cypher})
                raise
        LOGGER.info("Ensured graph constraints and indexes")

    async def run_query(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
        max_retries: int | None = None,
        retry_delay: float | None = None,
    ) -> list[dict[str, Any]]:
        """
        Execute a Cypher query with retry logic for transient failures.

        Args:
            query: Cypher query string
            parameters: Query parameters dictionary
            database: Database name (defaults to configured database)
            max_retries: Maximum retry attempts for transient errors
            retry_delay: Initial delay between retries in seconds (exponential backoff)

        Returns:
            List of result records as dictionaries

        Raises:
            ServiceUnavailable: Neo4j service is unavailable after retries
            Exception: Non-transient errors
        """
        parameters = parameters or {}
        db = database or self.settings.database
        max_retries = max_retries or self.settings.max_retries
        retry_delay = self.settings.retry_delay if retry_delay is None else retry_delay

        for attempt in range(max_retries):
            try:
                async with self.driver.session(database=db) as session:
                    result = await session.run(query, parameters)
                    records = await result.data()
                    return records

            except (ServiceUnavailable, SessionExpired, TransientError) as e:
                if attempt == max_retries - 1:
                    LOGGER.error(
                        f"Neo4j query failed after {max_retries} attempts",
                        extra={
                            "query": query[:100],
                            "error": str(e),
                            "attempts": max_retries,
                        },
                    )
                    raise

                wait_time = retry_delay * (2**attempt)
                LOGGER.warning(
                    f"Neo4j transient error, retrying in {wait_time}s",
                    extra={
                        "attempt": attempt + 1,
                        "max_retries": max_retries,
                        "error": str(e),
                    },
                )
                await asyncio.sleep(wait_time)

            except Exception as e:
                LOGGER.error(
                    "Neo4j query failed with non-transient error",
                    extra={
                        "query": query[:100],
                        "error": str(e),
                        "error_type": type(e).__name__,
                    },
                )
                raise

        return []

    async def execute_write_query(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
        database: str | None = None,
    ) -> dict[str, Any]:
        """
        Execute a write query (CREATE, MERGE, SET) and return its counters.

        Args:
            query: Cypher write query
            parameters: Query parameters
            database: Database name

        Returns:
            Query execution summary
        """
        parameters = parameters or {}
        db = database or self.settings.database

        async with self.driver.session(database=db) as session:
            result = await session.run(query, parameters)
            summary = await result.consume()

            return {
                "nodes_created": summary.counters.nodes_created,
                "relationships_created": summary.counters.relationships_created,
                "properties_set": summary.counters.properties_set,
                "nodes_deleted": summary.counters.nodes_deleted,
                "relationships_deleted": summary.counters.relationships_deleted,
            }

    async def health_check(self) -> dict:
        try:
            await self.driver.verify_connectivity()
            return {"status": "healthy", "connected": True, "uri": self.settings.uri}
        except Exception as e:
            LOGGER.error("Neo4j health check failed", extra={"error": str(e)})
            return {"status": "unhealthy", "connected": False, "error": str(e)}
