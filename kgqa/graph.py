"""Graph database access.

The orchestrator only needs two calls from the graph: run a parameterized
query and describe the schema. ``Neo4jGraph`` implements them with the
official async neo4j driver.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any

from neo4j import AsyncGraphDatabase

logger = logging.getLogger(__name__)


class GraphClient(ABC):
    """Execute-query contract consumed by every pipeline stage."""

    @abstractmethod
    async def execute_query(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        """Run a query and return its records as dicts. Raises on failure."""

    @abstractmethod
    async def get_schema(self) -> str:
        """Describe labels, relationship types and property keys."""

    async def close(self) -> None:
        """Release connections. Override if needed."""


class Neo4jGraph(GraphClient):
    """Async Neo4j client."""

    __slots__ = ("_uri", "_auth", "_database", "_driver", "available")

    SCHEMA_QUERIES = {
        "labels": "CALL db.labels() YIELD label RETURN collect(label) AS values",
        "relationship_types": (
            "CALL db.relationshipTypes() YIELD relationshipType "
            "RETURN collect(relationshipType) AS values"
        ),
        "property_keys": "CALL db.propertyKeys() YIELD propertyKey RETURN collect(propertyKey) AS values",
    }

    def __init__(self, uri: str, username: str, password: str, database: str = "neo4j"):
        self._uri = uri
        self._auth = (username, password)
        self._database = database
        self._driver = None
        self.available = False

    async def connect(self) -> None:
        """Open the driver and verify connectivity."""
        if not self._auth[1]:
            logger.warning("Neo4j: NEO4J_PASSWORD not set, graph disabled")
            return
        try:
            self._driver = AsyncGraphDatabase.driver(self._uri, auth=self._auth)
            await self._driver.verify_connectivity()
            self.available = True
            logger.info(f"Neo4j: connected ({self._uri}, db={self._database})")
        except Exception as e:
            logger.error(f"Neo4j: unavailable ({e})")
            self.available = False

    async def close(self) -> None:
        if self._driver:
            await self._driver.close()
            self._driver = None
        self.available = False

    async def execute_query(
        self,
        query: str,
        parameters: dict[str, Any] | None = None,
    ) -> list[dict[str, Any]]:
        if self._driver is None:
            raise ConnectionError("Neo4j driver is not connected")
        async with self._driver.session(database=self._database) as session:
            result = await session.run(query, parameters or {})
            return await result.data()

    async def get_schema(self) -> str:
        sections = []
        for name, query in self.SCHEMA_QUERIES.items():
            rows = await self.execute_query(query)
            values = rows[0]["values"] if rows else []
            sections.append(f"{name}: {', '.join(sorted(values)) or '(none)'}")
        return "\n".join(sections)
