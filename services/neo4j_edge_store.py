"""
Neo4j-backed EdgeStore

Edges are stored as graph relationships between contact nodes:

    (:Contact {contact_id})-[:RELATED {edge_id, type, is_mutual, created_at}]->(:Contact)

Each call runs one query in one write transaction, so a single edge write is
atomic; there is no cross-edge transaction. The synchronous driver runs on a
worker thread to keep the event loop free.
"""

import asyncio
import logging
from typing import Any, Callable, List, Optional, TypeVar

from neo4j.exceptions import Neo4jError, ServiceUnavailable, SessionExpired, TransientError

from models.relationships import Edge
from services.edge_store import EdgeStore
from services.errors import (
    EdgeAlreadyExistsError,
    EdgeNotFoundError,
    EdgeStoreError,
    TransientStoreError,
)
from services.neo4j_service import Neo4jService


logger = logging.getLogger(__name__)

T = TypeVar("T")

_RETURN_EDGE = """
RETURN r.edge_id AS id, s.contact_id AS source_id, t.contact_id AS target_id,
       r.type AS type, r.is_mutual AS is_mutual, r.created_at AS created_at
"""

FIND_QUERY = """
MATCH (s:Contact {contact_id: $source_id})-[r:RELATED {type: $type}]->(t:Contact {contact_id: $target_id})
""" + _RETURN_EDGE

FIND_BY_SOURCE_QUERY = """
MATCH (s:Contact {contact_id: $contact_id})-[r:RELATED]->(t:Contact)
""" + _RETURN_EDGE + """
ORDER BY r.created_at, r.edge_id
"""

FIND_BY_TARGET_QUERY = """
MATCH (s:Contact)-[r:RELATED]->(t:Contact {contact_id: $contact_id})
""" + _RETURN_EDGE + """
ORDER BY r.created_at, r.edge_id
"""

FIND_BY_ID_QUERY = """
MATCH (s:Contact)-[r:RELATED {edge_id: $edge_id}]->(t:Contact)
""" + _RETURN_EDGE

# Touching the source node takes its write lock, which serializes concurrent
# creates from the same source before the existence check runs.
CREATE_QUERY = """
MERGE (s:Contact {contact_id: $source_id})
MERGE (t:Contact {contact_id: $target_id})
SET s.edges_touched_at = $created_at
WITH s, t
OPTIONAL MATCH (s)-[existing:RELATED {type: $type}]->(t)
WITH s, t, existing
WHERE existing IS NULL
CREATE (s)-[:RELATED {
    edge_id: $edge_id,
    type: $type,
    is_mutual: $is_mutual,
    created_at: $created_at
}]->(t)
"""

DELETE_QUERY = """
MATCH (:Contact)-[r:RELATED {edge_id: $edge_id}]->(:Contact)
DELETE r
"""

SET_MUTUAL_QUERY = """
MATCH (:Contact)-[r:RELATED {edge_id: $edge_id}]->(:Contact)
SET r.is_mutual = $is_mutual
"""

SCAN_QUERY = """
MATCH (s:Contact)-[r:RELATED]->(t:Contact)
WHERE $after_id IS NULL OR r.edge_id > $after_id
""" + _RETURN_EDGE + """
ORDER BY r.edge_id
LIMIT $limit
"""

COUNT_QUERY = "MATCH (:Contact)-[r:RELATED]->(:Contact) RETURN count(r) AS total"


class Neo4jEdgeStore(EdgeStore):
    """EdgeStore persisted as RELATED relationships in Neo4j."""

    def __init__(self, neo4j_service: Neo4jService, max_concurrency: int = 10):
        self.neo4j = neo4j_service
        self._semaphore = asyncio.Semaphore(max_concurrency)

    async def _run(self, func: Callable[..., T], *args: Any) -> T:
        async with self._semaphore:
            try:
                return await asyncio.to_thread(func, *args)
            except (TransientError, ServiceUnavailable, SessionExpired) as e:
                raise TransientStoreError(f"Neo4j transient failure: {e}") from e
            except (Neo4jError, RuntimeError) as e:
                raise EdgeStoreError(f"Neo4j error: {e}") from e

    @staticmethod
    def _record_to_edge(record: dict[str, Any]) -> Edge:
        return Edge(
            id=record["id"],
            source_id=record["source_id"],
            target_id=record["target_id"],
            type=record["type"],
            is_mutual=bool(record.get("is_mutual")),
            created_at=record["created_at"],
        )

    async def _read_edges(self, query: str, parameters: dict[str, Any]) -> List[Edge]:
        records = await self._run(self.neo4j.execute_read, query, parameters)
        return [self._record_to_edge(r) for r in records]

    async def find(self, source_id: str, target_id: str, rel_type: str) -> Optional[Edge]:
        edges = await self._read_edges(
            FIND_QUERY, {"source_id": source_id, "target_id": target_id, "type": rel_type}
        )
        return edges[0] if edges else None

    async def find_all_by_source(self, contact_id: str) -> List[Edge]:
        return await self._read_edges(FIND_BY_SOURCE_QUERY, {"contact_id": contact_id})

    async def find_all_by_target(self, contact_id: str) -> List[Edge]:
        return await self._read_edges(FIND_BY_TARGET_QUERY, {"contact_id": contact_id})

    async def create(self, edge: Edge) -> Edge:
        counters = await self._run(
            self.neo4j.execute_write,
            CREATE_QUERY,
            {
                "edge_id": edge.id,
                "source_id": edge.source_id,
                "target_id": edge.target_id,
                "type": edge.type,
                "is_mutual": edge.is_mutual,
                "created_at": edge.created_at.isoformat(),
            },
        )
        if counters.get("relationships_created", 0) == 0:
            raise EdgeAlreadyExistsError(edge.source_id, edge.target_id, edge.type)

        logger.debug(f"Created edge {edge.id}: {edge.source_id} -{edge.type}-> {edge.target_id}")
        return edge

    async def delete(self, edge_id: str) -> None:
        counters = await self._run(self.neo4j.execute_write, DELETE_QUERY, {"edge_id": edge_id})
        if counters.get("relationships_deleted", 0) == 0:
            raise EdgeNotFoundError(edge_id)
        logger.debug(f"Deleted edge {edge_id}")

    async def set_mutual(self, edge_id: str, is_mutual: bool) -> Edge:
        counters = await self._run(
            self.neo4j.execute_write,
            SET_MUTUAL_QUERY,
            {"edge_id": edge_id, "is_mutual": is_mutual},
        )
        if counters.get("properties_set", 0) == 0:
            raise EdgeNotFoundError(edge_id)

        edges = await self._read_edges(FIND_BY_ID_QUERY, {"edge_id": edge_id})
        if not edges:
            raise EdgeNotFoundError(edge_id)
        return edges[0]

    async def scan(self, after_id: Optional[str] = None, limit: int = 200) -> List[Edge]:
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")
        return await self._read_edges(SCAN_QUERY, {"after_id": after_id, "limit": limit})

    async def count(self) -> int:
        records = await self._run(self.neo4j.execute_read, COUNT_QUERY, {})
        return records[0]["total"] if records else 0

    async def close(self) -> None:
        self.neo4j.close()
