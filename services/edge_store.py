"""
EdgeStore contract and in-memory implementation.

An EdgeStore persists single directed edges. It knows nothing about mutual
pairs: each call touches exactly one record and is atomic for that record
only. Pairing, deduplication and repair live in RelationshipManager and
ConsistencyRepair.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Tuple

from models.relationships import Edge
from services.errors import EdgeAlreadyExistsError, EdgeNotFoundError


logger = logging.getLogger(__name__)


class EdgeStore(ABC):
    """Abstract base class for directed edge persistence."""

    @abstractmethod
    async def find(self, source_id: str, target_id: str, rel_type: str) -> Optional[Edge]:
        """Return the edge for (source_id, target_id, rel_type), or None."""

    @abstractmethod
    async def find_all_by_source(self, contact_id: str) -> List[Edge]:
        """Return edges whose source is contact_id, in creation order."""

    @abstractmethod
    async def find_all_by_target(self, contact_id: str) -> List[Edge]:
        """Return edges whose target is contact_id, in creation order."""

    @abstractmethod
    async def create(self, edge: Edge) -> Edge:
        """
        Persist a new edge.

        Raises:
            EdgeAlreadyExistsError: If (source_id, target_id, type) is already present
        """

    @abstractmethod
    async def delete(self, edge_id: str) -> None:
        """
        Delete an edge by ID.

        Raises:
            EdgeNotFoundError: If the edge does not exist
        """

    @abstractmethod
    async def set_mutual(self, edge_id: str, is_mutual: bool) -> Edge:
        """
        Update the is_mutual flag of a single edge.

        Raises:
            EdgeNotFoundError: If the edge does not exist
        """

    @abstractmethod
    async def scan(self, after_id: Optional[str] = None, limit: int = 200) -> List[Edge]:
        """Return up to `limit` edges with id > after_id, ordered by id."""

    @abstractmethod
    async def count(self) -> int:
        """Return the total number of edges."""

    async def close(self) -> None:
        """Release backend resources."""
        return None


class InMemoryEdgeStore(EdgeStore):
    """
    Edge table kept in process memory.

    Edges live in an id-indexed arena; a (source, target, type) index enforces
    uniqueness. Used for tests and for EDGE_STORE_BACKEND=memory.
    """

    def __init__(self) -> None:
        self._edges: Dict[str, Edge] = {}
        self._index: Dict[Tuple[str, str, str], str] = {}

    async def find(self, source_id: str, target_id: str, rel_type: str) -> Optional[Edge]:
        edge_id = self._index.get((source_id, target_id, rel_type))
        if edge_id is None:
            return None
        return self._edges[edge_id]

    async def find_all_by_source(self, contact_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.source_id == contact_id]

    async def find_all_by_target(self, contact_id: str) -> List[Edge]:
        return [e for e in self._edges.values() if e.target_id == contact_id]

    async def create(self, edge: Edge) -> Edge:
        key = (edge.source_id, edge.target_id, edge.type)
        if key in self._index:
            raise EdgeAlreadyExistsError(*key)
        if edge.id in self._edges:
            raise EdgeAlreadyExistsError(*key)

        self._edges[edge.id] = edge
        self._index[key] = edge.id
        logger.debug(f"Created edge {edge.id}: {edge.source_id} -{edge.type}-> {edge.target_id}")
        return edge

    async def delete(self, edge_id: str) -> None:
        edge = self._edges.pop(edge_id, None)
        if edge is None:
            raise EdgeNotFoundError(edge_id)
        self._index.pop((edge.source_id, edge.target_id, edge.type), None)
        logger.debug(f"Deleted edge {edge_id}")

    async def set_mutual(self, edge_id: str, is_mutual: bool) -> Edge:
        edge = self._edges.get(edge_id)
        if edge is None:
            raise EdgeNotFoundError(edge_id)
        updated = edge.model_copy(update={"is_mutual": is_mutual})
        self._edges[edge_id] = updated
        return updated

    async def scan(self, after_id: Optional[str] = None, limit: int = 200) -> List[Edge]:
        if limit < 0:
            raise ValueError(f"limit must be non-negative, got {limit}")
        ids = sorted(i for i in self._edges if after_id is None or i > after_id)
        return [self._edges[i] for i in ids[:limit]]

    async def count(self) -> int:
        return len(self._edges)
