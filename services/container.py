"""Centralized service container for dependency injection.

Replaces scattered global variables with a single, testable container.
Follows the singleton pattern from config/settings.py.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from services.consistency_repair import ConsistencyRepair
    from services.contact_lookup import ContactLookup
    from services.edge_store import EdgeStore
    from services.neo4j_service import Neo4jService
    from services.relationship_manager import RelationshipManager
    from services.repair_outbox import RepairOutbox

logger = logging.getLogger(__name__)


@dataclass
class ServiceContainer:
    """
    Centralized container for all runtime service instances.

    Usage:
        from services.container import get_container
        container = get_container()
        await container.relationship_manager.create_relationship(...)

    Testing:
        from services.container import reset_container, set_container
        reset_container()  # Clear singleton
        set_container(mock_container)  # Inject test container
    """

    # Storage
    edge_store: Optional["EdgeStore"] = None
    neo4j_service: Optional["Neo4jService"] = None
    repair_outbox: Optional["RepairOutbox"] = None

    # External collaborator
    contact_lookup: Optional["ContactLookup"] = None

    # Relationship graph
    relationship_manager: Optional["RelationshipManager"] = None
    consistency_repair: Optional["ConsistencyRepair"] = None

    # Background repair
    repair_worker_task: Optional[asyncio.Task] = None

    def is_initialized(self) -> bool:
        """Check if core services are initialized."""
        return all([
            self.edge_store is not None,
            self.contact_lookup is not None,
            self.relationship_manager is not None,
            self.consistency_repair is not None,
        ])

    def get_service_status(self) -> dict:
        """Return initialization status of all services."""
        return {
            "edge_store": self.edge_store is not None,
            "neo4j_service": self.neo4j_service is not None,
            "repair_outbox": self.repair_outbox is not None,
            "contact_lookup": self.contact_lookup is not None,
            "relationship_manager": self.relationship_manager is not None,
            "consistency_repair": self.consistency_repair is not None,
            "repair_worker": self.repair_worker_task is not None
            and not self.repair_worker_task.done(),
        }

    async def shutdown(self) -> None:
        """Gracefully shutdown all services."""
        logger.info("Shutting down service container...")

        # Cancel async task first
        if self.repair_worker_task:
            self.repair_worker_task.cancel()
            try:
                await self.repair_worker_task
            except asyncio.CancelledError:
                pass
            logger.debug("Repair worker task cancelled")

        # Closes the Neo4j driver too when the store is Neo4j-backed
        if self.edge_store:
            await self.edge_store.close()
            logger.debug("Edge store closed")
        elif self.neo4j_service:
            self.neo4j_service.close()
            logger.debug("Neo4j service closed")

        if self.repair_outbox:
            self.repair_outbox.close()
            logger.debug("Repair outbox closed")

        logger.info("Service container shutdown complete")


# Module-level singleton (matches config/settings.py pattern)
_container: Optional[ServiceContainer] = None


def get_container() -> ServiceContainer:
    """
    Get the service container singleton.

    Creates an empty container on first access.
    Use initialize() in mcp_server.py to populate services.

    Returns:
        ServiceContainer instance (may be uninitialized)
    """
    global _container
    if _container is None:
        _container = ServiceContainer()
    return _container


def set_container(container: ServiceContainer) -> None:
    """
    Replace the singleton container.

    Primarily used for testing to inject mock containers.

    Args:
        container: Pre-configured container to use
    """
    global _container
    _container = container


def reset_container() -> None:
    """
    Reset the container singleton.

    Should be called in test fixtures to ensure clean state.
    """
    global _container
    _container = None
