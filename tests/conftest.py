"""
Pytest configuration and fixtures for all tests
"""

from typing import Dict, List, Tuple
from unittest.mock import AsyncMock, Mock

import pytest

from config import RelationshipSettings, get_settings, reset_settings
from models.relationships import Contact, Edge
from services.consistency_repair import ConsistencyRepair
from services.contact_lookup import StaticContactLookup
from services.container import (
    ServiceContainer,
    reset_container,
    set_container,
)
from services.edge_store import InMemoryEdgeStore
from services.relationship_manager import RelationshipManager
from services.repair_outbox import RepairOutbox


class FlakyEdgeStore(InMemoryEdgeStore):
    """
    InMemoryEdgeStore that raises queued exceptions for chosen edges.

    Failures are keyed by (source_id, target_id, type) and consumed in order;
    once a key's list is empty the call goes through.
    """

    def __init__(self) -> None:
        super().__init__()
        self.create_failures: Dict[Tuple[str, str, str], List[BaseException]] = {}
        self.delete_failures: Dict[Tuple[str, str, str], List[BaseException]] = {}
        self.create_calls: List[Tuple[str, str, str]] = []
        self.delete_calls: List[str] = []

    def fail_create(self, source_id: str, target_id: str, rel_type: str, *errors: BaseException):
        self.create_failures[(source_id, target_id, rel_type)] = list(errors)

    def fail_delete(self, source_id: str, target_id: str, rel_type: str, *errors: BaseException):
        self.delete_failures[(source_id, target_id, rel_type)] = list(errors)

    def heal(self) -> None:
        self.create_failures.clear()
        self.delete_failures.clear()

    async def create(self, edge: Edge) -> Edge:
        key = (edge.source_id, edge.target_id, edge.type)
        self.create_calls.append(key)
        failures = self.create_failures.get(key)
        if failures:
            raise failures.pop(0)
        return await super().create(edge)

    async def delete(self, edge_id: str) -> None:
        self.delete_calls.append(edge_id)
        edge = self._edges.get(edge_id)
        if edge is not None:
            failures = self.delete_failures.get((edge.source_id, edge.target_id, edge.type))
            if failures:
                raise failures.pop(0)
        await super().delete(edge_id)


@pytest.fixture(autouse=True)
def reset_config():
    """Reset config singleton before each test to ensure clean state."""
    reset_settings()
    yield
    reset_settings()


@pytest.fixture(autouse=True)
def reset_service_container():
    """Reset service container before and after each test for isolation.

    This autouse fixture ensures that no service state leaks between tests,
    preventing cross-test pollution when using the ServiceContainer pattern.
    """
    reset_container()
    yield
    reset_container()


@pytest.fixture
def mock_container():
    """Provide a ServiceContainer with mocked services.

    All services are replaced with Mock objects for pure unit testing.
    Does not affect the global container - use configured_container for that.

    Example:
        async def test_something(mock_container):
            mock_container.relationship_manager.list_relationships_for_contact.return_value = []
            result = await list_relationships("alice", container=mock_container)
    """
    container = ServiceContainer()
    container.edge_store = AsyncMock()
    container.contact_lookup = AsyncMock()
    container.repair_outbox = Mock()
    container.relationship_manager = AsyncMock()
    container.consistency_repair = AsyncMock()
    container.consistency_repair.get_latest_snapshot = Mock(return_value=None)
    return container


@pytest.fixture
def configured_container(mock_container):
    """Set up a mock container as the global container.

    This fixture sets the mocked container as the global singleton,
    so code using get_container() will receive the mocked version.
    """
    set_container(mock_container)
    return mock_container


@pytest.fixture
def test_settings():
    """Provide isolated test settings."""
    return get_settings()


@pytest.fixture
def fast_settings():
    """Relationship settings with no backoff between reciprocal attempts."""
    return RelationshipSettings(reciprocal_max_attempts=3, reciprocal_retry_delay_seconds=0)


@pytest.fixture
def contacts():
    """Contact lookup holding alice, bob and carol."""
    return StaticContactLookup([
        Contact(id="alice", display_name="Alice"),
        Contact(id="bob", display_name="Bob"),
        Contact(id="carol", display_name="Carol"),
    ])


@pytest.fixture
def edge_store():
    return InMemoryEdgeStore()


@pytest.fixture
def flaky_store():
    return FlakyEdgeStore()


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "contacts.db")


@pytest.fixture
def outbox(db_path):
    """RepairOutbox on a temporary database, closed after the test."""
    outbox = RepairOutbox(db_path=db_path)
    yield outbox
    outbox.close()


@pytest.fixture
def manager(edge_store, contacts, outbox, fast_settings):
    return RelationshipManager(edge_store, contacts, outbox=outbox, settings=fast_settings)


@pytest.fixture
def flaky_manager(flaky_store, contacts, outbox, fast_settings):
    return RelationshipManager(flaky_store, contacts, outbox=outbox, settings=fast_settings)


@pytest.fixture
def repair(edge_store, outbox, db_path):
    return ConsistencyRepair(edge_store, outbox=outbox, db_path=db_path)


@pytest.fixture
def flaky_repair(flaky_store, outbox, db_path):
    return ConsistencyRepair(flaky_store, outbox=outbox, db_path=db_path)


@pytest.fixture
def live_container(edge_store, contacts, outbox, manager, repair):
    """Global container wired to real in-memory services."""
    container = ServiceContainer(
        edge_store=edge_store,
        repair_outbox=outbox,
        contact_lookup=contacts,
        relationship_manager=manager,
        consistency_repair=repair,
    )
    set_container(container)
    return container
