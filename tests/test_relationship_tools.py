"""
Tests for relationship MCP tools

Most tests run the tools against real in-memory services through the global
container; error-mapping tests use a mocked RelationshipManager.
"""

from models.relationships import Edge, LogicalRelationship
from services.errors import EdgeStoreError, PartialWriteError, TransientStoreError
from tools import relationship_tools
from tools.responses import ErrorType


class TestCreateRelationship:
    """Test create_relationship tool."""

    async def test_create_mutual(self, live_container):
        result = await relationship_tools.create_relationship(
            source_id="alice", target_id="bob", relationship_type="friend", is_mutual=True
        )

        assert result["success"] is True
        relationship = result["data"]["relationship"]
        assert relationship["pair_key"] == ["alice", "bob", "friend"]
        assert relationship["is_mutual"] is True
        assert "warning" not in result

    async def test_duplicate(self, live_container):
        await relationship_tools.create_relationship("alice", "bob", "friend")

        result = await relationship_tools.create_relationship("alice", "bob", "friend")

        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.DUPLICATE_RELATIONSHIP.value
        assert result["error"]["details"] == {"source_id": "alice", "target_id": "bob", "type": "friend"}

    async def test_unknown_contact(self, live_container):
        result = await relationship_tools.create_relationship("alice", "mallory", "friend")

        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.CONTACT_NOT_FOUND.value
        assert result["error"]["details"]["resource_id"] == "mallory"

    async def test_self_relationship(self, live_container):
        result = await relationship_tools.create_relationship("alice", "alice", "friend")

        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.VALIDATION_ERROR.value

    async def test_long_type_value_truncated(self, live_container):
        result = await relationship_tools.create_relationship("alice", "bob", "x" * 100)

        assert result["error"]["field"] == "type"
        assert result["error"]["details"]["invalid_value"] == "x" * 50 + "..."

    async def test_partial_write_is_success_with_warning(self, mock_container):
        relationship = LogicalRelationship.from_edge(
            Edge(source_id="alice", target_id="bob", type="friend", is_mutual=True)
        )
        mock_container.relationship_manager.create_relationship.side_effect = PartialWriteError(
            relationship, cause=TransientStoreError("locked"), queued=True
        )

        result = await relationship_tools.create_relationship(
            "alice", "bob", "friend", is_mutual=True, container=mock_container
        )

        assert result["success"] is True
        assert result["data"]["repair_queued"] is True
        assert result["data"]["relationship"]["contact_b"] == "bob"
        assert result["warning"]["type"] == ErrorType.PARTIAL_WRITE.value
        assert "locked" in result["warning"]["message"]

    async def test_store_error(self, mock_container):
        mock_container.relationship_manager.create_relationship.side_effect = EdgeStoreError("io")

        result = await relationship_tools.create_relationship(
            "alice", "bob", "friend", container=mock_container
        )

        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.SQLITE_ERROR.value
        assert result["error"]["details"]["operation"] == "create_relationship"

    async def test_unexpected_error(self, mock_container):
        mock_container.relationship_manager.create_relationship.side_effect = RuntimeError("boom")

        result = await relationship_tools.create_relationship(
            "alice", "bob", "friend", container=mock_container
        )

        assert result["error"]["type"] == ErrorType.INTERNAL_ERROR.value

    async def test_actor_id_forwarded(self, mock_container):
        mock_container.relationship_manager.create_relationship.return_value = (
            LogicalRelationship.from_edge(Edge(source_id="alice", target_id="bob", type="friend"))
        )

        await relationship_tools.create_relationship(
            "alice", "bob", "friend", actor_id="user-9", container=mock_container
        )

        mock_container.relationship_manager.create_relationship.assert_awaited_once_with(
            "alice", "bob", "friend", False, actor_id="user-9"
        )

    async def test_service_unavailable(self):
        result = await relationship_tools.create_relationship("alice", "bob", "friend")

        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.SERVICE_UNAVAILABLE.value


class TestDeleteRelationship:
    """Test delete_relationship tool."""

    async def test_delete_mutual_from_either_side(self, live_container):
        await relationship_tools.create_relationship("alice", "bob", "friend", is_mutual=True)

        result = await relationship_tools.delete_relationship("bob", "alice", "friend")

        assert result["success"] is True
        assert result["data"]["relationship_type"] == "friend"
        assert await live_container.edge_store.count() == 0

    async def test_delete_missing(self, live_container):
        result = await relationship_tools.delete_relationship("alice", "bob", "friend")

        assert result["success"] is False
        assert result["error"]["type"] == ErrorType.RELATIONSHIP_NOT_FOUND.value

    async def test_delete_blank_type(self, live_container):
        result = await relationship_tools.delete_relationship("alice", "bob", "")
        assert result["error"]["type"] == ErrorType.VALIDATION_ERROR.value


class TestListRelationships:
    """Test list_relationships tool."""

    async def test_list(self, live_container):
        await relationship_tools.create_relationship("alice", "bob", "friend", is_mutual=True)
        await relationship_tools.create_relationship("carol", "alice", "manager_of")

        result = await relationship_tools.list_relationships("alice")

        assert result["success"] is True
        assert result["data"]["total"] == 2
        by_type = {r["type"]: r for r in result["data"]["relationships"]}
        assert by_type["friend"]["other_id"] == "bob"
        assert by_type["friend"]["other_contact"]["display_name"] == "Bob"
        assert by_type["manager_of"]["direction"] == "incoming"

    async def test_list_empty(self, live_container):
        result = await relationship_tools.list_relationships("carol")

        assert result["success"] is True
        assert result["data"]["total"] == 0

    async def test_list_store_error(self, mock_container):
        mock_container.relationship_manager.list_relationships_for_contact.side_effect = (
            EdgeStoreError("io")
        )

        result = await relationship_tools.list_relationships("alice", container=mock_container)

        assert result["success"] is False
        assert result["error"]["details"]["operation"] == "list_relationships"


class TestDetachContact:
    """Test detach_contact tool."""

    async def test_detach(self, live_container):
        await relationship_tools.create_relationship("alice", "bob", "friend", is_mutual=True)

        result = await relationship_tools.detach_contact("alice", actor_id="user-1")

        assert result["success"] is True
        assert result["data"] == {"contact_id": "alice", "edges_removed": 2}

    async def test_detach_invalid(self, live_container):
        result = await relationship_tools.detach_contact("")
        assert result["error"]["type"] == ErrorType.VALIDATION_ERROR.value
