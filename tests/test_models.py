"""
Unit tests for relationship graph models

Tests cover:
- PairKey canonical ordering
- Edge reciprocal construction and endpoint resolution
- RelationshipCreate input validation
- LogicalRelationship projection from an edge
"""

from datetime import timezone

import pytest
from pydantic import ValidationError

from models.relationships import (
    Contact,
    Direction,
    Edge,
    LogicalRelationship,
    PairKey,
    RelationshipCreate,
    new_edge_id,
)


class TestPairKey:
    """Test canonical pair keys."""

    def test_order_independent(self):
        assert PairKey.of("alice", "bob", "friend") == PairKey.of("bob", "alice", "friend")

    def test_low_high_fields(self):
        key = PairKey.of("zed", "amy", "sibling")
        assert key.low == "amy"
        assert key.high == "zed"
        assert key.type == "sibling"

    def test_type_is_part_of_key(self):
        assert PairKey.of("alice", "bob", "friend") != PairKey.of("alice", "bob", "colleague")


class TestEdge:
    """Test Edge model."""

    def test_defaults(self):
        edge = Edge(source_id="alice", target_id="bob", type="friend")
        assert edge.id.startswith("edge-")
        assert edge.is_mutual is False
        assert edge.created_at.tzinfo == timezone.utc

    def test_ids_are_unique(self):
        assert len({new_edge_id() for _ in range(100)}) == 100

    def test_frozen(self):
        edge = Edge(source_id="alice", target_id="bob", type="friend")
        with pytest.raises(ValidationError):
            edge.is_mutual = True

    def test_reciprocal_swaps_endpoints(self):
        edge = Edge(source_id="alice", target_id="bob", type="friend", is_mutual=True)
        reverse = edge.reciprocal()

        assert reverse.source_id == "bob"
        assert reverse.target_id == "alice"
        assert reverse.type == "friend"
        assert reverse.is_mutual is True
        assert reverse.id != edge.id
        assert reverse.pair_key == edge.pair_key

    def test_resolve_other(self):
        edge = Edge(source_id="alice", target_id="bob", type="friend")

        assert edge.resolve_other("alice") == ("bob", Direction.OUTGOING)
        assert edge.resolve_other("bob") == ("alice", Direction.INCOMING)

    def test_resolve_other_unrelated_contact(self):
        edge = Edge(source_id="alice", target_id="bob", type="friend")
        with pytest.raises(ValueError, match="not an endpoint"):
            edge.resolve_other("carol")

    def test_created_at_serialized_as_iso(self):
        edge = Edge(source_id="alice", target_id="bob", type="friend")
        data = edge.model_dump(mode="json")
        assert data["created_at"] == edge.created_at.isoformat()


class TestRelationshipCreate:
    """Test create input validation."""

    def test_valid_input(self):
        request = RelationshipCreate(source_id="alice", target_id="bob", type="friend", is_mutual=True)
        assert request.is_mutual is True

    def test_type_is_stripped(self):
        request = RelationshipCreate(source_id="alice", target_id="bob", type="  friend  ")
        assert request.type == "friend"

    @pytest.mark.parametrize("rel_type", ["", "   "])
    def test_blank_type_rejected(self, rel_type):
        with pytest.raises(ValidationError):
            RelationshipCreate(source_id="alice", target_id="bob", type=rel_type)

    def test_self_relationship_rejected(self):
        with pytest.raises(ValidationError, match="different contacts"):
            RelationshipCreate(source_id="alice", target_id="alice", type="friend")

    @pytest.mark.parametrize("mutual", ["yes", 1, None])
    def test_non_bool_mutual_rejected(self, mutual):
        with pytest.raises(ValidationError):
            RelationshipCreate(source_id="alice", target_id="bob", type="friend", is_mutual=mutual)

    def test_empty_ids_rejected(self):
        with pytest.raises(ValidationError):
            RelationshipCreate(source_id="", target_id="bob", type="friend")


class TestLogicalRelationship:
    """Test projection of an edge to a logical relationship."""

    def test_canonical_contacts(self):
        edge = Edge(source_id="bob", target_id="alice", type="friend", is_mutual=True)
        relationship = LogicalRelationship.from_edge(edge)

        assert relationship.contact_a == "alice"
        assert relationship.contact_b == "bob"
        assert relationship.pair_key == PairKey("alice", "bob", "friend")
        assert relationship.other_id is None
        assert relationship.direction is None

    def test_view_from_contact(self):
        edge = Edge(source_id="bob", target_id="alice", type="manager_of")
        other = Contact(id="bob", display_name="Bob")

        relationship = LogicalRelationship.from_edge(edge, contact_id="alice", other_contact=other)

        assert relationship.other_id == "bob"
        assert relationship.direction == Direction.INCOMING
        assert relationship.other_contact.display_name == "Bob"
        assert relationship.edge_id == edge.id
