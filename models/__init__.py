"""Relationship graph models."""

from models.relationships import (
    Contact,
    Direction,
    Edge,
    LogicalRelationship,
    PairKey,
    RelationshipCreate,
    new_edge_id,
)

__all__ = [
    "Contact",
    "Direction",
    "Edge",
    "LogicalRelationship",
    "PairKey",
    "RelationshipCreate",
    "new_edge_id",
]
