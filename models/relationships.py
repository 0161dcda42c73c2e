"""
Relationship graph models

One Edge is one directed arrow between two contacts. A mutual relationship
is stored as two Edges (A->B and B->A, same type, both is_mutual=True) and
surfaces to callers as a single LogicalRelationship keyed by its PairKey.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictBool, field_serializer, field_validator, model_validator


def new_edge_id() -> str:
    """Generate a unique edge ID."""
    return f"edge-{uuid.uuid4().hex[:12]}"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Direction(str, Enum):
    """Direction of an edge as seen from one of its contacts."""

    OUTGOING = "outgoing"
    INCOMING = "incoming"


class PairKey(NamedTuple):
    """Unordered identifier of a logical relationship: (min id, max id, type)."""

    low: str
    high: str
    type: str

    @classmethod
    def of(cls, source_id: str, target_id: str, rel_type: str) -> "PairKey":
        if source_id <= target_id:
            return cls(source_id, target_id, rel_type)
        return cls(target_id, source_id, rel_type)


class Contact(BaseModel):
    """Read-only view of a contact owned by the contact-CRUD service."""

    id: str
    display_name: str = ""
    owner_id: Optional[str] = None


class RelationshipCreate(BaseModel):
    """
    Validated input for creating a relationship.

    Raises pydantic.ValidationError on malformed input (blank type,
    self-relationship, non-bool mutual flag).
    """

    source_id: str = Field(min_length=1)
    target_id: str = Field(min_length=1)
    type: str = Field(min_length=1, max_length=255)
    is_mutual: StrictBool = False

    @field_validator("type", mode="before")
    @classmethod
    def strip_type(cls, value):
        if isinstance(value, str):
            return value.strip()
        return value

    @model_validator(mode="after")
    def check_distinct_contacts(self) -> "RelationshipCreate":
        if self.source_id == self.target_id:
            raise ValueError("source_id and target_id must be different contacts")
        return self


class Edge(BaseModel):
    """A single directed relationship record."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(default_factory=new_edge_id)
    source_id: str
    target_id: str
    type: str = Field(min_length=1)
    is_mutual: bool = False
    created_at: datetime = Field(default_factory=_utcnow)

    @field_serializer("created_at")
    def serialize_datetime(self, dt: datetime) -> str:
        return dt.isoformat()

    @property
    def pair_key(self) -> PairKey:
        return PairKey.of(self.source_id, self.target_id, self.type)

    def reciprocal(self) -> "Edge":
        """Build (not persist) the reverse edge of a mutual pair."""
        return Edge(
            source_id=self.target_id,
            target_id=self.source_id,
            type=self.type,
            is_mutual=True,
        )

    def resolve_other(self, contact_id: str) -> tuple[str, Direction]:
        """
        Return the contact on the other end of this edge and the edge direction.

        Raises:
            ValueError: If contact_id is on neither end of the edge
        """
        if contact_id == self.source_id:
            return self.target_id, Direction.OUTGOING
        if contact_id == self.target_id:
            return self.source_id, Direction.INCOMING
        raise ValueError(f"Contact {contact_id} is not an endpoint of edge {self.id}")


class LogicalRelationship(BaseModel):
    """
    One undirected relationship as seen by callers.

    contact_a/contact_b are in canonical (min, max) order. The other_* and
    direction fields are filled in only when listing for a specific contact.
    """

    pair_key: PairKey
    type: str
    is_mutual: bool
    contact_a: str
    contact_b: str
    edge_id: Optional[str] = None
    other_id: Optional[str] = None
    other_contact: Optional[Contact] = None
    direction: Optional[Direction] = None

    @classmethod
    def from_edge(
        cls,
        edge: Edge,
        contact_id: Optional[str] = None,
        other_contact: Optional[Contact] = None,
    ) -> "LogicalRelationship":
        key = edge.pair_key
        other_id = None
        direction = None
        if contact_id is not None:
            other_id, direction = edge.resolve_other(contact_id)
        return cls(
            pair_key=key,
            type=edge.type,
            is_mutual=edge.is_mutual,
            contact_a=key.low,
            contact_b=key.high,
            edge_id=edge.id,
            other_id=other_id,
            other_contact=other_contact,
            direction=direction,
        )
