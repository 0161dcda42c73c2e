"""
Exception taxonomy for the relationship graph.

Store-level errors (EdgeStoreError and subclasses) are raised by EdgeStore
backends. Relationship-level errors (RelationshipError and subclasses) are
raised by RelationshipManager and ConsistencyRepair and are what callers see.
"""

from typing import Any, Optional


class EdgeStoreError(Exception):
    """Base exception for edge store errors"""

    pass


class EdgeAlreadyExistsError(EdgeStoreError):
    """Raised when an edge with the same (source_id, target_id, type) exists"""

    def __init__(self, source_id: str, target_id: str, rel_type: str):
        self.source_id = source_id
        self.target_id = target_id
        self.rel_type = rel_type
        super().__init__(f"Edge already exists: {source_id} -{rel_type}-> {target_id}")


class EdgeNotFoundError(EdgeStoreError):
    """Raised when an edge ID does not exist"""

    def __init__(self, edge_id: str):
        self.edge_id = edge_id
        super().__init__(f"Edge not found: {edge_id}")


class TransientStoreError(EdgeStoreError):
    """Raised for retryable backend failures (lock contention, unavailable service)"""

    pass


class RelationshipError(Exception):
    """Base exception for relationship errors"""

    pass


class ValidationError(RelationshipError):
    """Raised for malformed input, before any write"""

    def __init__(self, message: str, field: Optional[str] = None, invalid_value: Any = None):
        self.field = field
        self.invalid_value = invalid_value
        super().__init__(message)


class NotFoundError(RelationshipError):
    """Raised when a referenced contact or relationship does not exist"""

    resource_type = "Resource"

    def __init__(self, resource_id: str):
        self.resource_id = resource_id
        super().__init__(f"{self.resource_type} not found: {resource_id}")


class ContactNotFoundError(NotFoundError):
    resource_type = "Contact"


class RelationshipNotFoundError(NotFoundError):
    resource_type = "Relationship"


class ConflictError(RelationshipError):
    """Raised when the (source_id, target_id, type) edge already exists"""

    def __init__(self, source_id: str, target_id: str, rel_type: str):
        self.source_id = source_id
        self.target_id = target_id
        self.rel_type = rel_type
        super().__init__(
            f"relationship already exists: {source_id} -{rel_type}-> {target_id}"
        )


class PartialWriteError(RelationshipError):
    """
    Raised when the primary edge was written but the reciprocal was not.

    The primary effect happened; `relationship` describes it. The missing
    reciprocal is left for ConsistencyRepair.
    """

    def __init__(self, relationship, cause: Optional[BaseException] = None, queued: bool = False):
        self.relationship = relationship
        self.cause = cause
        self.queued = queued
        super().__init__(
            f"Reciprocal edge for {relationship.contact_a} <-{relationship.type}-> "
            f"{relationship.contact_b} was not written: {cause}"
        )


class RepairError(RelationshipError):
    """Raised (and recorded per edge) when a single dangling edge cannot be healed"""

    def __init__(self, edge_id: str, message: str):
        self.edge_id = edge_id
        super().__init__(f"Repair failed for edge {edge_id}: {message}")
