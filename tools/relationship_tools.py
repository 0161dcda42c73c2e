"""
MCP Tools for Relationship Operations

Create, delete and list relationships between contacts. A mutual relationship
is stored as two directed edges but is reported here as one relationship.
"""

import logging
from typing import Any, Optional

from config import get_settings
from models.relationships import LogicalRelationship
from services.container import get_container, ServiceContainer
from services.errors import (
    ConflictError,
    ContactNotFoundError,
    EdgeStoreError,
    PartialWriteError,
    RelationshipNotFoundError,
    ValidationError,
)
from .responses import (
    ErrorType,
    database_error,
    error_response,
    internal_error,
    not_found_error,
    success_response,
    validation_error,
    warning_response,
)
from .service_utils import requires_services


logger = logging.getLogger(__name__)


def _get_manager(container: Optional[ServiceContainer] = None):
    """Get relationship manager from container."""
    if container is not None and container.relationship_manager is not None:
        return container.relationship_manager
    return get_container().relationship_manager


def _relationship_to_dict(relationship: LogicalRelationship) -> dict[str, Any]:
    data = relationship.model_dump(mode="json")
    data["pair_key"] = list(relationship.pair_key)
    return data


def _store_error(operation: str, error: EdgeStoreError) -> dict[str, Any]:
    logger.error(f"Edge store error in {operation}: {error}", exc_info=True, extra={
        "operation": operation,
    })
    return database_error(service_name=get_settings().edge_store_backend, operation=operation)


# =============================================================================
# MCP Tool Functions
# =============================================================================


@requires_services("relationship_manager")
async def create_relationship(
    source_id: str,
    target_id: str,
    relationship_type: str,
    is_mutual: bool = False,
    actor_id: str | None = None,
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    Create a relationship between two contacts.

    A mutual relationship writes both directions. If the second direction
    cannot be written the relationship still exists and the response carries
    a "partial_write" warning; repair completes the pair later.

    Args:
        source_id: ID of the source contact (required)
        target_id: ID of the target contact (required)
        relationship_type: Free-form type, e.g. "friend" or "colleague" (required)
        is_mutual: Whether the relationship holds in both directions
        actor_id: Identity of the caller, recorded in logs only

    Returns:
        {
            "success": bool,
            "message": str,
            "data": {"relationship": {...}},
            "warning": {...}  # only on partial write
        }

    Examples:
        >>> create_relationship("alice", "bob", "friend", is_mutual=True)
        >>> create_relationship("alice", "carol", "manager_of")
    """
    log_extra = {
        "operation": "create_relationship",
        "source_id": source_id,
        "target_id": target_id,
        "relationship_type": relationship_type,
        "actor_id": actor_id,
    }
    try:
        manager = _get_manager(container)
        relationship = await manager.create_relationship(
            source_id, target_id, relationship_type, is_mutual, actor_id=actor_id
        )
        return success_response(
            "Relationship created", relationship=_relationship_to_dict(relationship)
        )

    except PartialWriteError as e:
        return warning_response(
            "Relationship created",
            ErrorType.PARTIAL_WRITE,
            str(e),
            relationship=_relationship_to_dict(e.relationship),
            repair_queued=e.queued,
        )
    except ValidationError as e:
        logger.warning(f"Validation error in create_relationship: {e}", extra=log_extra)
        return validation_error(str(e), field=e.field, invalid_value=e.invalid_value)
    except ContactNotFoundError as e:
        return not_found_error("Contact", e.resource_id)
    except ConflictError as e:
        logger.info(f"Duplicate relationship rejected: {e}", extra=log_extra)
        return error_response(
            ErrorType.DUPLICATE_RELATIONSHIP,
            str(e),
            details={"source_id": e.source_id, "target_id": e.target_id, "type": e.rel_type},
        )
    except EdgeStoreError as e:
        return _store_error("create_relationship", e)
    except ValueError as e:
        logger.warning(f"Validation error in create_relationship: {e}", extra=log_extra)
        return validation_error(str(e))
    except Exception as e:
        logger.error(f"Unexpected error in create_relationship: {e}", exc_info=True, extra=log_extra)
        return internal_error(str(e))


@requires_services("relationship_manager")
async def delete_relationship(
    source_id: str,
    target_id: str,
    relationship_type: str,
    actor_id: str | None = None,
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    Delete a relationship between two contacts.

    Deleting either direction of a mutual relationship removes both edges.

    Args:
        source_id: ID of the source contact (required)
        target_id: ID of the target contact (required)
        relationship_type: Type of relationship to delete (required)
        actor_id: Identity of the caller, recorded in logs only

    Returns:
        {"success": bool, "message": str}

    Examples:
        >>> delete_relationship("alice", "bob", "friend")
    """
    log_extra = {
        "operation": "delete_relationship",
        "source_id": source_id,
        "target_id": target_id,
        "relationship_type": relationship_type,
        "actor_id": actor_id,
    }
    try:
        manager = _get_manager(container)
        await manager.delete_relationship(
            source_id, target_id, relationship_type, actor_id=actor_id
        )
        return success_response(
            "Relationship deleted",
            source_id=source_id,
            target_id=target_id,
            relationship_type=relationship_type,
        )

    except ValidationError as e:
        logger.warning(f"Validation error in delete_relationship: {e}", extra=log_extra)
        return validation_error(str(e), field=e.field, invalid_value=e.invalid_value)
    except RelationshipNotFoundError as e:
        return not_found_error("Relationship", e.resource_id)
    except EdgeStoreError as e:
        return _store_error("delete_relationship", e)
    except Exception as e:
        logger.error(f"Unexpected error in delete_relationship: {e}", exc_info=True, extra=log_extra)
        return internal_error(str(e))


@requires_services("relationship_manager")
async def list_relationships(
    contact_id: str,
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    List the relationships of a contact, one entry per relationship.

    Args:
        contact_id: ID of the contact (required)

    Returns:
        {
            "success": bool,
            "message": str,
            "data": {"relationships": [...], "total": int}
        }
    """
    try:
        manager = _get_manager(container)
        relationships = await manager.list_relationships_for_contact(contact_id)
        return success_response(
            f"Found {len(relationships)} relationships",
            relationships=[_relationship_to_dict(r) for r in relationships],
            total=len(relationships),
        )

    except ValidationError as e:
        return validation_error(str(e), field=e.field, invalid_value=e.invalid_value)
    except EdgeStoreError as e:
        return _store_error("list_relationships", e)
    except Exception as e:
        logger.error(f"Unexpected error in list_relationships: {e}", exc_info=True, extra={
            "operation": "list_relationships",
            "contact_id": contact_id,
        })
        return internal_error(str(e))


@requires_services("relationship_manager")
async def detach_contact(
    contact_id: str,
    actor_id: str | None = None,
    container: Optional[ServiceContainer] = None,
) -> dict[str, Any]:
    """
    Remove every relationship of a contact, before the contact itself is deleted.

    Args:
        contact_id: ID of the contact (required)
        actor_id: Identity of the caller, recorded in logs only

    Returns:
        {"success": bool, "message": str, "data": {"contact_id": str, "edges_removed": int}}
    """
    try:
        manager = _get_manager(container)
        removed = await manager.detach_contact(contact_id, actor_id=actor_id)
        return success_response(
            "Contact detached", contact_id=contact_id, edges_removed=removed
        )

    except ValidationError as e:
        return validation_error(str(e), field=e.field, invalid_value=e.invalid_value)
    except EdgeStoreError as e:
        return _store_error("detach_contact", e)
    except Exception as e:
        logger.error(f"Unexpected error in detach_contact: {e}", exc_info=True, extra={
            "operation": "detach_contact",
            "contact_id": contact_id,
            "actor_id": actor_id,
        })
        return internal_error(str(e))
