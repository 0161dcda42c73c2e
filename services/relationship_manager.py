"""
Relationship Manager

Presents pairs of directed edges as single undirected relationships.

A mutual relationship is two edges written one after the other with no
cross-record transaction. The primary edge is written first; once it exists
the operation has taken effect and is never rolled back. The reciprocal write
is retried a few times on transient errors and otherwise left to
ConsistencyRepair, with an intent in the RepairOutbox recording the unfinished
work.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Dict, List, Optional, TypeVar

from pydantic import ValidationError as PydanticValidationError

from config import RelationshipSettings, get_settings
from models.relationships import Contact, Edge, LogicalRelationship, PairKey, RelationshipCreate
from services.contact_lookup import ContactLookup
from services.edge_store import EdgeStore
from services.errors import (
    ConflictError,
    ContactNotFoundError,
    EdgeAlreadyExistsError,
    EdgeNotFoundError,
    EdgeStoreError,
    PartialWriteError,
    RelationshipNotFoundError,
    TransientStoreError,
    ValidationError,
)
from services.repair_outbox import RepairOutbox, RepairOutboxError


logger = logging.getLogger(__name__)

T = TypeVar("T")


class RelationshipManager:
    """
    Paired writes, paired deletes and deduplicated listing over an EdgeStore.

    Example:
        ```python
        manager = RelationshipManager(edge_store, contact_lookup, outbox)
        await manager.create_relationship("alice", "bob", "friend", mutual=True, actor_id="u1")
        relationships = await manager.list_relationships_for_contact("alice")
        ```
    """

    def __init__(
        self,
        edge_store: EdgeStore,
        contact_lookup: ContactLookup,
        outbox: Optional[RepairOutbox] = None,
        settings: Optional[RelationshipSettings] = None,
    ):
        """
        Initialize RelationshipManager

        Args:
            edge_store: Persistence for single directed edges
            contact_lookup: Existence check and resolution of contacts
            outbox: Optional intent queue; without it unfinished pairs are
                found only by the repair sweep
            settings: Retry and validation settings (defaults to get_settings())
        """
        self.edge_store = edge_store
        self.contact_lookup = contact_lookup
        self.outbox = outbox

        settings = settings or get_settings().relationships
        self.max_attempts = settings.reciprocal_max_attempts
        self.retry_delay = settings.reciprocal_retry_delay_seconds
        self.max_type_length = settings.max_type_length

    # ------------------------------------------------------------------
    # Validation
    # ------------------------------------------------------------------

    def _validate(
        self, source_id: str, target_id: str, rel_type: str, mutual: bool
    ) -> RelationshipCreate:
        try:
            request = RelationshipCreate(
                source_id=source_id, target_id=target_id, type=rel_type, is_mutual=mutual
            )
        except PydanticValidationError as e:
            first = e.errors()[0]
            field = ".".join(str(part) for part in first.get("loc", ())) or None
            raise ValidationError(
                first.get("msg", str(e)), field=field, invalid_value=first.get("input")
            ) from e

        if len(request.type) > self.max_type_length:
            raise ValidationError(
                f"type must be at most {self.max_type_length} characters",
                field="type",
                invalid_value=request.type,
            )
        return request

    @staticmethod
    def _require_key(source_id: str, target_id: str, rel_type: str) -> str:
        """Light validation for lookups by (source, target, type); returns the stripped type."""
        if not isinstance(source_id, str) or not source_id:
            raise ValidationError("source_id is required", field="source_id", invalid_value=source_id)
        if not isinstance(target_id, str) or not target_id:
            raise ValidationError("target_id is required", field="target_id", invalid_value=target_id)
        if not isinstance(rel_type, str) or not rel_type.strip():
            raise ValidationError("type cannot be empty", field="type", invalid_value=rel_type)
        return rel_type.strip()

    async def _require_contact(self, contact_id: str) -> Contact:
        contact = await self.contact_lookup.get_contact(contact_id)
        if contact is None:
            raise ContactNotFoundError(contact_id)
        return contact

    # ------------------------------------------------------------------
    # Outbox helpers
    # ------------------------------------------------------------------

    async def _record_intent(self, action: str, edge_key: tuple[str, str, str]) -> Optional[str]:
        """Record an intent; a failing outbox is logged and the write goes ahead."""
        if self.outbox is None:
            return None
        try:
            return await asyncio.to_thread(self.outbox.add_intent, action, *edge_key)
        except RepairOutboxError as e:
            logger.warning(
                f"Could not record {action} intent for {edge_key}: {e}",
                extra={"operation": action, "edge_key": edge_key},
            )
            return None

    async def _close_intent(self, intent_id: Optional[str]) -> None:
        if intent_id is not None and self.outbox is not None:
            await asyncio.to_thread(self.outbox.mark_processed, intent_id)

    # ------------------------------------------------------------------
    # Retry
    # ------------------------------------------------------------------

    async def _retry_transient(self, func: Callable[..., Awaitable[T]], *args) -> T:
        """
        Run func, retrying on TransientStoreError with exponential backoff.

        The last TransientStoreError is re-raised once attempts are exhausted.
        """
        attempt = 1
        while True:
            try:
                return await func(*args)
            except TransientStoreError as e:
                if attempt >= self.max_attempts:
                    raise
                delay = self.retry_delay * (2 ** (attempt - 1))
                name = getattr(func, "__name__", repr(func))
                logger.debug(
                    f"Transient failure in {name} (attempt {attempt}/{self.max_attempts}), "
                    f"retrying in {delay:.3f}s: {e}"
                )
                await asyncio.sleep(delay)
                attempt += 1

    async def _create_reciprocal(self, primary: Edge) -> None:
        reciprocal = primary.reciprocal()
        try:
            await self.edge_store.create(reciprocal)
            return
        except EdgeAlreadyExistsError:
            pass

        # Someone else wrote the reverse edge. A one-directional reverse edge is
        # promoted so the pair satisfies the mutual invariant.
        existing = await self.edge_store.find(
            reciprocal.source_id, reciprocal.target_id, reciprocal.type
        )
        if existing is not None and not existing.is_mutual:
            await self.edge_store.set_mutual(existing.id, True)
            logger.info(f"Promoted existing reverse edge {existing.id} to mutual")

    async def _delete_reciprocal(self, edge: Edge) -> bool:
        reciprocal = await self.edge_store.find(edge.target_id, edge.source_id, edge.type)
        if reciprocal is None:
            logger.debug(f"No reciprocal for edge {edge.id}; pair was already one-sided")
            return False
        if not reciprocal.is_mutual:
            # An independent one-directional relationship, not our pair half
            return False
        try:
            await self.edge_store.delete(reciprocal.id)
        except EdgeNotFoundError:
            return False
        return True

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    async def create_relationship(
        self,
        source_id: str,
        target_id: str,
        rel_type: str,
        mutual: bool = False,
        *,
        actor_id: Optional[str] = None,
    ) -> LogicalRelationship:
        """
        Create a relationship, writing the reciprocal edge when mutual.

        Raises:
            ValidationError: Malformed input (nothing written)
            ContactNotFoundError: Either contact does not exist (nothing written)
            ConflictError: The (source, target, type) edge already exists
            PartialWriteError: Primary edge written, reciprocal left for repair
        """
        request = self._validate(source_id, target_id, rel_type, mutual)
        source_id, target_id, rel_type = request.source_id, request.target_id, request.type
        log_extra = {
            "operation": "create_relationship",
            "actor_id": actor_id,
            "source_id": source_id,
            "target_id": target_id,
            "relationship_type": rel_type,
            "is_mutual": request.is_mutual,
        }

        await self._require_contact(source_id)
        await self._require_contact(target_id)

        if await self.edge_store.find(source_id, target_id, rel_type) is not None:
            raise ConflictError(source_id, target_id, rel_type)

        intent_id = None
        if request.is_mutual:
            intent_id = await self._record_intent(
                RepairOutbox.ACTION_CREATE_PAIR, (source_id, target_id, rel_type)
            )

        primary = Edge(
            source_id=source_id,
            target_id=target_id,
            type=rel_type,
            is_mutual=request.is_mutual,
        )
        try:
            await self.edge_store.create(primary)
        except EdgeAlreadyExistsError:
            await self._close_intent(intent_id)
            logger.info(f"Concurrent create collapsed to conflict: {source_id} -{rel_type}-> {target_id}",
                        extra=log_extra)
            raise ConflictError(source_id, target_id, rel_type) from None
        except EdgeStoreError:
            await self._close_intent(intent_id)
            raise

        relationship = LogicalRelationship.from_edge(primary)

        if not request.is_mutual:
            logger.info(f"Created relationship {primary.id}: {source_id} -{rel_type}-> {target_id}",
                        extra=log_extra)
            return relationship

        try:
            await self._retry_transient(self._create_reciprocal, primary)
        except Exception as e:
            if intent_id is None:
                intent_id = await self._record_intent(
                    RepairOutbox.ACTION_CREATE_PAIR, (source_id, target_id, rel_type)
                )
            logger.warning(
                f"Reciprocal write failed for {source_id} <-{rel_type}-> {target_id}; "
                f"primary edge {primary.id} kept for repair: {e}",
                extra={**log_extra, "edge_id": primary.id, "queued": intent_id is not None},
            )
            raise PartialWriteError(relationship, cause=e, queued=intent_id is not None) from e

        await self._close_intent(intent_id)
        logger.info(f"Created mutual relationship {source_id} <-{rel_type}-> {target_id}",
                    extra=log_extra)
        return relationship

    async def delete_relationship(
        self,
        source_id: str,
        target_id: str,
        rel_type: str,
        *,
        actor_id: Optional[str] = None,
    ) -> None:
        """
        Delete a relationship and, when mutual, its reciprocal edge.

        A missing reciprocal is not an error. A reciprocal that cannot be
        deleted is logged and left to repair; the caller still succeeds.

        Raises:
            ValidationError: Missing ids or blank type
            RelationshipNotFoundError: No edge (source, target, type)
        """
        rel_type = self._require_key(source_id, target_id, rel_type)
        log_extra = {
            "operation": "delete_relationship",
            "actor_id": actor_id,
            "source_id": source_id,
            "target_id": target_id,
            "relationship_type": rel_type,
        }

        edge = await self.edge_store.find(source_id, target_id, rel_type)
        if edge is None:
            raise RelationshipNotFoundError(f"{source_id} -{rel_type}-> {target_id}")

        intent_id = None
        if edge.is_mutual:
            intent_id = await self._record_intent(
                RepairOutbox.ACTION_DELETE_PAIR, (source_id, target_id, rel_type)
            )

        try:
            await self.edge_store.delete(edge.id)
        except EdgeNotFoundError:
            logger.debug(f"Edge {edge.id} already deleted concurrently", extra=log_extra)
        except EdgeStoreError:
            await self._close_intent(intent_id)
            raise

        if not edge.is_mutual:
            logger.info(f"Deleted relationship {edge.id}", extra=log_extra)
            return

        try:
            await self._retry_transient(self._delete_reciprocal, edge)
        except Exception as e:
            if intent_id is None:
                intent_id = await self._record_intent(
                    RepairOutbox.ACTION_DELETE_PAIR, (source_id, target_id, rel_type)
                )
            logger.warning(
                f"Reciprocal delete failed for {source_id} <-{rel_type}-> {target_id}; "
                f"left for repair: {e}",
                extra={**log_extra, "edge_id": edge.id, "queued": intent_id is not None},
            )
            return

        await self._close_intent(intent_id)
        logger.info(f"Deleted mutual relationship {source_id} <-{rel_type}-> {target_id}",
                    extra=log_extra)

    async def _resolve_contact(self, contact_id: str) -> Optional[Contact]:
        try:
            return await self.contact_lookup.get_contact(contact_id)
        except Exception as e:
            logger.warning(f"Contact lookup failed for {contact_id}: {e}")
            return None

    async def list_relationships_for_contact(self, contact_id: str) -> List[LogicalRelationship]:
        """
        List one LogicalRelationship per canonical pair key touching contact_id.

        Forward edges (contact is the source) come first and win over reverse
        edges of the same pair; store order is kept within each list. One-sided
        mutual edges are listed as they are.
        """
        if not isinstance(contact_id, str) or not contact_id:
            raise ValidationError("contact_id is required", field="contact_id", invalid_value=contact_id)

        forward = await self.edge_store.find_all_by_source(contact_id)
        reverse = await self.edge_store.find_all_by_target(contact_id)

        survivors: Dict[PairKey, Edge] = {}
        for edge in forward + reverse:
            survivors.setdefault(edge.pair_key, edge)

        edges = list(survivors.values())
        others = [edge.resolve_other(contact_id)[0] for edge in edges]
        contacts = await asyncio.gather(*(self._resolve_contact(other) for other in others))

        return [
            LogicalRelationship.from_edge(edge, contact_id=contact_id, other_contact=contact)
            for edge, contact in zip(edges, contacts)
        ]

    async def detach_contact(self, contact_id: str, *, actor_id: Optional[str] = None) -> int:
        """
        Delete every edge touching contact_id; called before the contact itself is deleted.

        Returns:
            Number of edges removed
        """
        if not isinstance(contact_id, str) or not contact_id:
            raise ValidationError("contact_id is required", field="contact_id", invalid_value=contact_id)

        edges: Dict[str, Edge] = {}
        for edge in await self.edge_store.find_all_by_source(contact_id):
            edges[edge.id] = edge
        for edge in await self.edge_store.find_all_by_target(contact_id):
            edges.setdefault(edge.id, edge)

        # Tombstone each mutual pair so the sweep does not recreate a half
        # between the two deletes.
        intents: Dict[PairKey, Optional[str]] = {}
        for edge in edges.values():
            if edge.is_mutual and edge.pair_key not in intents:
                intents[edge.pair_key] = await self._record_intent(
                    RepairOutbox.ACTION_DELETE_PAIR, (edge.source_id, edge.target_id, edge.type)
                )

        removed = 0
        for edge in edges.values():
            try:
                await self._retry_transient(self.edge_store.delete, edge.id)
                removed += 1
            except EdgeNotFoundError:
                logger.debug(f"Edge {edge.id} already deleted concurrently")

        for intent_id in intents.values():
            await self._close_intent(intent_id)

        logger.info(
            f"Detached contact {contact_id}: removed {removed} edges",
            extra={"operation": "detach_contact", "actor_id": actor_id, "contact_id": contact_id},
        )
        return removed
